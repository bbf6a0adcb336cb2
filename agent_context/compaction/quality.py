# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Summary quality validation.

Rule-based checks measure how many technical terms, code references and
file paths of the original survive in the summary. An optional LLM pass
scores completeness, accuracy and actionability. Validation is advisory:
the report is attached to the compaction result, it never blocks it.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Literal, Optional, Protocol, Sequence, Set, Union

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage

from agent_context.compaction.settings import SummaryQualityConfig
from agent_context.compaction.tokens import TokenCounter, estimate_tokens_heuristic
from agent_context.models import Message, message_text
from agent_context.prompts.base import QUALITY_EVALUATION_PROMPT

logger = logging.getLogger(__name__)

MIN_LLM_SCORE = 6
DEFAULT_LLM_SCORE = 5.0
MAX_LOST_CODE_REFS = 10
MIN_PATH_RETENTION = 0.5

_TECH_PATTERNS = {
    "function_name": re.compile(r"(?:async\s+)?(?:def|function)\s+(\w+)|(\w+)\s*\("),
    "class_name": re.compile(r"(?:class|interface|type|enum)\s+(\w+)"),
    "file_path": re.compile(r"(?:\.{0,2}/)?(?:[\w.-]+/)+[\w.-]+\.\w+|/[\w.-]+\.\w+"),
    "code_ref": re.compile(r"`{1,3}[^`]+`{1,3}"),
    "error_message": re.compile(
        r"\b\w*(?:Error|Exception):\s*[^\n]+|\bat\s+[\w./]+:\d+|File \"[^\"]+\", line \d+"
    ),
    "import": re.compile(
        r"from\s+[\w.]+\s+import\s+[\w, ]+|(?:import|export)\s+(?:(?:type\s+)?\{[^}]+\}|[\w.]+|\*)"
        r"(?:\s+from\s+['\"][^'\"]+['\"])?"
    ),
    "package_name": re.compile(r"@[\w-]+/[\w-]+|\b[A-Za-z]\w*(?:-[A-Za-z0-9_]+)+\b"),
}

_COMMON_WORDS = frozenset(
    """
    if for while switch return new this that then else elif case break continue
    throw raise catch except try the a an is are was be to of and or not in on at
    by with from as it its use get set has have do does did will would could
    should may might must can print len str int
    """.split()
)

LostItemType = Literal["tech_term", "file_path", "error_message", "code_ref"]


@dataclass
class ExtractedTerms:
    """Technical terms found in a text, one set per category."""

    function_names: Set[str] = field(default_factory=set)
    class_names: Set[str] = field(default_factory=set)
    file_paths: Set[str] = field(default_factory=set)
    code_refs: Set[str] = field(default_factory=set)
    error_messages: Set[str] = field(default_factory=set)
    imports: Set[str] = field(default_factory=set)
    package_names: Set[str] = field(default_factory=set)


@dataclass(frozen=True)
class LostItem:
    """A term of the original missing from the summary.

    Attributes:
        type (LostItemType): Category of the term.
        original (str): The term as it appeared in the original.
        context (str): Short description for reports.
    """

    type: LostItemType
    original: str
    context: str


@dataclass
class RuleValidationResult:
    """Rule-based retention measurements.

    Attributes:
        tech_term_retention (float): Share of function/class names retained.
        code_ref_retention (float): Share of inline code references retained.
        critical_paths_preserved (bool): At least half of the file paths (or
            their basenames) appear in the summary.
        lost_items (List[LostItem]): Terms missing from the summary.
    """

    tech_term_retention: float
    code_ref_retention: float
    critical_paths_preserved: bool
    lost_items: List[LostItem] = field(default_factory=list)


@dataclass
class LLMValidationResult:
    """Scores from the evaluation model, each clamped to 0..10."""

    completeness_score: float
    accuracy_score: float
    actionability_score: float
    suggestions: List[str] = field(default_factory=list)


@dataclass
class SummaryQualityReport:
    """Outcome of a quality validation.

    Attributes:
        passed (bool): All enabled checks met their thresholds.
        original_tokens (int): Tokens of the original text.
        summary_tokens (int): Tokens of the summary.
        compression_ratio (float): ``original_tokens / summary_tokens``.
        rule_results (Optional[RuleValidationResult]): Rule-based results.
        llm_results (Optional[LLMValidationResult]): LLM-based results.
        warnings (List[str]): Human-readable findings.
    """

    passed: bool
    original_tokens: int
    summary_tokens: int
    compression_ratio: float
    rule_results: Optional[RuleValidationResult] = None
    llm_results: Optional[LLMValidationResult] = None
    warnings: List[str] = field(default_factory=list)


class QualityEvaluationClient(Protocol):
    """Scores a summary against its original."""

    async def evaluate(self, original: str, summary: str, prompt: str) -> str: ...


class ChatModelEvaluator:
    """``QualityEvaluationClient`` backed by a langchain chat model."""

    def __init__(self, llm: BaseChatModel) -> None:
        self._llm = llm

    async def evaluate(self, original: str, summary: str, prompt: str) -> str:
        response = await self._llm.ainvoke([HumanMessage(content=prompt)])
        return str(response.content)


def _is_common_word(word: str) -> bool:
    return word.lower() in _COMMON_WORDS


def extract_technical_terms(content: str) -> ExtractedTerms:
    """Collect technical terms from ``content``.

    Args:
        content (str): Text to scan.

    Returns:
        ExtractedTerms: Terms grouped by category.
    """
    terms = ExtractedTerms()

    for match in _TECH_PATTERNS["function_name"].finditer(content):
        name = match.group(1) or match.group(2)
        if name and len(name) > 1 and not _is_common_word(name):
            terms.function_names.add(name)
    for match in _TECH_PATTERNS["class_name"].finditer(content):
        terms.class_names.add(match.group(1))

    terms.file_paths.update(m.group(0) for m in _TECH_PATTERNS["file_path"].finditer(content))
    terms.code_refs.update(m.group(0) for m in _TECH_PATTERNS["code_ref"].finditer(content))
    terms.error_messages.update(m.group(0) for m in _TECH_PATTERNS["error_message"].finditer(content))
    terms.imports.update(m.group(0) for m in _TECH_PATTERNS["import"].finditer(content))
    terms.package_names.update(m.group(0) for m in _TECH_PATTERNS["package_name"].finditer(content))
    return terms


def _basename(path: str) -> str:
    return path.rstrip("/").rsplit("/", 1)[-1]


def _retention(original: Iterable[str], summary: Iterable[str], summary_lower: str) -> float:
    original = list(original)
    if not original:
        return 1.0
    summary_set = {s.lower() for s in summary}
    retained = sum(1 for term in original if term.lower() in summary_set or term.lower() in summary_lower)
    return retained / len(original)


def _paths_preserved(original: Set[str], summary_paths: Set[str], summary: str) -> bool:
    if not original:
        return True
    preserved = sum(1 for p in original if p in summary_paths or _basename(p) in summary)
    return preserved >= len(original) * MIN_PATH_RETENTION


def _lost_items(original: ExtractedTerms, summary: ExtractedTerms, summary_text: str) -> List[LostItem]:
    lost: List[LostItem] = []
    summary_lower = summary_text.lower()

    for name in sorted(original.function_names):
        if name not in summary.function_names and name.lower() not in summary_lower:
            lost.append(LostItem(type="tech_term", original=name, context=f"function {name}"))
    for name in sorted(original.class_names):
        if name not in summary.class_names and name.lower() not in summary_lower:
            lost.append(LostItem(type="tech_term", original=name, context=f"class {name}"))
    for path in sorted(original.file_paths):
        if path not in summary.file_paths and _basename(path) not in summary_text:
            lost.append(LostItem(type="file_path", original=path, context=path))
    for error in sorted(original.error_messages):
        if error not in summary.error_messages and error.lower() not in summary_lower:
            lost.append(LostItem(type="error_message", original=error, context=error))

    lost_refs = 0
    for ref in sorted(original.code_refs):
        if lost_refs >= MAX_LOST_CODE_REFS:
            break
        if ref in summary.code_refs:
            continue
        inner = ref.strip("`")
        if len(inner) > 3 and inner.lower() not in summary_lower:
            lost.append(LostItem(type="code_ref", original=ref, context=ref))
            lost_refs += 1
    return lost


def _clamp_score(value: Any) -> float:
    try:
        score = float(value)
    except (TypeError, ValueError):
        return DEFAULT_LLM_SCORE
    return max(0.0, min(10.0, score))


def _score(data: Dict[str, Any], key: str) -> float:
    value = data.get(key, data.get(f"{key}_score", data.get(f"{key}Score", DEFAULT_LLM_SCORE)))
    return _clamp_score(value)


class SummaryQualityValidator:
    """Checks how much technical content a summary retained."""

    def __init__(
        self,
        config: Optional[SummaryQualityConfig] = None,
        llm_client: Optional[QualityEvaluationClient] = None,
        token_counter: TokenCounter = estimate_tokens_heuristic,
    ) -> None:
        """Initialize the validator.

        Args:
            config (Optional[SummaryQualityConfig]): Thresholds and switches.
            llm_client (Optional[QualityEvaluationClient]): Evaluation model,
                required for LLM validation.
            token_counter (TokenCounter): Counts tokens of original and summary.
        """
        self._config = config or SummaryQualityConfig()
        self._llm_client = llm_client
        self._count = token_counter

    def set_llm_client(self, client: QualityEvaluationClient) -> None:
        self._llm_client = client

    async def validate(
        self,
        original: Union[str, Sequence[Message]],
        summary: str,
    ) -> SummaryQualityReport:
        """Validate ``summary`` against ``original``.

        LLM evaluation failures are reported as a warning and do not fail
        the validation.

        Args:
            original (Union[str, Sequence[Message]]): Text or messages that
                were summarized.
            summary (str): Summary text.

        Returns:
            SummaryQualityReport: Verdict, measurements and warnings.
        """
        if isinstance(original, str):
            original_text = original
        else:
            original_text = "\n\n".join(message_text(m) for m in original)

        original_tokens = self._count(original_text)
        summary_tokens = self._count(summary)
        if summary_tokens > 0:
            compression_ratio = original_tokens / summary_tokens
        else:
            compression_ratio = float("inf") if original_tokens else 0.0

        warnings: List[str] = []
        passed = True

        rule_results: Optional[RuleValidationResult] = None
        if self._config.enable_rule_validation:
            rule_results = self.validate_with_rules(original_text, summary)
            if rule_results.tech_term_retention < self._config.min_tech_term_retention:
                warnings.append(
                    f"Technical term retention ({rule_results.tech_term_retention:.1%}) "
                    f"below threshold ({self._config.min_tech_term_retention:.1%})"
                )
                passed = False
            if rule_results.code_ref_retention < self._config.min_code_ref_retention:
                warnings.append(
                    f"Code reference retention ({rule_results.code_ref_retention:.1%}) "
                    f"below threshold ({self._config.min_code_ref_retention:.1%})"
                )
                passed = False
            if not rule_results.critical_paths_preserved:
                warnings.append("Critical file paths were not preserved in summary")
                passed = False

            by_type: Dict[str, int] = {}
            for item in rule_results.lost_items:
                by_type[item.type] = by_type.get(item.type, 0) + 1
            for item_type, count in by_type.items():
                warnings.append(f"Lost {count} {item_type.replace('_', ' ')}(s)")

        if compression_ratio > self._config.max_compression_ratio:
            warnings.append(
                f"Compression ratio ({compression_ratio:.1f}x) exceeds maximum "
                f"({self._config.max_compression_ratio}x), summary may be over-compressed"
            )
            passed = False

        llm_results: Optional[LLMValidationResult] = None
        if self._config.enable_llm_validation and self._llm_client is not None:
            try:
                llm_results = await self.validate_with_llm(original_text, summary)
            except Exception as exc:
                logger.warning("LLM summary validation failed, using rule-based results only: %s", exc)
                warnings.append("LLM validation was skipped due to error")
            else:
                for label, score in (
                    ("completeness", llm_results.completeness_score),
                    ("accuracy", llm_results.accuracy_score),
                    ("actionability", llm_results.actionability_score),
                ):
                    if score < MIN_LLM_SCORE:
                        warnings.append(f"LLM {label} score ({score:g}/10) below minimum")
                        passed = False

        logger.debug(
            "Summary quality validation: passed=%s ratio=%.2f warnings=%d",
            passed,
            compression_ratio,
            len(warnings),
        )
        return SummaryQualityReport(
            passed=passed,
            original_tokens=original_tokens,
            summary_tokens=summary_tokens,
            compression_ratio=compression_ratio,
            rule_results=rule_results,
            llm_results=llm_results,
            warnings=warnings,
        )

    def validate_with_rules(self, original: str, summary: str) -> RuleValidationResult:
        """Measure term, code reference and path retention."""
        original_terms = extract_technical_terms(original)
        summary_terms = extract_technical_terms(summary)
        summary_lower = summary.lower()

        return RuleValidationResult(
            tech_term_retention=_retention(
                original_terms.function_names | original_terms.class_names,
                summary_terms.function_names | summary_terms.class_names,
                summary_lower,
            ),
            code_ref_retention=_retention(original_terms.code_refs, summary_terms.code_refs, summary_lower),
            critical_paths_preserved=_paths_preserved(original_terms.file_paths, summary_terms.file_paths, summary),
            lost_items=_lost_items(original_terms, summary_terms, summary),
        )

    async def validate_with_llm(self, original: str, summary: str) -> LLMValidationResult:
        """Ask the evaluation model for scores.

        Unparseable responses yield neutral scores (5) with a suggestion
        noting the parse failure.

        Raises:
            RuntimeError: If no evaluation client is configured.
        """
        if self._llm_client is None:
            raise RuntimeError("LLM client not configured for summary validation")

        prompt = QUALITY_EVALUATION_PROMPT.format(original=original, summary=summary)
        response = await self._llm_client.evaluate(original, summary, prompt)

        match = re.search(r"\{.*\}", response, re.DOTALL)
        try:
            if match is None:
                raise ValueError("no JSON object in response")
            data = json.loads(match.group(0))
            if not isinstance(data, dict):
                raise ValueError("evaluation is not a JSON object")
        except ValueError as exc:
            logger.warning("Failed to parse LLM evaluation response: %s", exc)
            return LLMValidationResult(
                completeness_score=DEFAULT_LLM_SCORE,
                accuracy_score=DEFAULT_LLM_SCORE,
                actionability_score=DEFAULT_LLM_SCORE,
                suggestions=["Unable to parse LLM evaluation response"],
            )

        suggestions = data.get("suggestions")
        return LLMValidationResult(
            completeness_score=_score(data, "completeness"),
            accuracy_score=_score(data, "accuracy"),
            actionability_score=_score(data, "actionability"),
            suggestions=[str(s) for s in suggestions] if isinstance(suggestions, list) else [],
        )
