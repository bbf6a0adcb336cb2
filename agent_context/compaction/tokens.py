# Copyright (c) 2026 Heureum AI. All rights reserved.

"""
Token estimation and the token-count cache.

``estimate_tokens`` uses the tiktoken encoding of the configured model.
When the encoding cannot be loaded (offline environment, unknown model)
it falls back to the ``ceil(chars / 4)`` heuristic.

``TokenCountCache`` memoises an arbitrary tokenizer by content hash with
LRU eviction and a per-entry TTL. Hit, miss and eviction counters are
exposed through ``get_stats``.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import math
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

import tiktoken

from agent_context.config import settings
from agent_context.models import Message
from agent_context.schemas.messages import TextBlock, ToolResultBlock, ToolUseBlock

CHARS_PER_TOKEN = 4

logger = logging.getLogger(__name__)

TokenCounter = Callable[[str], int]


def estimate_tokens_heuristic(text: str) -> int:
    """Coarse token estimate: one token per four characters, rounded up.

    Args:
        text (str): Text to estimate tokens for.

    Returns:
        int: ``ceil(len(text) / CHARS_PER_TOKEN)``.
    """
    return math.ceil(len(text) / CHARS_PER_TOKEN)


@functools.lru_cache(maxsize=1)
def _get_encoding() -> Optional[tiktoken.Encoding]:
    """Load the tiktoken encoding once. ``None`` if it cannot be loaded."""
    try:
        return tiktoken.encoding_for_model(settings.TOKENIZER_MODEL)
    except Exception:
        logger.info(
            "tiktoken encoding for %s unavailable, using chars/%d heuristic",
            settings.TOKENIZER_MODEL,
            CHARS_PER_TOKEN,
        )
        return None


def estimate_tokens(text: str) -> int:
    """Estimate token count using tiktoken.

    Args:
        text (str): Text to tokenize.

    Returns:
        int: Number of tokens produced by the encoder, or the character
            heuristic when the encoder is unavailable.
    """
    if not text:
        return 0
    encoding = _get_encoding()
    if encoding is None:
        return estimate_tokens_heuristic(text)
    return len(encoding.encode(text, disallowed_special=()))


def _tool_input_text(block: ToolUseBlock) -> str:
    try:
        return json.dumps(block.input, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(block.input)


def count_message_tokens(message: Message, counter: TokenCounter = estimate_tokens_heuristic) -> int:
    """Count tokens of a single message.

    Tool invocations contribute their name plus the serialised input, so
    that argument-heavy tool calls are not undercounted.

    Args:
        message (Message): Message to measure.
        counter (TokenCounter): Tokenizer applied to text. Defaults to the
            character heuristic.

    Returns:
        int: Token count of the message content.
    """
    if isinstance(message.content, str):
        return counter(message.content)

    total = 0
    for block in message.content:
        if isinstance(block, TextBlock):
            total += counter(block.text)
        elif isinstance(block, ToolUseBlock):
            total += counter(block.name) + counter(_tool_input_text(block))
        elif isinstance(block, ToolResultBlock):
            if isinstance(block.content, str):
                total += counter(block.content)
            else:
                total += counter(json.dumps(block.content, ensure_ascii=False, default=str))
    return total


def make_text_key(text: str) -> str:
    """SHA-256 hex digest of ``text``, used as the cache key."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


@dataclass
class CacheEntry:
    """Cached token count.

    Attributes:
        tokens (int): Token count of the text.
        created_at (float): Clock reading at insertion.
    """

    tokens: int
    created_at: float


@dataclass
class TokenCacheStats:
    """Snapshot of cache counters.

    Attributes:
        hits (int): Lookups answered from the cache.
        misses (int): Lookups that invoked the tokenizer.
        hit_rate (float): ``hits / (hits + misses)``, 0 when unused.
        size (int): Entries currently held.
        max_size (int): Capacity.
        evictions (int): Entries dropped, by capacity overflow or TTL expiry.
        expirations (int): The subset of evictions caused by TTL expiry.
    """

    hits: int
    misses: int
    hit_rate: float
    size: int
    max_size: int
    evictions: int
    expirations: int


class TokenCountCache:
    """LRU + TTL cache of token counts keyed by content hash."""

    def __init__(
        self,
        tokenizer: TokenCounter = estimate_tokens,
        max_size: int = settings.TOKEN_CACHE_MAX_SIZE,
        ttl_seconds: float = settings.TOKEN_CACHE_TTL_SECONDS,
        hash_fn: Callable[[str], str] = make_text_key,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the cache.

        Args:
            tokenizer (TokenCounter): Function counting tokens of a string.
            max_size (int): Maximum entries before the least recently used
                one is evicted. Must be positive.
            ttl_seconds (float): Lifetime of an entry.
            hash_fn (Callable[[str], str]): Content hash used as key.
            clock (Callable[[], float]): Monotonic time source.

        Raises:
            ValueError: If ``max_size`` is not positive.
        """
        if max_size <= 0:
            raise ValueError("max_size must be positive")
        self._tokenizer = tokenizer
        self._max_size = max_size
        self._ttl = ttl_seconds
        self._hash = hash_fn
        self._clock = clock
        self._store: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def count(self, text: str) -> int:
        """Return the token count of ``text``, computing it on a miss.

        The empty string counts as zero tokens and is never cached.

        Args:
            text (str): Text to count.

        Returns:
            int: Token count.
        """
        if not text:
            return 0

        key = self._hash(text)
        now = self._clock()
        entry = self._store.get(key)
        if entry is not None:
            if now - entry.created_at <= self._ttl:
                self._store.move_to_end(key)
                self._hits += 1
                return entry.tokens
            del self._store[key]
            self._evictions += 1
            self._expirations += 1

        self._misses += 1
        tokens = self._tokenizer(text)
        self._store[key] = CacheEntry(tokens=tokens, created_at=now)
        while len(self._store) > self._max_size:
            self._store.popitem(last=False)
            self._evictions += 1
        return tokens

    def __call__(self, text: str) -> int:
        return self.count(text)

    def warm_up(self, texts: Iterable[str]) -> None:
        """Pre-populate the cache, then reset the counters.

        Args:
            texts (Iterable[str]): Texts expected to be counted soon.
        """
        for text in texts:
            self.count(text)
        self._reset_counters()

    def get_stats(self) -> TokenCacheStats:
        """Return a snapshot of the cache counters."""
        lookups = self._hits + self._misses
        return TokenCacheStats(
            hits=self._hits,
            misses=self._misses,
            hit_rate=self._hits / lookups if lookups else 0.0,
            size=len(self._store),
            max_size=self._max_size,
            evictions=self._evictions,
            expirations=self._expirations,
        )

    def clear(self) -> None:
        """Drop all entries and reset the counters."""
        self._store.clear()
        self._reset_counters()

    def _reset_counters(self) -> None:
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def __len__(self) -> int:
        return len(self._store)
