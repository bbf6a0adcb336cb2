# Copyright (c) 2026 Heureum AI. All rights reserved.

"""Context management core for AI coding agents."""

__version__ = "0.1.0"
