"""Wildcard pattern matching for rule fields.

Rule patterns use a deliberately small dialect: `*` matches any sequence of
characters (including none) and every other character is literal. Patterns
without explicit markers are wrapped in `*...*`, so a bare pattern behaves
like a case-insensitive substring search.

Patterns are compiled to anchored regular expressions with the `regex`
library. Literal segments are escaped and runs of `*` collapse into a single
wildcard, so the compiled expression only ever contains literals and `.*`.
All matching is done with a timeout; a timeout counts as no match.

Usage:
    from mailfiler.rules.matcher import matches

    matches("Invoice #1", "invoice")      # True
    matches("a.b", "a.b")                  # True
    matches("axb", "a.b")                  # False
"""

from __future__ import annotations

from functools import lru_cache
from typing import Any

import regex

from mailfiler.core.logging import get_logger

logger = get_logger(__name__)

WILDCARD = "*"

# Regex timeout in seconds, overridable via configure_timeout()
DEFAULT_REGEX_TIMEOUT = 1.0
_regex_timeout = DEFAULT_REGEX_TIMEOUT


def configure_timeout(seconds: float) -> None:
    """Set the timeout applied to every pattern match."""
    global _regex_timeout
    _regex_timeout = seconds


def get_timeout() -> float:
    """Return the timeout applied to every pattern match."""
    return _regex_timeout


def wrap_pattern(pattern: str) -> str:
    """Add the implicit leading/trailing wildcards."""
    if not pattern.startswith(WILDCARD):
        pattern = WILDCARD + pattern
    if not pattern.endswith(WILDCARD):
        pattern = pattern + WILDCARD
    return pattern


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str) -> regex.Pattern:
    """Compile a wildcard pattern to an anchored, case-insensitive expression.

    Args:
        pattern: Wildcard pattern as stored on the rule

    Returns:
        Compiled expression suitable for fullmatch()
    """
    wrapped = wrap_pattern(pattern)
    literals = [regex.escape(segment) for segment in wrapped.split(WILDCARD) if segment]
    # wrapped always starts and ends with a wildcard
    body = ".*".join(["", *literals, ""])
    return regex.compile(body, regex.IGNORECASE | regex.DOTALL)


def matches(text: Any, pattern: Any) -> bool:
    """Check whether text matches a wildcard pattern.

    Args:
        text: Header value to test; anything but a string never matches
        pattern: Wildcard pattern

    Returns:
        True if the whole text matches the (wrapped) pattern
    """
    if not isinstance(text, str) or not isinstance(pattern, str):
        return False

    compiled = compile_pattern(pattern)
    try:
        return compiled.fullmatch(text, timeout=_regex_timeout) is not None
    except TimeoutError:
        logger.warning(
            "Pattern match timed out",
            pattern=pattern[:50],
            text_length=len(text),
        )
        return False
