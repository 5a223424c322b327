# ywatch/watch/patterns.py

"""
Include/exclude filtering for file system events
"""
import os
import re
import logging
from typing import Optional, Pattern

from ..exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SCOPE_PATH = 'path'
SCOPE_NAME = 'name'
FILTER_SCOPES = (SCOPE_PATH, SCOPE_NAME)


def compile_pattern(pattern: Optional[str], label: str) -> Optional[Pattern]:
    """
    Compile a filter regex

    Args:
        pattern: Regex source; None or empty means "no pattern"
        label: Which pattern this is, used in the error message

    Returns:
        Compiled pattern or None

    Raises:
        ConfigurationError: If the regex does not compile
    """
    if not pattern:
        return None

    if not isinstance(pattern, str):
        raise ConfigurationError(f"Invalid {label} regex pattern: expected a string, got {pattern!r}")

    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid {label} regex pattern {pattern!r}: {e}") from e


class FilterChain:
    """
    Gate paths through optional include and exclude regexes

    A path passes when it satisfies ``include`` (if set) and does not
    satisfy ``exclude`` (if set). Patterns use search semantics, so anchor
    them explicitly, e.g. ``\\.conf$``.
    """

    def __init__(self, include: Optional[str] = None,
                 exclude: Optional[str] = None,
                 scope: str = SCOPE_PATH):
        """
        Initialize filter chain

        Args:
            include: Regex a path must match
            exclude: Regex a path must not match
            scope: Which form the dispatcher evaluates, ``path`` or ``name``

        Raises:
            ConfigurationError: On an invalid pattern or scope
        """
        if scope not in FILTER_SCOPES:
            raise ConfigurationError(
                f"Invalid filter scope: {scope!r} (expected one of: {', '.join(FILTER_SCOPES)})"
            )

        self.include = include or None
        self.exclude = exclude or None
        self.scope = scope

        self.include_regex = compile_pattern(include, 'include')
        self.exclude_regex = compile_pattern(exclude, 'exclude')

    def _passes(self, subject: str) -> bool:
        if self.include_regex is not None and not self.include_regex.search(subject):
            logger.debug(f"'{subject}' does not match include pattern")
            return False

        if self.exclude_regex is not None and self.exclude_regex.search(subject):
            logger.debug(f"'{subject}' matches exclude pattern")
            return False

        return True

    def matches_name(self, path: Optional[str]) -> bool:
        """Evaluate the final path component only"""
        if not path:
            return False
        return self._passes(os.path.basename(path))

    def matches_full_path(self, path: Optional[str]) -> bool:
        """Evaluate the entire path string"""
        if not path:
            return False
        return self._passes(path)

    def matches(self, path: Optional[str]) -> bool:
        """Evaluate using the configured scope"""
        if self.scope == SCOPE_NAME:
            return self.matches_name(path)
        return self.matches_full_path(path)

    @property
    def is_empty(self) -> bool:
        return self.include_regex is None and self.exclude_regex is None

    def __repr__(self):
        return f"FilterChain(include={self.include!r}, exclude={self.exclude!r}, scope={self.scope!r})"
