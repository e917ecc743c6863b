"""Ordered pattern -> result matching.

Every keyword table in the controller (fact extraction, domain
detection, answer parsing) is a tuple of :class:`PatternRule` evaluated
by the two functions below.  Tables are ordered: earlier rules win.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Sequence


@dataclass(frozen=True)
class PatternRule:
    """A compiled pattern and the value it yields on a match.

    Attributes
    ----------
    pattern : re.Pattern
        Case-insensitive compiled regex.
    result : Any
        Value returned when *pattern* matches.  May reference capture
        groups through :meth:`resolve` when it is a format string.
    """

    pattern: "re.Pattern[str]"
    result: Any

    def search(self, text: str) -> Optional["re.Match[str]"]:
        return self.pattern.search(text)

    def resolve(self, match: "re.Match[str]") -> Any:
        """Return :attr:`result`, expanding ``{1}``-style group references."""
        if isinstance(self.result, str) and "{" in self.result:
            return self.result.format(None, *match.groups())
        return self.result


def rule(pattern: str, result: Any) -> PatternRule:
    """Compile *pattern* (case-insensitive) into a :class:`PatternRule`."""
    return PatternRule(pattern=re.compile(pattern, re.IGNORECASE), result=result)


def first_match(rules: Sequence[PatternRule], text: str) -> Optional[Any]:
    """Return the result of the first rule matching *text*, else ``None``."""
    if not text:
        return None
    for r in rules:
        m = r.search(text)
        if m is not None:
            return r.resolve(m)
    return None


def all_matches(rules: Iterable[PatternRule], text: str) -> List[Any]:
    """Return results of every matching rule, de-duplicated, in table order."""
    found: List[Any] = []
    if not text:
        return found
    for r in rules:
        m = r.search(text)
        if m is None:
            continue
        value = r.resolve(m)
        if value not in found:
            found.append(value)
    return found


def any_match(rules: Iterable[PatternRule], text: str) -> bool:
    """Return ``True`` if at least one rule matches *text*."""
    return bool(text) and any(r.search(text) for r in rules)
