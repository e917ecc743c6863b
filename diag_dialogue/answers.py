"""Fixed-vocabulary answer parsers keyed by expected-input kind.

Each parser takes the raw answer and returns a parsed value, or ``None``
when the answer does not fit the vocabulary.  Parsers never guess.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, Optional

from diag_dialogue import vocabulary as vocab
from diag_dialogue.matcher import any_match, first_match

Parser = Callable[[str], Optional[Any]]

INACCESSIBLE = "inaccessible"

_NUMBER_RE = re.compile(r"(-?\d+(?:\.\d+)?)")
_UNKNOWN_RE = re.compile(r"\b(unknown|don'?t know|not sure|no idea|idk|n/?a)\b", re.IGNORECASE)


def _clean(message: str) -> str:
    return (message or "").strip().lower()


def parse_yes_no(message: str) -> Optional[str]:
    """``"yes"`` or ``"no"``; an unsure answer ("idk", "no idea") is neither."""
    text = _clean(message)
    if _UNKNOWN_RE.search(text):
        return None
    return first_match(vocab.YES_NO, text)


def parse_occurrence(message: str) -> Optional[str]:
    return first_match(vocab.OCCURRENCE, _clean(message))


def parse_misfire_load(message: str) -> Optional[str]:
    """``"both"``, ``"idle"`` or ``"load"``; a message naming idle and load reads as both."""
    text = _clean(message)
    if any_match(vocab.LOAD_BOTH, text):
        return "both"
    sides = [r.result for r in vocab.LOAD_SIDE if r.search(text)]
    if len(set(sides)) > 1:
        return "both"
    return sides[0] if sides else None


def parse_misfire_class(message: str) -> Optional[Dict[str, Any]]:
    """Parse a single/multiple + cylinder + occurrence answer.

    Returns the subset of ``{type, cylinder, condition}`` that could be
    read, or ``None`` if nothing could.
    """
    text = _clean(message)
    parsed: Dict[str, Any] = {}
    cylinder = first_match(vocab.CYLINDER_NUMBER, text)
    if cylinder is not None:
        parsed.update(type="single", cylinder=int(cylinder))
    else:
        kind = first_match(vocab.MISFIRE_TYPE, text)
        if kind is not None:
            parsed["type"] = kind
    condition = first_match(vocab.OCCURRENCE, text)
    if condition is not None:
        parsed["condition"] = condition
    return parsed or None


def parse_scope(message: str) -> Optional[str]:
    return first_match(vocab.SCOPE, _clean(message))


def parse_temp_band(message: str) -> Optional[str]:
    return first_match(vocab.TEMP_BAND, _clean(message))


def parse_crank_type(message: str) -> Optional[str]:
    return first_match(vocab.CRANK_TYPE, _clean(message))


def parse_brake_complaint(message: str) -> Optional[str]:
    return first_match(vocab.BRAKE_COMPLAINT, _clean(message))


def parse_trans_complaint(message: str) -> Optional[str]:
    return first_match(vocab.TRANS_COMPLAINT, _clean(message))


def parse_reading(message: str) -> Optional[str]:
    """A numeric reading (``"12.4"``) or ``"unknown"`` when the tech has none."""
    text = _clean(message)
    m = _NUMBER_RE.search(text)
    if m:
        return m.group(1)
    if _UNKNOWN_RE.search(text):
        return "unknown"
    return None


def is_inaccessible(message: str) -> bool:
    """``True`` when the answer reports the check as physically unreachable."""
    return any_match(vocab.INACCESSIBLE, _clean(message))


PARSERS: Dict[str, Parser] = {
    "yes_no": parse_yes_no,
    "occurrence": parse_occurrence,
    "misfire_class": parse_misfire_class,
    "misfire_load": parse_misfire_load,
    "scope": parse_scope,
    "temp_band": parse_temp_band,
    "crank_type": parse_crank_type,
    "brake_complaint": parse_brake_complaint,
    "trans_complaint": parse_trans_complaint,
    "reading": parse_reading,
}

# Short vocabulary hint used in deterministic re-prompts.
VOCABULARY_HINTS: Dict[str, str] = {
    "yes_no": "Answer yes or no.",
    "occurrence": "Answer with one of: idle, cruise, under load, cold start, all the time.",
    "misfire_class": "Answer single or multiple (with the cylinder number if single) and when it happens.",
    "misfire_load": "Answer idle, under load, or both.",
    "scope": "Answer single or multiple.",
    "temp_band": "Answer in plain words, e.g. \"idle only\" or \"highway\".",
    "crank_type": "Answer \"crank no-start\" or \"no-crank\".",
    "brake_complaint": "Answer with one: ABS light, soft pedal, hard pedal, pull, noise.",
    "trans_complaint": "Answer with one: no movement, slipping, harsh shifts, delayed engagement.",
    "reading": "Answer with the measured value, or \"unknown\".",
}


def parse(kind: str, message: str) -> Optional[Any]:
    """Dispatch *message* to the parser registered for *kind*."""
    try:
        parser = PARSERS[kind]
    except KeyError:
        raise ValueError(f"No answer parser registered for kind '{kind}'") from None
    return parser(message)
