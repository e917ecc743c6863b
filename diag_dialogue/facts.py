"""Trouble-code extraction and fact locking.

Facts are merged into ``session.classification[bucket]``: a scalar
field already locked by an earlier turn is never overwritten, list
fields only gain new items.  Running :func:`lock_facts` twice on the
same message leaves the classification unchanged.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from diag_dialogue import vocabulary as vocab
from diag_dialogue.matcher import any_match, first_match
from diag_dialogue.session import Mode, Session

logger = structlog.get_logger(__name__)

_CODE_RE = re.compile(vocab.CODE_PATTERN, re.IGNORECASE)
_MISFIRE_CYL_CODE = re.compile(r"^P030([1-8])$")


# ---------------------------------------------------------------------------
# Codes
# ---------------------------------------------------------------------------


def extract_codes(text: str) -> List[str]:
    """Return trouble codes in *text*: upper-cased, unique, first-seen order."""
    codes: List[str] = []
    for m in _CODE_RE.finditer(text or ""):
        code = m.group(1).upper()
        if code not in codes:
            codes.append(code)
    return codes


def add_codes(session: Session, codes: Sequence[str]) -> List[str]:
    """Append unseen *codes* to ``session.active_codes``; return the new ones."""
    added = [c for c in codes if c not in session.active_codes]
    session.active_codes.extend(added)
    if added:
        logger.info("codes_locked", added=added, active=list(session.active_codes))
    return added


# ---------------------------------------------------------------------------
# Per-bucket fact rules
# ---------------------------------------------------------------------------


def misfire_code_facts(code: str) -> Optional[Dict[str, Any]]:
    """Facts implied by a single misfire code (P0300-P0308)."""
    m = _MISFIRE_CYL_CODE.match(code)
    if m:
        return {"mentioned": True, "type": "single", "cylinder": int(m.group(1))}
    if code == "P0300":
        return {"mentioned": True, "type": "multiple"}
    return None


def _misfire_facts(codes: Sequence[str], text: str) -> Optional[Dict[str, Any]]:
    for code in codes:
        if _MISFIRE_CYL_CODE.match(code):
            return misfire_code_facts(code)
    if "P0300" in codes:
        return misfire_code_facts("P0300")

    if not any_match(vocab.MISFIRE_MENTION, text):
        return None
    facts: Dict[str, Any] = {"mentioned": True}
    cylinder = first_match(vocab.CYLINDER_NUMBER, text)
    if cylinder is not None:
        facts.update(type="single", cylinder=int(cylinder))
    elif first_match(vocab.MISFIRE_TYPE, text) == "multiple":
        facts["type"] = "multiple"
    return facts


def _lean_facts(codes: Sequence[str], text: str) -> Optional[Dict[str, Any]]:
    has_171 = "P0171" in codes
    has_174 = "P0174" in codes
    if has_171 and has_174:
        return {"banks": "both"}
    if has_171:
        return {"banks": "bank1"}
    if has_174:
        return {"banks": "bank2"}
    banks = first_match(vocab.LEAN_BANKS, text)
    return {"banks": banks} if banks else None


def _evap_facts(codes: Sequence[str], text: str) -> Optional[Dict[str, Any]]:
    if "P0455" in codes:
        return {"leak_type": "large_leak"}
    if "P0456" in codes or "P0442" in codes:
        return {"leak_type": "small_leak"}
    if any(re.match(r"^P044[3-9]$", c) for c in codes):
        return {"leak_type": "purge_vent_performance"}
    leak = first_match(vocab.EVAP_LEAK_TEXT, text)
    return {"leak_type": leak} if leak else None


def _network_facts(codes: Sequence[str], text: str) -> Optional[Dict[str, Any]]:
    facts: Dict[str, Any] = {}
    u_codes = [c for c in codes if c.startswith("U")]
    if u_codes:
        facts["u_codes"] = u_codes
    scope = first_match(vocab.NETWORK_SCOPE_TEXT, text)
    if scope:
        facts["scope"] = scope
    return facts or None


def _charging_facts(codes: Sequence[str], text: str) -> Optional[Dict[str, Any]]:
    if any_match(vocab.CHARGING_HINT, text):
        return {"hint": "charging"}
    if "P0562" in codes:
        return {"voltage": "low"}
    if "P0563" in codes:
        return {"voltage": "high"}
    return None


def _text_hint(rules: Tuple, field: str) -> Callable[[Sequence[str], str], Optional[Dict[str, Any]]]:
    def _extract(codes: Sequence[str], text: str) -> Optional[Dict[str, Any]]:
        value = first_match(rules, text)
        return {field: value} if value else None

    return _extract


# bucket -> extractor, evaluated in order every turn.
FACT_RULES: Tuple[Tuple[str, Callable[[Sequence[str], str], Optional[Dict[str, Any]]]], ...] = (
    ("misfire", _misfire_facts),
    ("lean", _lean_facts),
    ("evap", _evap_facts),
    ("network", _network_facts),
    ("charging", _charging_facts),
    ("starting", _text_hint(vocab.NO_START_HINT, "complaint")),
    ("cooling", _text_hint(vocab.COOLING_HINT, "complaint")),
    ("brakes_abs", _text_hint(vocab.BRAKES_HINT, "mentioned")),
    ("transmission", _text_hint(vocab.TRANSMISSION_HINT, "mentioned")),
)


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


def merge_facts(session: Session, bucket: str, facts: Dict[str, Any]) -> Dict[str, Any]:
    """Merge *facts* into *bucket* without overwriting locked fields.

    Returns the subset of *facts* that was newly locked.
    """
    locked = session.facts(bucket)
    changed: Dict[str, Any] = {}
    for name, value in facts.items():
        if value is None:
            continue
        current = locked.get(name)
        if isinstance(value, list):
            merged = list(current or [])
            extra = [v for v in value if v not in merged]
            if extra:
                locked[name] = merged + extra
                changed[name] = extra
        elif current is None:
            locked[name] = value
            changed[name] = value
    return changed


def lock_facts(session: Session, message: str, codes: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, Any]]:
    """Apply every fact rule to *message* and the session's codes.

    Parameters
    ----------
    session :
        Session whose ``classification`` receives the facts.
    message :
        Raw user text for this turn.
    codes :
        Codes to evaluate; defaults to ``session.active_codes``.

    Returns
    -------
    dict
        ``{bucket: newly_locked_fields}`` for buckets that changed.
    """
    codes = list(session.active_codes if codes is None else codes)
    text = (message or "").lower()
    changes: Dict[str, Dict[str, Any]] = {}
    for bucket, extractor in FACT_RULES:
        facts = extractor(codes, text)
        if not facts:
            continue
        changed = merge_facts(session, bucket, facts)
        if changed:
            changes[bucket] = changed
    if changes:
        logger.info("facts_locked", changes=changes)
    return changes


def refresh_mode(session: Session, message: str, new_codes: Sequence[str]) -> None:
    """Switch the session to active on any code or symptom keyword."""
    if session.mode is Mode.ACTIVE:
        return
    if new_codes or session.active_codes or any_match(vocab.SYMPTOM_KEYWORDS, message):
        session.mode = Mode.ACTIVE
        logger.info("session_activated", conversation_id=session.conversation_id)
