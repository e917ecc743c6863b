"""Make-family overlays injected ahead of generic ladder steps.

Rules are declarative (``rules/overlays.yaml``): a make family, a domain,
the ladder step they precede, and a list of conditions over the locked
facts, the vehicle and the conversation text.  Each rule fires at most
once per session, keyed by :attr:`OverlayRule.fired_once_key`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple, Union

import structlog

from diag_dialogue.question_gate import QuestionGate
from diag_dialogue.rule_files import load_yaml, require_keys
from diag_dialogue.schemas import VehicleContext
from diag_dialogue.session import Session
from diag_dialogue.vehicle import normalize_make

logger = structlog.get_logger(__name__)

OWNER = "overlay"
BUCKET = "overlays"

_VALID_CONDITION_TYPES = frozenset(
    ["code_match", "fact_present", "engine_match", "message_match", "any_of"]
)


@dataclass(frozen=True)
class OverlayRule:
    """One make-conditioned bias prompt."""

    id: str
    family: str
    domain: str
    insert_before: str
    prompt: str
    conditions: Tuple[Mapping[str, Any], ...] = ()

    @property
    def fired_once_key(self) -> str:
        return f"overlay:{self.family}:{self.domain}:{self.id}"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def _validate_condition(cond: Any, rule_id: str) -> None:
    if not isinstance(cond, dict) or cond.get("type") not in _VALID_CONDITION_TYPES:
        raise ValueError(f"Overlay {rule_id}: invalid condition {cond!r}")
    ctype = cond["type"]
    if ctype == "any_of":
        subs = cond.get("conditions")
        if not isinstance(subs, list) or not subs:
            raise ValueError(f"Overlay {rule_id}: any_of needs a non-empty conditions list")
        for sub in subs:
            _validate_condition(sub, rule_id)
    elif ctype == "fact_present":
        if not cond.get("fact"):
            raise ValueError(f"Overlay {rule_id}: fact_present needs 'fact'")
    else:
        if not cond.get("pattern"):
            raise ValueError(f"Overlay {rule_id}: {ctype} needs 'pattern'")
        try:
            re.compile(cond["pattern"])
        except re.error as exc:
            raise ValueError(f"Overlay {rule_id}: bad pattern: {exc}") from exc


def load_overlays(path: Optional[Union[str, Path]] = None) -> Tuple[Dict[str, FrozenSet[str]], List[OverlayRule]]:
    """Load and validate overlay families and rules.

    Raises
    ------
    ValueError
        On invalid YAML, unknown family, bad condition or duplicate id.
    """
    data = load_yaml("overlays.yaml", path)
    raw_families = data.get("families") or {}
    if not isinstance(raw_families, dict):
        raise ValueError("overlays: 'families' must be a mapping")
    families = {
        name: frozenset(normalize_make(m) for m in makes)
        for name, makes in raw_families.items()
    }

    rules: List[OverlayRule] = []
    seen: set = set()
    for i, entry in enumerate(data.get("overlays") or []):
        require_keys(entry, {"id", "family", "domain", "insert_before", "prompt"}, f"Overlay at index {i}")
        rid = entry["id"]
        if rid in seen:
            raise ValueError(f"Duplicate overlay id: {rid}")
        seen.add(rid)
        if entry["family"] not in families:
            raise ValueError(f"Overlay {rid}: unknown family '{entry['family']}'")
        conditions = entry.get("conditions") or []
        if not isinstance(conditions, list):
            raise ValueError(f"Overlay {rid}: conditions must be a list")
        for cond in conditions:
            _validate_condition(cond, rid)
        rules.append(
            OverlayRule(
                id=rid,
                family=entry["family"],
                domain=entry["domain"],
                insert_before=entry["insert_before"],
                prompt=str(entry["prompt"]).strip(),
                conditions=tuple(conditions),
            )
        )
    return families, rules


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class OverlayResolver:
    """Pick and surface the overlay due before a ladder step."""

    def __init__(self, families: Mapping[str, FrozenSet[str]], rules: List[OverlayRule]) -> None:
        self.families = dict(families)
        self.rules = list(rules)

    @classmethod
    def from_yaml(cls, path: Optional[Union[str, Path]] = None) -> "OverlayResolver":
        families, rules = load_overlays(path)
        return cls(families, rules)

    def family_of(self, vehicle: VehicleContext) -> Optional[str]:
        make = normalize_make(vehicle.make)
        if not make:
            return None
        for name, makes in self.families.items():
            if make in makes:
                return name
        return None

    def applies_to(self, rule: OverlayRule, vehicle: VehicleContext) -> bool:
        return self.family_of(vehicle) == rule.family

    def condition(self, rule: OverlayRule, session: Session, transcript: str) -> bool:
        return all(self._eval(c, session, transcript) for c in rule.conditions)

    def resolve(self, session: Session, step_key: str, transcript: str = "") -> Optional[OverlayRule]:
        """First applicable, unfired rule for *step_key* in the session's domain."""
        if session.domain is None or session.active_path is not None:
            return None
        for rule in self.rules:
            if rule.domain != session.domain.value or rule.insert_before != step_key:
                continue
            if rule.fired_once_key in session.fired_overlays:
                continue
            if not self.applies_to(rule, session.vehicle):
                continue
            if not self.condition(rule, session, transcript):
                continue
            return rule
        return None

    def surface(self, session: Session, gate: QuestionGate, rule: OverlayRule) -> Optional[str]:
        """Ask *rule* as a yes/no acknowledgement and mark it fired."""
        prompt = gate.ask(
            "yes_no",
            rule.domain,
            rule.fired_once_key,
            rule.prompt,
            {"owner": OWNER, "bucket": BUCKET, "field": rule.id},
        )
        if prompt is None:
            return None
        session.fired_overlays.add(rule.fired_once_key)
        logger.info(
            "overlay_fired",
            conversation_id=session.conversation_id,
            overlay=rule.id,
            before=rule.insert_before,
        )
        return prompt

    # ------------------------------------------------------------------

    def _eval(self, cond: Mapping[str, Any], session: Session, transcript: str) -> bool:
        ctype = cond["type"]
        if ctype == "any_of":
            return any(self._eval(c, session, transcript) for c in cond["conditions"])
        if ctype == "fact_present":
            return bool(session.fact(cond["fact"]))
        pattern = re.compile(cond["pattern"], re.IGNORECASE)
        if ctype == "code_match":
            return any(pattern.search(c) for c in session.active_codes)
        if ctype == "engine_match":
            return bool(pattern.search(session.vehicle.engine or ""))
        if ctype == "message_match":
            return bool(pattern.search(transcript or ""))
        return False
