"""Accessibility tier escalation.

A check reported as unreachable moves the conversation to the first
check of the next, more invasive tier.  Past the last tier the escalator
returns a terminal "diagnosis requires labor" reply instead of looping.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

import structlog

from diag_dialogue.question_gate import Answer, QuestionGate
from diag_dialogue.rule_files import load_yaml, require_keys
from diag_dialogue.session import Session

logger = structlog.get_logger(__name__)

OWNER = "tier"
BUCKET = "access"
DEFAULT_STEPS = "default"


@dataclass(frozen=True)
class Tier:
    level: int
    name: str
    label: str


@dataclass(frozen=True)
class TierStep:
    key: str
    prompt: str


def load_tiers(path: Optional[Union[str, Path]] = None):
    """Load tiers and per-domain tier steps.

    Returns ``(tiers, steps)`` where *steps* maps domain (or
    ``"default"``) to ``{level: TierStep}``.

    Raises
    ------
    ValueError
        If tiers are not contiguous from 0, or the default table does not
        cover every tier above 0.
    """
    data = load_yaml("access_tiers.yaml", path)
    tiers: List[Tier] = []
    for i, entry in enumerate(data.get("tiers") or []):
        require_keys(entry, {"level", "name", "label"}, f"Tier at index {i}")
        tiers.append(Tier(level=int(entry["level"]), name=str(entry["name"]), label=str(entry["label"])))
    if [t.level for t in tiers] != list(range(len(tiers))) or len(tiers) < 2:
        raise ValueError("access tiers must be listed in order starting at level 0")

    steps: Dict[str, Dict[int, TierStep]] = {}
    for domain, by_level in (data.get("steps") or {}).items():
        if not isinstance(by_level, dict):
            raise ValueError(f"access tier steps for '{domain}' must be a mapping")
        table: Dict[int, TierStep] = {}
        for level, entry in by_level.items():
            require_keys(entry, {"key", "prompt"}, f"Tier step {domain}/{level}")
            table[int(level)] = TierStep(key=str(entry["key"]), prompt=str(entry["prompt"]).strip())
        steps[domain] = table

    default = steps.get(DEFAULT_STEPS, {})
    missing = [t.level for t in tiers[1:] if t.level not in default]
    if missing:
        raise ValueError(f"default access tier steps missing levels: {missing}")
    return tiers, steps


class TierEscalator:
    """Walk the tier ladder for one inaccessible answer at a time."""

    def __init__(self, tiers: List[Tier], steps: Dict[str, Dict[int, TierStep]]) -> None:
        self.tiers = list(tiers)
        self.steps = steps

    @classmethod
    def from_yaml(cls, path: Optional[Union[str, Path]] = None) -> "TierEscalator":
        tiers, steps = load_tiers(path)
        return cls(tiers, steps)

    @property
    def last_level(self) -> int:
        return self.tiers[-1].level

    def step_for(self, domain: str, level: int) -> TierStep:
        table = self.steps.get(domain) or {}
        return table.get(level) or self.steps[DEFAULT_STEPS][level]

    def escalate(self, session: Session, gate: QuestionGate, answer: Answer) -> str:
        """Advance past the tier of the unreachable check in *answer*."""
        current = max(int(answer.meta.get("tier") or 0), session.access_tier or 0)
        domain = answer.domain
        for level in range(current + 1, self.last_level + 1):
            step = self.step_for(domain, level)
            tier = self.tiers[level]
            prompt = gate.ask(
                "yes_no",
                domain,
                step.key,
                step.prompt,
                {"owner": OWNER, "bucket": BUCKET, "field": step.key, "tier": level},
            )
            if prompt is None:
                continue
            session.access_tier = level
            logger.info(
                "access_tier_escalated",
                conversation_id=session.conversation_id,
                from_tier=current,
                to_tier=level,
                step=step.key,
            )
            return (
                f"Understood, that check isn't reachable. Stepping up to {tier.name} ({tier.label}).\n\n"
                f"{prompt}"
            )
        return self.exhausted(session, gate)

    def exhausted(self, session: Session, gate: QuestionGate) -> str:
        last = self.tiers[-1]
        session.access_tier = last.level
        gate.clear()
        logger.info("access_tiers_exhausted", conversation_id=session.conversation_id)
        return (
            f"That is past {last.name} ({last.label}). Diagnosis requires labor: "
            "the remaining checks can't be done without teardown, so quote the labor "
            "before going further."
        )
