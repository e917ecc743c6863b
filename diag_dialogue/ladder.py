"""Generic per-domain "next obvious test" ladder.

``session.template_step`` indexes the domain's ordered steps.  Before a
step is asked, the overlay resolver gets a chance to inject a make-family
prompt in front of it; the step is withheld until that is answered.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import structlog

from diag_dialogue.answers import PARSERS
from diag_dialogue.overlays import OverlayResolver
from diag_dialogue.question_gate import QuestionGate
from diag_dialogue.rule_files import load_yaml, require_keys
from diag_dialogue.session import Domain, Session

logger = structlog.get_logger(__name__)

OWNER = "ladder"


@dataclass(frozen=True)
class LadderStep:
    """One generic test step."""

    key: str
    prompt: str
    kind: str = "yes_no"
    tier: int = 1
    skip_when: Tuple[Mapping[str, Any], ...] = ()

    def skipped(self, session: Session) -> bool:
        """``True`` when any ``skip_when`` condition holds."""
        for cond in self.skip_when:
            value = session.fact(cond["fact"])
            if cond.get("missing"):
                hit = value is None
            elif "equals" in cond:
                hit = value == cond["equals"]
            else:
                hit = value is not None
            if hit:
                return True
        return False


def load_ladders(path: Optional[Union[str, Path]] = None) -> Dict[str, Tuple[LadderStep, ...]]:
    """Load and validate the per-domain ladders.

    Raises
    ------
    ValueError
        On an unknown domain or kind, a malformed step, or a duplicate key
        within a domain.
    """
    data = load_yaml("test_ladders.yaml", path)
    known = {d.value for d in Domain}
    ladders: Dict[str, Tuple[LadderStep, ...]] = {}
    for domain, entries in data.items():
        if domain not in known:
            raise ValueError(f"Ladder for unknown domain '{domain}'")
        if not isinstance(entries, list) or not entries:
            raise ValueError(f"Ladder '{domain}' must be a non-empty list")
        steps: List[LadderStep] = []
        seen: set = set()
        for i, entry in enumerate(entries):
            require_keys(entry, {"key", "prompt"}, f"Ladder step {domain}[{i}]")
            if entry["key"] in seen:
                raise ValueError(f"Ladder '{domain}': duplicate step key '{entry['key']}'")
            seen.add(entry["key"])
            kind = entry.get("kind", "yes_no")
            if kind not in PARSERS:
                raise ValueError(f"Ladder step {domain}/{entry['key']}: unknown kind '{kind}'")
            skip_when = entry.get("skip_when") or []
            for cond in skip_when:
                if not isinstance(cond, dict) or not cond.get("fact"):
                    raise ValueError(f"Ladder step {domain}/{entry['key']}: skip_when needs 'fact'")
            steps.append(
                LadderStep(
                    key=entry["key"],
                    prompt=str(entry["prompt"]).strip(),
                    kind=kind,
                    tier=int(entry.get("tier", 1)),
                    skip_when=tuple(skip_when),
                )
            )
        ladders[domain] = tuple(steps)
    return ladders


class Ladder:
    """Generic test ladder with overlay injection."""

    def __init__(self, ladders: Mapping[str, Tuple[LadderStep, ...]], overlays: Optional[OverlayResolver] = None) -> None:
        self.ladders = dict(ladders)
        self.overlays = overlays

    @classmethod
    def from_yaml(
        cls,
        path: Optional[Union[str, Path]] = None,
        overlays: Optional[OverlayResolver] = None,
    ) -> "Ladder":
        return cls(load_ladders(path), overlays)

    def steps(self, domain: Optional[Domain]) -> Tuple[LadderStep, ...]:
        if domain is None:
            return ()
        return self.ladders.get(domain.value, ())

    def current_step(self, session: Session) -> Optional[LadderStep]:
        """Step at ``template_step``, advancing past skipped steps."""
        steps = self.steps(session.domain)
        while session.template_step < len(steps):
            step = steps[session.template_step]
            if not step.skipped(session):
                return step
            logger.debug("ladder_step_skipped", conversation_id=session.conversation_id, step=step.key)
            session.template_step += 1
        return None

    def next_question(self, session: Session, gate: QuestionGate, transcript: str = "") -> Optional[str]:
        """Overlay prompt or ladder step to ask next, or ``None`` when done.

        Never runs while a deterministic path owns the conversation.
        """
        if session.active_path is not None or session.domain is None:
            return None
        step = self.current_step(session)
        if step is None:
            return None

        if self.overlays is not None:
            rule = self.overlays.resolve(session, step.key, transcript)
            if rule is not None:
                prompt = self.overlays.surface(session, gate, rule)
                if prompt is not None:
                    return prompt

        domain = session.domain.value
        prompt = gate.ask(
            step.kind,
            domain,
            step.key,
            step.prompt,
            {"owner": OWNER, "bucket": domain, "field": step.key, "tier": step.tier},
        )
        if prompt is None:
            return None
        session.template_step += 1
        return prompt
