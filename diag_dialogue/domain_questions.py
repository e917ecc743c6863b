"""First classification question per domain.

Each question is asked only while its fact is unlocked (and only once per
session).  The consumed answer produces a short acknowledgement line that
prefixes whatever the controller asks next.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple

from diag_dialogue.question_gate import Answer, QuestionGate
from diag_dialogue.session import Domain, Session

OWNER = "domain_question"


class _FactContext(dict):
    """``str.format_map`` context; missing keys render as ``unknown``."""

    def __missing__(self, key: str) -> str:
        return "unknown"


def _display(value: Any) -> str:
    return str(value).replace("_", " ")


@dataclass(frozen=True)
class DomainQuestion:
    key: str
    domain: Domain
    kind: str
    bucket: str
    fact_field: str
    prompt: str
    ack: Mapping[str, str] = field(default_factory=dict)
    requires: Optional[str] = None
    as_bool: bool = False

    def due(self, session: Session) -> bool:
        if session.domain is not self.domain or self.key in session.asked_keys:
            return False
        if session.fact(f"{self.bucket}.{self.fact_field}") is not None:
            return False
        return self.requires is None or session.fact(self.requires) is not None

    def render(self, session: Session) -> str:
        ctx = _FactContext({k: _display(v) for k, v in (session.classification.get(self.bucket) or {}).items()})
        return self.prompt.format_map(ctx)

    def acknowledge(self, session: Session, answer: Answer) -> str:
        template = self.ack.get(str(answer.value)) or self.ack.get("default", "")
        ctx = _FactContext({k: _display(v) for k, v in (session.classification.get(self.bucket) or {}).items()})
        ctx["value"] = _display(answer.value)
        return template.format_map(ctx)


DOMAIN_QUESTIONS: Tuple[DomainQuestion, ...] = (
    DomainQuestion(
        key="lean_band",
        domain=Domain.ENGINE_DRIVABILITY,
        kind="occurrence",
        bucket="lean",
        fact_field="band",
        requires="lean.banks",
        prompt="Lean condition locked ({banks}).\n\nWhere does it happen?\n• Idle\n• Cruise\n• Under load",
        ack={"default": "Lean condition locked ({banks}; {value})."},
    ),
    DomainQuestion(
        key="overheat_band",
        domain=Domain.COOLING,
        kind="temp_band",
        bucket="cooling",
        fact_field="band",
        requires="cooling.complaint",
        prompt=(
            "Classify the overheating condition:\n\n"
            "1) Idle / stopped\n"
            "2) Driving\n"
            "3) Highway/load/towing\n"
            "4) Pegs hot immediately after startup\n"
            "5) Gauge reads hot but no boil-over/coolant loss\n\n"
            'Reply in plain words (ex: "idle only").'
        ),
        ack={"default": "Overheat condition locked ({value})."},
    ),
    DomainQuestion(
        key="nostart_type",
        domain=Domain.STARTING_CHARGING,
        kind="crank_type",
        bucket="starting",
        fact_field="crank_type",
        requires="starting.complaint",
        prompt=(
            "Before anything else, classify it:\n\n"
            "1) CRANKS but will not start\n"
            "2) NO-CRANK (starter does not engage)\n\n"
            'Reply with words: "crank no-start" or "no-crank".'
        ),
        ack={"no_crank": "No-crank locked.", "crank_no_start": "Crank/no-start locked."},
    ),
    DomainQuestion(
        key="evap_verified",
        domain=Domain.EVAP,
        kind="yes_no",
        bucket="evap",
        fact_field="basics_verified",
        as_bool=True,
        prompt=(
            "EVAP fault locked ({leak_type}).\n\n"
            "Have you verified basics yet: gas cap seal/tight + visible purge/vent lines OK? (yes/no)"
        ),
        ack={
            "yes": "Good, basics verified.",
            "no": "Do basics first: verify gas cap seal/tightness, then inspect purge + vent lines for cracks/disconnects.",
        },
    ),
    DomainQuestion(
        key="network_scope",
        domain=Domain.NETWORK,
        kind="scope",
        bucket="network",
        fact_field="scope",
        prompt=(
            "Network fault detected.\n\nIs this:\n• SINGLE module complaining\nOR\n"
            "• MULTIPLE modules offline?\n\nReply: single or multiple."
        ),
        ack={"default": "Network scope locked ({value})."},
    ),
    DomainQuestion(
        key="brake_complaint",
        domain=Domain.BRAKES_ABS,
        kind="brake_complaint",
        bucket="brakes_abs",
        fact_field="complaint",
        prompt=(
            "Classify the brake complaint:\n\n• ABS/traction light\n• Soft pedal\n• Hard pedal\n"
            "• Pull\n• Noise\n\nReply with one."
        ),
        ack={"abs_light": "ABS/traction complaint locked.", "default": "Brake complaint locked ({value})."},
    ),
    DomainQuestion(
        key="trans_complaint",
        domain=Domain.TRANSMISSION,
        kind="trans_complaint",
        bucket="transmission",
        fact_field="complaint",
        prompt=(
            "Classify the transmission symptom:\n\n• No movement\n• Slipping\n• Harsh shifts\n"
            "• Delayed engagement\n\nReply with one."
        ),
        ack={"default": "Transmission complaint locked ({value})."},
    ),
)

_BY_KEY: Dict[str, DomainQuestion] = {q.key: q for q in DOMAIN_QUESTIONS}


def next_domain_question(session: Session, gate: QuestionGate) -> Optional[str]:
    """Ask the first due domain question; ``None`` when none is due."""
    for question in DOMAIN_QUESTIONS:
        if not question.due(session):
            continue
        meta = {"owner": OWNER, "bucket": question.bucket, "field": question.fact_field}
        if question.as_bool:
            meta["as_bool"] = True
        prompt = gate.ask(question.kind, question.domain.value, question.key, question.render(session), meta)
        if prompt is not None:
            return prompt
    return None


def acknowledge(session: Session, answer: Answer) -> str:
    """Acknowledgement line for a consumed domain-question answer."""
    question = _BY_KEY.get(answer.key)
    if question is None:
        return ""
    return question.acknowledge(session, answer)
