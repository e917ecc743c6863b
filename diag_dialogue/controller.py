"""Per-turn control flow.

One call to :meth:`TurnController.process` runs the priority stack once::

    safety hard stop
    -> vehicle merge -> idle quick reply -> codes, facts, mode, domain
    -> vehicle completeness gate
    -> consume the pending answer (ack / tier escalation / path transition)
    -> pending code explanations (prefix)
    -> re-prompt or clarify an unparsed answer
    -> active deterministic path -> path entry
    -> first unaddressed domain question
    -> overlay / ladder step
    -> free-form phrasing

The first layer that produces a reply ends the turn; prefix layers
(explanations, acknowledgements) are joined in front of it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import structlog

from diag_dialogue import domain_questions, vocabulary as vocab
from diag_dialogue.capabilities import SafetyChecker, VehicleExtractor
from diag_dialogue.domains import classify_domain, lock_domain
from diag_dialogue.facts import add_codes, extract_codes, lock_facts, refresh_mode
from diag_dialogue.ladder import OWNER as LADDER, Ladder
from diag_dialogue.matcher import any_match
from diag_dialogue.misfire_path import PATH_NAME as MISFIRE, MisfirePath, Phase
from diag_dialogue.overlays import OWNER as OVERLAY
from diag_dialogue.phrasing import DISCLAIMER, PhrasingAdapter
from diag_dialogue.question_gate import Answer, QuestionGate
from diag_dialogue.schemas import PhrasingDirective, VehicleContext
from diag_dialogue.session import Mode, Session
from diag_dialogue.tiers import OWNER as TIER, TierEscalator
from diag_dialogue.vehicle import infer_engine, merge_vehicle

logger = structlog.get_logger(__name__)

_QUICK_REPLY_MAX_WORDS = 6
_QUICK_REPLY_SYMPTOMS = ("code", "p0", "misfir", "no start", "stall", "noise", "overheat")


@dataclass
class TurnOutcome:
    """Reply for one turn plus the layer that produced it."""

    reply: str
    layer: str
    prefixes: List[str] = field(default_factory=list)

    @property
    def text(self) -> str:
        return "\n\n".join([p for p in self.prefixes if p] + [self.reply])


def quick_reply(message: str, vehicle: VehicleContext) -> Optional[str]:
    """Vehicle-only acknowledgement while no diagnosis is running."""
    lower = " ".join((message or "").split()).lower()
    if len(lower.split()) > _QUICK_REPLY_MAX_WORDS:
        return None
    if any(word in lower for word in _QUICK_REPLY_SYMPTOMS):
        return None
    if any_match(vocab.SYMPTOM_KEYWORDS, lower) or any_match(vocab.DOMAIN_KEYWORDS, lower):
        return None
    if not (vehicle.year or vehicle.make or vehicle.model):
        return None
    label = " ".join(p for p in (vehicle.year, vehicle.make, vehicle.model) if p)
    return (
        f"A {label}. Noted.\nBut what's it *doing*?\n\n"
        "Codes?\nMisfires?\nNo-start?\nNoise?\nOverheating?\n\n"
        "Give mileage + symptoms so I can build a real plan."
    )


def vehicle_request(code: str, vehicle: VehicleContext) -> str:
    missing = ", ".join(vehicle.missing_fields)
    have = vehicle.describe()
    head = f"Got {code}" + (f" on the {have}" if have else "") + "."
    return (
        f"{head} Before I go further I need the full vehicle. Missing: {missing}.\n\n"
        "Give year, make, model and engine (or the VIN)."
    )


class TurnController:
    """Stateless orchestrator; all state lives on the :class:`Session`."""

    def __init__(
        self,
        safety: SafetyChecker,
        extractor: VehicleExtractor,
        phrasing: PhrasingAdapter,
        ladder: Ladder,
        tiers: TierEscalator,
    ) -> None:
        self.safety = safety
        self.extractor = extractor
        self.phrasing = phrasing
        self.ladder = ladder
        self.tiers = tiers

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    async def process(
        self,
        session: Session,
        message: str,
        vehicle_context: Optional[VehicleContext] = None,
    ) -> TurnOutcome:
        verdict = self.safety.check(message)
        if verdict.hard_stop:
            logger.warning("turn_hard_stopped", conversation_id=session.conversation_id)
            return TurnOutcome(reply=verdict.hard_stop, layer="safety")

        await self._merge_vehicle(session, message, vehicle_context)

        codes = extract_codes(message)
        if session.mode is Mode.IDLE and not codes and session.domain is None and session.expected_input is None:
            quick = quick_reply(message, session.vehicle)
            if quick is not None:
                return TurnOutcome(reply=quick, layer="quick_reply")

        add_codes(session, codes)
        lock_facts(session, message)
        refresh_mode(session, message, codes)
        lock_domain(session, classify_domain(message, session.active_codes))

        if session.primary_code and not session.vehicle.is_complete:
            logger.info(
                "vehicle_gate_blocked",
                conversation_id=session.conversation_id,
                missing=session.vehicle.missing_fields,
            )
            return TurnOutcome(reply=vehicle_request(session.primary_code, session.vehicle), layer="vehicle_gate")

        gate = QuestionGate(session)
        pending = gate.pending
        answer = gate.consume(message) if pending is not None else None
        outcome = TurnOutcome(reply="", layer="")
        warnings = self._warnings(session, message, verdict.warnings)

        if answer is not None:
            handled = self._handle_answer(session, gate, answer, outcome)
            if handled is not None:
                return handled

        for code in self._unexplained(session):
            outcome.prefixes.append(await self._explain(session, code, warnings))

        if pending is not None and answer is None and gate.pending is not None:
            return await self._unparsed(session, gate, message, outcome, warnings)

        return await self._next_question(session, gate, message, outcome, warnings)

    # ------------------------------------------------------------------
    # Layers
    # ------------------------------------------------------------------

    async def _merge_vehicle(self, session: Session, message: str, incoming: Optional[VehicleContext]) -> None:
        extracted = await self.extractor.extract(message)
        # Session and request values take precedence over text extraction.
        merged = merge_vehicle(extracted, merge_vehicle(session.vehicle, incoming))
        session.vehicle = infer_engine(merged)

    def _handle_answer(
        self,
        session: Session,
        gate: QuestionGate,
        answer: Answer,
        outcome: TurnOutcome,
    ) -> Optional[TurnOutcome]:
        """Dispatch a consumed answer to its owner.

        Returns a finished outcome when the owner ends the turn, else
        ``None`` after adding any acknowledgement prefix to *outcome*.
        """
        if answer.inaccessible and answer.owner in (LADDER, TIER):
            outcome.reply = self.tiers.escalate(session, gate, answer)
            outcome.layer = "tier"
            return outcome

        if answer.owner == MISFIRE:
            reply = MisfirePath(session, gate).handle(answer)
            if session.phase == Phase.COMPONENT_RULED_OUT.value:
                follow_up = self.ladder.next_question(session, gate, self._transcript(session, ""))
                if follow_up:
                    reply = f"{reply}\n\n{follow_up}"
            outcome.reply = reply
            outcome.layer = "path"
            return outcome

        if answer.owner == domain_questions.OWNER:
            outcome.prefixes.append(domain_questions.acknowledge(session, answer))
        elif answer.owner == OVERLAY:
            outcome.prefixes.append("Noted." if answer.value == "yes" else "Noted. Keep it in mind.")
        return None

    def _unexplained(self, session: Session) -> List[str]:
        codes = []
        while session.next_unexplained_code() is not None:
            code = session.next_unexplained_code()
            session.explained_codes.append(code)
            codes.append(code)
        return codes

    async def _explain(self, session: Session, code: str, warnings: List[str]) -> str:
        directive = PhrasingDirective(
            intent="explain_code",
            code=code,
            code_family=vocab.CODE_FAMILIES.get(code[:1]),
            domain=session.domain.value if session.domain else None,
            vehicle=session.vehicle,
            warnings=warnings,
            disclaimer=self._take_disclaimer(session),
        )
        warnings.clear()
        logger.info("code_explained", conversation_id=session.conversation_id, code=code)
        return await self.phrasing.phrase(directive, session.history)

    async def _unparsed(
        self,
        session: Session,
        gate: QuestionGate,
        message: str,
        outcome: TurnOutcome,
        warnings: List[str],
    ) -> TurnOutcome:
        pending = gate.pending
        if pending.owner != MISFIRE and pending.reprompts == 0:
            pending.reprompts += 1
            directive = PhrasingDirective(
                intent="clarify",
                message=message,
                domain=pending.domain,
                vehicle=session.vehicle,
                pending_prompt=pending.prompt,
                warnings=warnings,
                disclaimer=self._take_disclaimer(session),
            )
            clarification = await self.phrasing.phrase(directive, session.history)
            outcome.reply = f"{clarification}\n\n{pending.prompt}"
            outcome.layer = "clarify"
            return outcome
        outcome.reply = gate.reprompt()
        outcome.layer = "reprompt"
        return outcome

    async def _next_question(
        self,
        session: Session,
        gate: QuestionGate,
        message: str,
        outcome: TurnOutcome,
        warnings: List[str],
    ) -> TurnOutcome:
        path = MisfirePath(session, gate)
        if session.active_path == MISFIRE:
            outcome.reply, outcome.layer = path.handle(None), "path"
            return outcome
        if path.should_enter():
            outcome.reply, outcome.layer = path.enter(), "path"
            return outcome

        prompt = domain_questions.next_domain_question(session, gate)
        if prompt is not None:
            outcome.reply, outcome.layer = prompt, "domain_question"
            return outcome

        prompt = self.ladder.next_question(session, gate, self._transcript(session, message))
        if prompt is not None:
            outcome.reply, outcome.layer = prompt, "ladder"
            return outcome

        directive = PhrasingDirective(
            intent="free_form",
            message=message,
            domain=session.domain.value if session.domain else None,
            vehicle=session.vehicle,
            locked_facts=dict(session.classification),
            warnings=warnings,
            disclaimer=self._take_disclaimer(session),
        )
        outcome.reply = await self.phrasing.phrase(directive, session.history)
        outcome.layer = "free_form"
        return outcome

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _warnings(self, session: Session, message: str, message_warnings: List[str]) -> List[str]:
        warnings = list(message_warnings)
        last_reply = next((t.content for t in reversed(session.history) if t.role == "assistant"), "")
        if last_reply:
            for warning in self.safety.check(last_reply).warnings:
                if warning not in warnings:
                    warnings.append(warning)
        return warnings

    def _take_disclaimer(self, session: Session) -> Optional[str]:
        if session.disclaimer_sent:
            return None
        session.disclaimer_sent = True
        return DISCLAIMER

    @staticmethod
    def _transcript(session: Session, message: str) -> str:
        said = [t.content for t in session.history if t.role == "user"]
        return "\n".join(said + [message]).lower()
