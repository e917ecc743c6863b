"""Deterministic cylinder-misfire decision tree.

The path owns the conversation from entry until a terminal phase::

    start -> classify_misfire -> classify_load -> component_history
          -> component_swap_check | check_spark
          -> confirmed_component_fault | component_ruled_out

Every transition is read from :data:`TRANSITIONS`; no generative text is
involved.  A phase whose fact is already locked is skipped, so a code
such as P0302 pre-fills the single-cylinder classification.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional, Tuple

import structlog

from diag_dialogue.facts import misfire_code_facts
from diag_dialogue.question_gate import Answer, QuestionGate
from diag_dialogue.session import Domain, Session

logger = structlog.get_logger(__name__)

PATH_NAME = "misfire"
BUCKET = "misfire"
HISTORY_BUCKET = "misfire_history"


class Phase(str, Enum):
    START = "start"
    CLASSIFY_MISFIRE = "classify_misfire"
    CLASSIFY_LOAD = "classify_load"
    COMPONENT_HISTORY = "component_history"
    COMPONENT_SWAP_CHECK = "component_swap_check"
    CHECK_SPARK = "check_spark"
    CONFIRMED_COMPONENT_FAULT = "confirmed_component_fault"
    COMPONENT_RULED_OUT = "component_ruled_out"


TERMINAL_PHASES = frozenset({Phase.CONFIRMED_COMPONENT_FAULT, Phase.COMPONENT_RULED_OUT})

# (phase, signal) -> next phase.  Classification phases emit "done";
# yes/no phases emit the answer.
TRANSITIONS: Dict[Tuple[Phase, str], Phase] = {
    (Phase.START, "done"): Phase.CLASSIFY_MISFIRE,
    (Phase.CLASSIFY_MISFIRE, "done"): Phase.CLASSIFY_LOAD,
    (Phase.CLASSIFY_LOAD, "done"): Phase.COMPONENT_HISTORY,
    (Phase.COMPONENT_HISTORY, "yes"): Phase.COMPONENT_SWAP_CHECK,
    (Phase.COMPONENT_HISTORY, "no"): Phase.CHECK_SPARK,
    (Phase.COMPONENT_SWAP_CHECK, "yes"): Phase.CONFIRMED_COMPONENT_FAULT,
    (Phase.COMPONENT_SWAP_CHECK, "no"): Phase.COMPONENT_RULED_OUT,
    (Phase.CHECK_SPARK, "yes"): Phase.COMPONENT_RULED_OUT,
    (Phase.CHECK_SPARK, "no"): Phase.CONFIRMED_COMPONENT_FAULT,
}

# phase -> (question key, answer kind, fact field)
_QUESTIONS: Dict[Phase, Tuple[str, str, Optional[str]]] = {
    Phase.CLASSIFY_MISFIRE: ("misfire_classify", "misfire_class", None),
    Phase.CLASSIFY_LOAD: ("misfire_load", "misfire_load", "load"),
    Phase.COMPONENT_HISTORY: ("misfire_component_history", "yes_no", "component_history"),
    Phase.COMPONENT_SWAP_CHECK: ("misfire_swap_check", "yes_no", "swap_moved"),
    Phase.CHECK_SPARK: ("misfire_check_spark", "yes_no", "spark_present"),
}

_OCCURRENCE_MENU = "• Idle\n• Cruise\n• Under load\n• Cold start\n• All the time"


def misfire_code(session: Session) -> Optional[str]:
    """First P0300-P0308 code of the session whose path has not run yet."""
    for code in session.active_codes:
        if misfire_code_facts(code) and f"{PATH_NAME}:{code}" not in session.completed_paths:
            return code
    return None


class MisfirePath:
    """Finite state machine driving one misfire diagnosis."""

    name = PATH_NAME

    def __init__(self, session: Session, gate: QuestionGate) -> None:
        self.session = session
        self.gate = gate

    # ------------------------------------------------------------------
    # Entry
    # ------------------------------------------------------------------

    @property
    def path_key(self) -> str:
        if self.session.active_path == PATH_NAME:
            code = self._facts().get("code")
        else:
            code = misfire_code(self.session)
        return f"{PATH_NAME}:{code or 'symptom'}"

    def should_enter(self) -> bool:
        s = self.session
        if s.active_path is not None or s.domain is not Domain.ENGINE_DRIVABILITY:
            return False
        if not s.fact("misfire.mentioned"):
            return False
        if misfire_code(s) is not None:
            return True
        # A symptom-only path runs once, and never after a code path.
        return not any(key.startswith(f"{PATH_NAME}:") for key in s.completed_paths)

    def enter(self) -> str:
        code = misfire_code(self.session)
        if code is not None:
            self._start_bucket(code)
        self.session.active_path = PATH_NAME
        self.session.phase = Phase.START.value
        logger.info(
            "path_entered",
            conversation_id=self.session.conversation_id,
            path=PATH_NAME,
            key=self.path_key,
        )
        return self._advance(Phase.START)

    # ------------------------------------------------------------------
    # Turn handling
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return Phase(self.session.phase or Phase.START.value)

    def handle(self, answer: Optional[Answer]) -> str:
        """Run one transition for the consumed *answer*.

        With no answer for this path the outstanding prompt is re-issued
        and the phase does not move.
        """
        if answer is None or answer.owner != PATH_NAME:
            pending = self.gate.pending
            if pending is not None and pending.owner == PATH_NAME:
                return self.gate.reprompt()
            return self._advance(self.phase)
        return self._advance(self.phase)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _facts(self) -> Dict[str, Any]:
        return self.session.facts(BUCKET)

    def _start_bucket(self, code: str) -> None:
        """Bind the misfire bucket to *code*, archiving a finished diagnosis."""
        s = self.session
        current = self._facts()
        if current.get("resolution") is not None:
            archived = s.facts(HISTORY_BUCKET)
            archived[current.get("code") or "symptom"] = dict(current)
            s.classification[BUCKET] = dict(misfire_code_facts(code) or {})
            logger.info(
                "path_facts_archived",
                conversation_id=s.conversation_id,
                archived=current.get("code") or "symptom",
                code=code,
            )
        self._facts().setdefault("code", code)

    def _signal(self, phase: Phase) -> Optional[str]:
        """Transition signal if *phase*'s fact is locked, else ``None``."""
        f = self._facts()
        if phase is Phase.START:
            return "done"
        if phase is Phase.CLASSIFY_MISFIRE:
            return "done" if f.get("type") and f.get("condition") else None
        if phase is Phase.CLASSIFY_LOAD:
            return "done" if f.get("load") else None
        field = _QUESTIONS[phase][2]
        return f.get(field)

    def _advance(self, phase: Phase) -> str:
        while phase not in TERMINAL_PHASES:
            signal = self._signal(phase)
            if signal is None:
                break
            nxt = TRANSITIONS[(phase, signal)]
            logger.info(
                "path_transition",
                conversation_id=self.session.conversation_id,
                path=PATH_NAME,
                from_phase=phase.value,
                to_phase=nxt.value,
                signal=signal,
            )
            phase = nxt
        self.session.phase = phase.value
        if phase in TERMINAL_PHASES:
            return self._finish(phase)
        return self._ask(phase)

    def _ask(self, phase: Phase) -> str:
        key, kind, field = _QUESTIONS[phase]
        prompt = self._prompt(phase)
        meta = {"owner": PATH_NAME, "bucket": BUCKET, "phase": phase.value}
        if field:
            meta["field"] = field
        asked = self.gate.ask(kind, Domain.ENGINE_DRIVABILITY.value, key, prompt, meta)
        if asked is None:
            # Same phase still open after a partial answer: re-issue it.
            self.gate.expect_input(kind, Domain.ENGINE_DRIVABILITY.value, key, prompt, meta)
        return prompt

    def _finish(self, outcome: Phase) -> str:
        s = self.session
        f = self._facts()
        f.setdefault("resolution", outcome.value)
        s.completed_paths.add(self.path_key)
        s.active_path = None
        self.gate.clear()
        logger.info(
            "path_completed",
            conversation_id=s.conversation_id,
            path=PATH_NAME,
            outcome=outcome.value,
        )
        return self._outcome_text(outcome)

    # -- text ---------------------------------------------------------------

    def _cylinder_label(self) -> str:
        cyl = self._facts().get("cylinder")
        return f"cylinder {cyl}" if cyl else "the affected cylinders"

    def _summary(self) -> str:
        f = self._facts()
        parts = [f.get("type") or "unknown"]
        if f.get("cylinder"):
            parts[0] += f", cylinder {f['cylinder']}"
        if f.get("condition"):
            parts.append(str(f["condition"]).replace("_", " "))
        return "; ".join(parts)

    def _prompt(self, phase: Phase) -> str:
        f = self._facts()
        cyl = self._cylinder_label()
        if phase is Phase.CLASSIFY_MISFIRE:
            head = f"Misfire locked ({self._summary()}).\n\n"
            if not f.get("type") and not f.get("condition"):
                return (
                    head
                    + "Is it a single cylinder (which one?) or multiple cylinders, and when does it occur?\n"
                    + _OCCURRENCE_MENU
                )
            if not f.get("type"):
                return head + "Is it a single cylinder (which one?) or multiple cylinders?"
            return head + "When does it occur?\n" + _OCCURRENCE_MENU
        if phase is Phase.CLASSIFY_LOAD:
            return f"Misfire locked ({self._summary()}).\n\nIs the misfire worse at idle, under load, or both?"
        if phase is Phase.COMPONENT_HISTORY:
            return f"Has the ignition coil or spark plug on {cyl} been replaced recently? (yes/no)"
        if phase is Phase.COMPONENT_SWAP_CHECK:
            return (
                f"Swap the ignition coil on {cyl} with a neighbouring cylinder, clear codes and re-test.\n\n"
                "Did the misfire move with the coil? (yes/no)"
            )
        if phase is Phase.CHECK_SPARK:
            return f"Check spark on {cyl} with a spark tester. Is there strong spark? (yes/no)"
        raise ValueError(f"No prompt for phase '{phase.value}'")

    def _outcome_text(self, outcome: Phase) -> str:
        f = self._facts()
        cyl = self._cylinder_label()
        if outcome is Phase.CONFIRMED_COMPONENT_FAULT:
            if f.get("spark_present") == "no":
                return (
                    f"No spark on {cyl}: ignition fault confirmed. "
                    "Check coil power, ground and driver command, then replace the failed ignition component."
                )
            return (
                f"Misfire followed the coil: ignition component fault confirmed on {cyl}. "
                "Replace the swapped coil (inspect the plug), clear codes and verify with a road test."
            )
        return (
            f"Ignition ruled out on {cyl}. "
            "Next: injector and mechanical verification (injector balance, then compression/leak-down)."
        )
