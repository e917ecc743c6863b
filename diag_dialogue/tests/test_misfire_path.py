"""Tests for the cylinder-misfire state machine."""

from __future__ import annotations

import pytest

from diag_dialogue.facts import lock_facts
from diag_dialogue.misfire_path import PATH_NAME, MisfirePath, Phase
from diag_dialogue.question_gate import QuestionGate
from diag_dialogue.session import Domain, Session


def _make_path(session: Session, gate: QuestionGate, codes=("P0302",), message: str = "") -> MisfirePath:
    session.active_codes = list(codes)
    session.domain = Domain.ENGINE_DRIVABILITY
    lock_facts(session, message)
    return MisfirePath(session, gate)


def _answer(path: MisfirePath, gate: QuestionGate, message: str) -> str:
    answer = gate.consume(message)
    assert answer is not None, f"unparsed: {message!r}"
    return path.handle(answer)


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------


class TestEntry:
    def test_cylinder_code_prefills_type(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        assert path.should_enter()
        prompt = path.enter()
        assert prompt.startswith("Misfire locked (single, cylinder 2).\n\nWhen does it occur?")
        assert session.active_path == PATH_NAME
        assert session.phase == Phase.CLASSIFY_MISFIRE.value
        assert session.expected_input.key == "misfire_classify"

    def test_random_misfire_asks_condition(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate, codes=("P0300",))
        assert "multiple" in path.enter()

    def test_symptom_without_code_asks_both(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate, codes=(), message="truck is misfiring")
        prompt = path.enter()
        assert "single cylinder (which one?) or multiple cylinders, and when" in prompt
        assert path.path_key == "misfire:symptom"

    def test_not_entered_outside_engine_domain(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        session.domain = Domain.COOLING
        assert not path.should_enter()

    def test_not_entered_without_misfire(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate, codes=("P0171",))
        assert not path.should_enter()


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_spark_present_rules_out_ignition(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()

        load_prompt = _answer(path, gate, "idle")
        assert load_prompt.endswith("Is the misfire worse at idle, under load, or both?")
        assert "(single, cylinder 2; idle)" in load_prompt

        history_prompt = _answer(path, gate, "both")
        assert history_prompt == (
            "Has the ignition coil or spark plug on cylinder 2 been replaced recently? (yes/no)"
        )

        spark_prompt = _answer(path, gate, "no")
        assert spark_prompt == "Check spark on cylinder 2 with a spark tester. Is there strong spark? (yes/no)"

        outcome = _answer(path, gate, "yes")
        assert outcome.startswith("Ignition ruled out on cylinder 2.")
        assert session.phase == Phase.COMPONENT_RULED_OUT.value
        assert session.active_path is None
        assert session.expected_input is None
        assert session.fact("misfire.resolution") == "component_ruled_out"

    def test_no_spark_confirms_fault(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()
        for message in ("idle", "load", "no"):
            _answer(path, gate, message)
        outcome = _answer(path, gate, "no")
        assert outcome.startswith("No spark on cylinder 2: ignition fault confirmed.")
        assert session.phase == Phase.CONFIRMED_COMPONENT_FAULT.value

    def test_swap_check_branch(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()
        for message in ("idle", "both"):
            _answer(path, gate, message)
        swap_prompt = _answer(path, gate, "yes")
        assert "Did the misfire move with the coil?" in swap_prompt

        outcome = _answer(path, gate, "yes")
        assert "Misfire followed the coil" in outcome
        assert session.fact("misfire.swap_moved") == "yes"

    def test_swap_did_not_move_rules_out(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()
        for message in ("idle", "both", "yes"):
            _answer(path, gate, message)
        assert _answer(path, gate, "no").startswith("Ignition ruled out")

    def test_full_classification_answer_skips_phases(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate, codes=(), message="misfire")
        path.enter()
        prompt = _answer(path, gate, "single cyl 4 at idle")
        assert "cylinder 4; idle" in prompt
        assert session.phase == Phase.CLASSIFY_LOAD.value


# ---------------------------------------------------------------------------
# Re-prompts and completion
# ---------------------------------------------------------------------------


class TestRepromptAndCompletion:
    def test_unparsed_answer_reissues_prompt(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()
        _answer(path, gate, "idle")
        assert gate.consume("maybe") is None

        text = path.handle(None)
        assert text.startswith("Answer idle, under load, or both.")
        assert session.phase == Phase.CLASSIFY_LOAD.value
        assert session.expected_input.reprompts == 1

    @pytest.mark.parametrize(
        "answers_so_far,phase",
        [
            (("idle", "both"), Phase.COMPONENT_HISTORY),
            (("idle", "both", "no"), Phase.CHECK_SPARK),
        ],
    )
    def test_unsure_yes_no_answer_holds_phase(self, session: Session, gate: QuestionGate, answers_so_far, phase) -> None:
        path = _make_path(session, gate)
        path.enter()
        for message in answers_so_far:
            _answer(path, gate, message)
        assert session.phase == phase.value

        assert gate.consume("not sure, I don't know") is None
        text = path.handle(None)
        assert text.startswith("Answer yes or no.")
        assert session.phase == phase.value
        assert session.active_path == PATH_NAME
        assert session.fact("misfire.resolution") is None

    def test_completed_path_not_reentered(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()
        for message in ("idle", "both", "no", "yes"):
            _answer(path, gate, message)
        assert "misfire:P0302" in session.completed_paths
        assert not path.should_enter()

    def test_new_misfire_code_reenters_with_fresh_facts(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()
        for message in ("idle", "both", "no", "no"):
            _answer(path, gate, message)
        assert session.phase == Phase.CONFIRMED_COMPONENT_FAULT.value

        session.active_codes.append("P0304")
        assert path.should_enter()
        prompt = path.enter()

        assert prompt.startswith("Misfire locked (single, cylinder 4).\n\nWhen does it occur?")
        assert path.path_key == "misfire:P0304"
        assert session.fact("misfire.cylinder") == 4
        assert session.fact("misfire.resolution") is None
        archived = session.fact("misfire_history.P0302")
        assert archived["cylinder"] == 2
        assert archived["resolution"] == "confirmed_component_fault"

    def test_symptom_path_not_rerun_after_code_path(self, session: Session, gate: QuestionGate) -> None:
        path = _make_path(session, gate)
        path.enter()
        for message in ("idle", "both", "no", "yes"):
            _answer(path, gate, message)
        lock_facts(session, "still misfiring")
        assert not path.should_enter()
