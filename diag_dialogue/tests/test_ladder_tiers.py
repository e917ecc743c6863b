"""Tests for the generic test ladder and access-tier escalation."""

from __future__ import annotations

import textwrap

import pytest

from diag_dialogue.answers import INACCESSIBLE
from diag_dialogue.ladder import OWNER, Ladder, load_ladders
from diag_dialogue.question_gate import Answer, QuestionGate
from diag_dialogue.session import Domain, Session
from diag_dialogue.tiers import TierEscalator, load_tiers


def _write(tmp_path, name: str, body: str):
    path = tmp_path / name
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


def _inaccessible(domain: str, key: str, tier: int) -> Answer:
    return Answer(key=key, kind="yes_no", domain=domain, value=INACCESSIBLE, meta={"owner": OWNER, "tier": tier})


# ---------------------------------------------------------------------------
# Ladder
# ---------------------------------------------------------------------------


class TestLadder:
    def test_every_domain_but_unknown_has_steps(self, ladder: Ladder) -> None:
        for domain in Domain:
            if domain is Domain.UNKNOWN:
                continue
            assert ladder.steps(domain), domain

    def test_steps_in_order_and_meta(self, ladder: Ladder, session: Session, gate: QuestionGate) -> None:
        session.domain = Domain.NETWORK
        first = ladder.next_question(session, gate)
        assert first.startswith("Before chasing modules")
        assert session.template_step == 1
        assert session.expected_input.meta == {
            "owner": OWNER,
            "bucket": "network",
            "field": "power_ground",
            "tier": 1,
        }

        gate.consume("yes")
        assert session.fact("network.power_ground") == "yes"
        assert ladder.next_question(session, gate).startswith("Next: have you measured CAN termination")

    def test_ignition_step_skipped_without_misfire(self, ladder: Ladder, session: Session, gate: QuestionGate) -> None:
        session.domain = Domain.ENGINE_DRIVABILITY
        ladder.next_question(session, gate)
        assert session.expected_input.key == "fuel_check"

    def test_confirmed_fault_skips_remaining_steps(self, ladder: Ladder, session: Session, gate: QuestionGate) -> None:
        session.domain = Domain.ENGINE_DRIVABILITY
        session.classification["misfire"] = {"mentioned": True, "resolution": "confirmed_component_fault"}
        assert ladder.next_question(session, gate) is None

    def test_evap_basics_verified_skips_cap_check(self, ladder: Ladder, session: Session, gate: QuestionGate) -> None:
        session.domain = Domain.EVAP
        session.classification["evap"] = {"basics_verified": True}
        ladder.next_question(session, gate)
        assert session.expected_input.key == "purge_seal"

    def test_not_while_path_active(self, ladder: Ladder, session: Session, gate: QuestionGate) -> None:
        session.domain = Domain.ENGINE_DRIVABILITY
        session.active_path = "misfire"
        assert ladder.next_question(session, gate) is None

    def test_overlay_injected_before_step(self, ladder: Ladder, session: Session, gate: QuestionGate, f150) -> None:
        session.domain = Domain.COOLING
        session.vehicle = f150
        assert ladder.next_question(session, gate).startswith("Basic check: is coolant FULL")
        gate.consume("yes")

        overlay = ladder.next_question(session, gate)
        assert overlay.startswith("Ford cooling note")
        assert session.template_step == 1
        gate.consume("yes")

        assert ladder.next_question(session, gate).startswith("With a scan tool, do BOTH cooling fans")
        assert session.template_step == 2

    def test_exhausted(self, ladder: Ladder, session: Session, gate: QuestionGate) -> None:
        session.domain = Domain.TPMS
        asked = []
        while True:
            prompt = ladder.next_question(session, gate)
            if prompt is None:
                break
            asked.append(session.expected_input.key)
            gate.consume("no")
        assert asked == ["sensor_id", "frequency"]


class TestLadderLoader:
    def test_unknown_domain(self, tmp_path) -> None:
        path = _write(tmp_path, "ladders.yaml", "plumbing:\n  - {key: a, prompt: x}\n")
        with pytest.raises(ValueError, match="unknown domain"):
            load_ladders(path)

    def test_unknown_kind(self, tmp_path) -> None:
        path = _write(tmp_path, "ladders.yaml", "cooling:\n  - {key: a, prompt: x, kind: colour}\n")
        with pytest.raises(ValueError, match="unknown kind"):
            load_ladders(path)

    def test_duplicate_key(self, tmp_path) -> None:
        path = _write(tmp_path, "ladders.yaml", "cooling:\n  - {key: a, prompt: x}\n  - {key: a, prompt: y}\n")
        with pytest.raises(ValueError, match="duplicate step key"):
            load_ladders(path)

    def test_empty_ladder(self, tmp_path) -> None:
        path = _write(tmp_path, "ladders.yaml", "cooling: []\n")
        with pytest.raises(ValueError, match="non-empty list"):
            load_ladders(path)


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


class TestTierEscalation:
    def test_domain_specific_walk_to_labor(self, tiers: TierEscalator, session: Session, gate: QuestionGate) -> None:
        text = tiers.escalate(session, gate, _inaccessible("evap", "purge_seal", 1))
        assert text.startswith("Understood, that check isn't reachable. Stepping up to tier_2")
        assert session.expected_input.key == "tier2_evap_underbody"
        assert session.access_tier == 2

        answer = gate.consume("can't reach it")
        assert answer.inaccessible
        tiers.escalate(session, gate, answer)
        assert session.expected_input.key == "tier3_evap_tank"
        assert session.access_tier == 3

        answer = gate.consume("tank has to come out, not accessible")
        text = tiers.escalate(session, gate, answer)
        assert "Diagnosis requires labor" in text
        assert session.expected_input is None

    def test_default_steps_for_domain_without_table(self, tiers: TierEscalator, session: Session, gate: QuestionGate) -> None:
        tiers.escalate(session, gate, _inaccessible("cooling", "coolant_level", 1))
        assert session.expected_input.key == "tier2_partial_teardown"

    def test_partial_domain_table_falls_back(self, tiers: TierEscalator, session: Session, gate: QuestionGate) -> None:
        tiers.escalate(session, gate, _inaccessible("brakes_abs", "tier2_brakes_wheel_off", 2))
        assert session.expected_input.key == "tier3_major_labor"

    def test_tier_zero_check_goes_to_tier_one(self, tiers: TierEscalator, session: Session, gate: QuestionGate) -> None:
        tiers.escalate(session, gate, _inaccessible("engine_drivability", "fuel_check", 0))
        assert session.expected_input.key == "tier1_engine_visual"

    def test_answer_tier_tracks_session_maximum(self, tiers: TierEscalator, session: Session, gate: QuestionGate) -> None:
        session.access_tier = 2
        tiers.escalate(session, gate, _inaccessible("network", "termination", 1))
        assert session.expected_input.key == "tier3_major_labor"


class TestTierLoader:
    def test_non_contiguous_levels(self, tmp_path) -> None:
        path = _write(
            tmp_path,
            "tiers.yaml",
            """
            tiers:
              - {level: 0, name: t0, label: a}
              - {level: 2, name: t2, label: b}
            steps: {}
            """,
        )
        with pytest.raises(ValueError, match="starting at level 0"):
            load_tiers(path)

    def test_default_must_cover_levels(self, tmp_path) -> None:
        path = _write(
            tmp_path,
            "tiers.yaml",
            """
            tiers:
              - {level: 0, name: t0, label: a}
              - {level: 1, name: t1, label: b}
            steps:
              default: {}
            """,
        )
        with pytest.raises(ValueError, match="missing levels"):
            load_tiers(path)
