"""Tests for domain classification and the domain lock."""

from __future__ import annotations

import pytest

from diag_dialogue.domains import classify_domain, lock_domain
from diag_dialogue.session import Domain, Session


class TestClassifyDomain:
    @pytest.mark.parametrize(
        "codes,expected",
        [
            (["U0100"], Domain.NETWORK),
            (["C0035"], Domain.BRAKES_ABS),
            (["B0100"], Domain.BODY_ELECTRICAL),
            (["P0302"], Domain.ENGINE_DRIVABILITY),
        ],
    )
    def test_code_families(self, codes, expected) -> None:
        assert classify_domain("", codes) is expected

    def test_u_code_beats_p_code(self) -> None:
        assert classify_domain("", ["P0302", "U0100"]) is Domain.NETWORK

    @pytest.mark.parametrize(
        "message,expected",
        [
            ("airbag light on", Domain.SRS_AIRBAG),
            ("engine overheating on the highway", Domain.COOLING),
            ("cranks but won't start", Domain.STARTING_CHARGING),
            ("transmission slipping in 3rd", Domain.TRANSMISSION),
            ("no heat from the vents", Domain.HVAC),
            ("dpf regen keeps failing", Domain.DIESEL_EMISSIONS),
            ("death wobble over 50 mph", Domain.STEERING_SUSPENSION),
            ("tpms light stays on", Domain.TPMS),
            ("lane keep assist disabled", Domain.ADAS),
        ],
    )
    def test_keyword_clusters(self, message, expected) -> None:
        assert classify_domain(message, []) is expected

    def test_keyword_priority_srs_before_cooling(self) -> None:
        assert classify_domain("airbag light and overheating", []) is Domain.SRS_AIRBAG

    def test_evap_code_by_keyword_table(self) -> None:
        assert classify_domain("P0455", ["P0455"]) is Domain.EVAP

    def test_drivability_keyword(self) -> None:
        assert classify_domain("rough idle when cold", []) is Domain.ENGINE_DRIVABILITY

    def test_unknown(self) -> None:
        assert classify_domain("hello there", []) is Domain.UNKNOWN


class TestLockDomain:
    def test_sets_once(self, session: Session) -> None:
        assert lock_domain(session, Domain.COOLING) is Domain.COOLING
        assert lock_domain(session, Domain.NETWORK) is Domain.COOLING
        assert session.domain is Domain.COOLING

    def test_unknown_never_locked(self, session: Session) -> None:
        assert lock_domain(session, Domain.UNKNOWN) is None
        assert session.domain is None
        lock_domain(session, Domain.EVAP)
        assert session.domain is Domain.EVAP

    def test_reset_clears_domain(self, session: Session) -> None:
        lock_domain(session, Domain.COOLING)
        session.reset()
        assert session.domain is None
        assert session.conversation_id == "conv-test"
