"""Tests for the fixed-vocabulary answer parsers."""

from __future__ import annotations

import pytest

from diag_dialogue import answers


class TestYesNo:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("yes", "yes"),
            ("Yep, done", "yes"),
            ("checked it", "yes"),
            ("no", "no"),
            ("not yet", "no"),
            ("haven't checked", "no"),
            ("not done", "no"),
            ("none", "no"),
            ("maybe later", None),
            ("", None),
        ],
    )
    def test_vocabulary(self, message, expected) -> None:
        assert answers.parse_yes_no(message) == expected

    @pytest.mark.parametrize("message", ["idk", "I don't know", "not sure", "no idea", "not sure, I dont know"])
    def test_unsure_is_not_an_answer(self, message) -> None:
        assert answers.parse_yes_no(message) is None


class TestOccurrence:
    @pytest.mark.parametrize(
        "message,expected",
        [
            ("at idle", "idle"),
            ("when accelerating", "under_load"),
            ("always", "all_the_time"),
            ("cold start only", "cold_start"),
            ("cruising on the highway", "cruise"),
            ("whenever", None),
        ],
    )
    def test_vocabulary(self, message, expected) -> None:
        assert answers.parse_occurrence(message) == expected


class TestMisfireLoad:
    def test_both_keyword(self) -> None:
        assert answers.parse_misfire_load("both") == "both"

    def test_idle_and_load_reads_as_both(self) -> None:
        assert answers.parse_misfire_load("idle and under load") == "both"

    def test_single_side(self) -> None:
        assert answers.parse_misfire_load("idle only") == "idle"
        assert answers.parse_misfire_load("under load") == "load"

    def test_unparseable(self) -> None:
        assert answers.parse_misfire_load("sometimes") is None


class TestMisfireClass:
    def test_full_answer(self) -> None:
        assert answers.parse_misfire_class("single, cyl 3, at idle") == {
            "type": "single",
            "cylinder": 3,
            "condition": "idle",
        }

    def test_type_only(self) -> None:
        assert answers.parse_misfire_class("random") == {"type": "multiple"}

    def test_nothing_readable(self) -> None:
        assert answers.parse_misfire_class("blah") is None


class TestOtherParsers:
    def test_reading_numeric(self) -> None:
        assert answers.parse_reading("12.4 volts") == "12.4"

    def test_reading_unknown(self) -> None:
        assert answers.parse_reading("not sure") == "unknown"

    def test_reading_unparseable(self) -> None:
        assert answers.parse_reading("hmm") is None

    def test_temp_band(self) -> None:
        assert answers.parse_temp_band("idle only") == "idle"
        assert answers.parse_temp_band("on the highway") == "highway_load"

    def test_crank_type(self) -> None:
        assert answers.parse_crank_type("just clicks") == "no_crank"
        assert answers.parse_crank_type("it cranks fine") == "crank_no_start"

    def test_scope(self) -> None:
        assert answers.parse_scope("several of them") == "multiple"
        assert answers.parse_scope("just one") == "single"

    def test_brake_and_trans_complaints(self) -> None:
        assert answers.parse_brake_complaint("soft pedal") == "soft_pedal"
        assert answers.parse_trans_complaint("it slips in 3rd") == "slip"


class TestInaccessible:
    @pytest.mark.parametrize(
        "message",
        [
            "can't reach it",
            "I cannot get to it",
            "have to pull the intake",
            "it's buried behind the tank",
            "hard to get to",
        ],
    )
    def test_positive(self, message) -> None:
        assert answers.is_inaccessible(message) is True

    def test_plain_answer(self) -> None:
        assert answers.is_inaccessible("yes") is False


class TestDispatch:
    def test_parse_routes_by_kind(self) -> None:
        assert answers.parse("yes_no", "yep") == "yes"

    def test_unknown_kind_raises(self) -> None:
        with pytest.raises(ValueError, match="No answer parser"):
            answers.parse("colour", "red")

    def test_every_parser_has_a_hint(self) -> None:
        assert set(answers.PARSERS) == set(answers.VOCABULARY_HINTS)
