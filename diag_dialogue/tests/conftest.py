"""Shared pytest fixtures for dialogue controller tests."""

from __future__ import annotations

from typing import List, Optional, Sequence

import pytest

from diag_dialogue.controller import TurnController
from diag_dialogue.ladder import Ladder
from diag_dialogue.overlays import OverlayResolver
from diag_dialogue.phrasing import PhrasingAdapter, TemplatePhraser
from diag_dialogue.question_gate import QuestionGate
from diag_dialogue.safety import KeywordSafetyChecker
from diag_dialogue.schemas import PhrasingDirective, VehicleContext
from diag_dialogue.session import Session, TurnRecord
from diag_dialogue.tiers import TierEscalator
from diag_dialogue.vehicle import KeywordVehicleExtractor

F150 = VehicleContext(year="2018", make="Ford", model="F-150", engine="5.0L V8")
SILVERADO = VehicleContext(year="2015", make="Chevrolet", model="Silverado", engine="5.3L V8")


class RecordingPhraser:
    """Phraser fake that records directives and echoes the intent."""

    def __init__(self, text: Optional[str] = None) -> None:
        self.text = text
        self.directives: List[PhrasingDirective] = []

    async def phrase(self, directive: PhrasingDirective, prior_turns: Sequence[TurnRecord] = ()) -> str:
        self.directives.append(directive)
        return self.text if self.text is not None else f"[{directive.intent}]"


@pytest.fixture(scope="session")
def overlays() -> OverlayResolver:
    return OverlayResolver.from_yaml()


@pytest.fixture(scope="session")
def ladder(overlays: OverlayResolver) -> Ladder:
    return Ladder.from_yaml(overlays=overlays)


@pytest.fixture(scope="session")
def tiers() -> TierEscalator:
    return TierEscalator.from_yaml()


@pytest.fixture(scope="session")
def template() -> TemplatePhraser:
    return TemplatePhraser()


@pytest.fixture()
def session() -> Session:
    return Session(conversation_id="conv-test")


@pytest.fixture()
def gate(session: Session) -> QuestionGate:
    return QuestionGate(session)


@pytest.fixture()
def make_controller(ladder: Ladder, tiers: TierEscalator, template: TemplatePhraser):
    """Factory building a controller with the offline capabilities."""

    def _make(phraser=None, extractor=None, safety=None) -> TurnController:
        return TurnController(
            safety=safety or KeywordSafetyChecker(),
            extractor=extractor or KeywordVehicleExtractor(),
            phrasing=PhrasingAdapter(phraser or template, fallback=template, timeout_seconds=0.5),
            ladder=ladder,
            tiers=tiers,
        )

    return _make


@pytest.fixture()
def controller(make_controller) -> TurnController:
    return make_controller()


@pytest.fixture()
def f150() -> VehicleContext:
    return F150.model_copy()


@pytest.fixture()
def silverado() -> VehicleContext:
    return SILVERADO.model_copy()


@pytest.fixture()
def recording_phraser():
    """Factory for :class:`RecordingPhraser` fakes."""

    def _make(text: Optional[str] = None) -> RecordingPhraser:
        return RecordingPhraser(text)

    return _make
