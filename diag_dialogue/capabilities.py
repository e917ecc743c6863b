"""Interfaces of the external collaborators the controller consumes.

Concrete defaults: :class:`~diag_dialogue.vehicle.KeywordVehicleExtractor`,
:class:`~diag_dialogue.phrasing.TemplatePhraser`,
:class:`~diag_dialogue.safety.KeywordSafetyChecker`,
:class:`~diag_dialogue.vin.NhtsaVinDecoder`; LLM-backed variants live in
:mod:`diag_dialogue.llm_client`.
"""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable

from diag_dialogue.schemas import PhrasingDirective, SafetyVerdict, VehicleContext
from diag_dialogue.session import TurnRecord


@runtime_checkable
class VehicleExtractor(Protocol):
    async def extract(self, text: str) -> VehicleContext:
        """Partial vehicle record from free text; empty fields on failure."""
        ...


@runtime_checkable
class Phraser(Protocol):
    async def phrase(self, directive: PhrasingDirective, prior_turns: Sequence[TurnRecord]) -> str:
        """Natural-language text for *directive*.  Display only."""
        ...


@runtime_checkable
class SafetyChecker(Protocol):
    def check(self, text: str) -> SafetyVerdict:
        ...


@runtime_checkable
class VinLookup(Protocol):
    async def decode(self, vin: str) -> VehicleContext:
        ...
