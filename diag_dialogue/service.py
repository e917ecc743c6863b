"""Turn service: session lookup, VIN decode, controller call, history log.

:class:`DialogueService` is the only object the CLI and the HTTP layer
talk to.  It wires the default capabilities from
:class:`~diag_dialogue.config.DialogueSettings` unless explicit ones are
injected (tests inject fakes).
"""

from __future__ import annotations

import time
from typing import Optional

import structlog

from diag_dialogue.capabilities import Phraser, SafetyChecker, VehicleExtractor, VinLookup
from diag_dialogue.config import DialogueSettings
from diag_dialogue.controller import TurnController
from diag_dialogue.ladder import Ladder
from diag_dialogue.overlays import OverlayResolver
from diag_dialogue.phrasing import PhrasingAdapter, TemplatePhraser
from diag_dialogue.safety import KeywordSafetyChecker
from diag_dialogue.schemas import TurnRequest, TurnResponse, VehicleContext
from diag_dialogue.session import TurnRecord
from diag_dialogue.session_store import ConversationStore
from diag_dialogue.tiers import TierEscalator
from diag_dialogue.vehicle import KeywordVehicleExtractor, merge_vehicle
from diag_dialogue.vin import InvalidVinError, NhtsaVinDecoder, VinDecodeError, mask_vin

logger = structlog.get_logger(__name__)


class DialogueService:
    """Entry point for one conversation turn at a time."""

    def __init__(
        self,
        settings: Optional[DialogueSettings] = None,
        *,
        store: Optional[ConversationStore] = None,
        safety: Optional[SafetyChecker] = None,
        extractor: Optional[VehicleExtractor] = None,
        phraser: Optional[Phraser] = None,
        vin_lookup: Optional[VinLookup] = None,
        ladder: Optional[Ladder] = None,
        tiers: Optional[TierEscalator] = None,
    ) -> None:
        self.settings = settings or DialogueSettings()
        self.store = store or ConversationStore(
            ttl_seconds=self.settings.session_ttl_seconds,
            max_size=self.settings.session_max,
        )

        if self.settings.use_llm and (phraser is None or extractor is None):
            from diag_dialogue.llm_client import LLMPhraser, LLMVehicleExtractor

            phraser = phraser or LLMPhraser(self.settings)
            extractor = extractor or LLMVehicleExtractor(self.settings)

        template = TemplatePhraser()
        self.vin_lookup = vin_lookup or NhtsaVinDecoder(self.settings)
        self.controller = TurnController(
            safety=safety or KeywordSafetyChecker(),
            extractor=extractor or KeywordVehicleExtractor(),
            phrasing=PhrasingAdapter(
                phraser or template,
                fallback=template,
                timeout_seconds=self.settings.phrasing_timeout_seconds,
            ),
            ladder=ladder or Ladder.from_yaml(overlays=OverlayResolver.from_yaml()),
            tiers=tiers or TierEscalator.from_yaml(),
        )

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        start = getattr(self.vin_lookup, "start", None)
        if start is not None:
            await start()
        await self.store.start_cleanup_loop()

    async def close(self) -> None:
        await self.store.stop_cleanup_loop()
        close = getattr(self.vin_lookup, "close", None)
        if close is not None:
            await close()

    # -- public API ---------------------------------------------------------

    async def handle_turn(self, request: TurnRequest) -> TurnResponse:
        """Run one turn for ``request.conversation_id``."""
        t0 = time.monotonic()
        async with self.store.turn(request.conversation_id) as session:
            incoming = await self._decode_vin(request.vehicle_context, session.vehicle)
            outcome = await self.controller.process(session, request.message, incoming)
            reply = outcome.text
            session.append_history(
                TurnRecord(role="user", content=request.message),
                TurnRecord(role="assistant", content=reply),
            )
            logger.info(
                "turn_processed",
                conversation_id=session.conversation_id,
                layer=outcome.layer,
                mode=session.mode.value,
                domain=session.domain.value if session.domain else None,
                phase=session.phase,
                pending=session.expected_input.key if session.expected_input else None,
                elapsed_ms=round((time.monotonic() - t0) * 1000, 1),
            )
            vehicle = session.vehicle if outcome.layer != "safety" else merge_vehicle(session.vehicle, incoming)
            return TurnResponse(reply=reply, vehicle=vehicle, conversation_id=session.conversation_id)

    async def reset(self, conversation_id: str) -> bool:
        return await self.store.reset(conversation_id)

    async def decode_vin(self, vin: str) -> VehicleContext:
        return await self.vin_lookup.decode(vin)

    # ------------------------------------------------------------------

    async def _decode_vin(self, incoming: VehicleContext, known: VehicleContext) -> VehicleContext:
        """Fill *incoming* from the VIN decoder when a new VIN is supplied."""
        vin = incoming.vin.strip().upper()
        if not vin or (vin == known.vin and known.is_complete):
            return incoming
        try:
            decoded = await self.vin_lookup.decode(vin)
        except (InvalidVinError, VinDecodeError) as exc:
            logger.warning("turn_vin_decode_skipped", vin_masked=mask_vin(vin), error=str(exc))
            return incoming
        return merge_vehicle(decoded, incoming.model_copy(update={"vin": vin}))
