"""Tests for the turn service."""

from __future__ import annotations

from typing import List

import pytest

from diag_dialogue.config import DialogueSettings
from diag_dialogue.schemas import TurnRequest, VehicleContext
from diag_dialogue.service import DialogueService
from diag_dialogue.vin import InvalidVinError, VinDecodeError

_GOOD_VIN = "1GCUKREC0FF000001"
_DOWN_VIN = "1GCUKREC0FF000002"


class _FakeVinLookup:
    def __init__(self) -> None:
        self.calls: List[str] = []
        self.started = False
        self.closed = False

    async def start(self) -> None:
        self.started = True

    async def close(self) -> None:
        self.closed = True

    async def decode(self, vin: str) -> VehicleContext:
        self.calls.append(vin)
        if vin == _DOWN_VIN:
            raise VinDecodeError("VIN decode service unreachable")
        if vin != _GOOD_VIN:
            raise InvalidVinError("Check digit (position 9) is invalid.")
        return VehicleContext(vin=vin, year="2015", make="Chevrolet", model="Silverado", engine="5.3L L83")


@pytest.fixture()
def vin_lookup() -> _FakeVinLookup:
    return _FakeVinLookup()


@pytest.fixture()
def service(vin_lookup: _FakeVinLookup) -> DialogueService:
    return DialogueService(DialogueSettings(use_llm=False), vin_lookup=vin_lookup)


def _request(message: str, vin: str = "", **vehicle) -> TurnRequest:
    return TurnRequest(
        message=message,
        conversation_id="svc-1",
        vehicle_context=VehicleContext(vin=vin, **vehicle),
    )


class TestHandleTurn:
    @pytest.mark.asyncio
    async def test_vin_fills_vehicle(self, service: DialogueService, vin_lookup: _FakeVinLookup) -> None:
        response = await service.handle_turn(_request("P0302", vin=_GOOD_VIN.lower()))
        assert response.conversation_id == "svc-1"
        assert response.vehicle.vin == _GOOD_VIN
        assert response.vehicle.engine == "5.3L L83"
        assert "Misfire locked (single, cylinder 2)." in response.reply
        assert vin_lookup.calls == [_GOOD_VIN]

    @pytest.mark.asyncio
    async def test_known_vin_not_decoded_twice(self, service: DialogueService, vin_lookup: _FakeVinLookup) -> None:
        await service.handle_turn(_request("P0302", vin=_GOOD_VIN))
        await service.handle_turn(_request("idle", vin=_GOOD_VIN))
        assert vin_lookup.calls == [_GOOD_VIN]

    @pytest.mark.asyncio
    async def test_request_fields_override_decoded(self, service: DialogueService) -> None:
        response = await service.handle_turn(_request("P0302", vin=_GOOD_VIN, engine="6.2L V8"))
        assert response.vehicle.engine == "6.2L V8"
        assert response.vehicle.model == "Silverado"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("vin", [_DOWN_VIN, "1GCUKREC0FF00000X"])
    async def test_decode_failure_is_skipped(self, service: DialogueService, vin) -> None:
        response = await service.handle_turn(_request("P0302", vin=vin))
        assert response.reply.startswith("Got P0302. Before I go further I need the full vehicle.")

    @pytest.mark.asyncio
    async def test_history_logged(self, service: DialogueService) -> None:
        response = await service.handle_turn(_request("2018 Ford F-150"))
        session = service.store.get("svc-1")
        assert [(t.role, t.content) for t in session.history] == [
            ("user", "2018 Ford F-150"),
            ("assistant", response.reply),
        ]

    @pytest.mark.asyncio
    async def test_hard_stop_echoes_vehicle_without_storing(self, service: DialogueService) -> None:
        response = await service.handle_turn(
            _request("going to jump the relay", year="2018", make="Ford", model="F-150", engine="5.0L V8")
        )
        assert response.reply.startswith("Stop.")
        assert response.vehicle.model == "F-150"
        session = service.store.get("svc-1")
        assert session.vehicle.is_empty
        assert len(session.history) == 2


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_start_close(self, service: DialogueService, vin_lookup: _FakeVinLookup) -> None:
        await service.start()
        await service.close()
        assert vin_lookup.started and vin_lookup.closed

    @pytest.mark.asyncio
    async def test_reset(self, service: DialogueService) -> None:
        assert await service.reset("svc-1") is False
        await service.handle_turn(_request("2018 Ford F-150 5.0L V8 P0455"))
        assert await service.reset("svc-1") is True
        session = service.store.get("svc-1")
        assert session.domain is None
        assert session.active_codes == []

    @pytest.mark.asyncio
    async def test_decode_vin_passthrough(self, service: DialogueService) -> None:
        vehicle = await service.decode_vin(_GOOD_VIN)
        assert vehicle.make == "Chevrolet"
