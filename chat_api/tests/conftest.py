"""Shared pytest fixtures for chat_api tests."""

from __future__ import annotations

from typing import List

import pytest
from fastapi.testclient import TestClient

from diag_dialogue.config import DialogueSettings
from diag_dialogue.schemas import VehicleContext
from diag_dialogue.service import DialogueService
from diag_dialogue.vin import InvalidVinError, VinDecodeError, validate_vin

GOOD_VIN = "1HGBH41JXMN109186"
UNREACHABLE_VIN = "1GCUKREC0FF000002"


class FakeVinLookup:
    """VIN lookup fake: validates like the real decoder, never hits the network."""

    def __init__(self) -> None:
        self.calls: List[str] = []

    async def decode(self, vin: str) -> VehicleContext:
        self.calls.append(vin)
        if vin == UNREACHABLE_VIN:
            raise VinDecodeError("VIN decode service unreachable")
        check = validate_vin(vin)
        if not check.is_valid:
            raise InvalidVinError(check.error)
        return VehicleContext(vin=check.vin, year="1991", make="Honda", model="Accord", engine="2.2L I4")


def pytest_configure(config):
    config.addinivalue_line(
        "markers",
        "integration: marks tests that require external services (LLM endpoint, NHTSA vPIC)",
    )


@pytest.fixture()
def service() -> DialogueService:
    return DialogueService(DialogueSettings(use_llm=False), vin_lookup=FakeVinLookup())


@pytest.fixture()
def client(service: DialogueService):
    """TestClient bound to an offline dialogue service (startup not run)."""
    from app.deps import get_service, set_service
    from app.main import app

    set_service(service)
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()
    set_service(None)
