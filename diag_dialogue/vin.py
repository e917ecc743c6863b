"""VIN validation and NHTSA vPIC decoding.

VINs are PII: only the masked form (``1FT***********1234``) is logged.
Decoded vehicles are cached in memory for ``vin_cache_ttl_seconds``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
import structlog

from diag_dialogue.cache import TTLCache
from diag_dialogue.config import DialogueSettings
from diag_dialogue.schemas import VehicleContext
from diag_dialogue.vehicle import MAKE_DISPLAY, classify_gm_engine, normalize_make

logger = structlog.get_logger(__name__)

_VIN_RE = re.compile(r"[A-HJ-NPR-Z0-9]{17}")

# ISO 3779 / FMVSS 115 check-digit transliteration values
_TRANSLITERATION = {
    'A': 1, 'B': 2, 'C': 3, 'D': 4, 'E': 5, 'F': 6, 'G': 7, 'H': 8,
    'J': 1, 'K': 2, 'L': 3, 'M': 4, 'N': 5, 'P': 7, 'R': 9,
    'S': 2, 'T': 3, 'U': 4, 'V': 5, 'W': 6, 'X': 7, 'Y': 8, 'Z': 9,
}

_POSITIONAL_WEIGHTS = [8, 7, 6, 5, 4, 3, 2, 10, 0, 9, 8, 7, 6, 5, 4, 3, 2]

_NOT_APPLICABLE = "Not Applicable"


class InvalidVinError(ValueError):
    """VIN failed format or check-digit validation."""


class VinDecodeError(RuntimeError):
    """The decode service was unreachable or returned no usable data."""


@dataclass(frozen=True)
class VinCheck:
    vin: str
    is_valid: bool
    error: Optional[str] = None


def mask_vin(vin: str) -> str:
    return vin[:3] + "***********" + vin[-4:] if len(vin) >= 7 else "***"


def vin_check_digit(vin: str) -> bool:
    """Validate VIN check digit (position 9) per ISO 3779 / FMVSS 115."""
    total = 0
    for char, weight in zip(vin, _POSITIONAL_WEIGHTS):
        value = int(char) if char.isdigit() else _TRANSLITERATION.get(char, 0)
        total += value * weight
    remainder = total % 11
    expected = 'X' if remainder == 10 else str(remainder)
    return vin[8] == expected


def validate_vin(raw: str) -> VinCheck:
    """Format, character and check-digit validation."""
    vin = (raw or "").upper().strip()
    masked = mask_vin(vin)

    if len(vin) != 17:
        logger.info("vin_validation_performed", vin_masked=masked, is_valid=False, reason="invalid_length")
        return VinCheck(vin, False, f"Invalid length: {len(vin)}. Expected 17.")

    # VINs must be alphanumeric, excluding I, O, Q (ISO 3779)
    if not _VIN_RE.fullmatch(vin):
        logger.info("vin_validation_performed", vin_masked=masked, is_valid=False, reason="invalid_characters")
        return VinCheck(vin, False, "VIN must contain only alphanumeric characters (A-Z, 0-9, excluding I, O, Q).")

    if not vin_check_digit(vin):
        logger.info("vin_validation_performed", vin_masked=masked, is_valid=False, reason="invalid_check_digit")
        return VinCheck(vin, False, "Check digit (position 9) is invalid.")

    logger.info("vin_validation_performed", vin_masked=masked, is_valid=True)
    return VinCheck(vin, True)


def parse_vpic_results(vin: str, results: List[Dict[str, Any]]) -> VehicleContext:
    """Build a :class:`VehicleContext` from vPIC ``DecodeVin`` rows."""

    def get(label: str) -> str:
        for row in results:
            if row.get("Variable") == label:
                value = row.get("Value")
                if value and value != _NOT_APPLICABLE:
                    return str(value).strip()
                return ""
        return ""

    make_raw = get("Make")
    engine_model = get("Engine Model")
    disp = get("Displacement (L)")
    details = classify_gm_engine(engine_model, disp)
    if details is not None:
        engine = f"{details.displacement_l}L {details.code}" if details.displacement_l else details.code
    else:
        engine = engine_model or (f"{disp}L" if disp else "")

    return VehicleContext(
        vin=vin,
        year=get("Model Year"),
        make=MAKE_DISPLAY.get(normalize_make(make_raw), make_raw.title()),
        model=get("Model"),
        engine=engine,
        engine_details=details,
    )


class NhtsaVinDecoder:
    """VIN lookup backed by the public NHTSA vPIC API."""

    def __init__(self, settings: DialogueSettings) -> None:
        self._base_url = settings.vin_decode_base_url.rstrip("/")
        self._cache: TTLCache[VehicleContext] = TTLCache(ttl_seconds=settings.vin_cache_ttl_seconds)
        self._client: Optional[httpx.AsyncClient] = None

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=15.0)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # -- public API ---------------------------------------------------------

    async def decode(self, vin: str) -> VehicleContext:
        """Decode *vin*, serving repeats from the cache.

        Raises
        ------
        InvalidVinError
            If *vin* fails validation.
        VinDecodeError
            On network errors, non-2xx status or an empty result set.
        """
        check = validate_vin(vin)
        if not check.is_valid:
            raise InvalidVinError(check.error)
        vin = check.vin
        masked = mask_vin(vin)

        cached = self._cache.get(vin)
        if cached is not None:
            logger.debug("vin_cache_hit", vin_masked=masked)
            return cached

        if self._client is None:
            raise RuntimeError("NhtsaVinDecoder.start() must be called before decoding")

        url = f"{self._base_url}/DecodeVin/{vin}"
        try:
            response = await self._client.get(url, params={"format": "json"})
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            logger.warning("vin_decode_failed", vin_masked=masked, status=exc.response.status_code)
            raise VinDecodeError(f"VIN decode service returned {exc.response.status_code}") from exc
        except httpx.RequestError as exc:
            logger.warning("vin_decode_failed", vin_masked=masked, error=str(exc))
            raise VinDecodeError("VIN decode service unreachable") from exc
        except ValueError as exc:
            logger.warning("vin_decode_failed", vin_masked=masked, error="invalid_json")
            raise VinDecodeError("VIN decode service returned invalid JSON") from exc

        results = payload.get("Results") if isinstance(payload, dict) else None
        if not results:
            logger.warning("vin_decode_failed", vin_masked=masked, error="no_results")
            raise VinDecodeError("VIN decode service returned no results")

        vehicle = parse_vpic_results(vin, results)
        self._cache.put(vin, vehicle)
        logger.info(
            "vin_decoded",
            vin_masked=masked,
            year=vehicle.year,
            make=vehicle.make,
            model=vehicle.model,
            engine=vehicle.engine,
        )
        return vehicle
