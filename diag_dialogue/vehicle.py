"""Vehicle-context helpers: merging, make normalisation, engine inference.

Also ships :class:`KeywordVehicleExtractor`, the offline default for the
vehicle-extraction capability (year/make/model/engine from free text).
"""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

import structlog

from diag_dialogue.schemas import EngineDetails, VehicleContext

logger = structlog.get_logger(__name__)

_TEXT_FIELDS = ("vin", "year", "make", "model", "engine")

MAKE_ALIASES: Dict[str, str] = {
    "chevy": "chevrolet",
    "vw": "volkswagen",
    "mercedes-benz": "mercedes",
    "benz": "mercedes",
}

# normalised make -> display form
MAKE_DISPLAY: Dict[str, str] = {
    "acura": "Acura",
    "audi": "Audi",
    "bmw": "BMW",
    "buick": "Buick",
    "cadillac": "Cadillac",
    "chevrolet": "Chevrolet",
    "chrysler": "Chrysler",
    "dodge": "Dodge",
    "ford": "Ford",
    "gmc": "GMC",
    "honda": "Honda",
    "hyundai": "Hyundai",
    "infiniti": "Infiniti",
    "jeep": "Jeep",
    "kia": "Kia",
    "lexus": "Lexus",
    "lincoln": "Lincoln",
    "mazda": "Mazda",
    "mercedes": "Mercedes-Benz",
    "mitsubishi": "Mitsubishi",
    "nissan": "Nissan",
    "porsche": "Porsche",
    "ram": "Ram",
    "subaru": "Subaru",
    "tesla": "Tesla",
    "toyota": "Toyota",
    "volkswagen": "Volkswagen",
    "volvo": "Volvo",
}

# (year, normalised make, lower-case model) -> engine
ENGINE_MAP: Dict[Tuple[str, str, str], str] = {
    ("2013", "chevrolet", "tahoe"): "5.3L V8",
}


def normalize_make(make: Optional[str]) -> str:
    """Lower-case make with common aliases folded (``Chevy`` -> ``chevrolet``)."""
    m = (make or "").strip().lower()
    return MAKE_ALIASES.get(m, m)


def merge_vehicle(existing: VehicleContext, incoming: Optional[VehicleContext]) -> VehicleContext:
    """Merge two partial records; a non-empty incoming field wins."""
    if incoming is None:
        return existing.model_copy()
    merged = {name: getattr(incoming, name) or getattr(existing, name) for name in _TEXT_FIELDS}
    merged["engine_details"] = incoming.engine_details or existing.engine_details
    return VehicleContext(**merged)


def infer_engine(vehicle: VehicleContext) -> VehicleContext:
    """Fill ``engine`` from :data:`ENGINE_MAP` when it is empty."""
    if vehicle.engine:
        return vehicle
    key = (vehicle.year, normalize_make(vehicle.make), vehicle.model.strip().lower())
    engine = ENGINE_MAP.get(key)
    if engine is None:
        return vehicle
    logger.debug("engine_inferred", year=vehicle.year, make=vehicle.make, model=vehicle.model, engine=engine)
    return vehicle.model_copy(update={"engine": engine})


# ---------------------------------------------------------------------------
# GM engine RPO classification
# ---------------------------------------------------------------------------

# RPO -> (generation, has_afm, is_direct_injected, notes)
_GM_ENGINES: Dict[str, Tuple[str, bool, bool, str]] = {
    "LC9": ("Gen IV", True, False, "Gen IV AFM: common AFM lifter/VLOM failures."),
    "LH6": ("Gen IV", True, False, "Gen IV AFM: common AFM lifter/VLOM failures."),
    "L59": ("Gen IV", True, False, "Gen IV AFM: common AFM lifter/VLOM failures."),
    "L76": ("Gen IV", True, False, "Gen IV AFM: common AFM lifter/VLOM failures."),
    "L77": ("Gen IV", True, False, "Gen IV AFM: common AFM lifter/VLOM failures."),
    "LMG": ("Gen IV", False, False, "Gen IV non-AFM."),
    "LY5": ("Gen IV", False, False, "Gen IV non-AFM."),
    "L83": ("Gen V", True, True, "Gen V DI AFM: injector, AFM lifter, HPFP failures."),
    "L86": ("Gen V", True, True, "Gen V DI AFM 6.2L: injector and AFM issues."),
    "L94": ("Gen V", True, True, "Gen V DI AFM 6.2L: injector and AFM issues."),
    "L96": ("Gen IV", False, False, "6.0 HD work engine."),
    "L92": ("Gen IV", False, False, "6.2 non-AFM."),
    "L9H": ("Gen IV", False, False, "6.2 non-AFM."),
}


def classify_gm_engine(engine_model: Optional[str], displacement_l: Optional[str] = None) -> Optional[EngineDetails]:
    """Classify a GM engine RPO code (``"L83"``).

    Returns ``None`` without a code; an unknown code yields details with
    only ``code`` and ``displacement_l`` set.
    """
    if not engine_model:
        return None
    code = str(engine_model).strip().upper()
    disp = str(displacement_l) if displacement_l else ""
    known = _GM_ENGINES.get(code)
    if known is None:
        return EngineDetails(code=code, displacement_l=disp)
    generation, has_afm, is_di, notes = known
    return EngineDetails(
        code=code,
        generation=generation,
        displacement_l=disp,
        has_afm=has_afm,
        is_direct_injected=is_di,
        notes=notes,
    )


# ---------------------------------------------------------------------------
# Offline extractor
# ---------------------------------------------------------------------------

_YEAR_RE = re.compile(r"\b(19[89]\d|20[0-4]\d)\b")
_MAKE_RE = re.compile(
    r"\b(" + "|".join(sorted(map(re.escape, list(MAKE_DISPLAY) + list(MAKE_ALIASES)), key=len, reverse=True)) + r")\b",
    re.IGNORECASE,
)
_MODEL_RE = re.compile(r"\s+([A-Za-z0-9][A-Za-z0-9-]*(?:\s+(?:\d{3,4}(?:hd)?|hd|hybrid))?)", re.IGNORECASE)
_DISPLACEMENT_RE = re.compile(
    r"\b(\d\.\d)\s*(?:l|liter|litre)\b|\b(\d\.\d)(?=\s*(?:v\d|ecoboost|hemi|turbo|engine))",
    re.IGNORECASE,
)
_LAYOUT_RE = re.compile(r"\b(v6|v8|v10|v12|i4|i6|l4)\b", re.IGNORECASE)
_ENGINE_NAME_RE = re.compile(r"\b(ecoboost|hemi|duramax|cummins|power ?stroke|coyote|vortec)\b", re.IGNORECASE)
_NOT_A_MODEL = re.compile(r"^(\d\.\d.*|19\d\d|20\d\d|with|has|is|that|and|v\d+|[pbuc]\d{4})$", re.IGNORECASE)


class KeywordVehicleExtractor:
    """Pattern-based vehicle extractor with no external dependency."""

    async def extract(self, text: str) -> VehicleContext:
        return self.extract_sync(text)

    def extract_sync(self, text: str) -> VehicleContext:
        text = text or ""
        fields: Dict[str, str] = {}

        m = _YEAR_RE.search(text)
        if m:
            fields["year"] = m.group(1)

        m = _MAKE_RE.search(text)
        if m:
            norm = normalize_make(m.group(1))
            fields["make"] = MAKE_DISPLAY.get(norm, m.group(1).title())
            model = _MODEL_RE.match(text, m.end())
            if model and not _NOT_A_MODEL.match(model.group(1).split()[0]):
                fields["model"] = model.group(1)

        engine = _engine_string(text)
        if engine:
            fields["engine"] = engine

        return VehicleContext(**fields)


def _engine_string(text: str) -> str:
    parts = []
    m = _DISPLACEMENT_RE.search(text)
    if m:
        parts.append(f"{m.group(1) or m.group(2)}L")
    m = _LAYOUT_RE.search(text)
    if m:
        parts.append(m.group(1).upper())
    m = _ENGINE_NAME_RE.search(text)
    if m:
        name = m.group(1).lower().replace(" ", "")
        parts.append({"ecoboost": "EcoBoost", "powerstroke": "Power Stroke"}.get(name, name.title()))
    return " ".join(parts)
