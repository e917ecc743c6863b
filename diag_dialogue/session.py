"""Per-conversation session record.

One :class:`Session` exists per conversation id (see
:mod:`diag_dialogue.session_store`).  It is mutated by the controller
once per turn and cleared only through :meth:`Session.reset`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Tuple

from diag_dialogue.schemas import VehicleContext


class Domain(str, Enum):
    """Closed set of diagnostic domains."""

    ENGINE_DRIVABILITY = "engine_drivability"
    STARTING_CHARGING = "starting_charging"
    COOLING = "cooling"
    EVAP = "evap"
    NETWORK = "network"
    BRAKES_ABS = "brakes_abs"
    TRANSMISSION = "transmission"
    HVAC = "hvac"
    DIESEL_EMISSIONS = "diesel_emissions"
    STEERING_SUSPENSION = "steering_suspension"
    HYBRID_EV = "hybrid_ev"
    BODY_ELECTRICAL = "body_electrical"
    SRS_AIRBAG = "srs_airbag"
    TPMS = "tpms"
    ADAS = "adas"
    UNKNOWN = "unknown"


class Mode(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass
class ExpectedInput:
    """The single outstanding question of a session.

    Attributes
    ----------
    kind : str
        Parser vocabulary (``"yes_no"``, ``"occurrence"``, ...).
    domain : str
        Domain the question belongs to.
    key : str
        Question key (anti-repeat identity).
    prompt : str
        Exact text that was asked; re-issued on an unparseable answer.
    meta : dict
        Owner and fact-locking hints (``owner``, ``bucket``, ``field``,
        ``tier``...).
    reprompts : int
        How many times the question has been re-issued.
    """

    kind: str
    domain: str
    key: str
    prompt: str
    meta: Dict[str, Any] = field(default_factory=dict)
    reprompts: int = 0

    @property
    def owner(self) -> str:
        return self.meta.get("owner", "")


@dataclass(frozen=True)
class TurnRecord:
    """Immutable log entry for one side of a turn."""

    role: str
    content: str
    ts: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class Session:
    """Mutable diagnostic state for one conversation."""

    conversation_id: str
    mode: Mode = Mode.IDLE
    domain: Optional[Domain] = None

    active_codes: List[str] = field(default_factory=list)
    explained_codes: List[str] = field(default_factory=list)

    classification: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    expected_input: Optional[ExpectedInput] = None
    last_question_key: Optional[str] = None
    asked_keys: Set[str] = field(default_factory=set)

    active_path: Optional[str] = None
    phase: Optional[str] = None
    completed_paths: Set[str] = field(default_factory=set)

    template_step: int = 0
    fired_overlays: Set[str] = field(default_factory=set)
    access_tier: Optional[int] = None

    vehicle: VehicleContext = field(default_factory=VehicleContext)
    disclaimer_sent: bool = False
    history: Tuple[TurnRecord, ...] = ()

    # -- derived ------------------------------------------------------------

    @property
    def primary_code(self) -> Optional[str]:
        return self.active_codes[0] if self.active_codes else None

    @property
    def last_explained_code(self) -> Optional[str]:
        return self.explained_codes[-1] if self.explained_codes else None

    @property
    def code_explained(self) -> bool:
        """``True`` once every active code has received its explanation."""
        return self.next_unexplained_code() is None

    @property
    def awaiting_response(self) -> bool:
        return self.expected_input is not None

    def next_unexplained_code(self) -> Optional[str]:
        for code in self.active_codes:
            if code not in self.explained_codes:
                return code
        return None

    def facts(self, bucket: str) -> Dict[str, Any]:
        """Return (creating if needed) the locked-fact dict for *bucket*."""
        return self.classification.setdefault(bucket, {})

    def fact(self, path: str) -> Any:
        """Look up ``"bucket.field"``; ``None`` when not locked."""
        bucket, _, name = path.partition(".")
        facts = self.classification.get(bucket) or {}
        if not name:
            return facts or None
        return facts.get(name)

    # -- lifecycle ----------------------------------------------------------

    def reset(self) -> None:
        """Return every field to its initial default (id is kept)."""
        fresh = Session(conversation_id=self.conversation_id)
        self.__dict__.update(fresh.__dict__)

    def append_history(self, *records: TurnRecord) -> None:
        self.history = self.history + tuple(records)
