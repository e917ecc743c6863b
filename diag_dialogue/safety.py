"""Keyword safety capability: hard stops and advisory warnings.

Hard stops end the turn with a fixed refusal.  Warnings are advisory:
they ride along with generative directives and never change state.
"""

from __future__ import annotations

from typing import Optional, Tuple

import structlog

from diag_dialogue.matcher import PatternRule, all_matches, first_match, rule
from diag_dialogue.schemas import SafetyVerdict

logger = structlog.get_logger(__name__)

# (id, reply) results; first match wins.
HARD_STOPS: Tuple[PatternRule, ...] = (
    rule(
        r"(probe|test).*(airbag|srs|clock spring)|test light.*(airbag|srs)",
        (
            "probe_srs",
            "Stop. Do NOT probe SRS/airbag circuits with a meter or test light: deployment risk. "
            "Use scan-tool SRS diagnostics only.",
        ),
    ),
    rule(
        r"(open|remove).*(radiator cap|coolant cap)|pressure test.*(hot|warm)",
        (
            "open_cooling_hot",
            "Stop. Do NOT open or pressure-test a hot cooling system. "
            "Let it fully cool first: scalding/pressure release risk.",
        ),
    ),
    rule(
        r"(jump|bypass).*(relay|fuse)|short.*(terminals|pins)",
        (
            "jump_random_power",
            "Stop. Don't jump/short circuits blindly: you can damage modules or cause injury. "
            "Use a DVOM/scan-tool test method instead.",
        ),
    ),
    rule(
        r"(touch|probe|test).*(orange cable|high voltage)|pull.*(hybrid|\bev\b).*(connector|cable)",
        (
            "hv_orange",
            "Stop. High voltage can be lethal. Do not touch/probe orange HV cables without PPE, "
            "disable procedure, and verified zero volts.",
        ),
    ),
)

WARNINGS: Tuple[PatternRule, ...] = (
    rule(
        r"\b(spark|coil|ignition|spark tester)\b",
        "Safety: confirm no raw fuel/vapor is present before checking spark. Ignition can cause fire.",
    ),
    rule(
        r"\b(starting fluid|ether|brake clean)\b",
        "Safety: use starting fluid cautiously. Avoid on diesels with glow plugs/intake heaters. "
        "Keep face/hands clear of intake.",
    ),
    rule(
        r"fuel pressure|open.*fuel|disconnect.*fuel|fuel line",
        "Safety: relieve fuel pressure before opening lines. Use eye protection; fuel spray can ignite.",
    ),
    rule(
        r"direct injection|\bgdi\b|high pressure fuel|rail pressure",
        "Safety: GDI fuel systems are extremely high pressure. Follow the OEM depressurization procedure.",
    ),
    rule(
        r"radiator cap|open.*coolant|pressure test|cooling system",
        "Safety: do NOT open or pressure-test the cooling system hot. Let it fully cool: scalding risk.",
    ),
    rule(
        r"\b(fans?|belts?|pulleys?)\b|engine running",
        "Safety: keep hands/tools clear of belts/fans/pulleys with the engine running. Secure loose clothing.",
    ),
    rule(
        r"\b(srs|airbag|clock spring)\b",
        "Safety: do NOT probe SRS/airbag circuits with a meter/test light. Use scan-tool procedures only.",
    ),
    rule(
        r"\b(hybrid|ev|high voltage|orange cable)\b",
        "Safety: high voltage can be lethal. Do not touch/probe orange HV cables without PPE, "
        "disable procedure and verified zero volts.",
    ),
)


class KeywordSafetyChecker:
    """Default safety capability backed by the tables above."""

    def hard_stop(self, text: str) -> Optional[str]:
        hit = first_match(HARD_STOPS, text or "")
        if hit is None:
            return None
        stop_id, reply = hit
        logger.warning("safety_hard_stop", stop_id=stop_id)
        return reply

    def warnings(self, *blocks: Optional[str]) -> list:
        """De-duplicated warnings for the joined text *blocks*."""
        text = " ".join(b for b in blocks if b).lower()
        return all_matches(WARNINGS, text)

    def check(self, text: str) -> SafetyVerdict:
        return SafetyVerdict(hard_stop=self.hard_stop(text), warnings=self.warnings(text))
