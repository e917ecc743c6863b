"""Phrasing adapter: directive in, display text out.

The adapter never decides *what* to say.  It wraps the configured
phrasing capability in a timeout and falls back to a deterministic
template when the capability fails, times out or returns junk.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

import structlog

from diag_dialogue.capabilities import Phraser
from diag_dialogue.rule_files import load_yaml
from diag_dialogue.schemas import PhrasingDirective
from diag_dialogue.session import TurnRecord
from diag_dialogue.vocabulary import CODE_FAMILIES

logger = structlog.get_logger(__name__)

DISCLAIMER = (
    "Safety: this guidance is for trained technicians. "
    "Follow OEM procedures and shop safety standards."
)


class CodeDescriptions:
    """Code -> title lookup with a family-level fallback."""

    def __init__(self, codes: Dict[str, str], families: Dict[str, str]) -> None:
        self.codes = {k.upper(): v for k, v in codes.items()}
        self.families = families

    @classmethod
    def from_yaml(cls, path: Optional[Union[str, Path]] = None) -> "CodeDescriptions":
        data = load_yaml("code_descriptions.yaml", path)
        codes = data.get("codes") or {}
        families = data.get("families") or {}
        if not isinstance(codes, dict) or not isinstance(families, dict):
            raise ValueError("code descriptions: 'codes' and 'families' must be mappings")
        return cls({str(k): str(v) for k, v in codes.items()}, {str(k): str(v) for k, v in families.items()})

    def describe(self, code: str) -> str:
        code = code.upper()
        title = self.codes.get(code)
        if title:
            return title
        family = self.families.get(code[:1]) or CODE_FAMILIES.get(code[:1], "unknown")
        return f"{family} fault (no generic title on file)"


class TemplatePhraser:
    """Deterministic phrasing used offline and as the failure fallback."""

    def __init__(self, descriptions: Optional[CodeDescriptions] = None) -> None:
        self.descriptions = descriptions or CodeDescriptions.from_yaml()

    async def phrase(self, directive: PhrasingDirective, prior_turns: Sequence[TurnRecord] = ()) -> str:
        return self.render(directive)

    def render(self, directive: PhrasingDirective) -> str:
        header = ([directive.disclaimer] if directive.disclaimer else []) + list(directive.warnings)
        if directive.intent == "explain_code":
            body = self._explain(directive)
        elif directive.intent == "clarify":
            body = "I couldn't match that answer to the question."
        else:
            body = self._free_form(directive)
        return "\n\n".join(header + [body])

    def _explain(self, d: PhrasingDirective) -> str:
        code = d.code or ""
        family = d.code_family or CODE_FAMILIES.get(code[:1], "unknown")
        text = f"{code}: {self.descriptions.describe(code)} ({family})."
        if d.vehicle.describe():
            text += f" Logged on the {d.vehicle.describe()}."
        return text

    def _free_form(self, d: PhrasingDirective) -> str:
        if d.domain is None and not d.locked_facts:
            return (
                "What's it doing? Give me codes, misfires, no-start, noise or overheating, "
                "plus mileage, so I can build a real plan."
            )
        summary = f"Domain locked: {(d.domain or 'unknown').replace('_', ' ')}."
        if d.locked_facts:
            summary += f"\nLocked facts: {json.dumps(d.locked_facts, sort_keys=True, default=str)}"
        return (
            f"{summary}\n\nThe standard checks for this domain are covered. Report the result of "
            "the last test or what changed, and include any new codes."
        )


class PhrasingAdapter:
    """Timeout + fallback wrapper around a phrasing capability."""

    def __init__(
        self,
        phraser: Phraser,
        fallback: Optional[TemplatePhraser] = None,
        timeout_seconds: float = 20.0,
    ) -> None:
        self.phraser = phraser
        self.fallback = fallback or (phraser if isinstance(phraser, TemplatePhraser) else TemplatePhraser())
        self.timeout_seconds = timeout_seconds

    async def phrase(self, directive: PhrasingDirective, prior_turns: Sequence[TurnRecord] = ()) -> str:
        if self.phraser is self.fallback:
            return self.fallback.render(directive)
        try:
            text = await asyncio.wait_for(
                self.phraser.phrase(directive, prior_turns),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("phrasing_fallback", reason="timeout", intent=directive.intent)
            return self.fallback.render(directive)
        except Exception as exc:
            logger.warning("phrasing_fallback", reason="error", intent=directive.intent, error=str(exc))
            return self.fallback.render(directive)

        if not isinstance(text, str) or not text.strip():
            logger.warning("phrasing_fallback", reason="malformed", intent=directive.intent)
            return self.fallback.render(directive)
        return text.strip()
