"""OpenAI-compatible capability implementations (Ollama by default).

:class:`LLMPhraser` implements the phrasing capability and
:class:`LLMVehicleExtractor` the vehicle-extraction capability.  Neither
decides control flow: the phraser's text is display-only and the
extractor's output is merged like any other partial vehicle record.
"""

from __future__ import annotations

import json
from typing import Dict, List, Optional, Sequence

import structlog
from openai import AsyncOpenAI

from diag_dialogue import prompts, validate
from diag_dialogue.config import DialogueSettings
from diag_dialogue.schemas import PhrasingDirective, VehicleContext
from diag_dialogue.session import TurnRecord

logger = structlog.get_logger(__name__)

_MAX_PRIOR_TURNS = 10


def _make_client(settings: DialogueSettings) -> AsyncOpenAI:
    if not settings.llm_base_url:
        raise RuntimeError("llm_base_url must be set when use_llm is enabled")
    return AsyncOpenAI(api_key=settings.llm_api_key or "ollama", base_url=settings.llm_base_url)


class LLMPhraser:
    """Phrase a :class:`PhrasingDirective` with a chat-completions model."""

    def __init__(self, settings: DialogueSettings, client: Optional[AsyncOpenAI] = None) -> None:
        if not settings.llm_model:
            raise RuntimeError("llm_model must be set when use_llm is enabled")
        self.model = settings.llm_model
        self.client = client or _make_client(settings)
        logger.info("initialized_llm_phraser", base_url=settings.llm_base_url, model=self.model)

    def build_messages(self, directive: PhrasingDirective, prior_turns: Sequence[TurnRecord] = ()) -> List[Dict[str, str]]:
        """System prompt + recent history + the intent-specific user turn."""
        system_prompt = prompts.PHRASING_SYSTEM_PROMPT.format(
            disclaimer=f"{directive.disclaimer}\n" if directive.disclaimer else "",
            warnings="".join(f"{w}\n" for w in directive.warnings),
            domain=directive.domain or "unknown",
            locked_facts=json.dumps(
                {"codes": [directive.code] if directive.code else [], **directive.locked_facts},
                indent=2,
                default=str,
            ),
            vehicle=directive.vehicle.model_dump_json(exclude={"vin", "engine_details"}),
        )
        messages = [{"role": "system", "content": system_prompt}]
        for turn in list(prior_turns)[-_MAX_PRIOR_TURNS:]:
            if turn.role in ("user", "assistant"):
                messages.append({"role": turn.role, "content": turn.content})

        if directive.intent == "explain_code":
            user_prompt = prompts.EXPLAIN_CODE_TEMPLATE.format(
                code=directive.code,
                code_family=directive.code_family or "unknown",
                vehicle=directive.vehicle.describe() or "vehicle",
            )
        elif directive.intent == "clarify":
            user_prompt = prompts.CLARIFY_TEMPLATE.format(
                message=directive.message,
                pending_prompt=directive.pending_prompt or "",
            )
        else:
            user_prompt = prompts.FREE_FORM_TEMPLATE.format(message=directive.message)
        messages.append({"role": "user", "content": user_prompt})
        return messages

    async def phrase(self, directive: PhrasingDirective, prior_turns: Sequence[TurnRecord] = ()) -> str:
        """Return phrased text.

        Raises
        ------
        ValueError
            If the model returns empty output.
        """
        messages = self.build_messages(directive, prior_turns)
        logger.info("phrasing_start", intent=directive.intent, domain=directive.domain)
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=0.3,
            )
            content = validate.validate_phrasing_output(response.choices[0].message.content)
            if content is None:
                raise ValueError("Empty phrasing output")
            logger.info("phrasing_completed", intent=directive.intent, length=len(content))
            return content

        except Exception as e:
            logger.error("phrasing_failed", intent=directive.intent, error=str(e))
            raise


class LLMVehicleExtractor:
    """Extract year/make/model/engine from free text with a model."""

    def __init__(self, settings: DialogueSettings, client: Optional[AsyncOpenAI] = None) -> None:
        self.model = settings.extract_model
        if not self.model:
            raise RuntimeError("llm_model must be set when use_llm is enabled")
        self.client = client or _make_client(settings)
        logger.info("initialized_llm_vehicle_extractor", base_url=settings.llm_base_url, model=self.model)

    async def extract(self, text: str) -> VehicleContext:
        """Partial vehicle record; all-empty when the model fails."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": prompts.VEHICLE_EXTRACT_SYSTEM_PROMPT},
                    {"role": "user", "content": text},
                ],
                temperature=0,
                response_format={"type": "json_object"},
            )
            raw_content = response.choices[0].message.content or ""
        except Exception as e:
            logger.warning("vehicle_extraction_failed", error=str(e))
            return VehicleContext()

        vehicle = validate.validate_vehicle_output(raw_content)
        if vehicle is None:
            logger.warning("vehicle_extraction_invalid", raw_content_length=len(raw_content))
            return VehicleContext()
        return vehicle
