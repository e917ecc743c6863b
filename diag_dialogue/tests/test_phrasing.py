"""Tests for template phrasing and the timeout/fallback adapter."""

from __future__ import annotations

import asyncio

import pytest

from diag_dialogue.phrasing import DISCLAIMER, CodeDescriptions, PhrasingAdapter, TemplatePhraser
from diag_dialogue.schemas import PhrasingDirective, VehicleContext


def _explain(**overrides) -> PhrasingDirective:
    defaults = dict(
        intent="explain_code",
        code="P0302",
        code_family="powertrain",
        vehicle=VehicleContext(year="2018", make="Ford", model="F-150", engine="5.0L V8"),
    )
    defaults.update(overrides)
    return PhrasingDirective(**defaults)


class _SlowPhraser:
    async def phrase(self, directive, prior_turns=()):
        await asyncio.sleep(5)
        return "too late"


class _BrokenPhraser:
    async def phrase(self, directive, prior_turns=()):
        raise ConnectionError("endpoint down")


class _ConstPhraser:
    def __init__(self, text):
        self.text = text

    async def phrase(self, directive, prior_turns=()):
        return self.text


# ---------------------------------------------------------------------------
# CodeDescriptions
# ---------------------------------------------------------------------------


class TestCodeDescriptions:
    def test_known_code(self, template: TemplatePhraser) -> None:
        assert template.descriptions.describe("p0302") == "Cylinder 2 misfire detected"

    def test_family_fallback(self, template: TemplatePhraser) -> None:
        assert template.descriptions.describe("U3000") == (
            "network (module communication) fault (no generic title on file)"
        )

    def test_bad_file(self, tmp_path) -> None:
        path = tmp_path / "codes.yaml"
        path.write_text("codes: [P0300]\nfamilies: {}\n", encoding="utf-8")
        with pytest.raises(ValueError, match="must be mappings"):
            CodeDescriptions.from_yaml(path)


# ---------------------------------------------------------------------------
# TemplatePhraser
# ---------------------------------------------------------------------------


class TestTemplatePhraser:
    def test_explain_with_disclaimer_and_warning(self, template: TemplatePhraser) -> None:
        text = template.render(_explain(disclaimer=DISCLAIMER, warnings=["Safety: careful."]))
        assert text == (
            f"{DISCLAIMER}\n\nSafety: careful.\n\n"
            "P0302: Cylinder 2 misfire detected (powertrain). Logged on the 2018 Ford F-150 5.0L V8."
        )

    def test_explain_without_vehicle(self, template: TemplatePhraser) -> None:
        text = template.render(_explain(vehicle=VehicleContext()))
        assert text == "P0302: Cylinder 2 misfire detected (powertrain)."

    def test_clarify(self, template: TemplatePhraser) -> None:
        text = template.render(PhrasingDirective(intent="clarify", message="blue", pending_prompt="Yes or no?"))
        assert text == "I couldn't match that answer to the question."

    def test_free_form_without_context_asks_for_symptoms(self, template: TemplatePhraser) -> None:
        text = template.render(PhrasingDirective(intent="free_form", message="hi"))
        assert text.startswith("What's it doing?")

    def test_free_form_summarises_locked_facts(self, template: TemplatePhraser) -> None:
        text = template.render(
            PhrasingDirective(
                intent="free_form",
                domain="engine_drivability",
                locked_facts={"misfire": {"cylinder": 2}},
            )
        )
        assert text.startswith('Domain locked: engine drivability.\nLocked facts: {"misfire": {"cylinder": 2}}')

    @pytest.mark.asyncio
    async def test_phrase_is_render(self, template: TemplatePhraser) -> None:
        directive = _explain()
        assert await template.phrase(directive) == template.render(directive)


# ---------------------------------------------------------------------------
# PhrasingAdapter
# ---------------------------------------------------------------------------


class TestPhrasingAdapter:
    @pytest.mark.asyncio
    async def test_capability_text_is_stripped(self, template: TemplatePhraser) -> None:
        adapter = PhrasingAdapter(_ConstPhraser("  Cylinder 2 is misfiring.  \n"), fallback=template)
        assert await adapter.phrase(_explain()) == "Cylinder 2 is misfiring."

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, template: TemplatePhraser) -> None:
        adapter = PhrasingAdapter(_SlowPhraser(), fallback=template, timeout_seconds=0.05)
        assert await adapter.phrase(_explain()) == template.render(_explain())

    @pytest.mark.asyncio
    async def test_error_falls_back(self, template: TemplatePhraser) -> None:
        adapter = PhrasingAdapter(_BrokenPhraser(), fallback=template)
        assert (await adapter.phrase(_explain())).startswith("P0302: Cylinder 2 misfire detected")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("output", ["", "   ", None, 42])
    async def test_malformed_output_falls_back(self, template: TemplatePhraser, output) -> None:
        adapter = PhrasingAdapter(_ConstPhraser(output), fallback=template)
        assert await adapter.phrase(_explain()) == template.render(_explain())

    @pytest.mark.asyncio
    async def test_template_only_renders_directly(self, template: TemplatePhraser) -> None:
        adapter = PhrasingAdapter(template)
        assert adapter.fallback is template
        assert await adapter.phrase(_explain()) == template.render(_explain())
