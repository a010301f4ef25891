import asyncio

import pytest

from conftest import current_checker, make_context
from models.transcript_store import TranscriptEntry
from services.generation.orchestrator import INSUFFICIENT_TRANSCRIPT, GenerationOrchestrator
from utils.errors import NoActiveSessionError


class StubSummarizer:
    def __init__(self, gate=None, on_call=None):
        self.gate = gate
        self.on_call = on_call
        self.calls = []

    async def summarize(self, transcript, config):
        self.calls.append((transcript, config.phase))
        if self.gate is not None and len(self.calls) == 1:
            await self.gate.wait()
        if self.on_call is not None:
            self.on_call()
        return f"- summary {len(self.calls)}"


class StubPromptBuilder:
    async def build(self, summary, config):
        return f"Illustrate {summary} in {config.style_preset}"


class StubRenderer:
    def __init__(self, error=None):
        self.error = error
        self.sizes = []

    async def render(self, prompt, size):
        self.sizes.append(size)
        if self.error is not None:
            raise self.error
        return "data:image/png;base64,aW1hZ2U="


def build(context, summarizer=None, renderer=None, max_images=20):
    return GenerationOrchestrator(
        context,
        summarizer=summarizer or StubSummarizer(),
        prompt_builder=StubPromptBuilder(),
        renderer=renderer or StubRenderer(),
        is_current=current_checker(context),
        max_images=max_images,
    )


def with_transcript(context, text="We want to expand digital government services"):
    context.transcripts.append(TranscriptEntry(text=text))
    return context


def test_triggers_during_run_collapse_into_one_rerun():
    async def scenario():
        context = with_transcript(make_context())
        gate = asyncio.Event()
        summarizer = StubSummarizer(gate=gate)
        orchestrator = build(context, summarizer=summarizer)

        first = asyncio.create_task(orchestrator.trigger("manual"))
        while not summarizer.calls:
            await asyncio.sleep(0)
        queued = [await orchestrator.trigger("manual") for _ in range(5)]
        assert context.generation.pending_rerun is True

        gate.set()
        result = await first
        await orchestrator.wait_idle()
        return context, orchestrator, result, queued

    context, orchestrator, result, queued = asyncio.run(scenario())

    assert all(item.queued for item in queued)
    assert queued[0].to_dict()["queued"] is True
    assert result.ok
    assert orchestrator.runs_started == 2
    assert len(context.images) == 2
    assert context.generation.in_progress is False
    assert context.generation.pending_rerun is False


def test_insufficient_transcript_fails_summarize_stage():
    async def scenario():
        context = make_context()
        summarizer = StubSummarizer()
        result = await build(context, summarizer=summarizer).trigger("manual")
        return context, summarizer, result

    context, summarizer, result = asyncio.run(scenario())

    assert result.error is not None
    assert result.error.stage == "summarize"
    assert result.error.message == INSUFFICIENT_TRANSCRIPT
    assert context.generation.last_error == INSUFFICIENT_TRANSCRIPT
    assert summarizer.calls == []
    assert context.images == []
    assert context.generation.in_progress is False


def test_render_failure_reports_stage_and_keeps_summary():
    async def scenario():
        context = with_transcript(make_context())
        renderer = StubRenderer(error=RuntimeError("content policy"))
        result = await build(context, renderer=renderer).trigger("manual")
        return context, result

    context, result = asyncio.run(scenario())

    assert result.error.stage == "render"
    assert "content policy" in context.generation.last_error
    assert context.last_summary.text == "- summary 1"
    assert context.last_prompt.startswith("Illustrate")
    assert context.images == []


def test_successful_run_records_config_snapshot():
    async def scenario():
        context = with_transcript(make_context())
        context.config = context.config.merged({"phase": "Mission", "imageSize": "1536x1024"})
        renderer = StubRenderer()
        result = await build(context, renderer=renderer).trigger("manual")
        return context, renderer, result

    context, renderer, result = asyncio.run(scenario())

    image = result.image
    assert image.phase == "Mission"
    assert image.size == "1536x1024"
    assert renderer.sizes == ["1536x1024"]
    assert context.last_summary.phase == "Mission"
    assert result.to_dict()["image"]["id"] == image.id


def test_eviction_ignores_pins():
    async def scenario():
        context = with_transcript(make_context())
        orchestrator = build(context, max_images=2)
        first = (await orchestrator.trigger("manual")).image
        first.pinned = True
        await orchestrator.trigger("manual")
        await orchestrator.trigger("manual")
        return context, first

    context, first = asyncio.run(scenario())

    assert len(context.images) == 2
    assert first.id not in {image.id for image in context.images}


def test_result_for_finished_session_is_discarded():
    async def scenario():
        context = with_transcript(make_context())

        def restart():
            context.epoch += 1

        orchestrator = build(context, summarizer=StubSummarizer(on_call=restart))
        result = await orchestrator.trigger("manual")
        return context, result

    context, result = asyncio.run(scenario())

    assert result.discarded is True
    assert context.images == []
    assert context.last_summary is None
    assert context.generation.in_progress is False


def test_trigger_without_active_session_raises():
    async def scenario():
        context = make_context()
        context.active = False
        await build(context).trigger("manual")

    with pytest.raises(NoActiveSessionError):
        asyncio.run(scenario())
