"""Tests for middleware composition."""

import pytest

from chatstream.middleware import BaseMiddleware, MiddlewareContext, MiddlewarePipeline, compose
from chatstream.models.chunks import TextDeltaChunk
from chatstream.models.requests import CompletionsResult
from chatstream.orchestration.errors import MiddlewareError


def recording_stage(name, log):
    async def stage(context, call_next):
        log.append(f"before {name}")
        result = await call_next()
        log.append(f"after {name}")
        return result
    stage.__name__ = name
    return stage


def make_context(method="embeddings", params=None):
    return MiddlewareContext(method_name=method, params=params if params is not None else {}, provider_id="test")


async def _list(stream):
    return [chunk async for chunk in stream]


class TestCompose:
    """Onion ordering and error wrapping."""

    @pytest.mark.asyncio
    async def test_onion_order(self):
        log = []
        pipeline = MiddlewarePipeline([recording_stage(n, log) for n in ("A", "B", "C")])

        async def core(context):
            log.append("core")
            return "result"

        result = await pipeline.execute(make_context(), core)

        assert result == "result"
        assert log == ["before A", "before B", "before C", "core", "after C", "after B", "after A"]

    @pytest.mark.asyncio
    async def test_context_mutation_visible_downstream(self):
        async def set_flag(context, call_next):
            context.params["flag"] = True
            return await call_next()

        seen = {}

        async def core(context):
            seen.update(context.params)
            return None

        await compose([set_flag])(make_context(), core)
        assert seen == {"flag": True}

    @pytest.mark.asyncio
    async def test_short_circuit_skips_rest(self):
        calls = []

        async def cached(context, call_next):
            return "cached"

        async def core(context):
            calls.append("core")
            return "fresh"

        pipeline = MiddlewarePipeline([cached, recording_stage("B", calls)])
        assert await pipeline.execute(make_context(), core) == "cached"
        assert calls == []

    @pytest.mark.asyncio
    async def test_result_replacement(self):
        async def upper(context, call_next):
            return (await call_next()).upper()

        async def core(context):
            return "text"

        assert await compose([upper])(make_context(), core) == "TEXT"

    @pytest.mark.asyncio
    async def test_stage_failure_before_delegation_is_wrapped(self):
        async def broken(context, call_next):
            raise ValueError("bad config")

        async def core(context):
            return "unreachable"

        with pytest.raises(MiddlewareError) as exc_info:
            await compose([broken])(make_context(), core)

        assert exc_info.value.stage_name == "broken"
        assert isinstance(exc_info.value.original_error, ValueError)

    @pytest.mark.asyncio
    async def test_downstream_failure_propagates_unchanged(self):
        log = []

        async def core(context):
            raise KeyError("from adapter")

        with pytest.raises(KeyError):
            await compose([recording_stage("A", log), recording_stage("B", log)])(make_context(), core)
        assert log == ["before A", "before B"]

    @pytest.mark.asyncio
    async def test_inner_middleware_error_not_rewrapped(self):
        async def outer(context, call_next):
            return await call_next()

        class Inner:
            name = "inner"

            async def __call__(self, context, call_next):
                raise RuntimeError("inner failed")

        async def core(context):
            return None

        with pytest.raises(MiddlewareError) as exc_info:
            await compose([outer, Inner()])(make_context(), core)
        assert exc_info.value.stage_name == "inner"

    def test_pipeline_use_and_names(self):
        async def first(context, call_next):
            return await call_next()

        pipeline = MiddlewarePipeline().use(first)
        assert len(pipeline) == 1
        assert pipeline.names() == ["first"]


class TestBaseMiddleware:
    """Class-based stages."""

    @pytest.mark.asyncio
    async def test_wrap_stream_applies_to_completions_result(self):
        class Upper(BaseMiddleware):
            name = "upper"

            def wrap_stream(self, context, stream):
                async def upper():
                    async for chunk in stream:
                        yield TextDeltaChunk(text=chunk.text.upper())
                return upper()

        async def source():
            yield TextDeltaChunk(text="hi")

        async def core(context):
            return CompletionsResult(stream=source())

        result = await compose([Upper()])(make_context("completions"), core)
        assert await _list(result.stream) == [TextDeltaChunk(text="HI")]

    @pytest.mark.asyncio
    async def test_method_filter(self):
        calls = []

        class OnlyCompletions(BaseMiddleware):
            methods = ("completions",)

            async def before(self, context):
                calls.append(context.method_name)

        async def core(context):
            return None

        stage = OnlyCompletions()
        await compose([stage])(make_context("embeddings"), core)
        await compose([stage])(make_context("completions"), core)
        assert calls == ["completions"]

    def test_context_request_id_from_metadata(self):
        context = make_context()
        context.metadata["request_id"] = "call-1"
        assert context.request is None
        assert context.request_id == "call-1"
