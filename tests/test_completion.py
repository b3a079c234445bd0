import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import AsyncMock

from notes_pipeline.completion import (
    GeminiCompletionService,
    LangChainCompletionService,
    build_completion_service,
    call_with_timeout,
)
from notes_pipeline.config import PipelineConfig
from notes_pipeline.errors import ConfigurationError, MalformedResponse, TransportFailure


class TestCallWithTimeout(unittest.IsolatedAsyncioTestCase):
    async def test_returns_result(self) -> None:
        async def call():
            return "ok"

        self.assertEqual(await call_with_timeout(call(), 1, "call"), "ok")

    async def test_timeout_becomes_transport_failure(self) -> None:
        with self.assertRaises(TransportFailure) as ctx:
            await call_with_timeout(asyncio.sleep(1), 0.01, "Slow call")
        self.assertIn("timed out", str(ctx.exception))

    async def test_client_error_becomes_transport_failure(self) -> None:
        async def call():
            raise ConnectionError("reset by peer")

        with self.assertRaises(TransportFailure) as ctx:
            await call_with_timeout(call(), 1, "call")
        self.assertIsInstance(ctx.exception.__cause__, ConnectionError)

    async def test_pipeline_errors_pass_through(self) -> None:
        async def call():
            raise MalformedResponse("bad shape")

        with self.assertRaises(MalformedResponse):
            await call_with_timeout(call(), 1, "call")


class TestLangChainCompletionService(unittest.IsolatedAsyncioTestCase):
    async def test_returns_message_content(self) -> None:
        llm = SimpleNamespace(ainvoke=AsyncMock(return_value=SimpleNamespace(content="reply")))

        self.assertEqual(await LangChainCompletionService(llm).generate("hi"), "reply")
        llm.ainvoke.assert_awaited_once_with("hi")

    async def test_joins_text_content_blocks(self) -> None:
        blocks = [{"type": "text", "text": '{"a"'}, {"type": "image_url"}, {"type": "text", "text": ": 1}"}]
        llm = SimpleNamespace(ainvoke=AsyncMock(return_value=SimpleNamespace(content=blocks)))

        self.assertEqual(await LangChainCompletionService(llm).generate("hi"), '{"a": 1}')

    async def test_missing_model_is_configuration_error(self) -> None:
        with self.assertRaises(ConfigurationError):
            await LangChainCompletionService(None).generate("hi")


class TestGeminiCompletionService(unittest.IsolatedAsyncioTestCase):
    def client(self, response) -> SimpleNamespace:
        return SimpleNamespace(
            aio=SimpleNamespace(models=SimpleNamespace(generate_content=AsyncMock(return_value=response)))
        )

    async def test_returns_text(self) -> None:
        client = self.client(SimpleNamespace(text="reply"))

        self.assertEqual(await GeminiCompletionService(client, "gemini-2.0-flash").generate("hi"), "reply")
        client.aio.models.generate_content.assert_awaited_once_with(model="gemini-2.0-flash", contents="hi")

    async def test_falls_back_to_candidate_parts(self) -> None:
        response = SimpleNamespace(
            text=None,
            candidates=[SimpleNamespace(content=SimpleNamespace(parts=[SimpleNamespace(text="a"), SimpleNamespace(text="b")]))],
        )

        self.assertEqual(await GeminiCompletionService(self.client(response), "m").generate("hi"), "a\nb")


class TestBuildCompletionService(unittest.TestCase):
    def test_openai_without_key_is_not_ready(self) -> None:
        service = build_completion_service(PipelineConfig())

        self.assertIsInstance(service, LangChainCompletionService)
        with self.assertRaises(ConfigurationError):
            service.check_ready()

    def test_gemini_without_key_is_not_ready(self) -> None:
        service = build_completion_service(PipelineConfig(text_provider="gemini"))

        self.assertIsInstance(service, GeminiCompletionService)
        with self.assertRaises(ConfigurationError):
            service.check_ready()


if __name__ == "__main__":
    unittest.main()
