"""
Text completion adapters.

The pipeline only needs `await service.generate(prompt) -> str`. Two adapters
are provided: a LangChain chat model (OpenAI by default) and Google GenAI text
models. Both wrap the network call with `call_with_timeout` so callers only ever
see `TransportFailure` for calls that did not complete.
"""

import asyncio
import logging
from typing import Any, Awaitable, Optional, Protocol

from .errors import ConfigurationError, PipelineError, TransportFailure


logger = logging.getLogger(__name__)


class TextCompletionService(Protocol):
    def check_ready(self) -> None:
        ...

    async def generate(self, prompt: str) -> str:
        ...


async def call_with_timeout(call: Awaitable[Any], timeout: Optional[float], what: str) -> Any:
    """Await an external call, mapping timeouts and client errors to TransportFailure."""
    try:
        return await asyncio.wait_for(call, timeout=timeout)
    except asyncio.TimeoutError:
        raise TransportFailure(f"{what} timed out after {timeout}s") from None
    except PipelineError:
        raise
    except Exception as exc:
        raise TransportFailure(f"{what} failed: {exc}") from exc


class LangChainCompletionService:
    """Adapter around any LangChain chat model (e.g. `ChatOpenAI`)."""

    def __init__(self, llm: Any, timeout: Optional[float] = None) -> None:
        self.llm = llm
        self.timeout = timeout

    def check_ready(self) -> None:
        if self.llm is None:
            raise ConfigurationError(
                "No chat model configured. Set OPENAI_API_KEY or pass an LLM instance."
            )

    async def generate(self, prompt: str) -> str:
        self.check_ready()
        raw = await call_with_timeout(self.llm.ainvoke(prompt), self.timeout, "Text completion")
        content = getattr(raw, "content", None) or str(raw)
        if isinstance(content, list):
            # Content blocks: keep the text ones.
            content = "".join(
                block if isinstance(block, str) else str(block.get("text", ""))
                for block in content
                if isinstance(block, str) or (isinstance(block, dict) and block.get("type") == "text")
            )
        return content


class GeminiCompletionService:
    """Adapter around a Google GenAI client's text models."""

    def __init__(self, client: Any, model: str, timeout: Optional[float] = None) -> None:
        self.client = client
        self.model = model
        self.timeout = timeout

    def check_ready(self) -> None:
        if self.client is None:
            raise ConfigurationError("No Gemini client configured. Set GEMINI_API_KEY.")

    async def generate(self, prompt: str) -> str:
        self.check_ready()
        response = await call_with_timeout(
            self.client.aio.models.generate_content(model=self.model, contents=prompt),
            self.timeout,
            "Text completion",
        )
        text = getattr(response, "text", None)
        if text:
            return text

        parts = []
        for candidate in getattr(response, "candidates", None) or []:
            content = getattr(candidate, "content", None)
            for part in getattr(content, "parts", None) or []:
                if getattr(part, "text", None):
                    parts.append(part.text)
        return "\n".join(parts).strip()


def build_completion_service(config) -> TextCompletionService:
    """Create the text completion adapter selected by `config.text_provider`."""
    if config.text_provider == "gemini":
        client = None
        if config.gemini_api_key:
            from google import genai

            client = genai.Client(api_key=config.gemini_api_key)
        return GeminiCompletionService(
            client, model=config.gemini_text_model, timeout=config.request_timeout_seconds
        )

    llm = None
    if config.openai_api_key:
        from langchain_openai import ChatOpenAI

        llm = ChatOpenAI(
            model=config.text_model,
            temperature=config.text_temperature,
            api_key=config.openai_api_key,
        )
    return LangChainCompletionService(llm, timeout=config.request_timeout_seconds)
