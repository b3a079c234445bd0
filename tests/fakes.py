import asyncio
import json
from typing import Callable, List, Optional, Sequence, Union

from notes_pipeline.errors import ConfigurationError
from notes_pipeline.models import ImagePayload, NoteOutline, NoteUnit, Stage
from notes_pipeline.renderer import BackendKind


PNG_PAYLOAD = ImagePayload(data=b"\x89PNG fake", mime_type="image/png")

VALID_OUTLINE_REPLY = json.dumps(
    {
        "title": "光合作用",
        "summary_context": "植物如何把光变成能量",
        "visual_theme_keywords": "leaves, sunlight",
        "modules": [
            {"heading": "光反应", "content": "类囊体; 产生ATP"},
            {"heading": "暗反应", "content": "卡尔文循环; 固定CO2"},
        ],
    },
    ensure_ascii=False,
)


class FakeCompletionService:
    """Completion service returning canned replies (or raising canned errors)."""

    def __init__(
        self,
        replies: Sequence[Union[str, Exception]] = (),
        handler: Optional[Callable[[str], str]] = None,
        ready: bool = True,
    ) -> None:
        self.replies = list(replies)
        self.handler = handler
        self.ready = ready
        self.calls: List[str] = []

    def check_ready(self) -> None:
        if not self.ready:
            raise ConfigurationError("not configured")

    async def generate(self, prompt: str) -> str:
        self.calls.append(prompt)
        await asyncio.sleep(0)
        if self.handler is not None:
            return self.handler(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeImageBackend:
    """Image backend that records calls and tracks how many run at once."""

    kind = BackendKind.PREDICTION_LIST

    def __init__(
        self,
        outcomes: Sequence[Union[ImagePayload, Exception]] = (),
        handler: Optional[Callable[[str], ImagePayload]] = None,
        delay: float = 0.0,
        ready: bool = True,
    ) -> None:
        self.outcomes = list(outcomes)
        self.handler = handler
        self.delay = delay
        self.ready = ready
        self.calls: List[str] = []
        self.events: List[tuple] = []
        self.active = 0
        self.peak = 0

    def check_ready(self) -> None:
        if not self.ready:
            raise ConfigurationError("not configured")

    async def generate(self, prompt: str) -> ImagePayload:
        key = prompt.split("\n", 1)[0]
        self.calls.append(prompt)
        self.events.append(("start", key))
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            if self.handler is not None:
                return self.handler(key)
            if not self.outcomes:
                return PNG_PAYLOAD
            outcome = self.outcomes.pop(0)
            if isinstance(outcome, Exception):
                raise outcome
            return outcome
        finally:
            self.active -= 1
            self.events.append(("end", key))


class SleepRecorder:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def prompt_ready_unit(order: int, prompt: Optional[str] = None) -> NoteUnit:
    return NoteUnit(
        id=f"note-{order}",
        order=order,
        original_text=f"text {order}",
        stage=Stage.REVIEW_PROMPT,
        structure=NoteOutline(title=f"title {order}"),
        generated_prompt=prompt or f"prompt-{order}",
    )
