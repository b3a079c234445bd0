import json
import re
from dataclasses import dataclass
from typing import Any, List, Optional

from .errors import MalformedResponse
from .models import ContentModule, NoteOutline


_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences a model may wrap around its JSON reply."""
    return _FENCE_RE.sub("", text or "").strip()


def load_json_reply(text: str) -> Any:
    if text is not None and not isinstance(text, str):
        raise MalformedResponse(f"Expected a text reply, got {type(text).__name__}", raw=text)
    cleaned = strip_code_fences(text)
    if not cleaned:
        raise MalformedResponse("Empty reply", raw=text)
    try:
        return json.loads(cleaned)
    except ValueError as exc:
        raise MalformedResponse(f"Reply is not valid JSON: {exc}", raw=text) from None


@dataclass(frozen=True)
class OutlineParseResult:
    """Either a validated outline or the reason the reply was rejected."""

    outline: Optional[NoteOutline] = None
    error: Optional[MalformedResponse] = None

    @property
    def ok(self) -> bool:
        return self.outline is not None


def parse_outline(text: str) -> OutlineParseResult:
    """
    Validate a structure reply of the shape
    `{title, summary_context, visual_theme_keywords, modules: [{heading, content}]}`.

    Never raises; shape problems come back as `OutlineParseResult.error`.
    """
    try:
        payload = load_json_reply(text)
    except MalformedResponse as exc:
        return OutlineParseResult(error=exc)

    if not isinstance(payload, dict):
        return OutlineParseResult(
            error=MalformedResponse(f"Expected a JSON object, got {type(payload).__name__}", raw=text)
        )

    raw_modules = payload.get("modules")
    if not isinstance(raw_modules, list) or not raw_modules:
        return OutlineParseResult(error=MalformedResponse("Outline has no modules", raw=text))

    modules: List[ContentModule] = []
    for i, item in enumerate(raw_modules):
        if not isinstance(item, dict):
            return OutlineParseResult(
                error=MalformedResponse(f"Module {i} is not an object", raw=text)
            )
        modules.append(
            ContentModule(
                id=f"m{i}",
                heading=_as_text(item.get("heading")),
                content=_as_text(item.get("content")),
            )
        )

    outline = NoteOutline(
        title=_as_text(payload.get("title")),
        summary_context=_as_text(payload.get("summary_context")),
        visual_theme_keywords=_as_keywords(payload.get("visual_theme_keywords")),
        modules=tuple(modules),
    )
    return OutlineParseResult(outline=outline)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_keywords(value: Any) -> str:
    # Models sometimes answer with a list instead of a comma separated string.
    if isinstance(value, list):
        return ", ".join(_as_text(v) for v in value if _as_text(v))
    return _as_text(value)
