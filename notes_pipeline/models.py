import base64
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum, IntEnum
from typing import Any, Dict, List, Optional, Tuple


class Stage(IntEnum):
    """Pipeline stages a note unit moves through, in order."""

    CREATED = 0
    ORGANIZING = 1
    REVIEW_STRUCTURE = 2
    DESIGNING = 3
    REVIEW_PROMPT = 4
    PAINTING = 5
    DONE = 6
    # Not part of the ordering; see `NoteUnit.failed_phase`.
    FAILED = 99


class Phase(str, Enum):
    STRUCTURING = "structuring"
    RENDERING = "rendering"


@dataclass(frozen=True)
class ContentModule:
    id: str
    heading: str
    content: str


@dataclass(frozen=True)
class NoteOutline:
    """
    Structured outline of one note, as produced by the structure extractor.

    Instances are immutable; the editing helpers return a new outline so the
    store can swap it in with a single update.
    """

    title: str = ""
    summary_context: str = ""
    visual_theme_keywords: str = ""
    modules: Tuple[ContentModule, ...] = ()

    def with_module_added(self, heading: str = "新模块", content: str = "") -> "NoteOutline":
        module = ContentModule(id=new_module_id(), heading=heading, content=content)
        return replace(self, modules=self.modules + (module,))

    def with_module_updated(
        self,
        module_id: str,
        heading: Optional[str] = None,
        content: Optional[str] = None,
    ) -> "NoteOutline":
        modules = []
        found = False
        for module in self.modules:
            if module.id == module_id:
                found = True
                module = ContentModule(
                    id=module.id,
                    heading=module.heading if heading is None else heading,
                    content=module.content if content is None else content,
                )
            modules.append(module)
        if not found:
            raise KeyError(f"No module with id {module_id!r}")
        return replace(self, modules=tuple(modules))

    def without_module(self, module_id: str) -> "NoteOutline":
        modules = tuple(m for m in self.modules if m.id != module_id)
        if len(modules) == len(self.modules):
            raise KeyError(f"No module with id {module_id!r}")
        return replace(self, modules=modules)


@dataclass(frozen=True)
class VisualSettings:
    style_id: str = "healing"
    color_theme: str = ""
    watermark: str = ""


@dataclass(frozen=True)
class ImagePayload:
    data: bytes
    mime_type: str = "image/png"

    @property
    def data_uri(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"


@dataclass(frozen=True)
class NoteUnit:
    """One independently progressing segment of the input text."""

    id: str
    order: int
    original_text: str
    stage: Stage = Stage.CREATED
    is_processing: bool = False
    structure: Optional[NoteOutline] = None
    generated_prompt: Optional[str] = None
    final_image: Optional[ImagePayload] = None
    error: Optional[str] = None
    failed_phase: Optional[Phase] = None


def new_note_id() -> str:
    return str(uuid.uuid4())


def new_module_id() -> str:
    return f"m-{uuid.uuid4().hex[:8]}"


def units_from_segments(segments: List[str]) -> List[NoteUnit]:
    return [
        NoteUnit(id=new_note_id(), order=i, original_text=text)
        for i, text in enumerate(segments, start=1)
    ]


def outline_to_dict(outline: NoteOutline) -> Dict[str, Any]:
    return {
        "title": outline.title,
        "summary_context": outline.summary_context,
        "visual_theme_keywords": outline.visual_theme_keywords,
        "modules": [
            {"id": m.id, "heading": m.heading, "content": m.content}
            for m in outline.modules
        ],
    }


def unit_to_dict(unit: NoteUnit) -> Dict[str, Any]:
    image = unit.final_image
    return {
        "id": unit.id,
        "order": unit.order,
        "original_text": unit.original_text,
        "stage": unit.stage.name,
        "is_processing": unit.is_processing,
        "structure": outline_to_dict(unit.structure) if unit.structure else None,
        "generated_prompt": unit.generated_prompt,
        "final_image": (
            {"mime_type": image.mime_type, "size_bytes": len(image.data)} if image else None
        ),
        "error": unit.error,
        "failed_phase": unit.failed_phase.value if unit.failed_phase else None,
    }
