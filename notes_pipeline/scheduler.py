import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

from .models import Phase, Stage, VisualSettings
from .prompts import synthesize_prompt
from .renderer import ImageRenderer
from .store import NoteStore, failed_in
from .structure import StructureExtractor


logger = logging.getLogger(__name__)

RENDER_CHUNK_SIZE = 3

DESIGN_PHASE = "design"


@dataclass
class PhaseReport:
    """Outcome of one scheduler phase, handed to phase listeners."""

    phase: str
    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "total": self.total,
        }


PhaseListener = Callable[[PhaseReport], Any]


def chunked(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class BatchScheduler:
    """
    Advances the units of a store through one phase at a time.

    Structuring dispatches every eligible unit at once. Rendering works through
    chunks of `render_chunk_size` units; a chunk starts only after the previous
    one has fully settled. A failing unit is marked FAILED and never stops its
    siblings.
    """

    def __init__(
        self,
        extractor: StructureExtractor,
        renderer: ImageRenderer,
        render_chunk_size: int = RENDER_CHUNK_SIZE,
    ) -> None:
        if render_chunk_size < 1:
            raise ValueError("render_chunk_size must be at least 1")
        self.extractor = extractor
        self.renderer = renderer
        self.render_chunk_size = render_chunk_size
        self._listeners: List[PhaseListener] = []

    def add_listener(self, listener: PhaseListener) -> None:
        """Register a callback (sync or async) invoked when a phase completes."""
        self._listeners.append(listener)

    async def _notify(self, report: PhaseReport) -> None:
        for listener in self._listeners:
            result = listener(report)
            if inspect.isawaitable(result):
                await result

    # -- structuring -------------------------------------------------------

    async def run_structuring(self, store: NoteStore, unit_ids: Optional[Iterable[str]] = None) -> PhaseReport:
        self.extractor.check_ready()

        if unit_ids is None:
            ids = [u.id for u in store.in_stage(Stage.CREATED)]
        else:
            ids = list(unit_ids)

        logger.info("Structuring %d note(s)", len(ids))
        outcomes = await asyncio.gather(
            *(self._structure_unit(store, unit_id) for unit_id in ids),
            return_exceptions=True,
        )
        report = self._report(Phase.STRUCTURING.value, ids, outcomes)
        logger.info("Structuring finished: %d ok, %d failed", len(report.succeeded), len(report.failed))
        await self._notify(report)
        return report

    async def _structure_unit(self, store: NoteStore, unit_id: str) -> bool:
        unit = store.transition(unit_id, Stage.ORGANIZING)
        try:
            outline = await self.extractor.extract(unit.original_text)
        except Exception as exc:
            logger.error("Structuring failed for note %d: %s", unit.order, exc)
            store.transition(unit_id, Stage.FAILED, error=f"结构整理失败: {exc}")
            return False
        store.transition(unit_id, Stage.REVIEW_STRUCTURE, structure=outline)
        return True

    # -- design ------------------------------------------------------------

    async def run_design(self, store: NoteStore, settings: VisualSettings) -> PhaseReport:
        """Synthesize prompts for every unit awaiting design. No external calls."""
        ids = []
        for unit in store.in_stage(Stage.REVIEW_STRUCTURE):
            store.transition(unit.id, Stage.DESIGNING)
            prompt = synthesize_prompt(unit.structure, settings)
            store.transition(unit.id, Stage.REVIEW_PROMPT, generated_prompt=prompt)
            ids.append(unit.id)

        report = PhaseReport(DESIGN_PHASE, succeeded=ids)
        logger.info("Designed %d prompt(s) with style %r", len(ids), settings.style_id)
        await self._notify(report)
        return report

    # -- rendering ---------------------------------------------------------

    async def run_rendering(
        self,
        store: NoteStore,
        settings: VisualSettings,
        unit_ids: Optional[Iterable[str]] = None,
    ) -> PhaseReport:
        self.renderer.check_ready()

        if unit_ids is None:
            ids = [u.id for u in store.in_stage(Stage.REVIEW_PROMPT)]
        else:
            ids = list(unit_ids)

        chunks = chunked(ids, self.render_chunk_size)
        logger.info("Rendering %d note(s) in %d chunk(s)", len(ids), len(chunks))

        outcomes: List[Any] = []
        for index, chunk in enumerate(chunks, start=1):
            logger.info("Rendering chunk %d/%d (%d note(s))", index, len(chunks), len(chunk))
            outcomes.extend(
                await asyncio.gather(
                    *(self._render_unit(store, unit_id, settings.style_id) for unit_id in chunk),
                    return_exceptions=True,
                )
            )

        report = self._report(Phase.RENDERING.value, ids, outcomes)
        logger.info("Rendering finished: %d ok, %d failed", len(report.succeeded), len(report.failed))
        await self._notify(report)
        return report

    async def _render_unit(self, store: NoteStore, unit_id: str, style_id: str) -> bool:
        unit = store.transition(unit_id, Stage.PAINTING)
        try:
            image = await self.renderer.render(unit.generated_prompt, style_id)
        except Exception as exc:
            logger.error("Rendering failed for note %d: %s", unit.order, exc)
            store.transition(unit_id, Stage.FAILED, error=f"绘制失败: {exc}")
            return False
        store.transition(unit_id, Stage.DONE, final_image=image)
        return True

    # -- retries -----------------------------------------------------------

    async def retry_failed(self, store: NoteStore, phase: Phase, settings: VisualSettings) -> PhaseReport:
        ids = [u.id for u in failed_in(store, phase)]
        if phase == Phase.STRUCTURING:
            return await self.run_structuring(store, ids)
        return await self.run_rendering(store, settings, ids)

    @staticmethod
    def _report(phase: str, ids: List[str], outcomes: List[Any]) -> PhaseReport:
        report = PhaseReport(phase)
        for unit_id, outcome in zip(ids, outcomes):
            if isinstance(outcome, BaseException):
                logger.error("Note %s raised outside its phase handler: %r", unit_id[:8], outcome)
                report.failed.append(unit_id)
            elif outcome:
                report.succeeded.append(unit_id)
            else:
                report.failed.append(unit_id)
        return report
