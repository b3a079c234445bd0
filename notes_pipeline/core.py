import logging
import uuid
from typing import List, Optional

from .completion import build_completion_service
from .config import PipelineConfig
from .errors import InvalidTransition
from .models import NoteOutline, NoteUnit, Phase, Stage, VisualSettings, units_from_segments
from .renderer import ImageRenderer, RetryPolicy, build_image_backend
from .scheduler import BatchScheduler, PhaseReport
from .splitter import TextSplitter
from .store import NoteStore
from .structure import StructureExtractor


logger = logging.getLogger(__name__)


class NotePipeline:
    """
    Orchestrates the visual notes pipeline for one session:
    - split raw text into note units
    - structure every unit (concurrently)
    - synthesize an image prompt per unit from the chosen visual settings
    - render every unit (in chunks of three)

    Each phase is triggered by the caller, who may review and edit units in
    between. Starting a new split discards the previous batch.
    """

    def __init__(
        self,
        splitter: TextSplitter,
        scheduler: BatchScheduler,
        settings: Optional[VisualSettings] = None,
        store: Optional[NoteStore] = None,
    ) -> None:
        self.splitter = splitter
        self.scheduler = scheduler
        self.settings = settings or VisualSettings()
        self.store = store or NoteStore()
        self.batch_id: Optional[str] = None

    @classmethod
    def from_config(cls, config: PipelineConfig, settings: Optional[VisualSettings] = None) -> "NotePipeline":
        text_service = build_completion_service(config)
        renderer = ImageRenderer(
            build_image_backend(config),
            policy=RetryPolicy(config.render_max_attempts, config.render_backoff_seconds),
        )
        scheduler = BatchScheduler(
            StructureExtractor(text_service),
            renderer,
            render_chunk_size=config.render_chunk_size,
        )
        return cls(
            TextSplitter(text_service, min_segment_chars=config.min_segment_chars),
            scheduler,
            settings=settings,
        )

    # -- reads -------------------------------------------------------------

    def units(self) -> List[NoteUnit]:
        return self.store.units()

    def unit(self, unit_id: str) -> NoteUnit:
        return self.store.get(unit_id)

    # -- phases ------------------------------------------------------------

    async def run_split(self, text: str) -> List[NoteUnit]:
        self.splitter.check_ready()
        segments = await self.splitter.split(text)
        self.store.replace_all(units_from_segments(segments))
        self.batch_id = uuid.uuid4().hex[:12]
        logger.info("Started batch %s with %d note(s)", self.batch_id, len(segments))
        return self.units()

    async def run_batch_organize(self) -> PhaseReport:
        return await self.scheduler.run_structuring(self.store)

    async def run_batch_design(self, settings: Optional[VisualSettings] = None) -> PhaseReport:
        if settings is not None:
            self.settings = settings
        return await self.scheduler.run_design(self.store, self.settings)

    async def run_batch_paint(self) -> PhaseReport:
        return await self.scheduler.run_rendering(self.store, self.settings)

    async def retry(self, unit_id: str) -> NoteUnit:
        """Re-run only the phase a failed unit failed in."""
        unit = self.store.get(unit_id)
        if unit.stage != Stage.FAILED:
            raise InvalidTransition(f"Note {unit.order} has not failed (stage {unit.stage.name})")

        logger.info("Retrying %s for note %d", unit.failed_phase.value, unit.order)
        if unit.failed_phase == Phase.STRUCTURING:
            await self.scheduler.run_structuring(self.store, [unit_id])
        else:
            await self.scheduler.run_rendering(self.store, self.settings, [unit_id])
        return self.store.get(unit_id)

    async def retry_all_failed(self) -> List[PhaseReport]:
        reports = []
        for phase in (Phase.STRUCTURING, Phase.RENDERING):
            if any(u.failed_phase == phase for u in self.store.in_stage(Stage.FAILED)):
                reports.append(await self.scheduler.retry_failed(self.store, phase, self.settings))
        return reports

    async def run(self, text: str) -> List[NoteUnit]:
        """Run every phase back to back without stopping for review."""
        await self.run_split(text)
        await self.run_batch_organize()
        await self.run_batch_design()
        await self.run_batch_paint()
        return self.units()

    # -- edits -------------------------------------------------------------

    def edit_structure(self, unit_id: str, outline: NoteOutline) -> NoteUnit:
        return self.store.edit_structure(unit_id, outline)

    def edit_prompt(self, unit_id: str, prompt: str) -> NoteUnit:
        return self.store.edit_prompt(unit_id, prompt)

    def add_module(self, unit_id: str, heading: str = "新模块", content: str = "") -> NoteUnit:
        return self.store.add_module(unit_id, heading, content)

    def update_module(
        self,
        unit_id: str,
        module_id: str,
        heading: Optional[str] = None,
        content: Optional[str] = None,
    ) -> NoteUnit:
        return self.store.update_module(unit_id, module_id, heading=heading, content=content)

    def delete_module(self, unit_id: str, module_id: str) -> NoteUnit:
        return self.store.delete_module(unit_id, module_id)
