import logging
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from .errors import LockedFieldError, UnknownNoteError
from .models import NoteOutline, NoteUnit, Phase, Stage
from .stages import EDITABLE_IN, PROCESSING_STAGES, check_invariants, check_transition, phase_for


logger = logging.getLogger(__name__)

_IMMUTABLE_FIELDS = frozenset({"id", "order", "original_text"})


class NoteStore:
    """
    In-memory set of note units for the current batch, keyed by id.

    All mutation goes through `apply_update`, which swaps in a new unit with
    only the named fields replaced. Each in-flight task owns one unit id, so
    concurrent tasks on the event loop never touch the same entry.
    """

    def __init__(self, units: Optional[Iterable[NoteUnit]] = None) -> None:
        self._units: Dict[str, NoteUnit] = {}
        if units is not None:
            self.replace_all(units)

    def __len__(self) -> int:
        return len(self._units)

    def __contains__(self, unit_id: object) -> bool:
        return unit_id in self._units

    def replace_all(self, units: Iterable[NoteUnit]) -> None:
        """Discard the current batch and start over with `units`."""
        units = list(units)
        orders = sorted(u.order for u in units)
        if orders != list(range(1, len(units) + 1)):
            raise ValueError(f"Unit orders must be 1..{len(units)}, got {orders}")
        for unit in units:
            check_invariants(unit)
        self._units = {u.id: u for u in units}

    def get(self, unit_id: str) -> NoteUnit:
        try:
            return self._units[unit_id]
        except KeyError:
            raise UnknownNoteError(f"Unknown note id {unit_id!r}") from None

    def units(self) -> List[NoteUnit]:
        return sorted(self._units.values(), key=lambda u: u.order)

    def in_stage(self, *stages: Stage) -> List[NoteUnit]:
        return [u for u in self.units() if u.stage in stages]

    def apply_update(self, unit_id: str, **fields) -> NoteUnit:
        immutable = _IMMUTABLE_FIELDS.intersection(fields)
        if immutable:
            raise ValueError(f"Fields {sorted(immutable)} cannot be changed")

        updated = replace(self.get(unit_id), **fields)
        check_invariants(updated)
        self._units[unit_id] = updated
        logger.debug("Updated note %s: %s", unit_id[:8], sorted(fields))
        return updated

    def transition(self, unit_id: str, target: Stage, **fields) -> NoteUnit:
        """
        Move a unit to `target`, keeping `is_processing`, `error` and
        `failed_phase` consistent with the new stage.
        """
        unit = self.get(unit_id)
        check_transition(unit, target)

        fields["is_processing"] = target in PROCESSING_STAGES
        if target == Stage.FAILED:
            fields["failed_phase"] = phase_for(unit.stage)
            fields.setdefault("error", "unknown failure")
        else:
            fields["failed_phase"] = None
            if target in PROCESSING_STAGES:
                fields["error"] = None

        return self.apply_update(unit_id, stage=target, **fields)

    # -- edits from the review screens --

    def edit_structure(self, unit_id: str, outline: NoteOutline) -> NoteUnit:
        self._check_editable(unit_id, "structure")
        return self.apply_update(unit_id, structure=outline)

    def edit_prompt(self, unit_id: str, prompt: str) -> NoteUnit:
        self._check_editable(unit_id, "generated_prompt")
        return self.apply_update(unit_id, generated_prompt=prompt)

    def add_module(self, unit_id: str, heading: str = "新模块", content: str = "") -> NoteUnit:
        outline = self._structure_for_edit(unit_id)
        return self.apply_update(unit_id, structure=outline.with_module_added(heading, content))

    def update_module(
        self,
        unit_id: str,
        module_id: str,
        heading: Optional[str] = None,
        content: Optional[str] = None,
    ) -> NoteUnit:
        outline = self._structure_for_edit(unit_id)
        return self.apply_update(
            unit_id, structure=outline.with_module_updated(module_id, heading, content)
        )

    def delete_module(self, unit_id: str, module_id: str) -> NoteUnit:
        outline = self._structure_for_edit(unit_id)
        return self.apply_update(unit_id, structure=outline.without_module(module_id))

    def _structure_for_edit(self, unit_id: str) -> NoteOutline:
        self._check_editable(unit_id, "structure")
        outline = self.get(unit_id).structure
        if outline is None:
            raise LockedFieldError(f"Note {unit_id!r} has no structure to edit")
        return outline

    def _check_editable(self, unit_id: str, field_name: str) -> None:
        unit = self.get(unit_id)
        allowed = EDITABLE_IN[field_name]
        if unit.stage != allowed:
            raise LockedFieldError(
                f"Note {unit.order}: {field_name} can only be edited in {allowed.name}, "
                f"unit is in {unit.stage.name}"
            )


def failed_in(store: NoteStore, phase: Phase) -> List[NoteUnit]:
    return [u for u in store.in_stage(Stage.FAILED) if u.failed_phase == phase]
