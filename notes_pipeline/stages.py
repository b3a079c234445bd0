"""
Stage machine for note units.

Units move forward one stage at a time. The only way back is a retry of the
phase a unit failed in: `FAILED -> ORGANIZING` after a structuring failure and
`FAILED -> PAINTING` after a rendering failure.
"""

from typing import Dict, FrozenSet, Optional

from .errors import InvalidTransition
from .models import NoteUnit, Phase, Stage


_TRANSITIONS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.CREATED: frozenset({Stage.ORGANIZING}),
    Stage.ORGANIZING: frozenset({Stage.REVIEW_STRUCTURE, Stage.FAILED}),
    Stage.REVIEW_STRUCTURE: frozenset({Stage.DESIGNING}),
    Stage.DESIGNING: frozenset({Stage.REVIEW_PROMPT}),
    Stage.REVIEW_PROMPT: frozenset({Stage.PAINTING}),
    Stage.PAINTING: frozenset({Stage.DONE, Stage.FAILED}),
    Stage.DONE: frozenset(),
    Stage.FAILED: frozenset({Stage.ORGANIZING, Stage.PAINTING}),
}

PROCESSING_STAGES = frozenset({Stage.ORGANIZING, Stage.PAINTING})

PHASE_ENTRY: Dict[Phase, Stage] = {
    Phase.STRUCTURING: Stage.ORGANIZING,
    Phase.RENDERING: Stage.PAINTING,
}

# Stage in which each editable field may still be changed.
EDITABLE_IN: Dict[str, Stage] = {
    "structure": Stage.REVIEW_STRUCTURE,
    "generated_prompt": Stage.REVIEW_PROMPT,
}


def phase_for(stage: Stage) -> Optional[Phase]:
    for phase, entry in PHASE_ENTRY.items():
        if entry == stage:
            return phase
    return None


def can_transition(unit: NoteUnit, target: Stage) -> bool:
    if target not in _TRANSITIONS[unit.stage]:
        return False
    if unit.stage == Stage.FAILED:
        return unit.failed_phase is not None and PHASE_ENTRY[unit.failed_phase] == target
    return True


def check_transition(unit: NoteUnit, target: Stage) -> None:
    if not can_transition(unit, target):
        detail = f" (failed in {unit.failed_phase.value})" if unit.failed_phase else ""
        raise InvalidTransition(
            f"Note {unit.order} cannot move from {unit.stage.name}{detail} to {target.name}"
        )


def check_invariants(unit: NoteUnit) -> None:
    """Raise ValueError when a unit's fields contradict its stage."""
    if unit.is_processing != (unit.stage in PROCESSING_STAGES):
        raise ValueError(
            f"Note {unit.order}: is_processing={unit.is_processing} in stage {unit.stage.name}"
        )

    if unit.stage == Stage.FAILED:
        if unit.failed_phase is None:
            raise ValueError(f"Note {unit.order}: failed without a phase")
        structured = unit.failed_phase == Phase.RENDERING
    else:
        structured = Stage.REVIEW_STRUCTURE <= unit.stage <= Stage.DONE

    if unit.structure is not None and not structured:
        raise ValueError(f"Note {unit.order}: structure set in stage {unit.stage.name}")
    if unit.generated_prompt is not None and unit.structure is None:
        raise ValueError(f"Note {unit.order}: prompt set without a structure")
    if unit.final_image is not None and unit.generated_prompt is None:
        raise ValueError(f"Note {unit.order}: image set without a prompt")
