from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from core.enums import FieldName, InputKind, Step, TaskType


@dataclass(slots=True, frozen=True)
class Transition:
    field: str | None
    advance: bool = True
    append: bool = False


_TEXT_ONLY = (InputKind.TEXT,)
_CHOICE = (InputKind.SELECTION, InputKind.TEXT)
_OPTIONAL_TEXT = (InputKind.TEXT, InputKind.SKIP)

TRANSITIONS: dict[tuple[Step, InputKind], Transition] = {
    **{(Step.SUBJECT, kind): Transition(FieldName.SUBJECT) for kind in _TEXT_ONLY},
    **{(Step.TASK_TYPE, kind): Transition(FieldName.TASK_TYPE) for kind in _CHOICE},
    **{(Step.PRIORITY, kind): Transition(FieldName.PRIORITY) for kind in _CHOICE},
    **{(Step.PRODUCT, kind): Transition(FieldName.PRODUCT) for kind in _CHOICE},
    **{(Step.DESCRIPTION, kind): Transition(FieldName.DESCRIPTION) for kind in _TEXT_ONLY},
    **{(Step.KB_URLS, kind): Transition(FieldName.KB_URLS) for kind in _OPTIONAL_TEXT},
    **{
        (Step.SUPPORTING_MATERIALS, kind): Transition(FieldName.SUPPORTING_MATERIALS)
        for kind in _OPTIONAL_TEXT
    },
    (Step.FILES, InputKind.FILES): Transition(FieldName.FILES, advance=False, append=True),
    (Step.FILES, InputKind.SKIP): Transition(None),
    (Step.SUBMIT, InputKind.FILES): Transition(FieldName.FILES, advance=False, append=True),
}

# Steps asked between PRODUCT and SUPPORTING_MATERIALS, per task type.
BRANCH_STEPS: dict[str, tuple[Step, ...]] = {
    TaskType.NEW_FEATURE.value: (Step.DESCRIPTION,),
    TaskType.FEATURE_REQUEST.value: (Step.DESCRIPTION,),
    TaskType.CONTENT_UPDATE.value: (Step.KB_URLS, Step.DESCRIPTION),
    TaskType.CONTENT_FLAG.value: (Step.KB_URLS, Step.DESCRIPTION),
    TaskType.CONTENT_EDIT.value: (Step.DESCRIPTION, Step.KB_URLS),
}

_LINEAR_NEXT: dict[Step, Step] = {
    Step.START: Step.SUBJECT,
    Step.SUBJECT: Step.TASK_TYPE,
    Step.TASK_TYPE: Step.PRIORITY,
    Step.PRIORITY: Step.PRODUCT,
    Step.SUPPORTING_MATERIALS: Step.FILES,
    Step.FILES: Step.SUBMIT,
}

OPTIONAL_STEPS = frozenset({Step.KB_URLS, Step.SUPPORTING_MATERIALS})
FILE_STEPS = frozenset({Step.FILES, Step.SUBMIT})


def transition_for(step: Step, kind: InputKind) -> Transition | None:
    return TRANSITIONS.get((step, kind))


def has_handler(step: Step) -> bool:
    return any(key[0] == step for key in TRANSITIONS) or step == Step.SUBMIT


def branch_for(task_type: Any) -> tuple[Step, ...]:
    return BRANCH_STEPS.get(str(task_type or ""), (Step.DESCRIPTION,))


def next_step(current: Step, data: dict[str, Any]) -> Step:
    if current in _LINEAR_NEXT:
        return _LINEAR_NEXT[current]
    if current == Step.SUBMIT:
        return Step.SUBMIT

    branch = branch_for(data.get(FieldName.TASK_TYPE))
    if current == Step.PRODUCT:
        return branch[0]
    if current in branch:
        index = branch.index(current)
        if index + 1 < len(branch):
            return branch[index + 1]
    return Step.SUPPORTING_MATERIALS


def remaining_steps(current: Step, data: dict[str, Any]) -> list[Step]:
    steps: list[Step] = []
    step = current
    while step != Step.SUBMIT:
        step = next_step(step, data)
        steps.append(step)
    return steps


def can_submit(current: Step, data: dict[str, Any]) -> bool:
    """Submission is allowed once only optional steps are left to answer."""
    if current in FILE_STEPS:
        return True
    if current not in OPTIONAL_STEPS:
        return False
    if any(not str(data.get(field) or "").strip() for field in FieldName.REQUIRED_FIELDS):
        return False
    pending = [step for step in remaining_steps(current, data) if step not in FILE_STEPS]
    return all(step in OPTIONAL_STEPS for step in pending)
