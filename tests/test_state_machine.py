from __future__ import annotations

import unittest

from core.enums import FieldName, InputKind, Step, TaskType
from intake.state_machine import (
    BRANCH_STEPS,
    can_submit,
    has_handler,
    next_step,
    remaining_steps,
    transition_for,
)


def _data(task_type: str, **extra: str) -> dict[str, str]:
    data = {
        FieldName.SUBJECT: "Update pricing page",
        FieldName.TASK_TYPE: task_type,
        FieldName.PRIORITY: "High",
        FieldName.PRODUCT: "Stores",
    }
    data.update(extra)
    return data


class StateMachineTest(unittest.TestCase):
    def test_linear_prefix(self) -> None:
        self.assertEqual(next_step(Step.START, {}), Step.SUBJECT)
        self.assertEqual(next_step(Step.SUBJECT, {}), Step.TASK_TYPE)
        self.assertEqual(next_step(Step.TASK_TYPE, {}), Step.PRIORITY)
        self.assertEqual(next_step(Step.PRIORITY, {}), Step.PRODUCT)
        self.assertEqual(next_step(Step.SUPPORTING_MATERIALS, {}), Step.FILES)
        self.assertEqual(next_step(Step.FILES, {}), Step.SUBMIT)
        self.assertEqual(next_step(Step.SUBMIT, {}), Step.SUBMIT)

    def test_every_task_type_has_its_own_branch(self) -> None:
        self.assertEqual(set(BRANCH_STEPS), {item.value for item in TaskType})
        self.assertEqual(next_step(Step.PRODUCT, _data("New Feature")), Step.DESCRIPTION)
        self.assertEqual(next_step(Step.PRODUCT, _data("Content Flag")), Step.KB_URLS)
        self.assertEqual(
            remaining_steps(Step.PRODUCT, _data("Content Update")),
            [Step.KB_URLS, Step.DESCRIPTION, Step.SUPPORTING_MATERIALS, Step.FILES, Step.SUBMIT],
        )
        self.assertEqual(
            remaining_steps(Step.PRODUCT, _data("Content Edit")),
            [Step.DESCRIPTION, Step.KB_URLS, Step.SUPPORTING_MATERIALS, Step.FILES, Step.SUBMIT],
        )

    def test_transition_table(self) -> None:
        files = transition_for(Step.FILES, InputKind.FILES)
        self.assertIsNotNone(files)
        self.assertFalse(files.advance)
        self.assertTrue(files.append)
        self.assertIsNotNone(transition_for(Step.TASK_TYPE, InputKind.SELECTION))
        self.assertIsNotNone(transition_for(Step.KB_URLS, InputKind.SKIP))
        self.assertIsNone(transition_for(Step.SUBJECT, InputKind.SKIP))
        self.assertIsNone(transition_for(Step.DESCRIPTION, InputKind.FILES))
        self.assertFalse(has_handler(Step.START))
        self.assertTrue(has_handler(Step.SUBMIT))

    def test_can_submit_once_only_optional_steps_remain(self) -> None:
        edit = _data("Content Edit", description="Refresh the fee table.")
        self.assertTrue(can_submit(Step.KB_URLS, edit))
        self.assertFalse(can_submit(Step.DESCRIPTION, _data("Content Edit")))

        flag = _data("Content Flag")
        self.assertFalse(can_submit(Step.KB_URLS, flag))
        self.assertTrue(can_submit(Step.FILES, flag))


if __name__ == "__main__":
    unittest.main()
