from __future__ import annotations

import unittest

from core.enums import FieldName, Step
from core.models import SubmissionResult
from slackbot.blocks import action_id, parse_action_id
from slackbot.message_templates import build_step_prompt, build_submitted_message, build_summary_message


def _action_ids(message: dict) -> list[str]:
    output: list[str] = []
    for block in message.get("blocks", []):
        if block["type"] == "actions":
            output.extend(element["action_id"] for element in block["elements"])
    return output


class ActionIdTest(unittest.TestCase):
    def test_round_trip_with_step_and_suffix(self) -> None:
        self.assertEqual(parse_action_id(action_id("select", "priority", "high")), ("select", "priority"))
        self.assertEqual(parse_action_id(action_id("submit")), ("submit", None))
        self.assertIsNone(parse_action_id("other:select:priority"))
        self.assertIsNone(parse_action_id(""))


class StepPromptTest(unittest.TestCase):
    def test_priority_buttons_have_unique_action_ids(self) -> None:
        ids = _action_ids(build_step_prompt(Step.PRIORITY, {})[0])
        self.assertEqual(len(ids), len(set(ids)))
        self.assertIn("kb:select:priority:urgent", ids)
        self.assertEqual(ids[-1], "kb:cancel")

    def test_task_type_prompt_offers_select(self) -> None:
        blocks = build_step_prompt(Step.TASK_TYPE, {})[0]["blocks"]
        select = blocks[1]["elements"][0]
        self.assertEqual(select["type"], "static_select")
        self.assertEqual(len(select["options"]), 5)

    def test_branch_wording_and_submit_button(self) -> None:
        data = {FieldName.TASK_TYPE: "Content Edit"}
        message = build_step_prompt(Step.KB_URLS, data, can_submit=True)[0]
        self.assertIn("KB article URLs* to edit", message["text"])
        self.assertIn("kb:submit", _action_ids(message))
        self.assertIn("kb:skip:kb_urls", _action_ids(message))

        plain = build_step_prompt(Step.SUBJECT, data)[0]
        self.assertEqual(_action_ids(plain), [])

    def test_summary_lists_answers_and_file_count(self) -> None:
        text = build_summary_message(
            {
                FieldName.SUBJECT: "Update pricing page",
                FieldName.TASK_TYPE: "Content Edit",
                FieldName.FILES: ["F1", "F2"],
            }
        )[0]["text"]
        self.assertIn("*Subject:* Update pricing page", text)
        self.assertIn("*Priority:* -", text)
        self.assertIn("*Files:* 2", text)
        self.assertNotIn("KB URLs", text)

    def test_summary_shows_apostrophes_plainly(self) -> None:
        text = build_summary_message(
            {
                FieldName.SUBJECT: "Don&#x27;t show &quot;new&quot; &lt;b&gt; &amp; more",
                FieldName.PRODUCT: "Stores",
            }
        )[0]["text"]
        self.assertIn("*Subject:* Don't show \"new\" &lt;b&gt; &amp; more", text)
        self.assertNotIn("&#x27;", text)
        self.assertNotIn("&quot;", text)


class SubmittedMessageTest(unittest.TestCase):
    def test_degraded_result_mentions_fallback(self) -> None:
        result = SubmissionResult(
            subject="Update pricing page",
            task_type="Content Edit",
            priority="High",
            product="Stores",
            description="Update the pricing table.",
            kb_urls="",
            supporting_materials="",
            files=["F1"],
            user_id="U123",
            article_link="",
            request_type="Content Edit",
            urgency_level="Medium",
            feature_name="Update pricing page",
            change_description="Update the pricing table.",
            enrichment_enabled=True,
            enrichment_succeeded=False,
            item_id="1001",
            item_url="https://board.example.com/items/1001",
            failed_files={"F1": "file_not_found"},
        )
        message = build_submitted_message(result)[0]
        self.assertIn("<https://board.example.com/items/1001|View item 1001>", message["text"])
        self.assertIn("1 file(s) could not be attached", message["text"])
        self.assertEqual(message["blocks"][-1]["type"], "context")


if __name__ == "__main__":
    unittest.main()
