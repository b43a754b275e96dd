from __future__ import annotations

import html
from typing import Any

from core.enums import PRIORITIES, TASK_TYPES, FieldName, Step, TaskType
from core.models import SubmissionResult
from slackbot.blocks import action_id, actions, button, context, message, section, static_select

FIELD_LABELS = {
    FieldName.SUBJECT: "Subject",
    FieldName.TASK_TYPE: "Task Type",
    FieldName.PRIORITY: "Priority",
    FieldName.PRODUCT: "Product",
    FieldName.DESCRIPTION: "Description",
    FieldName.KB_URLS: "KB URLs",
    FieldName.SUPPORTING_MATERIALS: "Supporting Materials",
    FieldName.FILES: "Files",
}

SUBMIT_TEXT = "submit"
DONE_TEXT = "done"
CANCEL_TEXT = "cancel"

_DEFAULT_PROMPTS: dict[Step, str] = {
    Step.SUBJECT: "What's the *Subject* for your KB request?",
    Step.TASK_TYPE: "✅ Got it. What's the *Task Type*?",
    Step.PRIORITY: "✅ Thanks. What *Priority* should this have?",
    Step.PRODUCT: "✅ Noted. Which *Product* is this for?",
    Step.DESCRIPTION: "✅ Great. Please provide a *Description* (at least 10 characters).",
    Step.KB_URLS: "Paste the *KB article URLs* this concerns, or reply `none`.",
    Step.SUPPORTING_MATERIALS: (
        "Any *Supporting Materials*? Links to designs, tickets or docs. Reply `none` to skip."
    ),
    Step.FILES: (
        "✅ Almost done! Upload *screenshots or files* now. "
        f"Reply `{DONE_TEXT}` when finished, or `{SUBMIT_TEXT}` to send the request."
    ),
}

# Wording of the branch questions asked after the product, per task type.
_BRANCH_PROMPTS: dict[tuple[str, Step], str] = {
    (TaskType.NEW_FEATURE.value, Step.DESCRIPTION): (
        "✅ Great. Describe the *new feature*: what it does, who gets it and when it launches."
    ),
    (TaskType.FEATURE_REQUEST.value, Step.DESCRIPTION): (
        "✅ Great. Describe the *feature request* and the problem it solves for users."
    ),
    (TaskType.CONTENT_UPDATE.value, Step.KB_URLS): (
        "Which *KB articles* need updating? Paste their URLs, or reply `none` if you're not sure."
    ),
    (TaskType.CONTENT_UPDATE.value, Step.DESCRIPTION): (
        "✅ Thanks. What changed? Describe the *update* the articles need."
    ),
    (TaskType.CONTENT_FLAG.value, Step.KB_URLS): (
        "Which *KB article* are you flagging? Paste its URL, or reply `none`."
    ),
    (TaskType.CONTENT_FLAG.value, Step.DESCRIPTION): (
        "✅ Thanks. What's *wrong* with the content? Describe the issue you found."
    ),
    (TaskType.CONTENT_EDIT.value, Step.DESCRIPTION): (
        "✅ Great. Describe the *edit* you need: what should be changed and how."
    ),
    (TaskType.CONTENT_EDIT.value, Step.KB_URLS): (
        "Paste the *KB article URLs* to edit, or reply `none`. "
        f"You can also reply `{SUBMIT_TEXT}` now."
    ),
}


def prompt_text(step: Step, data: dict[str, Any]) -> str:
    task_type = str(data.get(FieldName.TASK_TYPE) or "")
    return _BRANCH_PROMPTS.get((task_type, step), _DEFAULT_PROMPTS.get(step, ""))


def build_welcome_message(data: dict[str, Any] | None = None) -> list[dict[str, Any]]:
    intro = "📝 Let's get started with your KB request."
    return [message(intro, [section(intro)]), *build_step_prompt(Step.SUBJECT, data or {})]


def build_step_prompt(step: Step, data: dict[str, Any], can_submit: bool = False) -> list[dict[str, Any]]:
    if step == Step.SUBMIT:
        return build_summary_message(data)

    text = prompt_text(step, data)
    blocks: list[dict[str, Any]] = [section(text)]
    elements: list[dict[str, Any]] = []
    if step == Step.TASK_TYPE:
        elements.append(static_select("Choose a task type", action_id("select", step.value), list(TASK_TYPES)))
    elif step == Step.PRIORITY:
        elements.extend(
            button(option, action_id("select", step.value, option.lower()), option) for option in PRIORITIES
        )
    elif step in {Step.KB_URLS, Step.SUPPORTING_MATERIALS}:
        elements.append(button("Skip", action_id("skip", step.value), "none"))
    elif step == Step.FILES:
        elements.append(button("Done", action_id("skip", step.value), DONE_TEXT))

    if can_submit or step == Step.FILES:
        elements.append(button("Submit", action_id("submit"), SUBMIT_TEXT, style="primary"))
    if elements:
        elements.append(button("Cancel", action_id("cancel"), CANCEL_TEXT, style="danger"))
        blocks.append(actions(elements))
    return [message(text, blocks)]


def build_invalid_answer_message(
    error_message: str,
    step: Step,
    data: dict[str, Any],
    can_submit: bool = False,
) -> list[dict[str, Any]]:
    text = f"❌ {error_message}"
    return [message(text, [section(text)]), *build_step_prompt(step, data, can_submit)]


def build_unexpected_input_message(step: Step, data: dict[str, Any], can_submit: bool = False) -> list[dict[str, Any]]:
    if step in {Step.FILES, Step.SUBMIT}:
        text = "🤔 I was expecting files here."
    else:
        text = "🤔 I can't use that here. Please answer the question below."
    return [message(text), *build_step_prompt(step, data, can_submit)]


def build_files_captured_message(added: int, total: int) -> list[dict[str, Any]]:
    text = f"👍 Captured {added} file(s), {total} in total. Upload more or reply `{SUBMIT_TEXT}`."
    blocks = [
        section(text),
        actions([button("Submit", action_id("submit"), SUBMIT_TEXT, style="primary")]),
    ]
    return [message(text, blocks)]


def _display(value: str) -> str:
    # Slack mrkdwn only needs &, < and > escaped
    return html.escape(html.unescape(value), quote=False)


def _summary_lines(data: dict[str, Any]) -> list[str]:
    lines: list[str] = []
    for field in FieldName.REQUIRED_FIELDS + FieldName.OPTIONAL_FIELDS:
        value = str(data.get(field) or "").strip()
        if not value and field in FieldName.OPTIONAL_FIELDS:
            continue
        lines.append(f"*{FIELD_LABELS[field]}:* {_display(value) or '-'}")
    files = data.get(FieldName.FILES) or []
    lines.append(f"*{FIELD_LABELS[FieldName.FILES]}:* {len(files)}")
    return lines


def build_summary_message(data: dict[str, Any]) -> list[dict[str, Any]]:
    text = "Here's your request. Upload more files, or press *Submit* to send it.\n" + "\n".join(
        _summary_lines(data)
    )
    blocks = [
        section(text),
        actions(
            [
                button("Submit", action_id("submit"), SUBMIT_TEXT, style="primary"),
                button("Cancel", action_id("cancel"), CANCEL_TEXT, style="danger"),
            ]
        ),
    ]
    return [message(text, blocks)]


def build_submitting_message() -> list[dict[str, Any]]:
    return [message("⏳ Submitting your request...")]


def build_submitted_message(result: SubmissionResult) -> list[dict[str, Any]]:
    lines = ["🎉 Your KB request has been submitted to the board!"]
    if result.item_url:
        lines.append(f"<{result.item_url}|View item {result.item_id}>")
    elif result.item_id:
        lines.append(f"Item id: {result.item_id}")
    if result.failed_files:
        lines.append(f"⚠️ {len(result.failed_files)} file(s) could not be attached. Please add them on the board.")
    text = "\n".join(lines)
    blocks = [section(text)]
    if result.degraded:
        blocks.append(context("Automatic analysis was unavailable; your answers were used as-is."))
    return [message(text, blocks)]


def build_cancelled_message(command: str = "/kb-request") -> list[dict[str, Any]]:
    return [message(f"👋 Request cancelled. Type `{command}` to start again.")]


def build_validation_restart_message(error_message: str, command: str = "/kb-request") -> dict[str, Any]:
    return message(f"❌ {error_message}\n\n🔄 Please try again from the beginning by typing `{command}`")


def build_service_unavailable_message(command: str = "/kb-request") -> dict[str, Any]:
    return message(
        f"🛠️ Service temporarily unavailable. Please try again later with `{command}`."
    )


def build_generic_error_message(command: str = "/kb-request") -> dict[str, Any]:
    return message(f"⚠️ Sorry, something went wrong. Please try again with `{command}`.")


def build_dm_opened_message() -> dict[str, Any]:
    return {"response_type": "ephemeral", "text": "📬 I've sent you a direct message to collect your request."}
