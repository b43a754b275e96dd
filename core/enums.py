from __future__ import annotations

from enum import Enum


class Step(str, Enum):
    START = "start"
    SUBJECT = "subject"
    TASK_TYPE = "task_type"
    PRIORITY = "priority"
    PRODUCT = "product"
    DESCRIPTION = "description"
    KB_URLS = "kb_urls"
    SUPPORTING_MATERIALS = "supporting_materials"
    FILES = "files"
    SUBMIT = "submit"


class InputKind(str, Enum):
    TEXT = "text"
    SELECTION = "selection"
    FILES = "files"
    SKIP = "skip"
    SUBMIT = "submit"


class TaskType(str, Enum):
    NEW_FEATURE = "New Feature"
    CONTENT_UPDATE = "Content Update"
    FEATURE_REQUEST = "Feature Request"
    CONTENT_FLAG = "Content Flag"
    CONTENT_EDIT = "Content Edit"


class Priority(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    URGENT = "Urgent"


TASK_TYPES = tuple(item.value for item in TaskType)
PRIORITIES = tuple(item.value for item in Priority)

DEFAULT_URGENCY = Priority.MEDIUM.value


class FieldName:
    SUBJECT = "subject"
    TASK_TYPE = "task_type"
    PRIORITY = "priority"
    PRODUCT = "product"
    DESCRIPTION = "description"
    KB_URLS = "kb_urls"
    SUPPORTING_MATERIALS = "supporting_materials"
    FILES = "files"

    REQUIRED_FIELDS = (
        SUBJECT,
        TASK_TYPE,
        PRIORITY,
        PRODUCT,
        DESCRIPTION,
    )

    OPTIONAL_FIELDS = (
        KB_URLS,
        SUPPORTING_MATERIALS,
    )
