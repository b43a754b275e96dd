from __future__ import annotations

import unittest

from core.enums import FieldName
from core.errors import IncompleteRequest, ValidationError
from intake.validator import (
    is_none_sentinel,
    validate_enum,
    validate_field,
    validate_file_reference_list,
    validate_identifier_format,
    validate_request,
    validate_text,
)


class ValidateTextTest(unittest.TestCase):
    def test_trims_and_escapes_markup(self) -> None:
        value = validate_text("  <b>Fix & ship</b> \"now\" ", "Subject")
        self.assertEqual(value, "&lt;b&gt;Fix &amp; ship&lt;/b&gt; &quot;now&quot;")
        for char in "<>\"'":
            self.assertNotIn(char, value)

    def test_plain_text_is_returned_trimmed(self) -> None:
        self.assertEqual(validate_text("  Update pricing page \n", "Subject"), "Update pricing page")

    def test_too_short_names_field(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_text(" ab ", "Subject", min_length=3, max_length=200)
        self.assertEqual(ctx.exception.field, "Subject")
        self.assertIn("at least 3", ctx.exception.message)

    def test_too_long_names_field(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_text("x" * 101, "Product", min_length=2, max_length=100)
        self.assertEqual(ctx.exception.field, "Product")
        self.assertIn("cannot exceed 100", ctx.exception.message)

    def test_length_bounds_apply_to_trimmed_value(self) -> None:
        self.assertEqual(validate_text("   abc   ", "Subject", min_length=3, max_length=3), "abc")

    def test_missing_required_and_optional(self) -> None:
        with self.assertRaises(ValidationError):
            validate_text(None, "Subject")
        with self.assertRaises(ValidationError):
            validate_text("   ", "Subject")
        self.assertEqual(validate_text(None, "KB URLs", required=False), "")
        self.assertEqual(validate_text("  ", "KB URLs", required=False), "")


class OtherValidatorsTest(unittest.TestCase):
    def test_validate_enum_returns_canonical_member(self) -> None:
        allowed = ("Content Edit", "New Feature")
        self.assertEqual(validate_enum("content edit", allowed, "Task Type"), "Content Edit")
        with self.assertRaises(ValidationError) as ctx:
            validate_enum("Bug", allowed, "Task Type")
        self.assertIn("must be one of", ctx.exception.message)

    def test_validate_identifier_format(self) -> None:
        self.assertEqual(validate_identifier_format(" U123ABC "), "U123ABC")
        self.assertEqual(validate_identifier_format("W0ENTERPRISE"), "W0ENTERPRISE")
        for bad in ("", None, "C123", "U-123", "bob"):
            with self.assertRaises(ValidationError):
                validate_identifier_format(bad)

    def test_validate_file_reference_list(self) -> None:
        self.assertEqual(validate_file_reference_list(None), [])
        self.assertEqual(validate_file_reference_list([]), [])
        self.assertEqual(validate_file_reference_list([" F1 ", "F2"]), ["F1", "F2"])
        with self.assertRaises(ValidationError) as ctx:
            validate_file_reference_list(["F1", ""])
        self.assertIn("File 2", ctx.exception.message)
        with self.assertRaises(ValidationError):
            validate_file_reference_list("F1")

    def test_validate_field_uses_registered_rules(self) -> None:
        self.assertEqual(validate_field(FieldName.PRIORITY, "high"), "High")
        with self.assertRaises(ValidationError) as ctx:
            validate_field(FieldName.DESCRIPTION, "too short")
        self.assertEqual(ctx.exception.field, FieldName.DESCRIPTION)
        self.assertIn("Description", ctx.exception.message)
        self.assertEqual(validate_field(FieldName.KB_URLS, ""), "")

    def test_field_key_is_reported_separately_from_label(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_field(FieldName.PRIORITY, "bogus")
        self.assertEqual(ctx.exception.field, "priority")
        self.assertTrue(ctx.exception.message.startswith("Priority must be one of"))
        with self.assertRaises(ValidationError) as ctx:
            validate_field(FieldName.SUBJECT, "ab")
        self.assertEqual(ctx.exception.field, "subject")
        with self.assertRaises(ValidationError) as ctx:
            validate_identifier_format("bob")
        self.assertEqual(ctx.exception.field, "user_id")
        with self.assertRaises(ValidationError) as ctx:
            validate_file_reference_list([""])
        self.assertEqual(ctx.exception.field, FieldName.FILES)

    def test_none_sentinels(self) -> None:
        for text in ("none", " None ", "N/A", "-", "skip"):
            self.assertTrue(is_none_sentinel(text))
        self.assertFalse(is_none_sentinel("https://support.example.com/a"))


class ValidateRequestTest(unittest.TestCase):
    def test_incomplete_request_lists_missing_fields(self) -> None:
        with self.assertRaises(IncompleteRequest) as ctx:
            validate_request({FieldName.SUBJECT: "Update pricing page", FieldName.TASK_TYPE: "Content Edit"})
        self.assertEqual(ctx.exception.missing, ["Priority", "Product", "Description"])

    def test_complete_request_keeps_escaped_values(self) -> None:
        validated = validate_request(
            {
                FieldName.SUBJECT: "Fees &amp; pricing",
                FieldName.TASK_TYPE: "Content Edit",
                FieldName.PRIORITY: "High",
                FieldName.PRODUCT: "Stores",
                FieldName.DESCRIPTION: "Refresh the fee table for 2026.",
                FieldName.FILES: ["F1"],
            }
        )
        self.assertEqual(validated[FieldName.SUBJECT], "Fees &amp; pricing")
        self.assertEqual(validated[FieldName.KB_URLS], "")
        self.assertEqual(validated[FieldName.FILES], ["F1"])


if __name__ == "__main__":
    unittest.main()
