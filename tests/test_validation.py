"""
Per-step validation rules.
Run from project root: python -m pytest tests/test_validation.py -v
"""
import unittest

from services.validation import (
    field_label,
    is_valid_email,
    is_valid_phone,
    normalize_phone,
    password_score,
    validate_step,
)
from tests.support import account_form, licensed_form


class TestFieldChecks(unittest.TestCase):
    def test_uk_mobile_numbers(self):
        self.assertTrue(is_valid_phone("07911 123456"))
        self.assertTrue(is_valid_phone("(07911) 123-456"))
        self.assertFalse(is_valid_phone("01911234567"))
        self.assertFalse(is_valid_phone("0791112345"))
        self.assertFalse(is_valid_phone("+447911123456"))

    def test_normalize_phone(self):
        self.assertEqual(normalize_phone(" 07911-123 456 "), "07911123456")

    def test_email_pattern(self):
        self.assertTrue(is_valid_email("sam@example.com"))
        self.assertFalse(is_valid_email("sam@example"))
        self.assertFalse(is_valid_email("sam example@x.com"))

    def test_password_score(self):
        self.assertEqual(password_score(""), 0)
        self.assertEqual(password_score("password"), 2)
        self.assertEqual(password_score("Str0ng!Pass"), 5)

    def test_field_labels(self):
        self.assertEqual(field_label("email"), "Email Address")
        self.assertEqual(field_label("not_a_field"), "not_a_field")


class TestAccountStep(unittest.TestCase):
    def test_valid(self):
        self.assertEqual(validate_step(1, account_form()), {})

    def test_required_fields(self):
        errors = validate_step(1, account_form(first_name="", area=" ", password="", confirm_password=""))
        self.assertEqual(set(errors), {"first_name", "area", "password"})

    def test_confirmation_mismatch_keyed_to_confirm_field(self):
        errors = validate_step(1, account_form(confirm_password="Different1!"))
        self.assertEqual(list(errors), ["confirm_password"])

    def test_weak_password(self):
        errors = validate_step(1, account_form(password="weakpass", confirm_password="weakpass"))
        self.assertIn("password", errors)

    def test_pluggable_strength_evaluator(self):
        form = account_form(password="weakpass", confirm_password="weakpass")
        self.assertEqual(validate_step(1, form, password_strength=lambda _: 5), {})

    def test_invalid_phone_message_mentions_prefix(self):
        errors = validate_step(1, account_form(phone="01911234567"))
        self.assertIn("07", errors["phone"])


class TestLicensedSteps(unittest.TestCase):
    def test_licensed_steps_skipped_for_unlicensed(self):
        form = account_form(is_licensed_driver=False)
        for step in range(2, 8):
            self.assertEqual(validate_step(step, form), {})

    def test_badge_step(self):
        errors = validate_step(2, licensed_form(badge_number="", issuing_council=""))
        self.assertEqual(set(errors), {"badge_number", "issuing_council"})

    def test_license_step(self):
        errors = validate_step(3, licensed_form(license_expiry=""))
        self.assertEqual(set(errors), {"license_expiry"})

    def test_documents_required(self):
        errors = validate_step(4, licensed_form())
        self.assertEqual(set(errors), {"badge_document", "driving_license_document"})

    def test_existing_document_url_satisfies_requirement(self):
        errors = validate_step(
            4,
            licensed_form(),
            staged_documents={"driving_license_document"},
            existing_documents={"badge_document_url": "https://files.example.com/badge.pdf"},
        )
        self.assertEqual(errors, {})

    def test_vehicle_ownership_step_has_no_rules(self):
        self.assertEqual(validate_step(5, licensed_form()), {})

    def test_vehicle_details_with_own_vehicle(self):
        errors = validate_step(6, licensed_form(has_own_vehicle=True, vehicle_make="Toyota"))
        self.assertEqual(
            set(errors), {"vehicle_model", "vehicle_reg", "insurance_expiry", "insurance_document"}
        )

    def test_vehicle_details_optional_documents(self):
        form = licensed_form(
            has_own_vehicle=True,
            vehicle_make="Toyota",
            vehicle_model="Prius",
            vehicle_reg="AB12 CDE",
            insurance_expiry="2026-12-01",
        )
        self.assertEqual(validate_step(6, form, staged_documents={"insurance_document"}), {})

    def test_review_confirmation(self):
        self.assertIn("confirmed", validate_step(7, licensed_form(confirmed=False)))
        self.assertEqual(validate_step(7, licensed_form()), {})


if __name__ == "__main__":
    unittest.main()
