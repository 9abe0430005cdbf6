from __future__ import annotations

import unittest

from forum_auth.utils.validation import (
    ValidationResult,
    is_strong_password,
    is_valid_email,
    is_valid_username,
    normalize_email,
    validate_registration,
)


class ValidationTests(unittest.TestCase):
    def test_username_rules(self) -> None:
        for username in ("abc", "player_01", "A" * 30, "___"):
            self.assertTrue(is_valid_username(username), username)
        for username in ("ab", "A" * 31, "bad name", "héros", "dash-name", "", None, 42):
            self.assertFalse(is_valid_username(username), username)

    def test_password_needs_every_character_class(self) -> None:
        self.assertTrue(is_strong_password("Str0ng!Pass"))
        self.assertTrue(is_strong_password("Aa1_aaaa"))
        self.assertFalse(is_strong_password("Aa1!aaa"))
        self.assertFalse(is_strong_password("str0ng!pass"))
        self.assertFalse(is_strong_password("STR0NG!PASS"))
        self.assertFalse(is_strong_password("Strong!Pass"))
        self.assertFalse(is_strong_password("Str0ngPass1"))
        self.assertFalse(is_strong_password(None))

    def test_email_rules(self) -> None:
        self.assertTrue(is_valid_email("player@gameforum.net"))
        self.assertTrue(is_valid_email("first.last+tag@mail.gameforum.net"))
        for email in ("plain", "two@@gameforum.net", "no-domain@", "@gameforum.net", "space in@gameforum.net", "", None):
            self.assertFalse(is_valid_email(email), email)

    def test_normalize_email_lowercases_and_strips(self) -> None:
        self.assertEqual(normalize_email("  Player@GameForum.NET "), "player@gameforum.net")

    def test_registration_passes_with_valid_fields(self) -> None:
        result = validate_registration("player_one", "player@gameforum.net", "Str0ng!Pass", "Str0ng!Pass")
        self.assertIsInstance(result, ValidationResult)
        self.assertTrue(result.passed)
        self.assertEqual(result.errors, ())

    def test_registration_reports_every_violation(self) -> None:
        result = validate_registration("x", "nope", "short", "other")
        self.assertFalse(result.passed)
        self.assertEqual(
            result.errors,
            ("invalid_username", "invalid_email", "weak_password", "password_mismatch"),
        )

    def test_confirmation_is_optional(self) -> None:
        self.assertTrue(validate_registration("player_one", "player@gameforum.net", "Str0ng!Pass").passed)


if __name__ == "__main__":
    unittest.main()
