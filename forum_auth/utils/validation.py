from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Sequence

from email_validator import EmailNotValidError, validate_email

USERNAME_PATTERN = re.compile(r"[a-zA-Z0-9_]{3,30}")
MIN_PASSWORD_LENGTH = 8
# lower, upper, digit, special (underscore counts as special)
PASSWORD_CLASSES = tuple(
    re.compile(pattern, re.ASCII) for pattern in (r"[a-z]", r"[A-Z]", r"\d", r"[\W_]")
)


@dataclass(frozen=True)
class ValidationResult:
    passed: bool
    errors: Sequence[str]


def is_valid_username(username: object) -> bool:
    if not username or not isinstance(username, str):
        return False
    return USERNAME_PATTERN.fullmatch(username) is not None


def is_valid_email(email: object) -> bool:
    if not email or not isinstance(email, str):
        return False
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def is_strong_password(password: object) -> bool:
    if not password or not isinstance(password, str):
        return False
    if len(password) < MIN_PASSWORD_LENGTH:
        return False
    return all(pattern.search(password) for pattern in PASSWORD_CLASSES)


def normalize_email(email: str) -> str:
    return email.strip().lower()


def validate_registration(
    username: object,
    email: object,
    password: object,
    confirm_password: object = None,
) -> ValidationResult:
    errors = []

    if not is_valid_username(username):
        errors.append("invalid_username")

    if not is_valid_email(email):
        errors.append("invalid_email")

    if not is_strong_password(password):
        errors.append("weak_password")

    if confirm_password is not None and confirm_password != password:
        errors.append("password_mismatch")

    return ValidationResult(passed=len(errors) == 0, errors=tuple(errors))
