"""Form validation run before any store is touched."""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import ValidationFailedError

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MIN_PASSWORD_LENGTH = 6
MIN_NAME_LENGTH = 2

MISSING_FIELDS_MESSAGE = "Please fill in all fields"
INVALID_EMAIL_MESSAGE = "Please enter a valid email address"
PASSWORD_MISMATCH_MESSAGE = "Passwords do not match"


@dataclass(frozen=True, slots=True)
class ValidationOutcome:
    is_valid: bool
    message: str | None = None


def validate_email(email: str) -> bool:
    return bool(EMAIL_RE.match(email))


def validate_password(password: str) -> ValidationOutcome:
    if len(password) < MIN_PASSWORD_LENGTH:
        return ValidationOutcome(
            False,
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long",
        )
    return ValidationOutcome(True)


def validate_name(name: str) -> ValidationOutcome:
    if len(name.strip()) < MIN_NAME_LENGTH:
        return ValidationOutcome(
            False, f"Name must be at least {MIN_NAME_LENGTH} characters long"
        )
    return ValidationOutcome(True)


def validate_sign_up(
    name: str, email: str, password: str, confirm_password: str | None = None
) -> None:
    """Raise ``ValidationFailedError`` with the first problem in a sign-up form.

    ``confirm_password`` may be omitted by callers that do not collect it.
    """

    confirmation = password if confirm_password is None else confirm_password
    if not (name and email and password and confirmation):
        raise ValidationFailedError(MISSING_FIELDS_MESSAGE)

    outcome = validate_name(name)
    if not outcome.is_valid:
        raise ValidationFailedError(outcome.message)
    if not validate_email(email):
        raise ValidationFailedError(INVALID_EMAIL_MESSAGE)
    outcome = validate_password(password)
    if not outcome.is_valid:
        raise ValidationFailedError(outcome.message)
    if password != confirmation:
        raise ValidationFailedError(PASSWORD_MISMATCH_MESSAGE)


def validate_sign_in(email: str, password: str) -> None:
    if not (email and password):
        raise ValidationFailedError(MISSING_FIELDS_MESSAGE)
    if not validate_email(email):
        raise ValidationFailedError(INVALID_EMAIL_MESSAGE)
