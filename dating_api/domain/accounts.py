"""Domain helpers for account and profile field validation."""
from __future__ import annotations

import re
from datetime import date

USERNAME_PATTERN = re.compile(r"[a-z0-9_]{3,30}")
EMAIL_PATTERN = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")
RESERVED_USERNAMES = {
    "admin",
    "auth",
    "me",
    "quota",
    "root",
    "support",
    "users",
}
GENDERS = {"female", "male", "other"}
MIN_PASSWORD_LENGTH = 8
MIN_AGE_YEARS = 18


def is_valid_username(value: str | None) -> bool:
    """Return True when username matches allowed pattern and is not reserved."""
    if not value:
        return False
    return bool(USERNAME_PATTERN.fullmatch(value)) and value not in RESERVED_USERNAMES


def is_valid_email(value: str | None) -> bool:
    if not value or len(value) > 255:
        return False
    return bool(EMAIL_PATTERN.fullmatch(value))


def age_on(birth: date, today: date) -> int:
    years = today.year - birth.year
    if (today.month, today.day) < (birth.month, birth.day):
        years -= 1
    return years


def is_adult(birth: date | None, today: date) -> bool:
    if birth is None:
        return True
    return age_on(birth, today) >= MIN_AGE_YEARS
