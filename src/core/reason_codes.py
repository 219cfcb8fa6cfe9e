"""
Closed vocabulary of follow-up reasons.

Codes are the only persisted identifier. Labels are display text; changing
one means bumping REASON_CODES_VERSION.
"""

import re
from typing import List, Optional, Tuple

REASON_CODES_VERSION = "1"

REASON_CODES: Tuple[Tuple[str, str], ...] = (
    ("A", "Too expensive"),
    ("B", "Wrong location"),
    ("C", "Not the decision maker"),
    ("D", "Not interested"),
    ("E", "Needs a large loan"),
    ("F", "Too much existing debt"),
    ("G", "Bad credit record (CBC)"),
    ("H", "Land or house too small"),
    ("I", "Waiting for a free day to visit"),
    ("J", "Other"),
)

REASON_CODE_LABELS = dict(REASON_CODES)

REASON_PROMPT_HEADER = "Select the customer's response reason (choose only one):"
REASON_PROMPT_FOOTER = "Reply with a single letter A-J"
REASON_INVALID_MESSAGE = "Please choose exactly one reason (A-J)."

_BARE_LETTER = re.compile(r"^[A-J]$", re.IGNORECASE)


def is_reason_code(value: Optional[str]) -> bool:
    return isinstance(value, str) and value in REASON_CODE_LABELS


def reason_option(code: str) -> str:
    return f"{code} - {REASON_CODE_LABELS[code]}"


def build_reason_prompt() -> str:
    lines = [reason_option(code) for code, _ in REASON_CODES]
    return "\n".join([REASON_PROMPT_HEADER, "", *lines, "", REASON_PROMPT_FOOTER])


def build_reason_keyboard() -> List[List[str]]:
    """Menu options laid out two per row for chat reply keyboards."""
    options = [reason_option(code) for code, _ in REASON_CODES]
    return [options[i:i + 2] for i in range(0, len(options), 2)]


def parse_reason_code(text: Optional[str]) -> Optional[str]:
    """
    Resolves a reply to exactly one reason code.

    Accepts a bare letter (any case) or the exact "CODE - label" option.
    Anything else, including several codes or free text, yields None.
    """
    if not text:
        return None

    trimmed = text.strip()
    if not trimmed:
        return None

    if _BARE_LETTER.match(trimmed):
        return trimmed.upper()

    for code, _ in REASON_CODES:
        if trimmed == reason_option(code):
            return code

    return None


def format_reason_display(reason_code: Optional[str], status_text: Optional[str] = None) -> str:
    if reason_code and is_reason_code(reason_code):
        return reason_option(reason_code)
    if status_text:
        return status_text
    return "N/A"
