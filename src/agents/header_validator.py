import logging
import re
from datetime import date
from typing import Any, Dict, List, Optional, Tuple

from src.core.gemini import GeminiClient
from src.models.schemas import HeaderFormData, HeaderFormResult, HeaderVerdict

logger = logging.getLogger(__name__)

HEADER_MARKER = "HDR"
HEADER_KEYS = ("DATE", "NAME", "PHONE", "PAGE", "FOLLOWER")

_LINE = re.compile(r"^([A-Z]+)\s*:\s*(.*)$")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

SYSTEM_INSTRUCTION = "\n".join([
    "You are a strict validator and extractor for a sales header form.",
    "The input must follow this exact format:",
    "HDR",
    "DATE: YYYY-MM-DD",
    "NAME: <customer name>",
    "PHONE: <phone or contact>",
    "PAGE: <source page>",
    "FOLLOWER: <staff name>",
    "",
    "Rules:",
    "- All fields are required.",
    '- The first line must be exactly "HDR".',
    "- Lines must use the label followed by a colon.",
    "- Do not infer or correct any data.",
    "- Preserve values exactly as written.",
    "- If any line is missing, extra, or malformed, return valid=false.",
    "",
    "Return JSON only. No markdown.",
    "If valid, return:",
    '{ "valid": true, "data": { "date": "...", "name": "...", "phone": "...", "page": "...", "follower": "..." } }',
    "If invalid, return:",
    '{ "valid": false, "error": "short reason" }',
])


def header_lines(text: str) -> List[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def looks_like_header(text: str) -> bool:
    lines = header_lines(text)
    return bool(lines) and lines[0] == HEADER_MARKER


def header_format_help(error: Optional[str] = None) -> str:
    lines = ["Invalid header format."]
    if error:
        lines.append(f"Reason: {error}")
    lines += [
        "",
        "Use this exact format:",
        "HDR",
        "DATE: YYYY-MM-DD",
        "NAME: Customer Name",
        "PHONE: Contact",
        "PAGE: Source Page",
        "FOLLOWER: Staff Name",
    ]
    return "\n".join(lines)


def validate_header_data(data: Dict[str, Any]) -> HeaderFormResult:
    """
    Required-field check shared by the line parser and the AI path.

    Every key must hold a non-blank string and DATE must be a real
    YYYY-MM-DD calendar date.
    """
    cleaned: Dict[str, str] = {}
    for key in HEADER_KEYS:
        value = data.get(key.lower())
        if not isinstance(value, str) or not value.strip():
            return HeaderFormResult(valid=False, error=f"Missing {key} field.")
        cleaned[key.lower()] = value.strip()

    if not _ISO_DATE.match(cleaned["date"]):
        return HeaderFormResult(valid=False, error="DATE must be YYYY-MM-DD.")
    try:
        date.fromisoformat(cleaned["date"])
    except ValueError:
        return HeaderFormResult(valid=False, error="DATE must be YYYY-MM-DD.")

    return HeaderFormResult(valid=True, data=HeaderFormData(**cleaned))


def parse_header_locally(text: str) -> HeaderFormResult:
    lines = header_lines(text)
    if not lines or lines[0] != HEADER_MARKER:
        return HeaderFormResult(valid=False, error="Header must start with HDR.")

    data: Dict[str, str] = {}
    for line in lines[1:]:
        match = _LINE.match(line)
        if not match:
            return HeaderFormResult(valid=False, error="Invalid header line format.")

        key, value = match.group(1), match.group(2).strip()
        if key not in HEADER_KEYS:
            return HeaderFormResult(valid=False, error=f"Unknown header field: {key}")
        if not value:
            return HeaderFormResult(valid=False, error=f"Missing value for {key}.")
        if key.lower() in data:
            return HeaderFormResult(valid=False, error=f"Duplicate field: {key}")

        data[key.lower()] = value

    return validate_header_data(data)


class HeaderFormValidator:
    """
    Validates the HDR identity block that opens a sales entry.

    The AI answer is only trusted when it survives validate_header_data;
    the line parser always has the last word, and its values are the ones
    stored. The model only contributes attribution.
    """

    def __init__(self, client: GeminiClient):
        self.client = client

    async def validate(self, text: str) -> HeaderFormResult:
        trimmed = (text or "").strip()
        if not looks_like_header(trimmed):
            return HeaderFormResult(valid=False, error="Missing HDR header line.")

        local = parse_header_locally(trimmed)
        if not self.client.is_configured:
            return local

        verdict, model = await self._ask_model(trimmed)
        if verdict is not None and verdict.valid and verdict.data:
            checked = validate_header_data(verdict.data)
            # The line grammar still has to hold (no duplicates, no unknown keys)
            if checked.valid and local.valid:
                # Stored values always come from the lines as typed
                local.model = model
                logger.info(f"✅ Header validated by {model}")
                return local
            logger.warning(f"Discarding model header verdict: {checked.error or local.error}")

        if local.valid:
            return local

        error = local.error
        if verdict is not None and not verdict.valid and verdict.error:
            error = verdict.error
        return HeaderFormResult(valid=False, error=error or "Invalid header format.")

    async def _ask_model(self, text: str) -> Tuple[Optional[HeaderVerdict], Optional[str]]:
        completion = await self.client.complete(SYSTEM_INSTRUCTION, text)
        if completion is None:
            return None, None

        payload = self.client.parse_json(completion.text)
        if not isinstance(payload, dict) or not isinstance(payload.get("valid"), bool):
            logger.warning(f"Unexpected header verdict from model: {str(payload)[:100]}")
            return None, None

        data = payload.get("data")
        error = payload.get("error")
        verdict = HeaderVerdict(
            valid=payload["valid"],
            data=data if isinstance(data, dict) else None,
            error=error if isinstance(error, str) else None,
        )
        return verdict, completion.model
