import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```", re.IGNORECASE)
_CLOSERS = {"{": "}", "[": "]"}


@dataclass
class Completion:
    text: str
    model: str


class GeminiClient:
    """
    Thin wrapper over google-generativeai for single-turn JSON completions.

    Every call is zero-temperature, bounded by a timeout, and retried at most
    once (against the default model) when the requested model is unknown.
    Failures return None so callers can drop to their deterministic fallback.
    """

    def __init__(
        self,
        api_key: Optional[str],
        model_name: str,
        default_model: str,
        timeout_seconds: float = 20.0,
    ):
        self.api_key = api_key
        self.model_name = model_name
        self.default_model = default_model
        self.timeout_seconds = timeout_seconds

        if not api_key:
            logger.warning("GOOGLE_GEMINI_API_KEY not set. Falling back to rule-based parsing.")
            return

        genai.configure(api_key=api_key)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_model(self, model_name: str, system_instruction: str):
        return genai.GenerativeModel(
            model_name,
            system_instruction=system_instruction,
            generation_config={
                "temperature": 0,
                "response_mime_type": "application/json",
            },
        )

    async def complete(
        self,
        system_instruction: str,
        message: str,
        model_name: Optional[str] = None,
    ) -> Optional[Completion]:
        if not self.is_configured:
            return None
        return await self._call(
            system_instruction,
            message,
            model_name or self.model_name,
            allow_fallback=True,
        )

    async def _call(
        self,
        system_instruction: str,
        message: str,
        model_name: str,
        allow_fallback: bool,
    ) -> Optional[Completion]:
        try:
            model = self._build_model(model_name, system_instruction)
            response = await asyncio.wait_for(
                model.generate_content_async(message),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Gemini request timed out after {self.timeout_seconds}s for model '{model_name}'")
            return None
        except Exception as e:
            if allow_fallback and model_name != self.default_model and self._is_unknown_model_error(e):
                logger.warning(f"Gemini model '{model_name}' not recognized. Retrying with '{self.default_model}'")
                return await self._call(system_instruction, message, self.default_model, allow_fallback=False)
            logger.error(f"Error calling Gemini: {e}")
            return None

        try:
            text = response.text
        except ValueError as e:
            # Raised by the SDK when the candidate was blocked or empty
            logger.warning(f"Gemini returned no usable text: {e}")
            return None

        if not text or not text.strip():
            logger.warning("Gemini returned empty content")
            return None

        return Completion(text=text, model=model_name)

    @staticmethod
    def _is_unknown_model_error(error: Exception) -> bool:
        if isinstance(error, google_exceptions.NotFound):
            return True
        if isinstance(error, google_exceptions.InvalidArgument):
            return "model" in str(error).lower()
        return False

    def parse_json(self, text: str) -> Optional[Any]:
        """
        Extracts a JSON payload from a model reply.

        1. Fenced Markdown block (```json ... ```) if present
        2. Otherwise the first balanced {...} or [...] substring
        Returns None when nothing parseable is found.
        """
        if not text:
            return None

        text = text.strip()

        match = _FENCE.search(text)
        if match:
            candidate = match.group(1).strip()
        else:
            candidate = self._first_balanced(text)

        if candidate is None:
            logger.warning(f"No JSON found in Gemini reply: {text[:100]}...")
            return None

        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            logger.warning(f"Failed to parse JSON from Gemini: {candidate[:100]}...")
            return None

    @staticmethod
    def _first_balanced(text: str) -> Optional[str]:
        starts = [i for i in (text.find("{"), text.find("[")) if i != -1]
        if not starts:
            return None

        start = min(starts)
        stack = []
        in_string = False
        escaped = False

        for i in range(start, len(text)):
            char = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
                continue

            if char == '"':
                in_string = True
            elif char in _CLOSERS:
                stack.append(_CLOSERS[char])
            elif char in ("}", "]"):
                if not stack or stack.pop() != char:
                    return None
                if not stack:
                    return text[start:i + 1]

        return None
