"""Gemini vision-language model caller and reply normalization."""

import json
import logging
import os
from typing import Any, Dict, Optional

import httpx

from ..errors import UpstreamShapeError, UpstreamTransportError
from ..records import NOT_AVAILABLE, UNKNOWN, Confidence

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://generativelanguage.googleapis.com/v1beta/models"
DEFAULT_MODEL = "gemini-flash-latest"
DEFAULT_TIMEOUT = 30.0

IDENTIFY_PROMPT = """You are an expert pharmaceutical AI assistant. Analyze the provided medicine/pill image and return a JSON object with the following fields:
- medicineName: Name of the medicine (if identified) or "Unknown"
- genericName: Generic/chemical name or "Unknown"
- dosage: Strength/dosage capability (e.g., 500mg) or "N/A"
- manufacturer: Manufacturer name or "N/A"
- uses: Primary medical uses (brief summary)
- sideEffects: Common side effects (brief summary)
- precautions: Important precautions (brief summary)
- confidence: "high", "medium", or "low" based on how clear the identification is.

If you cannot identify the medicine clearly, set confidence to "low" and fill fields with "Unknown". Do NOT return markdown code blocks, just the raw JSON."""

# Field -> default when the model leaves it out
RECORD_DEFAULTS = {
    "medicineName": UNKNOWN,
    "genericName": UNKNOWN,
    "dosage": NOT_AVAILABLE,
    "manufacturer": NOT_AVAILABLE,
    "uses": "",
    "sideEffects": "",
    "precautions": "",
    "confidence": Confidence.LOW,
}


class GeminiVisionModel:
    """Calls the ``generateContent`` endpoint with a prompt and one image.

    One instance is shared by all requests; it holds no per-request state.
    """

    def __init__(
        self,
        api_url: str = None,
        model: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            api_url: Models base URL (or GEMINI_API_URL env)
            model: Model name (or GEMINI_MODEL env)
            timeout: Request timeout in seconds (or UPSTREAM_TIMEOUT env)
            transport: Optional httpx transport, used by tests
        """
        self.api_url = (api_url or os.getenv("GEMINI_API_URL", DEFAULT_API_URL)).rstrip("/")
        self.model = model or os.getenv("GEMINI_MODEL", DEFAULT_MODEL)
        self.timeout = timeout or float(os.getenv("UPSTREAM_TIMEOUT", DEFAULT_TIMEOUT))
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.api_url}/{self.model}:generateContent"

    def build_payload(self, image_base64: str, prompt: str = IDENTIFY_PROMPT) -> dict:
        return {
            "contents": [
                {
                    "parts": [
                        {"text": prompt},
                        {
                            "inline_data": {
                                "mime_type": "image/jpeg",
                                "data": image_base64,
                            }
                        },
                    ]
                }
            ]
        }

    async def generate(self, image_base64: str, api_key: str) -> dict:
        """
        Submit the identification prompt and image.

        Returns:
            Decoded JSON reply of the model API

        Raises:
            UpstreamTransportError: network failure, timeout or non-2xx reply
        """
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                response = await client.post(
                    self.endpoint,
                    params={"key": api_key},
                    json=self.build_payload(image_base64),
                )
            except httpx.TimeoutException as e:
                raise UpstreamTransportError(f"Gemini API Error: request timed out after {self.timeout}s") from e
            except httpx.HTTPError as e:
                # httpx puts the full URL (with the key) in some messages
                raise UpstreamTransportError(f"Gemini API Error: {type(e).__name__}") from e

        if not response.is_success:
            logger.error(f"Gemini API error: {response.status_code} {response.text}")
            raise UpstreamTransportError(
                f"Gemini API Error: {response.status_code} {response.reason_phrase} - {response.text}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamShapeError("Gemini API returned a non-JSON body") from e


def extract_text(reply: Dict[str, Any]) -> str:
    """Return the first text part of the first candidate."""
    candidates = reply.get("candidates") if isinstance(reply, dict) else None
    if not isinstance(candidates, list) or not candidates:
        raise UpstreamShapeError("No candidates returned from Gemini")

    content = candidates[0].get("content") if isinstance(candidates[0], dict) else None
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts or not isinstance(parts[0], dict) or not isinstance(parts[0].get("text"), str):
        raise UpstreamShapeError("No text content in Gemini candidate")

    return parts[0]["text"]


def strip_code_fences(text: str) -> str:
    return text.replace("```json", "").replace("```", "").strip()


def parsing_error_record(raw_text: str) -> Dict[str, Any]:
    """Displayable record for a reply that is not a JSON object."""
    record = dict(RECORD_DEFAULTS)
    record["medicineName"] = "Parsing Error"
    record["confidence"] = Confidence.LOW
    record["uses"] = "Could not parse AI response. " + raw_text
    return record


def normalize_record(parsed: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a parsed reply to exactly the record fields."""
    record = {}
    for key, default in RECORD_DEFAULTS.items():
        value = parsed.get(key)
        if value is None:
            value = default
        elif not isinstance(value, str):
            value = json.dumps(value) if isinstance(value, (dict, list)) else str(value)
        record[key] = value

    confidence = record["confidence"].strip().lower()
    record["confidence"] = confidence if confidence in Confidence.ALL else Confidence.LOW
    return record


def parse_reply_text(text: str) -> Dict[str, Any]:
    """Parse model text into a record, degrading to a parsing-error record."""
    cleaned = strip_code_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse JSON: {e}; raw text: {text!r}")
        return parsing_error_record(text)

    if not isinstance(parsed, dict):
        logger.error(f"Model reply is not a JSON object: {text!r}")
        return parsing_error_record(text)

    return normalize_record(parsed)
