"""
Receipt Analysis using Gemini

DESIGN DECISION: We send the photo straight to a multimodal Gemini model
and ask for a small JSON object (date, item, amount, category), because:
1. One call replaces a separate OCR + categorization step
2. Receipts vary too much for template-based extraction
3. The user reviews every field before saving anyway

This service handles:
1. Decoding and checking the image data URI
2. Calling Gemini (optionally retried on transport errors)
3. Converting the reply into an ExpenseDraft, field by field

CRITICAL: The result is a DRAFT. Every field is best-effort; anything
missing or unreadable falls back to the manual-entry default.
"""

import base64
import binascii
import json
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import google.generativeai as genai
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cospend.config import GeminiSettings, RuntimeSettings, get_settings
from cospend.models.expense import MAX_ITEM_LENGTH, Category, ExpenseDraft


logger = structlog.get_logger(__name__)

DATA_URI_PATTERN = re.compile(
    r"^data:(?P<mime>[\w.+-]+/[\w.+-]+);base64,(?P<data>.*)$",
    re.DOTALL,
)

EXTRACTION_PROMPT = """You are reading a photographed shop receipt for a shared expense tracker.

Extract:
- date: the purchase date as YYYY-MM-DD, or null if not visible
- item: a short label for what was bought (store name or main item), max 60 characters
- amount: the final total paid as a plain number without currency symbols, or null
- category: exactly one of [{categories}]

Respond with ONLY a JSON object in this exact format:
{{"date": "2024-01-31", "item": "Supermarket", "amount": 123.45, "category": "Groceries"}}

If unsure about a field, use null rather than guessing."""


class AnalysisError(Exception):
    """Base exception for receipt analysis errors."""
    pass


class InvalidImageError(AnalysisError):
    """The image is not something we can send for analysis."""
    pass


class AnalysisServiceError(AnalysisError):
    """The call to the analysis service itself failed."""
    pass


class AnalysisParseError(AnalysisError):
    """The service answered, but not with anything we can use."""
    pass


def encode_data_uri(image_bytes: bytes, mime_type: str) -> str:
    """Encode raw image bytes as a base64 data URI."""
    encoded = base64.b64encode(image_bytes).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


def decode_data_uri(data_uri: str) -> tuple[str, bytes]:
    """
    Split a data URI into (mime_type, raw bytes).

    Raises:
        InvalidImageError: If it is not a base64 data URI
    """
    match = DATA_URI_PATTERN.match(data_uri.strip()) if data_uri else None
    if not match:
        raise InvalidImageError("Image must be a base64 data URI")
    try:
        raw = base64.b64decode(match.group("data"), validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidImageError("Image data is not valid base64") from e
    if not raw:
        raise InvalidImageError("Image is empty")
    return match.group("mime").lower(), raw


class GeminiReceiptAnalyzer:
    """
    Turns a receipt photo into an ExpenseDraft.

    IMPORTANT BOUNDARIES:
    1. This service ONLY proposes values - it never touches the store
    2. Unusable input is rejected before any network call
    3. No timeout is enforced here; the SDK's own defaults apply
    """

    def __init__(
        self,
        settings: Optional[GeminiSettings] = None,
        app_settings: Optional[RuntimeSettings] = None,
        model: Any = None,
    ):
        """
        Args:
            settings: Gemini settings (loaded from the environment if None)
            app_settings: Upload limits (loaded from the environment if None)
            model: Pre-built model object exposing generate_content_async;
                   when None, one is created from settings
        """
        self._settings = settings or get_settings().gemini
        self._app_settings = app_settings or get_settings().app
        self._model = model or self._create_model()

    def _create_model(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
                "response_mime_type": "application/json",
            },
        )

    def _check_image(self, mime_type: str, raw: bytes) -> None:
        if mime_type not in self._app_settings.supported_mime_types:
            raise InvalidImageError(f"Unsupported image type: {mime_type}")
        if len(raw) > self._app_settings.max_upload_size_bytes:
            raise InvalidImageError(
                f"Image is larger than {self._app_settings.max_upload_size_mb} MB"
            )

    async def _call_model(self, mime_type: str, raw: bytes) -> str:
        prompt = EXTRACTION_PROMPT.format(
            categories=", ".join(category.value for category in Category)
        )
        try:
            response = await self._model.generate_content_async(
                [prompt, {"mime_type": mime_type, "data": raw}]
            )
            return response.text
        except Exception as e:
            raise AnalysisServiceError(f"Gemini request failed: {e}") from e

    async def analyze_receipt(self, data_uri: str) -> ExpenseDraft:
        """
        Analyse a receipt image given as a base64 data URI.

        Raises:
            InvalidImageError: Bad data URI, type or size
            AnalysisServiceError: Gemini could not be reached (after retries)
            AnalysisParseError: The reply held no usable JSON object
        """
        mime_type, raw = decode_data_uri(data_uri)
        self._check_image(mime_type, raw)

        text = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(AnalysisServiceError),
            stop=stop_after_attempt(self._settings.max_attempts),
            wait=wait_exponential(
                multiplier=self._settings.retry_backoff_seconds, max=10
            ),
            reraise=True,
        ):
            with attempt:
                text = await self._call_model(mime_type, raw)

        data = self._extract_json(text)
        draft = self.to_draft(data)
        logger.info(
            "receipt_analyzed",
            mime_type=mime_type,
            size_bytes=len(raw),
            fields_found=sorted(k for k, v in data.items() if v not in (None, "")),
        )
        return draft

    def _extract_json(self, text: Optional[str]) -> dict:
        """Find the JSON object in the reply, tolerating code fences or prose."""
        if not text:
            raise AnalysisParseError("Empty response from Gemini")
        start = text.find("{")
        end = text.rfind("}") + 1
        if start < 0 or end <= start:
            raise AnalysisParseError("No JSON object in Gemini response")
        try:
            data = json.loads(text[start:end])
        except json.JSONDecodeError as e:
            raise AnalysisParseError(f"Malformed JSON in Gemini response: {e}") from e
        if not isinstance(data, dict):
            raise AnalysisParseError("Gemini response is not a JSON object")
        return data

    def to_draft(self, data: dict) -> ExpenseDraft:
        """Map a reply dict to a draft, one field at a time."""
        item = data.get("item")
        return ExpenseDraft(
            date=self._safe_date(data.get("date")) or date.today(),
            item=str(item).strip()[:MAX_ITEM_LENGTH] if item else "",
            amount=self._safe_decimal(data.get("amount")) or Decimal("0"),
            category=Category.from_text(
                data.get("category") if isinstance(data.get("category"), str) else None
            ),
        )

    def _safe_decimal(self, value) -> Optional[Decimal]:
        """Safely convert a value to a non-negative, finite Decimal."""
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            value = re.sub(r"[^\d.\-]", "", value.replace(",", ""))
        try:
            amount = Decimal(str(value)).quantize(Decimal("0.01"))
        except (InvalidOperation, TypeError, ValueError):
            return None
        if not amount.is_finite() or amount < 0:
            return None
        return amount

    def _safe_date(self, value) -> Optional[date]:
        """Safely convert a value to date."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str):
            for fmt in ["%Y-%m-%d", "%Y/%m/%d", "%d-%m-%Y", "%d/%m/%Y"]:
                try:
                    return datetime.strptime(value.strip(), fmt).date()
                except ValueError:
                    continue
        return None
