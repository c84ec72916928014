"""Invoice extraction through the Gemini API."""
import json
import logging
import mimetypes
from typing import Any, Optional

from google import genai
from google.genai import types

from auction_invoice.config import Settings
from auction_invoice.core.exceptions import InvalidAPIResponseError, PolicyRejectionError, UnsupportedMediaTypeError
from auction_invoice.core.json_utils import parse_model_json
from auction_invoice.core.models import Invoice
from auction_invoice.core.normalizer import normalize_invoice
from auction_invoice.core.retry import ResilientInvoker
from auction_invoice.prompts import EXTRACTION_SYSTEM_INSTRUCTION, EXTRACTION_USER_PROMPT

logger = logging.getLogger(__name__)

SUPPORTED_MEDIA_TYPES = {
    "image/jpeg": "image/jpeg",
    "image/jpg": "image/jpeg",
    "image/png": "image/png",
    "image/gif": "image/gif",
    "image/webp": "image/webp",
    "application/pdf": "application/pdf",
}


def resolve_media_type(file_name: str, mime_type: Optional[str] = None) -> str:
    """Map a declared or guessed MIME type onto one the model accepts.

    Raises:
        UnsupportedMediaTypeError: If the file is not a supported image or PDF
    """
    candidate = (mime_type or mimetypes.guess_type(file_name)[0] or "").lower()
    if candidate not in SUPPORTED_MEDIA_TYPES:
        raise UnsupportedMediaTypeError(file_name, candidate or "unknown")
    return SUPPORTED_MEDIA_TYPES[candidate]


class InvoiceExtractor:
    """Sends invoice images to the model and returns canonical invoices."""

    def __init__(
        self,
        client: "genai.Client",
        model: str = "gemini-2.5-flash",
        invoker: Optional[ResilientInvoker] = None
    ):
        self.client = client
        self.model = model
        self.invoker = invoker or ResilientInvoker()

    @classmethod
    def from_settings(cls, settings: Settings) -> "InvoiceExtractor":
        client = genai.Client(api_key=settings.require_gemini_api_key())
        return cls(client, settings.extraction_model, ResilientInvoker.from_settings(settings))

    def _response_payload(self, response: Any, file_name: str) -> Any:
        feedback = getattr(response, "prompt_feedback", None)
        block_reason = getattr(feedback, "block_reason", None) if feedback is not None else None
        if block_reason:
            raise PolicyRejectionError(file_name, str(block_reason), self.model)

        text = getattr(response, "text", None) or ""
        if not text.strip():
            raise InvalidAPIResponseError(file_name, text, self.model)

        try:
            return parse_model_json(text)
        except json.JSONDecodeError as exc:
            raise InvalidAPIResponseError(file_name, text, self.model, exc) from exc

    async def extract_raw(self, content: bytes, file_name: str, mime_type: Optional[str] = None) -> Any:
        """Run the model on one file and return its parsed JSON answer.

        Args:
            content: Raw bytes of the invoice image or PDF
            file_name: Original file name, used for logging and MIME guessing
            mime_type: Declared MIME type (optional)

        Returns:
            The decoded JSON payload, not yet normalized
        """
        media_type = resolve_media_type(file_name, mime_type)
        contents = [
            types.Part.from_bytes(data=content, mime_type=media_type),
            EXTRACTION_USER_PROMPT,
        ]
        config = types.GenerateContentConfig(
            system_instruction=EXTRACTION_SYSTEM_INSTRUCTION,
            response_mime_type="application/json",
        )

        async def extract_operation():
            logger.info(f"[EXTRACT] {file_name} - Making API call ({media_type}, {len(content)} bytes)")
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=contents,
                config=config
            )
            return self._response_payload(response, file_name)

        return await self.invoker.invoke(extract_operation, operation_name=f"EXTRACT {file_name}")

    async def extract(self, content: bytes, file_name: str, mime_type: Optional[str] = None) -> Invoice:
        """Extract and normalize one invoice."""
        payload = await self.extract_raw(content, file_name, mime_type)
        invoice = normalize_invoice(payload)
        logger.info(
            f"[EXTRACT] {file_name} - Invoice '{invoice.invoice_number}' from "
            f"'{invoice.supplier_name}' with {len(invoice.line_items)} line items"
        )
        return invoice
