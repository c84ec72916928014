"""Integration tests with mocked Gemini API responses."""

import json
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from auction_invoice.config import Settings
from auction_invoice.core.exceptions import (
    ConfigurationError,
    ErrorKind,
    InvalidAPIResponseError,
    PolicyRejectionError,
    UnsupportedMediaTypeError,
)
from auction_invoice.core.models import LineType
from auction_invoice.core.retry import ResilientInvoker
from auction_invoice.services.extraction import InvoiceExtractor, resolve_media_type

# Load mock responses
FIXTURES_DIR = Path(__file__).parent / "fixtures"
with open(FIXTURES_DIR / "mock_responses.json") as f:
    MOCK_RESPONSES = json.load(f)

SAMPLE_IMAGE = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


class MockGeminiResponse:
    """Mock response from Gemini API."""

    def __init__(self, text: str, block_reason=None):
        self.text = text
        self.prompt_feedback = SimpleNamespace(block_reason=block_reason) if block_reason else None


class MockServerError(Exception):
    def __init__(self, message: str, code: int):
        super().__init__(message)
        self.code = code


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.aio.models.generate_content = AsyncMock()
    return client


@pytest.fixture
def extractor(mock_client):
    return InvoiceExtractor(mock_client, model="gemini-test", invoker=ResilientInvoker(max_attempts=3, base_delay=0.01))


class TestResolveMediaType:
    """Test accepted upload formats."""

    @pytest.mark.parametrize("file_name, mime_type, expected", [
        ("lot.jpg", None, "image/jpeg"),
        ("lot.jpeg", None, "image/jpeg"),
        ("lot.png", None, "image/png"),
        ("lot.webp", "image/webp", "image/webp"),
        ("lot.gif", None, "image/gif"),
        ("invoice.pdf", None, "application/pdf"),
        ("upload", "image/jpg", "image/jpeg"),
        ("upload", "IMAGE/PNG", "image/png"),
    ])
    def test_supported(self, file_name, mime_type, expected):
        assert resolve_media_type(file_name, mime_type) == expected

    @pytest.mark.parametrize("file_name, mime_type", [
        ("scan.tiff", None),
        ("notes.txt", None),
        ("upload", None),
        ("lot.png", "application/zip"),
    ])
    def test_unsupported(self, file_name, mime_type):
        with pytest.raises(UnsupportedMediaTypeError):
            resolve_media_type(file_name, mime_type)


class TestInvoiceExtractor:
    """Test extraction against a mocked client."""

    @pytest.mark.asyncio
    async def test_extract_normalizes_model_answer(self, extractor, mock_client):
        mock_client.aio.models.generate_content.return_value = MockGeminiResponse(
            json.dumps(MOCK_RESPONSES["auction_invoice"])
        )

        invoice = await extractor.extract(SAMPLE_IMAGE, "hartley.png")

        assert invoice.invoice_number == "INV-2025-0417"
        assert [item.line_type for item in invoice.line_items] == [
            LineType.LOT, LineType.PREMIUM, LineType.SURCHARGE
        ]
        mock_client.aio.models.generate_content.assert_awaited_once()
        call_kwargs = mock_client.aio.models.generate_content.call_args.kwargs
        assert call_kwargs["model"] == "gemini-test"
        assert call_kwargs["config"].response_mime_type == "application/json"

    @pytest.mark.asyncio
    async def test_fenced_answer_is_parsed(self, extractor, mock_client):
        fenced = "```json\n" + json.dumps(MOCK_RESPONSES["mistyped_invoice"]) + "\n```"
        mock_client.aio.models.generate_content.return_value = MockGeminiResponse(fenced)

        invoice = await extractor.extract(SAMPLE_IMAGE, "grange.jpg")

        assert invoice.supplier_name == "Grange Salerooms"
        assert len(invoice.line_items) == 2

    @pytest.mark.asyncio
    async def test_unsupported_file_is_rejected_before_calling_model(self, extractor, mock_client):
        with pytest.raises(UnsupportedMediaTypeError):
            await extractor.extract(b"II*\x00", "scan.tiff")

        mock_client.aio.models.generate_content.assert_not_called()

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, extractor, mock_client):
        mock_client.aio.models.generate_content.side_effect = [
            MockServerError("The model is overloaded", 503),
            MockGeminiResponse(json.dumps(MOCK_RESPONSES["auction_invoice"])),
        ]

        with patch("asyncio.sleep", new_callable=AsyncMock):
            invoice = await extractor.extract(SAMPLE_IMAGE, "hartley.png")

        assert invoice.total_amount == 1490
        assert mock_client.aio.models.generate_content.await_count == 2

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, extractor, mock_client):
        mock_client.aio.models.generate_content.side_effect = MockServerError("Resource exhausted", 429)

        with patch("asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(MockServerError) as exc_info:
                await extractor.extract(SAMPLE_IMAGE, "hartley.png")

        assert exc_info.value.attempts == 3
        assert exc_info.value.error_kind == ErrorKind.RATE_LIMIT

    @pytest.mark.asyncio
    async def test_blocked_response_is_terminal(self, extractor, mock_client):
        mock_client.aio.models.generate_content.return_value = MockGeminiResponse("", block_reason="SAFETY")

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(PolicyRejectionError) as exc_info:
                await extractor.extract(SAMPLE_IMAGE, "hartley.png")

        mock_sleep.assert_not_called()
        assert exc_info.value.attempts == 1
        assert exc_info.value.model_used == "gemini-test"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "I could not read this invoice."])
    async def test_unparseable_answer_is_terminal(self, extractor, mock_client, text):
        mock_client.aio.models.generate_content.return_value = MockGeminiResponse(text)

        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            with pytest.raises(InvalidAPIResponseError) as exc_info:
                await extractor.extract(SAMPLE_IMAGE, "hartley.png")

        mock_sleep.assert_not_called()
        assert exc_info.value.error_kind == ErrorKind.INVALID_INPUT
        assert mock_client.aio.models.generate_content.await_count == 1


class TestFromSettings:
    """Test construction from configuration."""

    def test_missing_api_key(self):
        with pytest.raises(ConfigurationError):
            InvoiceExtractor.from_settings(Settings(_env_file=None, gemini_api_key=None))

    def test_builds_client_with_key(self):
        settings = Settings(_env_file=None, gemini_api_key="test-key", extraction_model="gemini-x", retry_max_attempts=2)

        with patch("auction_invoice.services.extraction.genai.Client") as client_cls:
            extractor = InvoiceExtractor.from_settings(settings)

        client_cls.assert_called_once_with(api_key="test-key")
        assert extractor.model == "gemini-x"
        assert extractor.invoker.max_attempts == 2
