"""Exception hierarchy and error taxonomy for auction invoice processing."""

from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    """Failure classifications used to decide whether a call is retried."""
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    NETWORK = "network"
    INVALID_INPUT = "invalid_input"
    POLICY_REJECTION = "policy_rejection"
    SERVICE_UNAVAILABLE = "service_unavailable"
    UNKNOWN = "unknown"

    @property
    def is_transient(self) -> bool:
        """Whether the same operation is likely to succeed after a delay."""
        return self not in _TERMINAL_KINDS


_TERMINAL_KINDS = frozenset({
    ErrorKind.AUTHENTICATION,
    ErrorKind.INVALID_INPUT,
    ErrorKind.POLICY_REJECTION,
})


class AuctionInvoiceError(Exception):
    """Base exception for all auction invoice processing errors.

    Subclasses may pin ``error_kind`` so the retry classifier does not have to
    inspect status codes or message text.
    """

    error_kind: Optional[ErrorKind] = None

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ValidationError(AuctionInvoiceError):
    """Raised when an invoice cannot be mapped to a ledger bill."""

    error_kind = ErrorKind.INVALID_INPUT

    def __init__(self, field_name: str, field_value: Any, validation_rule: str) -> None:
        self.field_name = field_name
        self.field_value = field_value
        self.validation_rule = validation_rule

        message = f"Validation failed for field '{field_name}': {validation_rule}"
        super().__init__(
            message,
            {
                "field_name": field_name,
                "field_value": field_value,
                "validation_rule": validation_rule,
            },
        )


class ConfigurationError(AuctionInvoiceError):
    """Raised when configuration is invalid or missing."""

    error_kind = ErrorKind.AUTHENTICATION

    def __init__(self, setting_name: str, issue: str) -> None:
        message = f"Configuration error for '{setting_name}': {issue}"
        super().__init__(message, {"setting_name": setting_name, "issue": issue})
        self.setting_name = setting_name
        self.issue = issue


class ExtractionError(AuctionInvoiceError):
    """Base class for invoice extraction errors."""

    def __init__(
        self,
        file_name: str,
        message: str,
        model_used: Optional[str] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        self.file_name = file_name
        self.model_used = model_used
        self.original_error = original_error

        full_message = f"Extraction failed for {file_name}: {message}"
        if model_used:
            full_message += f" (Model: {model_used})"
        if original_error:
            full_message += f" (Original error: {original_error})"

        details = {"file_name": file_name}
        if model_used:
            details["model_used"] = model_used

        super().__init__(full_message, details)


class UnsupportedMediaTypeError(ExtractionError):
    """Raised when the uploaded file is not an image or PDF the model accepts."""

    error_kind = ErrorKind.INVALID_INPUT

    def __init__(self, file_name: str, mime_type: str) -> None:
        super().__init__(file_name, f"Unsupported file type '{mime_type}'")
        self.mime_type = mime_type


class PolicyRejectionError(ExtractionError):
    """Raised when the model refuses the document on content-safety grounds."""

    error_kind = ErrorKind.POLICY_REJECTION

    def __init__(self, file_name: str, reason: str, model_used: Optional[str] = None) -> None:
        super().__init__(file_name, f"Content blocked by safety policy: {reason}", model_used)
        self.reason = reason


class InvalidAPIResponseError(ExtractionError):
    """Raised when the model returns text that cannot be parsed as JSON."""

    error_kind = ErrorKind.INVALID_INPUT

    def __init__(
        self,
        file_name: str,
        response_text: str,
        model_used: Optional[str] = None,
        parsing_error: Optional[Exception] = None
    ) -> None:
        message = f"API returned invalid response: {response_text[:100]}..."
        super().__init__(file_name, message, model_used, parsing_error)
        self.response_text = response_text


class LedgerHTTPError(AuctionInvoiceError):
    """Raised when the ledger API answers with a non-success status."""

    def __init__(
        self,
        status: int,
        body: str = "",
        headers: Optional[dict[str, str]] = None,
        url: str = ""
    ) -> None:
        self.status = status
        self.body = body
        self.headers = headers or {}
        self.url = url

        message = f"Ledger request to {url or 'ledger'} failed with HTTP {status}"
        if body:
            message += f": {body[:200]}"
        super().__init__(message, {"status": status, "url": url})


class LedgerResponseError(AuctionInvoiceError):
    """Raised when the ledger accepts a request but the reply is unusable."""

    error_kind = ErrorKind.INVALID_INPUT


def wrap_exception(
    func_name: str,
    original_error: Exception,
    context: Optional[dict[str, Any]] = None
) -> AuctionInvoiceError:
    """Wrap generic exceptions in our typed hierarchy."""

    if isinstance(original_error, AuctionInvoiceError):
        return original_error

    context = context or {}
    return AuctionInvoiceError(
        f"Unexpected error in {func_name}: {original_error}",
        {**context, "function": func_name, "original_error": str(original_error)}
    )


__all__ = [
    "ErrorKind",
    "AuctionInvoiceError",
    "ValidationError",
    "ConfigurationError",
    "ExtractionError",
    "UnsupportedMediaTypeError",
    "PolicyRejectionError",
    "InvalidAPIResponseError",
    "LedgerHTTPError",
    "LedgerResponseError",
    "wrap_exception",
]
