"""End-to-end flow: extract an invoice, map it to a bill, submit it."""
import logging
from typing import Any, Optional

from auction_invoice.config import Settings
from auction_invoice.core.ledger_mapper import DEFAULT_CURRENCY, map_to_bill
from auction_invoice.core.models import (
    Attachment,
    Bill,
    Invoice,
    InvoiceReview,
    LedgerAuthContext,
    SubmissionResult,
    TaxCodeTable,
)
from auction_invoice.core.normalizer import normalize_invoice
from auction_invoice.core.tax import find_tax_discrepancies, reconcile_totals
from auction_invoice.services.extraction import InvoiceExtractor, resolve_media_type
from auction_invoice.services.ledger import LedgerClient

logger = logging.getLogger(__name__)


class InvoicePipeline:
    """Stateless per request; the same pipeline may serve concurrent uploads."""

    def __init__(
        self,
        extractor: Optional[InvoiceExtractor] = None,
        ledger: Optional[LedgerClient] = None,
        tax_codes: Optional[TaxCodeTable] = None,
        default_currency: str = DEFAULT_CURRENCY,
        totals_tolerance: float = 0.01
    ):
        self.extractor = extractor
        self.ledger = ledger
        self.tax_codes = tax_codes or TaxCodeTable()
        self.default_currency = default_currency
        self.totals_tolerance = totals_tolerance

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        extractor: Optional[InvoiceExtractor] = None,
        ledger: Optional[LedgerClient] = None
    ) -> "InvoicePipeline":
        return cls(
            extractor=extractor,
            ledger=ledger,
            tax_codes=settings.tax_code_table,
            default_currency=settings.default_currency,
            totals_tolerance=settings.totals_tolerance,
        )

    def review(self, payload: Any) -> InvoiceReview:
        """Normalize a payload and check its figures against the VAT rules.

        Mismatches are logged as warnings and returned, so callers can hold an
        inconsistent invoice back for a human instead of submitting it.
        """
        invoice = normalize_invoice(payload)
        return InvoiceReview(
            invoice=invoice,
            tax_discrepancies=find_tax_discrepancies(invoice),
            totals=reconcile_totals(invoice, self.totals_tolerance),
        )

    def prepare_bill(self, payload: Any, account_code: str) -> Bill:
        """Turn an extraction payload or a reviewed ``Invoice`` into a draft bill."""
        return map_to_bill(
            self.review(payload).invoice,
            account_code,
            tax_codes=self.tax_codes,
            default_currency=self.default_currency,
        )

    async def extract(self, content: bytes, file_name: str, mime_type: Optional[str] = None) -> Invoice:
        if self.extractor is None:
            raise RuntimeError("InvoicePipeline has no extractor configured")
        return await self.extractor.extract(content, file_name, mime_type)

    async def submit(
        self,
        payload: Any,
        account_code: str,
        auth: LedgerAuthContext,
        attachment: Optional[Attachment] = None
    ) -> SubmissionResult:
        """Map and submit an invoice, optionally attaching the source file."""
        if self.ledger is None:
            raise RuntimeError("InvoicePipeline has no ledger client configured")
        bill = self.prepare_bill(payload, account_code)
        return await self.ledger.submit_bill(bill, auth, attachment)

    async def process(
        self,
        content: bytes,
        file_name: str,
        account_code: str,
        auth: LedgerAuthContext,
        mime_type: Optional[str] = None,
        attach_source: bool = True
    ) -> SubmissionResult:
        """Extract one uploaded invoice and submit it as a draft bill."""
        invoice = await self.extract(content, file_name, mime_type)
        attachment = None
        if attach_source:
            attachment = Attachment(
                file_name=file_name,
                content=content,
                mime_type=resolve_media_type(file_name, mime_type),
            )
        result = await self.submit(invoice, account_code, auth, attachment)
        logger.info(
            f"[PIPELINE] {file_name} -> ledger invoice {result.invoice_id} "
            f"(attachment {'uploaded' if result.attachment_uploaded else 'skipped or failed'})"
        )
        return result
