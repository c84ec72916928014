"""Submission of draft bills to the ledger accounting API."""
import json
import logging
from typing import Any, Optional
from urllib.parse import quote

import aiohttp

from auction_invoice.config import Settings
from auction_invoice.core.exceptions import AuctionInvoiceError, LedgerHTTPError, LedgerResponseError, ValidationError
from auction_invoice.core.ledger_mapper import bill_to_payload, verify_bill
from auction_invoice.core.models import Attachment, Bill, LedgerAuthContext, SubmissionResult
from auction_invoice.core.retry import ResilientInvoker

logger = logging.getLogger(__name__)


class LedgerClient:
    """Creates draft bills and uploads their source documents.

    Credentials are passed with every call; the client keeps no token state.
    Use as an async context manager when it should own its HTTP session.
    """

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        invoker: Optional[ResilientInvoker] = None,
        timeout: float = 30.0
    ):
        self.base_url = base_url.rstrip("/")
        self.invoker = invoker or ResilientInvoker()
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_settings(cls, settings: Settings, session: Optional[aiohttp.ClientSession] = None) -> "LedgerClient":
        return cls(
            settings.ledger_api_url,
            session=session,
            invoker=ResilientInvoker.from_settings(settings),
            timeout=settings.ledger_timeout,
        )

    async def __aenter__(self):
        if self._session is None:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    @property
    def session(self) -> aiohttp.ClientSession:
        if self._session is None:
            raise RuntimeError("LedgerClient session not started; use 'async with LedgerClient(...)'")
        return self._session

    async def _request(self, method: str, url: str, auth: LedgerAuthContext, **kwargs) -> Any:
        headers = {"Accept": "application/json", **auth.headers, **kwargs.pop("headers", {})}
        async with self.session.request(method, url, headers=headers, **kwargs) as response:
            body = await response.text()
            if response.status >= 400:
                raise LedgerHTTPError(response.status, body, dict(response.headers), url)
            if not body:
                return {}
            try:
                return json.loads(body)
            except json.JSONDecodeError as exc:
                raise LedgerResponseError(f"Ledger returned non-JSON body from {url}: {body[:100]}") from exc

    async def create_bill(self, bill: Bill, auth: LedgerAuthContext) -> tuple[str, int]:
        """POST a draft bill. Returns the ledger invoice id and attempts used.

        Raises:
            ValidationError: If the bill breaks the line amount invariant
            LedgerHTTPError: If the ledger rejects the request
            LedgerResponseError: If the reply carries no invoice id
        """
        problems = verify_bill(bill)
        if problems:
            raise ValidationError("LineAmount", problems, "LineAmount must equal UnitAmount x Quantity on every line")

        url = f"{self.base_url}/Invoices"
        payload = bill_to_payload(bill)
        attempts = 0

        async def submit_operation():
            nonlocal attempts
            attempts += 1
            logger.info(f"[LEDGER] Submitting bill '{bill.invoice_number}' (attempt {attempts})")
            return await self._request("POST", url, auth, json=payload)

        reply = await self.invoker.invoke(submit_operation, operation_name=f"SUBMIT {bill.invoice_number}")

        try:
            invoice_id = reply["Invoices"][0]["InvoiceID"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LedgerResponseError(
                "Ledger reply did not contain an InvoiceID",
                {"reply": str(reply)[:200]}
            ) from exc
        return invoice_id, attempts

    async def upload_attachment(self, invoice_id: str, attachment: Attachment, auth: LedgerAuthContext) -> None:
        """PUT the original file onto an existing ledger invoice."""
        url = f"{self.base_url}/Invoices/{invoice_id}/Attachments/{quote(attachment.file_name)}"

        async def attach_operation():
            return await self._request(
                "PUT",
                url,
                auth,
                data=attachment.content,
                headers={"Content-Type": attachment.mime_type},
            )

        await self.invoker.invoke(attach_operation, operation_name=f"ATTACH {attachment.file_name}")

    async def submit_bill(
        self,
        bill: Bill,
        auth: LedgerAuthContext,
        attachment: Optional[Attachment] = None
    ) -> SubmissionResult:
        """Create the bill, then attach the source file on a best-effort basis.

        An attachment failure is logged and reported on the result; it never
        fails the submission.
        """
        invoice_id, attempts = await self.create_bill(bill, auth)
        logger.info(f"[LEDGER] Bill '{bill.invoice_number}' created as {invoice_id}")

        attachment_uploaded = False
        if attachment is not None:
            try:
                await self.upload_attachment(invoice_id, attachment, auth)
                attachment_uploaded = True
            except (AuctionInvoiceError, aiohttp.ClientError, TimeoutError) as exc:
                logger.warning(
                    f"[LEDGER] Attachment '{attachment.file_name}' for {invoice_id} failed: {str(exc)[:150]}"
                )

        return SubmissionResult(
            invoice_id=invoice_id,
            invoice_number=bill.invoice_number,
            attachment_uploaded=attachment_uploaded,
            attempts=attempts,
        )
