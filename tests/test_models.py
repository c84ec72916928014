"""Tests for data models."""
import json

import pytest
from pydantic import ValidationError as PydanticValidationError

from auction_invoice.core.exceptions import ErrorKind
from auction_invoice.core.models import (
    Bill,
    BillLine,
    Contact,
    Invoice,
    LedgerAuthContext,
    LineItem,
    LineType,
    RetryOutcome,
    SubmissionResult,
    TaxCode,
    TaxCodeTable,
)


@pytest.fixture
def sample_line_data():
    """Sample line item in the extraction wire format."""
    return {
        "LineType": "Surcharge",
        "LotNumber": "",
        "Description": "Live Bidding Surcharge",
        "Quantity": 1,
        "UnitPrice": 200,
        "TaxType": "VAT",
        "TaxRate": 20,
        "TaxAmount": 40,
        "VatIncluded": False,
        "LineTotal": 240,
    }


class TestLineItem:
    """Test LineItem model."""

    def test_from_wire_format(self, sample_line_data):
        item = LineItem.model_validate(sample_line_data)

        assert item.line_type == LineType.SURCHARGE
        assert item.unit_price == 200
        assert item.tax_amount == 40

    def test_populate_by_name(self):
        item = LineItem(line_type=LineType.PREMIUM, unit_price=25)

        assert item.line_type == LineType.PREMIUM
        assert item.quantity == 1
        assert item.tax_rate is None

    def test_dump_uses_wire_names(self, sample_line_data):
        item = LineItem.model_validate(sample_line_data)

        assert item.model_dump(by_alias=True, mode="json") == sample_line_data

    def test_rejects_unknown_line_type(self):
        with pytest.raises(PydanticValidationError):
            LineItem.model_validate({"LineType": "Hammer"})


class TestInvoice:
    """Test Invoice model."""

    def test_defaults_are_populated(self):
        invoice = Invoice()

        assert invoice.invoice_number == ""
        assert invoice.total_amount == 0
        assert invoice.line_items == []

    def test_json_round_trip(self, sample_line_data):
        invoice = Invoice.model_validate({
            "InvoiceNumber": "INV-1",
            "InvoiceDate": "2025-11-20",
            "SupplierName": "Grange Salerooms",
            "TotalAmount": 240,
            "Currency": "GBP",
            "LineItems": [sample_line_data],
        })

        restored = Invoice.model_validate(json.loads(invoice.model_dump_json(by_alias=True)))

        assert restored == invoice


class TestTaxCodeTable:
    """Test ledger tax-type code resolution."""

    def test_default_codes(self):
        table = TaxCodeTable()

        assert table.resolve(TaxCode.NONE) == "NONE"
        assert table.resolve(TaxCode.VAT20) == "INPUT2"
        assert table.resolve(TaxCode.VAT5) == "INPUT"

    def test_custom_codes(self):
        table = TaxCodeTable(vat20="TAX20")

        assert table.resolve(TaxCode.VAT20) == "TAX20"
        assert table.resolve(TaxCode.NONE) == "NONE"


class TestLedgerAuthContext:
    """Test per-call ledger credentials."""

    def test_headers(self):
        auth = LedgerAuthContext(access_token="abc", tenant_id="tenant-1")

        assert auth.headers == {"Authorization": "Bearer abc", "xero-tenant-id": "tenant-1"}

    @pytest.mark.parametrize("token, tenant", [("", "tenant-1"), ("abc", "  ")])
    def test_blank_credentials_rejected(self, token, tenant):
        with pytest.raises(PydanticValidationError):
            LedgerAuthContext(access_token=token, tenant_id=tenant)


class TestBill:
    """Test Bill model."""

    def test_draft_accpay_defaults(self):
        bill = Bill(contact=Contact(name="Grange Salerooms"), currency_code="GBP")
        data = bill.model_dump(by_alias=True, mode="json")

        assert data["Type"] == "ACCPAY"
        assert data["Status"] == "DRAFT"
        assert data["LineItems"] == []

    def test_bill_line_requires_tax_type(self):
        with pytest.raises(PydanticValidationError):
            BillLine(description="x", quantity=1, unit_amount=1, account_code="310", line_amount=1)


class TestResultModels:
    """Test retry and submission result models."""

    def test_retry_outcome_requires_an_attempt(self):
        with pytest.raises(PydanticValidationError):
            RetryOutcome(
                operation_name="op", attempts=0, last_error="x",
                error_kind=ErrorKind.UNKNOWN, transient=True,
            )

    def test_submission_result_defaults(self):
        result = SubmissionResult(invoice_id="abc-123")

        assert result.attachment_uploaded is False
        assert result.attempts == 1
