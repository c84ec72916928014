"""Canonical data models for auction invoice processing."""
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_pascal

from .exceptions import ErrorKind


class LineType(str, Enum):
    """Auction invoice line classifications."""
    LOT = "Lot"
    PREMIUM = "Premium"
    SURCHARGE = "Surcharge"


class TaxCode(str, Enum):
    """Ledger-independent tax treatment selected for a bill line."""
    NONE = "none"
    VAT20 = "vat20"
    VAT5 = "vat5"


class BillType(str, Enum):
    """Ledger invoice types. Bills are accounts payable."""
    ACCPAY = "ACCPAY"


class BillStatus(str, Enum):
    """Ledger invoice statuses. Bills are only ever created as drafts."""
    DRAFT = "DRAFT"


class _WireModel(BaseModel):
    """Snake_case attributes, PascalCase on the wire."""
    model_config = ConfigDict(alias_generator=to_pascal, populate_by_name=True)


class LineItem(_WireModel):
    """A single line of an auction house invoice."""
    line_type: LineType = Field(default=LineType.LOT)
    lot_number: str = Field(default="")
    description: str = Field(default="")
    quantity: float = Field(default=1, description="Units charged")
    unit_price: float = Field(default=0, description="Base price before VAT")
    tax_type: Optional[str] = Field(default=None, description="Tax scheme, e.g. VAT")
    tax_rate: Optional[float] = Field(default=None, description="Tax rate as percentage (20 for 20%)")
    tax_amount: Optional[float] = Field(default=None)
    vat_included: bool = Field(default=False, description="Whether line_total already includes VAT")
    line_total: float = Field(default=0, description="Amount as shown on the invoice")


class Invoice(_WireModel):
    """Canonical invoice, fully populated once normalized."""
    invoice_number: str = Field(default="")
    invoice_date: str = Field(default="", description="Invoice issue date (YYYY-MM-DD)")
    supplier_name: str = Field(default="")
    total_amount: float = Field(default=0)
    currency: str = Field(default="")
    line_items: List[LineItem] = Field(default_factory=list)


class TaxCodeTable(BaseModel):
    """Maps selected tax treatments to the ledger's tax-type codes."""
    none: str = Field(default="NONE", description="No VAT applicable")
    vat20: str = Field(default="INPUT2", description="20% VAT on purchases")
    vat5: str = Field(default="INPUT", description="5% VAT on purchases")

    def resolve(self, code: TaxCode) -> str:
        return getattr(self, code.value)


class Contact(_WireModel):
    name: str = Field(default="")


class BillLine(_WireModel):
    """A ledger bill line. Amounts are always pre-tax."""
    description: str
    quantity: float
    unit_amount: float
    account_code: str
    line_amount: float
    tax_type: str = Field(..., description="Ledger tax-type code")


class Bill(_WireModel):
    """Draft purchase invoice in the ledger's representation."""
    type: BillType = Field(default=BillType.ACCPAY)
    contact: Contact
    date_string: Optional[str] = None
    due_date_string: Optional[str] = None
    invoice_number: str = Field(default="")
    currency_code: str
    status: BillStatus = Field(default=BillStatus.DRAFT)
    line_items: List[BillLine] = Field(default_factory=list)


class RetryOutcome(BaseModel):
    """Diagnostics attached to an error raised by the retry wrapper."""
    operation_name: str
    attempts: int = Field(..., ge=1)
    last_error: str
    error_kind: ErrorKind
    transient: bool
    delays: List[float] = Field(default_factory=list, description="Seconds waited before each retry")


class LedgerAuthContext(BaseModel):
    """Credentials for a single ledger call."""
    access_token: str
    tenant_id: str

    @field_validator("access_token", "tenant_id")
    @classmethod
    def must_not_be_blank(cls, v):
        if not v or not v.strip():
            raise ValueError("must be provided")
        return v

    @property
    def headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.access_token}",
            "xero-tenant-id": self.tenant_id,
        }


class Attachment(BaseModel):
    """Original source file uploaded alongside a bill."""
    file_name: str
    content: bytes
    mime_type: str = Field(default="application/octet-stream")


class SubmissionResult(BaseModel):
    """Result of submitting a bill to the ledger."""
    invoice_id: str
    invoice_number: str = Field(default="")
    attachment_uploaded: bool = Field(default=False)
    attempts: int = Field(default=1, ge=1)


class TotalsReconciliation(BaseModel):
    """Header total compared with the sum of line totals."""
    stated_total: float
    computed_total: float
    difference: float
    tolerance: float
    within_tolerance: bool


class InvoiceReview(BaseModel):
    """A normalized invoice with its stated figures checked against the VAT rules."""
    invoice: Invoice
    tax_discrepancies: List[str] = Field(default_factory=list)
    totals: TotalsReconciliation

    @property
    def is_consistent(self) -> bool:
        return not self.tax_discrepancies and self.totals.within_tolerance
