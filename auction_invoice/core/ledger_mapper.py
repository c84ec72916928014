"""Mapping of canonical invoices to draft ledger bills.

The ledger applies VAT itself from the tax-type code on each line, so every
amount sent here must be pre-tax. It also rejects any line whose
``LineAmount`` is not exactly ``UnitAmount * Quantity`` after rounding.
"""
import logging
from typing import Any, Dict, List, Optional

from .dates import normalize_date
from .exceptions import ValidationError
from .models import Bill, BillLine, Contact, Invoice, LineItem, TaxCode, TaxCodeTable
from .tax import EXEMPT_LINE_TYPES, fill_missing_tax, round2

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "GBP"


def pre_tax_line_amount(item: LineItem) -> float:
    """Strip VAT from a line's stated amounts. The result is unrounded."""
    if item.tax_amount and item.tax_amount > 0:
        return item.line_total - item.tax_amount
    if item.vat_included and item.tax_rate and item.tax_rate > 0:
        return item.line_total / (1 + item.tax_rate / 100)
    return item.unit_price * item.quantity


def select_tax_code(item: LineItem) -> TaxCode:
    """Choose the ledger tax treatment for a line."""
    if item.line_type.value in EXEMPT_LINE_TYPES:
        return TaxCode.NONE
    if item.tax_type == "VAT" and item.tax_rate and item.tax_rate > 0:
        if item.tax_rate == 5:
            return TaxCode.VAT5
        # 20% and any other positive VAT rate
        return TaxCode.VAT20
    return TaxCode.NONE


def describe_line(item: LineItem) -> str:
    parts = [item.line_type.value]
    if item.lot_number:
        parts.append(f"Lot #{item.lot_number}")
    if item.description:
        parts.append(item.description)
    return " - ".join(parts).strip()


def map_line_item(item: LineItem, account_code: str, tax_codes: TaxCodeTable) -> BillLine:
    """Convert one invoice line into a pre-tax bill line."""
    # No unit amount exists for a zero quantity; this is the one line-level
    # rejection besides a missing account code.
    if item.quantity == 0:
        raise ValidationError("Quantity", item.quantity, "quantity must be non-zero to derive a unit amount")

    # Amounts come from the stated line. Derived tax fields are per unit and
    # only choose the tax code.
    unit_amount = round2(pre_tax_line_amount(item) / item.quantity)
    # Recomputed from the rounded unit amount so the ledger's check holds exactly
    line_amount = round2(unit_amount * item.quantity)
    classified = fill_missing_tax(item)
    tax_code = select_tax_code(classified)

    logger.debug(
        f"Line '{item.description}': type={item.line_type.value} rate={classified.tax_rate} "
        f"tax={item.tax_amount} -> unit={unit_amount} amount={line_amount} code={tax_code.value}"
    )

    return BillLine(
        description=describe_line(item),
        quantity=item.quantity,
        unit_amount=unit_amount,
        account_code=account_code,
        line_amount=line_amount,
        tax_type=tax_codes.resolve(tax_code),
    )


def map_to_bill(
    invoice: Invoice,
    account_code: str,
    *,
    tax_codes: Optional[TaxCodeTable] = None,
    default_currency: str = DEFAULT_CURRENCY
) -> Bill:
    """Map an invoice to a draft bill for the ledger.

    Args:
        invoice: Normalized invoice
        account_code: Ledger expense account every line is posted to
        tax_codes: Ledger tax-type codes (defaults to Xero UK purchase codes)
        default_currency: Currency used when the invoice has none

    Returns:
        Draft ``Bill`` with pre-tax line amounts

    Raises:
        ValidationError: If the account code is blank or a line has zero quantity
    """
    if not account_code or not account_code.strip():
        raise ValidationError("AccountCode", account_code, "an account code is required for every bill line")

    tax_codes = tax_codes or TaxCodeTable()
    account_code = account_code.strip()
    invoice_date = normalize_date(invoice.invoice_date)

    bill = Bill(
        contact=Contact(name=invoice.supplier_name),
        date_string=invoice_date,
        due_date_string=invoice_date,
        invoice_number=invoice.invoice_number,
        currency_code=invoice.currency.strip() or default_currency,
        line_items=[map_line_item(item, account_code, tax_codes) for item in invoice.line_items],
    )

    logger.info(
        f"Mapped invoice '{invoice.invoice_number}' to draft bill with {len(bill.line_items)} lines "
        f"(account {account_code})"
    )
    return bill


def verify_bill(bill: Bill) -> List[str]:
    """Return a message for every line breaking ``LineAmount == UnitAmount * Quantity``."""
    problems = []
    for index, line in enumerate(bill.line_items, start=1):
        expected = round2(line.unit_amount * line.quantity)
        if line.line_amount != expected:
            problems.append(
                f"Line {index}: LineAmount {line.line_amount} != UnitAmount x Quantity ({expected})"
            )
    return problems


def bill_to_payload(bill: Bill) -> Dict[str, Any]:
    """Render a bill as the ledger's JSON request body."""
    return {"Invoices": [bill.model_dump(by_alias=True, mode="json")]}
