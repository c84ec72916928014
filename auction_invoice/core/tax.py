"""Auction house VAT rules.

Hammer price (Lot) and buyer's premium (Premium) fall under the margin scheme
and carry no VAT. Every other charge (postage, packing, live bidding,
insurance) is standard rated at 20%, added on top of the unit price.
"""
import logging
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict

from .models import Invoice, LineItem, LineType, TotalsReconciliation

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
STANDARD_VAT_RATE = 20.0
EXEMPT_LINE_TYPES = frozenset({LineType.LOT.value, LineType.PREMIUM.value})


def round2(value: float) -> float:
    """Round a money amount to 2 decimal places, half away from zero."""
    return float(Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP))


class LineTotalRule(str, Enum):
    """How a line's total is derived from its unit price."""
    UNIT_PRICE = "unit_price"
    UNIT_PRICE_PLUS_TAX = "unit_price_plus_tax"


class TaxTreatment(BaseModel):
    """VAT treatment for one line type."""
    model_config = ConfigDict(frozen=True)

    tax_type: Optional[str]
    tax_rate: float
    vat_included: bool = False
    line_total_rule: LineTotalRule

    def tax_amount_for(self, unit_price: float) -> float:
        if self.line_total_rule is LineTotalRule.UNIT_PRICE:
            return 0.0
        return round2(unit_price * self.tax_rate / 100)

    def line_total_for(self, unit_price: float) -> float:
        if self.line_total_rule is LineTotalRule.UNIT_PRICE:
            return unit_price
        return round2(unit_price + self.tax_amount_for(unit_price))


EXEMPT = TaxTreatment(tax_type=None, tax_rate=0.0, line_total_rule=LineTotalRule.UNIT_PRICE)
STANDARD_RATED = TaxTreatment(
    tax_type="VAT",
    tax_rate=STANDARD_VAT_RATE,
    line_total_rule=LineTotalRule.UNIT_PRICE_PLUS_TAX,
)


def classify_line(line_type: Union[LineType, str, None], description: str = "") -> TaxTreatment:
    """Return the VAT treatment for a line type.

    Unrecognized line types are taxed like a Surcharge. This is deliberately
    different from the normalizer, which files unknown types under Lot.
    """
    value = line_type.value if isinstance(line_type, LineType) else line_type
    if value in EXEMPT_LINE_TYPES:
        return EXEMPT

    if value != LineType.SURCHARGE.value:
        logger.debug(f"Unrecognized line type {value!r} ('{description}') taxed as Surcharge")
    return STANDARD_RATED


def apply_tax_rules(item: LineItem) -> LineItem:
    """Return a copy of ``item`` with its tax fields re-derived from its line type."""
    treatment = classify_line(item.line_type, item.description)
    return item.model_copy(update={
        "tax_type": treatment.tax_type,
        "tax_rate": treatment.tax_rate,
        "tax_amount": treatment.tax_amount_for(item.unit_price),
        "vat_included": treatment.vat_included,
        "line_total": treatment.line_total_for(item.unit_price),
    })


def fill_missing_tax(item: LineItem) -> LineItem:
    """Classify ``item`` only if it carries no tax information at all."""
    if item.tax_rate is None and item.tax_amount is None:
        return apply_tax_rules(item)
    return item


def classify_invoice(invoice: Invoice) -> Invoice:
    """Re-derive the tax fields of every line item."""
    return invoice.model_copy(update={
        "line_items": [apply_tax_rules(item) for item in invoice.line_items]
    })


def find_tax_discrepancies(invoice: Invoice, tolerance: float = 0.005) -> List[str]:
    """Compare the stated tax figures with the ones the rules produce.

    Returns one human-readable message per mismatching field. Fields the model
    left empty are not reported.
    """
    discrepancies = []
    for index, item in enumerate(invoice.line_items, start=1):
        expected = apply_tax_rules(item)
        label = f"Line {index} ({item.line_type.value})"

        if item.tax_amount is not None and abs(item.tax_amount - expected.tax_amount) > tolerance:
            discrepancies.append(
                f"{label}: TaxAmount {item.tax_amount} does not match expected {expected.tax_amount}"
            )
        if item.tax_rate is not None and abs(item.tax_rate - expected.tax_rate) > tolerance:
            discrepancies.append(
                f"{label}: TaxRate {item.tax_rate} does not match expected {expected.tax_rate}"
            )
        if item.line_total and abs(item.line_total - expected.line_total) > tolerance:
            discrepancies.append(
                f"{label}: LineTotal {item.line_total} does not match expected {expected.line_total}"
            )

    for message in discrepancies:
        logger.warning(f"[TAX] {invoice.invoice_number or 'invoice'} - {message}")
    return discrepancies


def reconcile_totals(invoice: Invoice, tolerance: float = 0.01) -> TotalsReconciliation:
    """Check the header total against the sum of the line totals."""
    computed = round2(sum(item.line_total for item in invoice.line_items))
    difference = round2(invoice.total_amount - computed)
    within_tolerance = abs(difference) <= tolerance

    if not within_tolerance:
        logger.warning(
            f"[TOTALS] {invoice.invoice_number or 'invoice'} - stated total {invoice.total_amount} "
            f"differs from line total {computed} by {difference}"
        )

    return TotalsReconciliation(
        stated_total=invoice.total_amount,
        computed_total=computed,
        difference=difference,
        tolerance=tolerance,
        within_tolerance=within_tolerance,
    )
