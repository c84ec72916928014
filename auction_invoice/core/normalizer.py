"""Coercion of untrusted model output into the canonical invoice model.

The extraction model is treated as unreliable input: every field is checked
for its type and replaced with a safe default when it does not fit. Nothing
in here raises; garbage in yields a fully populated, mostly empty invoice.
"""
import logging
import math
from collections.abc import Mapping
from typing import Any, Optional

from .models import Invoice, LineItem, LineType

logger = logging.getLogger(__name__)

ENVELOPE_KEYS = ("invoiceData", "InvoiceData")

_LINE_TYPES = {line_type.value: line_type for line_type in LineType}


def _to_number(value: Any, fallback: float = 0) -> float:
    parsed = _to_nullable_number(value)
    return fallback if parsed is None else parsed


def _to_nullable_number(value: Any) -> Optional[float]:
    # bool is an int subclass but never a valid amount
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return value if math.isfinite(value) else None
        except OverflowError:
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = float(value.strip())
        except ValueError:
            return None
        return parsed if math.isfinite(parsed) else None
    return None


def _to_string(value: Any, fallback: str = "") -> str:
    return value if isinstance(value, str) else fallback


def _to_bool(value: Any, fallback: bool = False) -> bool:
    return value if isinstance(value, bool) else fallback


def _to_line_type(value: Any) -> LineType:
    if isinstance(value, LineType):
        return value
    if isinstance(value, str) and value in _LINE_TYPES:
        return _LINE_TYPES[value]
    return LineType.LOT


def _unwrap(payload: Any) -> Mapping:
    if isinstance(payload, Invoice):
        return payload.model_dump(by_alias=True)
    if not isinstance(payload, Mapping):
        return {}
    for key in ENVELOPE_KEYS:
        inner = payload.get(key)
        if isinstance(inner, Mapping):
            return inner
    return payload


def normalize_line_item(item: Any) -> LineItem:
    """Coerce a single raw line item into a ``LineItem``."""
    if isinstance(item, LineItem):
        item = item.model_dump(by_alias=True)
    if not isinstance(item, Mapping):
        item = {}

    tax_type = item.get("TaxType")
    return LineItem(
        line_type=_to_line_type(item.get("LineType")),
        lot_number=_to_string(item.get("LotNumber")),
        description=_to_string(item.get("Description")),
        quantity=_to_number(item.get("Quantity"), 1),
        unit_price=_to_number(item.get("UnitPrice"), 0),
        tax_type=tax_type if isinstance(tax_type, str) and tax_type else None,
        tax_rate=_to_nullable_number(item.get("TaxRate")),
        tax_amount=_to_nullable_number(item.get("TaxAmount")),
        vat_included=_to_bool(item.get("VatIncluded")),
        line_total=_to_number(item.get("LineTotal"), 0),
    )


def normalize_invoice(payload: Any) -> Invoice:
    """Convert an extraction payload into a canonical ``Invoice``.

    Accepts a bare invoice mapping, an ``{"invoiceData": {...}}`` envelope or
    an existing ``Invoice``. Unknown keys are ignored, missing or mistyped
    fields fall back to defaults, ``None`` line items are dropped.
    """
    data = _unwrap(payload)

    raw_items = data.get("LineItems")
    if isinstance(raw_items, (list, tuple)):
        line_items = [normalize_line_item(item) for item in raw_items if item is not None]
    else:
        if raw_items is not None:
            logger.warning(f"LineItems is {type(raw_items).__name__}, expected a list; using no line items")
        line_items = []

    invoice = Invoice(
        invoice_number=_to_string(data.get("InvoiceNumber")),
        invoice_date=_to_string(data.get("InvoiceDate")),
        supplier_name=_to_string(data.get("SupplierName")),
        total_amount=_to_number(data.get("TotalAmount"), 0),
        currency=_to_string(data.get("Currency")),
        line_items=line_items,
    )
    logger.debug(
        f"Normalized invoice '{invoice.invoice_number}' with {len(invoice.line_items)} line items"
    )
    return invoice
