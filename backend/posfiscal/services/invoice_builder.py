"""
Invoice Builder - turns a finalized sale into an FBR Digital Invoicing document.

The output mirrors the FBR schema field-for-field (camelCase names are part
of the external contract). Building is pure: the same sale, unchanged,
always produces the same document, and nothing is written to the database.

TAX ARITHMETIC (per item, keyed by the product's tax category):
- value basis:        valueSalesExcludingST = price x qty,
                      salesTaxApplicable = value x rate / 100,
                      totalValues = value + tax
- retail price basis: valueSalesExcludingST = 0,
                      fixedNotifiedValueOrRetailPrice = retail price x qty,
                      salesTaxApplicable = retail x rate / 100,
                      totalValues = retail + tax
- exempt:             rate 0, salesTaxApplicable = 0, totalValues = value

Missing registration data, missing HS codes or an empty sale raise
InvoiceBuildError; those are data problems and are never retried.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from ..models import Sale
from ..time_utils import to_invoice_date
from .tax_categories import (
    BASIS_EXEMPT,
    BASIS_RETAIL_PRICE,
    DEFAULT_TAX_CATEGORY,
    TAX_CATEGORIES,
    get_tax_category,
)


CENT = Decimal("0.01")
HUNDRED = Decimal("100")

INVOICE_TYPE = "Sale Invoice"

# Walk-in buyer placeholder
WALK_IN_NTN_CNIC = "0000000000000"
WALK_IN_NAME = "Walk-in Customer"
WALK_IN_ADDRESS = "N/A"
UNREGISTERED = "Unregistered"


class InvoiceBuildError(ValueError):
    """Raised when a sale cannot be turned into a valid FBR document."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _from_cents(cents: int | None) -> Decimal:
    return _round(Decimal(cents or 0) / HUNDRED)


@dataclass(frozen=True)
class InvoiceItem:
    hs_code: str
    description: str
    rate: str
    unit_of_measure: str
    quantity: Decimal
    total_value: Decimal
    value_excluding_tax: Decimal
    fixed_notified_value: Decimal
    tax_applicable: Decimal
    sale_type: str
    discount: Decimal = Decimal("0.00")
    tax_withheld: Decimal = Decimal("0.00")
    extra_tax: Decimal = Decimal("0.00")
    further_tax: Decimal = Decimal("0.00")
    fed_payable: Decimal = Decimal("0.00")
    sro_schedule_no: str = ""
    sro_item_serial_no: str = ""

    def to_payload(self) -> dict:
        return {
            "hsCode": self.hs_code,
            "productDescription": self.description,
            "rate": self.rate,
            "uoM": self.unit_of_measure,
            "quantity": float(self.quantity),
            "totalValues": float(self.total_value),
            "valueSalesExcludingST": float(self.value_excluding_tax),
            "fixedNotifiedValueOrRetailPrice": float(self.fixed_notified_value),
            "salesTaxApplicable": float(self.tax_applicable),
            "salesTaxWithheldAtSource": float(self.tax_withheld),
            "extraTax": float(self.extra_tax),
            "furtherTax": float(self.further_tax),
            "sroScheduleNo": self.sro_schedule_no,
            "fedPayable": float(self.fed_payable),
            "discount": float(self.discount),
            "saleType": self.sale_type,
            "sroItemSerialNo": self.sro_item_serial_no,
        }


@dataclass(frozen=True)
class InvoiceHeader:
    invoice_date: str
    seller_ntn_cnic: str
    seller_business_name: str
    seller_province: str
    seller_address: str
    buyer_ntn_cnic: str
    buyer_business_name: str
    buyer_province: str
    buyer_address: str
    buyer_registration_type: str
    invoice_ref_no: str
    scenario_id: str
    invoice_type: str = INVOICE_TYPE

    def to_payload(self) -> dict:
        return {
            "invoiceType": self.invoice_type,
            "invoiceDate": self.invoice_date,
            "sellerNTNCNIC": self.seller_ntn_cnic,
            "sellerBusinessName": self.seller_business_name,
            "sellerProvince": self.seller_province,
            "sellerAddress": self.seller_address,
            "buyerNTNCNIC": self.buyer_ntn_cnic,
            "buyerBusinessName": self.buyer_business_name,
            "buyerProvince": self.buyer_province,
            "buyerAddress": self.buyer_address,
            "buyerRegistrationType": self.buyer_registration_type,
            "invoiceRefNo": self.invoice_ref_no,
            "scenarioId": self.scenario_id,
        }


@dataclass(frozen=True)
class InvoiceDocument:
    header: InvoiceHeader
    items: tuple[InvoiceItem, ...] = field(default_factory=tuple)

    @property
    def total_value(self) -> Decimal:
        return sum((item.total_value for item in self.items), Decimal("0.00"))

    @property
    def total_tax(self) -> Decimal:
        return sum((item.tax_applicable for item in self.items), Decimal("0.00"))

    def to_payload(self) -> dict:
        payload = self.header.to_payload()
        payload["items"] = [item.to_payload() for item in self.items]
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_payload(), separators=(",", ":"), ensure_ascii=False)


def _seller_problems(org) -> list[str]:
    missing = []
    if org is None:
        return ["organization"]
    if not (org.ntn or "").strip():
        missing.append("ntn")
    if not (org.business_name or "").strip():
        missing.append("business_name")
    if not (org.province or "").strip():
        missing.append("province")
    return missing


def _build_item(line, category) -> InvoiceItem:
    product = line.product
    quantity = Decimal(line.quantity)
    unit_price = _from_cents(line.unit_price_cents)
    rate = category.rate

    fixed_notified = Decimal("0.00")
    if category.basis == BASIS_RETAIL_PRICE:
        retail_cents = line.retail_price_cents
        if retail_cents is None:
            retail_cents = product.retail_price_cents
        if retail_cents is None:
            retail_cents = line.unit_price_cents
        retail_value = _round(_from_cents(retail_cents) * quantity)
        value = Decimal("0.00")
        fixed_notified = retail_value
        tax = _round(retail_value * rate / HUNDRED)
        total = retail_value + tax
    elif category.basis == BASIS_EXEMPT:
        value = _round(unit_price * quantity)
        tax = Decimal("0.00")
        total = value
    else:
        value = _round(unit_price * quantity)
        tax = _round(value * rate / HUNDRED)
        total = value + tax

    return InvoiceItem(
        hs_code=product.hs_code.strip(),
        description=product.name,
        rate=category.rate_label,
        unit_of_measure=product.unit_of_measure.strip(),
        quantity=quantity,
        total_value=total,
        value_excluding_tax=value,
        fixed_notified_value=fixed_notified,
        tax_applicable=tax,
        sale_type=category.sale_type,
        discount=_from_cents(line.discount_cents),
        sro_schedule_no=product.sro_schedule_no or "",
        sro_item_serial_no=product.sro_item_serial_no or "",
    )


def _scenario_for(categories: list) -> str:
    codes = {c.code for c in categories}
    if len(codes) == 1:
        return categories[0].scenario_id
    return TAX_CATEGORIES[DEFAULT_TAX_CATEGORY].scenario_id


def build_invoice(sale: Sale, *, tolerance_cents: int = 1) -> InvoiceDocument:
    """
    Build the FBR invoice document for a sale.

    tolerance_cents is the allowed rounding drift per item when reconciling
    item totals (less discounts) with sale.total_cents.
    """
    org = sale.organization
    missing_seller = _seller_problems(org)
    if missing_seller:
        raise InvoiceBuildError(
            "Seller registration profile is incomplete",
            details={"missing": missing_seller},
        )

    lines = list(sale.lines)
    if not lines:
        raise InvoiceBuildError("Cannot report a sale with no items")

    sale_date = sale.completed_at or sale.created_at
    if sale_date is None:
        raise InvoiceBuildError("Sale has no date")

    line_problems = []
    categories = []
    for line in lines:
        product = line.product
        problems = []
        if product is None:
            line_problems.append({"sale_line_id": line.id, "problems": ["product"]})
            continue
        category = get_tax_category(product.tax_category)
        if category is None:
            problems.append("tax_category")
        if not (product.hs_code or "").strip():
            problems.append("hs_code")
        if not (product.unit_of_measure or "").strip():
            problems.append("unit_of_measure")
        if line.quantity is None or line.quantity <= 0:
            problems.append("quantity")
        if line.unit_price_cents is None or line.unit_price_cents < 0:
            problems.append("unit_price")
        if problems:
            line_problems.append({
                "sale_line_id": line.id,
                "product_id": product.id,
                "sku": product.sku,
                "problems": problems,
            })
        categories.append(category)

    if line_problems:
        raise InvoiceBuildError(
            "Sale items are missing FBR data",
            details={"items": line_problems},
        )

    items = tuple(_build_item(line, category) for line, category in zip(lines, categories))

    if sale.total_cents is not None:
        net_total = sum((item.total_value - item.discount for item in items), Decimal("0.00"))
        drift = abs(net_total - _from_cents(sale.total_cents))
        allowed = _from_cents(tolerance_cents * len(items))
        if drift > allowed:
            raise InvoiceBuildError(
                "Invoice items do not reconcile with the sale total",
                details={
                    "sale_total": float(_from_cents(sale.total_cents)),
                    "invoice_total": float(net_total),
                },
            )

    customer = sale.customer
    if customer is not None:
        buyer_ntn = (customer.ntn_cnic or "").strip() or WALK_IN_NTN_CNIC
        buyer_name = customer.name
        buyer_province = customer.province or org.province
        buyer_address = customer.address or WALK_IN_ADDRESS
        buyer_registration = customer.registration_type or UNREGISTERED
    else:
        buyer_ntn = WALK_IN_NTN_CNIC
        buyer_name = WALK_IN_NAME
        buyer_province = org.province
        buyer_address = WALK_IN_ADDRESS
        buyer_registration = UNREGISTERED

    header = InvoiceHeader(
        invoice_date=to_invoice_date(sale_date),
        seller_ntn_cnic=org.ntn.strip(),
        seller_business_name=org.business_name.strip(),
        seller_province=org.province.strip(),
        seller_address=(org.address or "").strip(),
        buyer_ntn_cnic=buyer_ntn,
        buyer_business_name=buyer_name,
        buyer_province=buyer_province,
        buyer_address=buyer_address,
        buyer_registration_type=buyer_registration,
        invoice_ref_no=sale.invoice_number,
        scenario_id=_scenario_for(categories),
    )

    return InvoiceDocument(header=header, items=items)
