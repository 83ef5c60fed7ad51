"""
FBR tax category table.

Maps a product's tax classification to the rate, the FBR "saleType"
label, the sandbox scenario id and the rule used to compute the taxable
base. The two calculation paths are fixed by the FBR schema:

- VALUE: tax on price x quantity (standard, reduced, steel)
- RETAIL_PRICE: third schedule goods, taxed on the printed retail price,
  reported in fixedNotifiedValueOrRetailPrice with a zero sales value
- EXEMPT: no tax at all
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal


BASIS_VALUE = "value"
BASIS_RETAIL_PRICE = "retail_price"
BASIS_EXEMPT = "exempt"


@dataclass(frozen=True)
class TaxCategory:
    code: str
    rate: Decimal  # percent
    sale_type: str
    scenario_id: str
    basis: str

    @property
    def rate_label(self) -> str:
        """Rate as FBR expects it on the item, e.g. '18%'."""
        return f"{self.rate.normalize():f}%"


TAX_CATEGORIES: dict[str, TaxCategory] = {
    "standard_rate": TaxCategory(
        code="standard_rate",
        rate=Decimal("18"),
        sale_type="Goods at standard rate (default)",
        scenario_id="SN001",
        basis=BASIS_VALUE,
    ),
    "third_schedule": TaxCategory(
        code="third_schedule",
        rate=Decimal("18"),
        sale_type="Third Schedule (MRP)",
        scenario_id="SN008",
        basis=BASIS_RETAIL_PRICE,
    ),
    "reduced_rate": TaxCategory(
        code="reduced_rate",
        rate=Decimal("5"),
        sale_type="Goods at reduced rate",
        scenario_id="SN002",
        basis=BASIS_VALUE,
    ),
    "exempt": TaxCategory(
        code="exempt",
        rate=Decimal("0"),
        sale_type="Exempt",
        scenario_id="SN006",
        basis=BASIS_EXEMPT,
    ),
    "steel": TaxCategory(
        code="steel",
        rate=Decimal("18"),
        sale_type="Steel",
        scenario_id="SN010",
        basis=BASIS_VALUE,
    ),
}

DEFAULT_TAX_CATEGORY = "standard_rate"


def get_tax_category(code: str | None) -> TaxCategory | None:
    """Lookup by code; None/blank means the default category, unknown codes return None."""
    if code is None or not code.strip():
        return TAX_CATEGORIES[DEFAULT_TAX_CATEGORY]
    return TAX_CATEGORIES.get(code.strip())
