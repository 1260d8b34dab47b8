"""Order summary arithmetic."""
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

TAX_RATE = Decimal("0.10")
FREE_SHIPPING_THRESHOLD = Decimal("100")
FLAT_SHIPPING = Decimal("10")

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal

    def to_dict(self) -> dict:
        return {
            "subtotal": f"{self.subtotal:.2f}",
            "tax": f"{self.tax:.2f}",
            "shipping": f"{self.shipping:.2f}",
            "total": f"{self.total:.2f}",
        }


def compute_totals(subtotal: Decimal | int | float | str) -> Totals:
    """Tax is 10% rounded to cents; shipping is free strictly above 100."""
    subtotal = Decimal(str(subtotal)).quantize(_CENTS, rounding=ROUND_HALF_UP)
    tax = (subtotal * TAX_RATE).quantize(_CENTS, rounding=ROUND_HALF_UP)
    shipping = Decimal("0.00") if subtotal > FREE_SHIPPING_THRESHOLD else FLAT_SHIPPING.quantize(_CENTS)
    return Totals(subtotal=subtotal, tax=tax, shipping=shipping, total=subtotal + tax + shipping)
