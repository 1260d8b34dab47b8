"""Pydantic models for checkout data."""
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Fields the address form must have before leaving the shipping step
REQUIRED_ADDRESS_FIELDS = ("first_name", "last_name", "street", "city", "state", "zip_code")


class CheckoutStep(IntEnum):
    SHIPPING = 1
    PAYMENT = 2


class PaymentSelection(str, Enum):
    """Which payment sub-flow the user picked."""
    CARD = "card"
    BUTTONS = "buttons"

    @property
    def provider_tag(self) -> str:
        """Name the backend and the success page use for this method."""
        return "stripe" if self is PaymentSelection.CARD else "paypal"


class ShippingAddress(BaseModel):
    """Shipping address as held by the address form. Sent to the backend in camelCase."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    first_name: str = ""
    last_name: str = ""
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = "USA"
    phone: str = ""

    def missing_fields(self) -> list[str]:
        return [name for name in REQUIRED_ADDRESS_FIELDS if not getattr(self, name).strip()]

    def is_complete(self) -> bool:
        return not self.missing_fields()

    def to_api(self) -> dict:
        return self.model_dump(by_alias=True)


class CartItem(BaseModel):
    """One line of the cart."""
    product_id: str
    name: str = ""
    quantity: int = 1
    unit_price: Decimal = Decimal("0")
    size: str | None = None
    color: str | None = None

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "CartItem":
        # The backend has shipped three item shapes: productId populated or
        # not, and a nested ``products`` record with its own price.
        product = raw.get("productId") or raw.get("products") or raw.get("product") or {}
        if isinstance(product, str):
            product_id, name, product_price = product, "", None
        else:
            product_id = str(product.get("_id") or product.get("id") or raw.get("product_id") or "")
            name = product.get("name", "")
            product_price = product.get("price")
        variant = raw.get("product_variants") or {}
        price = raw.get("price", raw.get("unitPrice", product_price)) or 0
        return cls(
            product_id=product_id or str(raw.get("_id") or raw.get("id") or ""),
            name=name,
            quantity=int(raw.get("quantity") or 0),
            unit_price=Decimal(str(price)),
            size=raw.get("size") or variant.get("size"),
            color=raw.get("color") or variant.get("color"),
        )


class CartSnapshot(BaseModel):
    """Read-only view of the shared cart at one point in time."""
    items: list[CartItem] = Field(default_factory=list)
    total_amount: Decimal = Decimal("0")

    @property
    def is_empty(self) -> bool:
        return not self.items

    @property
    def item_count(self) -> int:
        return sum(item.quantity for item in self.items)

    @classmethod
    def from_api(cls, raw: dict[str, Any] | None) -> "CartSnapshot":
        if not raw:
            return cls()
        items = [CartItem.from_api(item) for item in raw.get("items") or [] if item]
        summary = raw.get("summary") or {}
        total = raw.get("totalAmount", summary.get("subtotal"))
        if total is None:
            total = sum((item.line_total for item in items), Decimal("0"))
        return cls(items=items, total_amount=Decimal(str(total)))


class CheckoutSession(BaseModel):
    """Hosted card checkout session."""
    url: str
    session_id: str | None = None


class ProviderOrder(BaseModel):
    """Order reference minted by the buttons provider."""
    order_id: str
    approval_url: str | None = None


class ApproveData(BaseModel):
    """What the buttons widget hands to the approve callback."""
    order_id: str
    payer_id: str | None = None


class PaymentConfig(BaseModel):
    """Which payment methods the backend has enabled."""
    stripe_enabled: bool = True
    paypal_enabled: bool = True
    paypal_client_id: str = ""

    @property
    def available_methods(self) -> list[PaymentSelection]:
        methods = []
        if self.stripe_enabled:
            methods.append(PaymentSelection.CARD)
        if self.paypal_enabled:
            methods.append(PaymentSelection.BUTTONS)
        return methods

    @classmethod
    def from_api(cls, raw: dict[str, Any]) -> "PaymentConfig":
        features = raw.get("features") or {}
        paypal = raw.get("paypal") or {}
        return cls(
            stripe_enabled=bool(features.get("stripe_enabled", True)),
            paypal_enabled=bool(features.get("paypal_enabled", True)),
            paypal_client_id=paypal.get("client_id") or "",
        )
