"""Checkout data model."""
from .schema import (
    ApproveData,
    CartItem,
    CartSnapshot,
    CheckoutSession,
    CheckoutStep,
    PaymentConfig,
    PaymentSelection,
    ProviderOrder,
    ShippingAddress,
)
from .totals import Totals, compute_totals

__all__ = [
    "ApproveData",
    "CartItem",
    "CartSnapshot",
    "CheckoutSession",
    "CheckoutStep",
    "PaymentConfig",
    "PaymentSelection",
    "ProviderOrder",
    "ShippingAddress",
    "Totals",
    "compute_totals",
]
