"""Storefront REST backend client."""
from .base import StorefrontAPI
from .client import HttpStorefrontClient

__all__ = ["StorefrontAPI", "HttpStorefrontClient"]
