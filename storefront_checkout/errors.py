"""Checkout error taxonomy.

Every error carries a ``user_message`` suitable for a toast. Handlers catch
these at the operation boundary (submit handler or widget callback) and never
let them escape further.
"""


class CheckoutError(Exception):
    """Base class for everything the checkout flow reports to the user."""

    default_message = "Something went wrong while placing your order."

    def __init__(self, message: str | None = None):
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class ValidationError(CheckoutError):
    """Missing required shipping fields, client- or server-side."""

    default_message = "Please complete all required shipping fields."

    def __init__(self, message: str | None = None, missing: list[str] | None = None):
        super().__init__(message)
        self.missing = missing or []


class NetworkError(CheckoutError):
    """Transport failure or an error response from the storefront backend."""

    default_message = "Could not reach the store. Please try again."

    def __init__(self, message: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SchemaError(CheckoutError):
    """The backend answered, but without a field we depend on."""

    default_message = "The store returned an unexpected response. Please try again."


class SessionCreationError(SchemaError):
    """Hosted checkout session response carried no redirect URL."""

    default_message = "Could not start the card payment. Please try again."


class ProviderError(CheckoutError):
    """The buttons provider reported a failure."""

    default_message = "Payment failed. Please try again."


class ProviderCancelled(CheckoutError):
    """The user closed the provider's overlay."""

    default_message = "Payment cancelled by user."
