"""Output sanitization — redact payment credentials, card numbers, and PII before returning to LLM."""
import re

# Credential patterns. Query-string ``token=`` is left alone: PayPal puts
# its order reference there in approval and return URLs.
_CREDENTIAL_PATTERNS = [
    re.compile(r"(?i)(?<![?&\w])(\w*(?:api[_-]?key|secret|password|token))\s*[=:]\s*\S+"),
    re.compile(r"(?i)\bBearer\s+[A-Za-z0-9._~+/=-]{8,}"),
    re.compile(r"\b[sr]k_(?:live|test)_[a-zA-Z0-9]{10,}"),   # Stripe secret/restricted keys
    re.compile(r"\bwhsec_[a-zA-Z0-9]{10,}"),                  # Stripe webhook secrets
    re.compile(r"sk-[a-zA-Z0-9]{20,}"),                       # OpenAI-style keys
    re.compile(r"\bcs_(?:live|test)_[a-zA-Z0-9]{10,}#\S+"),   # Checkout URL fragments carry the publishable key
]

# Credit card number patterns (13-19 digits, optionally separated)
_CARD_NUMBER_PATTERN = re.compile(
    r"\b(?:\d{4}[-\s]?){2,4}\d{1,4}\b"
)

_EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b")

# ANSI escape codes
_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*m")


def redact_card_number(number: str) -> str:
    """Mask a card number to show only last 4 digits."""
    digits = re.sub(r"\D", "", number)
    if len(digits) < 4:
        return "****"
    return f"****-****-****-{digits[-4:]}"


def redact_email(email: str) -> str:
    """Partially redact an email address."""
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    return f"{local[0]}***@{domain}"


def sanitize_output(text: str, max_chars: int = 50000) -> str:
    """
    Sanitize text before returning to the LLM.

    - Strips ANSI escape codes
    - Redacts credential patterns (API tokens, Stripe keys, client secrets)
    - Redacts credit card numbers
    - Partially redacts email addresses
    - Truncates to max_chars
    """
    # Strip ANSI
    text = _ANSI_PATTERN.sub("", text)

    # Redact credentials
    for pattern in _CREDENTIAL_PATTERNS:
        text = pattern.sub("[REDACTED]", text)

    # Redact credit card numbers
    text = _CARD_NUMBER_PATTERN.sub("[CARD REDACTED]", text)

    # Emails
    text = _EMAIL_PATTERN.sub(lambda m: redact_email(m.group(0)), text)

    # Truncate
    if len(text) > max_chars:
        text = text[:max_chars] + f"\n\n[... truncated at {max_chars} chars]"

    return text
