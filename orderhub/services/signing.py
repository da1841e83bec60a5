"""
Webhook payload signing.

Signatures are HMAC-SHA256 over the exact request body, keyed with the
customer's secret, sent as ``X-Webhook-Signature: sha256=<hex>``.
"""
import hashlib
import hmac
import re

SIGNATURE_HEADER = "X-Webhook-Signature"
SIGNATURE_PREFIX = "sha256="

_HEADER_PATTERN = re.compile(r"sha256[=\s]([a-f0-9]{64})", re.IGNORECASE)


def _to_bytes(value: bytes | str) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def sign(payload: bytes | str, secret: bytes | str) -> str:
    """Generate the lowercase hex HMAC-SHA256 of payload under secret."""
    return hmac.new(_to_bytes(secret), _to_bytes(payload), hashlib.sha256).hexdigest()


def verify(payload: bytes | str, signature: str, secret: bytes | str) -> bool:
    """
    Check a hex signature against payload.

    A length mismatch is rejected before comparing; otherwise the comparison
    is constant-time.
    """
    expected = sign(payload, secret)
    if len(signature) != len(expected):
        return False
    return hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii", "replace"))


def format_signature_header(signature: str) -> str:
    return f"{SIGNATURE_PREFIX}{signature}"


def extract_signature(header: str | None) -> str | None:
    """Pull the hex digest out of a ``sha256=<hex>`` or ``sha256 <hex>`` header."""
    if not header:
        return None
    match = _HEADER_PATTERN.search(header)
    return match.group(1).lower() if match else None


def validate_signature_header(
    payload: bytes | str,
    header: str | None,
    secret: bytes | str,
) -> tuple[bool, str | None]:
    """
    Validate a received callback the way a customer should.

    Returns:
        (valid, error) where error is None when valid
    """
    if not header:
        return False, "Missing signature header"

    signature = extract_signature(header)
    if signature is None:
        return False, "Invalid signature format"

    if not verify(payload, signature, secret):
        return False, "Invalid signature"

    return True, None
