# passkit/utils/signatures.py

"""
HMAC helpers for device-service request signatures and scanner QR payloads.

All comparisons go through hmac.compare_digest.
"""

import base64
import binascii
import hashlib
import hmac
import logging
from typing import Optional, Tuple, Union

from passkit.models.passes import is_valid_pass_id

logger = logging.getLogger(__name__)


class InvalidPayloadError(ValueError):
    """Raised when a QR payload cannot be decoded at all."""


def resolve_secret(raw_secret: Optional[Union[str, bytes]]) -> bytes:
    """
    Normalize a configured secret to bytes.

    Secrets written as ``base64:<data>`` are decoded first.
    """
    if not raw_secret:
        return b''
    if isinstance(raw_secret, bytes):
        return raw_secret
    if raw_secret.startswith('base64:'):
        try:
            return base64.b64decode(raw_secret[len('base64:'):])
        except (binascii.Error, ValueError):
            logger.warning("Configured secret has an invalid base64 value; using it verbatim")
    return raw_secret.encode('utf-8')


def compute_signature(body: bytes, secret: bytes) -> str:
    """Hex HMAC-SHA256 of the raw body."""
    return hmac.new(secret, body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: Optional[str], secret: bytes) -> bool:
    """
    Verify an ``X-Signature`` header against the raw request body.

    Args:
        body: Raw request body
        signature: Header value, hex digest optionally prefixed with ``sha256=``
        secret: Shared secret bytes

    Returns:
        True if signature is valid
    """
    if not secret:
        logger.warning("Device-service HMAC secret not configured")
        return False
    if not signature:
        return False

    provided = signature.strip()
    if provided.lower().startswith('sha256='):
        provided = provided[len('sha256='):]

    expected = compute_signature(body, secret)
    return hmac.compare_digest(expected.encode('utf-8'), provided.lower().encode('utf-8'))


def tokens_match(expected: Optional[str], provided: Optional[str]) -> bool:
    """Constant-time equality for opaque tokens."""
    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode('utf-8'), provided.encode('utf-8'))


def sign_pass_payload(pass_id: int, secret: bytes) -> str:
    """Build the QR payload a scanner reads: base64("<id>.<hex hmac>")."""
    pass_id = str(pass_id)
    digest = hmac.new(secret, pass_id.encode('utf-8'), hashlib.sha256).hexdigest()
    return base64.b64encode(f"{pass_id}.{digest}".encode('utf-8')).decode('ascii')


def decode_pass_payload(payload: str, secret: bytes) -> Tuple[int, bool]:
    """
    Split a QR payload into its pass id and signature validity.

    Returns:
        Tuple of (pass_id, signature_valid)

    Raises:
        InvalidPayloadError: if the payload is not base64 of "<int>.<hex>"
    """
    if not payload or not isinstance(payload, str):
        raise InvalidPayloadError("Payload is empty")
    try:
        decoded = base64.b64decode(payload, validate=True).decode('utf-8')
    except (binascii.Error, ValueError, UnicodeDecodeError) as e:
        raise InvalidPayloadError(f"Payload is not valid base64: {e}")

    raw_id, sep, provided = decoded.partition('.')
    # isdigit() alone also accepts non-ASCII digits such as '²'
    if not sep or not raw_id.isascii() or not raw_id.isdigit() or not provided:
        raise InvalidPayloadError("Payload is not in <id>.<signature> form")

    pass_id = int(raw_id)
    if not is_valid_pass_id(pass_id):
        raise InvalidPayloadError(f"Pass id {raw_id[:20]} is out of range")

    expected = hmac.new(secret, raw_id.encode('utf-8'), hashlib.sha256).hexdigest()
    return pass_id, hmac.compare_digest(expected.encode('utf-8'), provided.encode('utf-8'))
