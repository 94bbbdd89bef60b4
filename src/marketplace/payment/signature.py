"""Webhook signature scheme.

The gateway signs the raw request body with HMAC-SHA256 using the shared
webhook secret and sends the hex digest in ``X-Webhook-Signature`` (or as a
``signature`` field in the body, in which case the digest covers the body
without that field, serialised with sorted keys).
"""

import hashlib
import hmac
import json

import structlog

from marketplace.errors import InvalidSignature

logger = structlog.get_logger(__name__)


def compute_signature(payload: bytes | str, secret: str) -> str:
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


def canonical_body(data: dict) -> bytes:
    """Serialisation signed when the signature travels inside the body."""
    unsigned = {key: value for key, value in data.items() if key != "signature"}
    return json.dumps(unsigned, sort_keys=True, separators=(",", ":")).encode("utf-8")


def verify_signature(payload: bytes | str, signature: str | None, secret: str | None, production: bool = False) -> bool:
    """Check ``signature`` against the payload; raises ``InvalidSignature`` on mismatch.

    With no secret configured, verification is skipped outside production and
    the request is flagged as insecure. Returns whether a check was performed.
    """
    if not secret:
        if production:
            logger.error("webhook_secret_missing")
            raise InvalidSignature("Webhook secret is not configured")
        logger.warning("webhook_signature_unverified", insecure=True)
        return False

    if not signature:
        raise InvalidSignature("Missing webhook signature")

    expected = compute_signature(payload, secret)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise InvalidSignature()
    return True
