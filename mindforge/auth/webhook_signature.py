"""
Svix webhook signature verification (used by Clerk).

Signed content is ``{svix-id}.{svix-timestamp}.{body}``, HMAC-SHA256 keyed
with the base64-decoded part of the ``whsec_...`` secret. The
``svix-signature`` header holds space-separated ``v1,<base64 sig>``
entries; any match is accepted.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time
from typing import Mapping, Optional

from mindforge.core.errors import MindforgeError

logger = logging.getLogger(__name__)

TIMESTAMP_TOLERANCE_S = 5 * 60


def _decode_secret(secret: str) -> bytes:
    if secret.startswith("whsec_"):
        secret = secret[len("whsec_"):]
    try:
        return base64.b64decode(secret)
    except (binascii.Error, ValueError) as exc:
        raise MindforgeError("MF-WHK-002", detail="webhook secret is not valid base64") from exc


def sign_svix_payload(secret: str, msg_id: str, timestamp: str, payload: bytes) -> str:
    """Compute the ``v1,<sig>`` header entry for a payload."""
    to_sign = f"{msg_id}.{timestamp}.".encode() + payload
    digest = hmac.new(_decode_secret(secret), to_sign, hashlib.sha256).digest()
    return "v1," + base64.b64encode(digest).decode()


def verify_svix_signature(
    secret: Optional[str],
    payload: bytes,
    headers: Mapping[str, str],
    now: Optional[float] = None,
) -> None:
    """Raise MindforgeError unless the svix headers sign ``payload``."""
    if not secret:
        raise MindforgeError("MF-WHK-002", detail="MINDFORGE_CLERK_WEBHOOK_SECRET is not set")

    msg_id = headers.get("svix-id")
    timestamp = headers.get("svix-timestamp")
    signature_header = headers.get("svix-signature")
    if not msg_id or not timestamp or not signature_header:
        raise MindforgeError("MF-WHK-001", detail="missing svix headers")

    try:
        ts = int(timestamp)
    except ValueError as exc:
        raise MindforgeError("MF-WHK-001", detail=f"invalid svix-timestamp {timestamp!r}") from exc
    current = time.time() if now is None else now
    if abs(current - ts) > TIMESTAMP_TOLERANCE_S:
        raise MindforgeError("MF-WHK-001", detail="svix-timestamp outside tolerance")

    expected = sign_svix_payload(secret, msg_id, timestamp, payload)
    for candidate in signature_header.split():
        if hmac.compare_digest(candidate, expected):
            return

    logger.warning("Invalid Clerk webhook signature", extra={"svix_id": msg_id})
    raise MindforgeError("MF-WHK-001", detail="no matching svix signature")
