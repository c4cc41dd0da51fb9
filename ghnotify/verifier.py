"""Authentication of inbound webhook deliveries."""

import hashlib
import hmac
from typing import Optional

from ghnotify.config import ServerAuth
from ghnotify.errors import AuthError, AuthErrorKind

SIGNATURE_PREFIX = "sha256="


def compute_signature(secret: bytes, raw_body: bytes) -> str:
    """Return the ``sha256=<hex>`` signature GitHub would send for ``raw_body``."""
    digest = hmac.new(secret, raw_body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def check_signature(secret: bytes, raw_body: bytes, signature: Optional[str]) -> bool:
    """Check a signature header value in constant time.

    Args:
        secret: The shared webhook secret.
        raw_body: The exact request body bytes.
        signature: Value of the signature header, if present.

    Returns:
        True if the signature matches.
    """
    if not signature or not signature.startswith(SIGNATURE_PREFIX):
        return False
    expected = compute_signature(secret, raw_body)
    return hmac.compare_digest(
        expected.encode("utf-8"), signature.strip().lower().encode("utf-8")
    )


def check_token(expected: str, query_token: Optional[str]) -> bool:
    """Check the ``token`` query parameter in constant time."""
    if query_token is None:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), query_token.encode("utf-8"))


def verify(
    raw_body: bytes,
    signature: Optional[str],
    query_token: Optional[str],
    auth: ServerAuth,
) -> None:
    """Authenticate a delivery.

    With no mechanism configured every delivery is accepted. When both a
    signing secret and a URL token are configured, passing either check is
    enough.

    Args:
        raw_body: The exact request body bytes.
        signature: Value of the ``X-Hub-Signature-256`` header, if any.
        query_token: Value of the ``token`` query parameter, if any.
        auth: Configured authentication material.

    Raises:
        AuthError: If no configured mechanism accepts the delivery.
    """
    if auth.is_open:
        return

    signature_ok = auth.signing_secret is not None and check_signature(
        auth.signing_secret, raw_body, signature
    )
    if signature_ok:
        return

    token_ok = auth.url_token is not None and check_token(auth.url_token, query_token)
    if token_ok:
        return

    # Report the mechanism the caller actually attempted.
    if auth.signing_secret is not None and (signature or auth.url_token is None):
        if not signature:
            raise AuthError(AuthErrorKind.INVALID_SIGNATURE, "Signature header not found")
        raise AuthError(AuthErrorKind.INVALID_SIGNATURE, "Signature mismatch")
    raise AuthError(AuthErrorKind.INVALID_TOKEN, "Invalid or missing token")
