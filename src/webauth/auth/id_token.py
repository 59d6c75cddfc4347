"""ID token claim checks against the authorization request.

Only the claims are checked; signature verification needs the issuer's JWKS
and is left to the caller.
"""

import base64
import binascii
import json
import time
from typing import Any

from webauth.auth.models import IdTokenExpectations
from webauth.exceptions import IdTokenValidationError


def decode_claims(id_token: str) -> dict[str, Any]:
    """Decode the payload segment of a JWT without verifying it."""
    parts = id_token.split(".")
    if len(parts) != 3:
        raise IdTokenValidationError("ID token could not be decoded")
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        claims = json.loads(base64.urlsafe_b64decode(payload))
    except (binascii.Error, ValueError) as e:
        raise IdTokenValidationError("ID token could not be decoded") from e
    if not isinstance(claims, dict):
        raise IdTokenValidationError("ID token payload is not an object")
    return claims


def validate_claims(
    id_token: str,
    client_id: str,
    expectations: IdTokenExpectations,
    now: float | None = None,
) -> dict[str, Any]:
    """Check issuer, audience, expiry, nonce, auth_time and organization claims.

    Args:
        id_token: Encoded JWT returned by the token endpoint.
        client_id: Expected audience.
        expectations: Values sent with the authorize request.
        now: Current epoch seconds, defaults to ``time.time()``.

    Returns:
        The decoded claims.

    Raises:
        IdTokenValidationError: On the first claim that does not match.
    """
    claims = decode_claims(id_token)
    now = time.time() if now is None else now
    leeway = expectations.leeway / 1000

    if claims.get("iss") != expectations.issuer:
        raise IdTokenValidationError(
            f"Issuer (iss) claim mismatch: expected {expectations.issuer!r}, got {claims.get('iss')!r}"
        )

    audience = claims.get("aud")
    audiences = audience if isinstance(audience, list) else [audience]
    if client_id not in audiences:
        raise IdTokenValidationError(f"Audience (aud) claim does not contain {client_id!r}")

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise IdTokenValidationError("Expiration time (exp) claim is missing")
    if now > exp + leeway:
        raise IdTokenValidationError("ID token is expired")

    if expectations.nonce is not None and claims.get("nonce") != expectations.nonce:
        raise IdTokenValidationError("Nonce (nonce) claim mismatch")

    if expectations.max_age is not None:
        auth_time = claims.get("auth_time")
        if not isinstance(auth_time, (int, float)):
            raise IdTokenValidationError("Authentication time (auth_time) claim is missing")
        if now > auth_time + expectations.max_age + leeway:
            raise IdTokenValidationError("Too much time has elapsed since the last authentication")

    if expectations.organization is not None and claims.get("org_id") != expectations.organization:
        raise IdTokenValidationError("Organization Id (org_id) claim mismatch")

    return claims
