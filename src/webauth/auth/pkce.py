"""PKCE (Proof Key for Code Exchange) utilities for OAuth 2.0."""

import base64
import hashlib
import secrets
from collections.abc import Callable
from dataclasses import dataclass

from webauth.exceptions import RandomGenerationError

CHALLENGE_METHOD = "S256"
MIN_VERIFIER_BYTES = 32

TokenBytes = Callable[[int], bytes]


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _random_bytes(token_bytes: TokenBytes, length: int) -> bytes:
    try:
        data = token_bytes(length)
    except (OSError, NotImplementedError) as e:
        raise RandomGenerationError(f"Unable to generate {length} random bytes: {e}") from e
    if len(data) != length:
        raise RandomGenerationError(f"Random source returned {len(data)} of {length} bytes")
    return data


def challenge_for(verifier: str) -> str:
    """Derive the S256 challenge for a verifier: base64url(SHA256(verifier))."""
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


@dataclass(frozen=True)
class PKCEPair:
    """Code verifier and its derived challenge."""

    verifier: str
    challenge: str
    method: str = CHALLENGE_METHOD


class ChallengeGenerator:
    """Generates PKCE verifier/challenge pairs.

    The random source is injectable so tests can produce fixed verifiers.
    """

    def __init__(
        self,
        byte_length: int = MIN_VERIFIER_BYTES,
        token_bytes: TokenBytes = secrets.token_bytes,
    ) -> None:
        if byte_length < MIN_VERIFIER_BYTES:
            raise ValueError(f"byte_length must be at least {MIN_VERIFIER_BYTES}")
        self.byte_length = byte_length
        self._token_bytes = token_bytes

    def generate(self) -> PKCEPair:
        """Generate a new verifier and challenge.

        Raises:
            RandomGenerationError: If the random source fails.
        """
        # 32 bytes -> 43 chars in base64url
        verifier = _b64url(_random_bytes(self._token_bytes, self.byte_length))
        return PKCEPair(verifier=verifier, challenge=challenge_for(verifier))


def generate_state(token_bytes: TokenBytes = secrets.token_bytes) -> str:
    """Generate a random state parameter for CSRF protection.

    Raises:
        RandomGenerationError: If the random source fails.
    """
    return _b64url(_random_bytes(token_bytes, 32))
