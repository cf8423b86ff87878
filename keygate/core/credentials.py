"""
Credential generation and one-way verification.

Secret: 32 random bytes, hex-encoded (64 chars). Shown once, never stored.
Salt:   16 random bytes, hex-encoded (32 chars). Stored beside the verifier.
Verifier: scrypt(secret, salt) hex-encoded. The salt's hex text is the KDF salt.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass, field

from keygate.core.errors import InternalError

SECRET_BYTES = 32
SALT_BYTES = 16


@dataclass(frozen=True)
class KdfParams:
    """scrypt cost parameters. Fixed for the lifetime of a key store."""

    n: int = 2 ** 14
    r: int = 8
    p: int = 1
    dklen: int = 64

    @property
    def maxmem(self) -> int:
        # scrypt needs 128 * r * n bytes; leave headroom for OpenSSL's bookkeeping
        return 2 * 128 * self.r * self.n + 1024 * 1024


DEFAULT_KDF_PARAMS = KdfParams()


@dataclass(frozen=True)
class GeneratedCredential:
    secret: str = field(repr=False)
    verifier: str = field(repr=False)
    salt: str = field(repr=False)


def derive_verifier(secret: str, salt: str, params: KdfParams = DEFAULT_KDF_PARAMS) -> str:
    """Derive the hex verifier for *secret* under *salt*."""
    try:
        digest = hashlib.scrypt(
            secret.encode("utf-8"),
            salt=salt.encode("utf-8"),
            n=params.n,
            r=params.r,
            p=params.p,
            dklen=params.dklen,
            maxmem=params.maxmem,
        )
    except (ValueError, MemoryError) as exc:
        raise InternalError("KG-SEC-001", detail=f"scrypt failed: {type(exc).__name__}") from exc
    return digest.hex()


def verify(secret: str, salt: str, expected_verifier: str, params: KdfParams = DEFAULT_KDF_PARAMS) -> bool:
    """Recompute the verifier and compare in constant time."""
    return hmac.compare_digest(derive_verifier(secret, salt, params), expected_verifier)


def generate(params: KdfParams = DEFAULT_KDF_PARAMS) -> GeneratedCredential:
    """Produce a fresh secret, salt and verifier."""
    secret = secrets.token_hex(SECRET_BYTES)
    salt = secrets.token_hex(SALT_BYTES)
    return GeneratedCredential(secret=secret, verifier=derive_verifier(secret, salt, params), salt=salt)
