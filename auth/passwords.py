"""
auth/passwords.py -- Argon2id password hashing and verification.

Digest format: the PHC string produced by argon2-cffi, e.g.

    $argon2id$v=19$m=131072,t=4,p=4$<b64 salt>$<b64 key>

The string embeds the algorithm, version, every cost parameter, the salt and
the derived key. verify_password() reads the parameters back out of the
digest, never out of the current configuration, so raising the cost later
does not invalidate stored digests.

Salts come from os.urandom inside argon2-cffi, fresh for every hash call.
Key comparison happens inside libargon2 in constant time.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from auth.errors import InvalidCredentialFormat


@dataclass(frozen=True)
class Argon2Params:
    """Cost parameters for new digests. memory_cost is in KiB."""

    memory_cost: int = 131072
    time_cost: int = 4
    parallelism: int = 4
    salt_len: int = 16
    hash_len: int = 32

    @classmethod
    def from_settings(cls, settings) -> Argon2Params:
        return cls(
            memory_cost=settings.argon2_memory,
            time_cost=settings.argon2_iterations,
            parallelism=settings.argon2_parallelism,
            salt_len=settings.argon2_salt_length,
            hash_len=settings.argon2_key_length,
        )

    def hasher(self) -> PasswordHasher:
        return PasswordHasher(
            time_cost=self.time_cost,
            memory_cost=self.memory_cost,
            parallelism=self.parallelism,
            hash_len=self.hash_len,
            salt_len=self.salt_len,
            type=Type.ID,
        )


# verify() only uses the parameters encoded in the digest, so one hasher with
# default settings can check digests produced under any configuration.
_verifier = PasswordHasher()


def hash_password(password: str | bytes, params: Argon2Params) -> str:
    """Derive a fresh Argon2id digest for password under params."""
    return params.hasher().hash(password)


def verify_password(password: str | bytes, digest: str) -> bool:
    """Return True if password matches digest, False on a mismatch.

    Raises InvalidCredentialFormat when digest is not a parseable Argon2 PHC
    string (unknown algorithm tag, truncated fields, bad base64, non-ASCII).
    """
    try:
        return _verifier.verify(digest, password)
    except VerifyMismatchError:
        return False
    except (InvalidHashError, VerificationError, ValueError) as exc:
        raise InvalidCredentialFormat("stored password digest is malformed") from exc


def needs_rehash(digest: str, params: Argon2Params) -> bool:
    """Return True if digest was produced with parameters other than params.

    Raises InvalidCredentialFormat for a digest that cannot be parsed.
    """
    try:
        return params.hasher().check_needs_rehash(digest)
    except (InvalidHashError, ValueError) as exc:
        raise InvalidCredentialFormat("stored password digest is malformed") from exc
