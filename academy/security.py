"""
Password hashing with Argon2.

Hashes carry their own parameters, so hashes made with older settings keep
verifying and are upgraded on the next successful login (see needs_rehash).
"""

from argon2 import PasswordHasher, exceptions

ph = PasswordHasher()

# Verified against when a login names an unknown email so both paths cost the same
_UNKNOWN_ACCOUNT_HASH = ph.hash("academy-portal-unknown-account")


def hash_password(plaintext: str) -> str:
    return ph.hash(plaintext)


def verify_password(password_hash: str, plaintext: str) -> bool:
    try:
        return ph.verify(password_hash, plaintext)
    except (exceptions.VerifyMismatchError, exceptions.InvalidHashError):
        return False


def burn_verification(plaintext: str) -> None:
    """Spend one verification on a throwaway hash."""
    verify_password(_UNKNOWN_ACCOUNT_HASH, plaintext)


def needs_rehash(password_hash: str) -> bool:
    return ph.check_needs_rehash(password_hash)
