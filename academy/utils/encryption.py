"""
Encrypted column type for account PII.

Contact numbers and postal addresses are stored as Fernet tokens. The current
key comes from ENCRYPTION_KEY; keys listed (comma separated) in
ENCRYPTION_KEY_PREVIOUS still decrypt older rows, so keys can be rotated
without rewriting the table first.
"""

import os

from cryptography.fernet import Fernet, MultiFernet
from sqlalchemy.types import TypeDecorator, LargeBinary


def _load_cipher(key_env_var):
    current = os.getenv(key_env_var)
    if not current:
        raise RuntimeError(f"Missing required environment variable: {key_env_var}")
    previous = os.getenv(f"{key_env_var}_PREVIOUS", "")
    keys = [current] + [k.strip() for k in previous.split(",") if k.strip()]
    return MultiFernet([Fernet(k) for k in keys])


class PIIEncryptedType(TypeDecorator):
    """Text encrypted at rest; always written with the current key."""
    impl = LargeBinary
    cache_ok = True

    def __init__(self, key_env_var, *args, **kwargs):
        self.key_env_var = key_env_var
        self.cipher = _load_cipher(key_env_var)
        super().__init__(*args, **kwargs)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return self.cipher.encrypt(str(value).encode('utf-8'))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return self.cipher.decrypt(bytes(value)).decode('utf-8')
