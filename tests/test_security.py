import pytest
from cryptography.fernet import Fernet

from academy.utils.encryption import PIIEncryptedType
from academy.security import hash_password, needs_rehash, verify_password


def test_hash_and_verify():
    hashed = hash_password('correct-horse')
    assert hashed != 'correct-horse'
    assert verify_password(hashed, 'correct-horse')
    assert not verify_password(hashed, 'wrong-horse')


def test_malformed_hash_does_not_verify():
    assert verify_password('not-a-hash', 'anything') is False


def test_fresh_hash_needs_no_rehash():
    assert needs_rehash(hash_password('correct-horse')) is False


def test_previous_key_still_decrypts(monkeypatch):
    old_key = Fernet.generate_key().decode()
    new_key = Fernet.generate_key().decode()

    monkeypatch.setenv('ROTATION_TEST_KEY', old_key)
    token = PIIEncryptedType('ROTATION_TEST_KEY').process_bind_param('9876543210', None)

    monkeypatch.setenv('ROTATION_TEST_KEY', new_key)
    monkeypatch.setenv('ROTATION_TEST_KEY_PREVIOUS', old_key)
    rotated = PIIEncryptedType('ROTATION_TEST_KEY')
    assert rotated.process_result_value(token, None) == '9876543210'

    fresh = rotated.process_bind_param('9876543210', None)
    assert Fernet(new_key.encode()).decrypt(fresh) == b'9876543210'


def test_missing_key_is_fatal(monkeypatch):
    monkeypatch.delenv('ROTATION_TEST_KEY', raising=False)
    with pytest.raises(RuntimeError):
        PIIEncryptedType('ROTATION_TEST_KEY')
