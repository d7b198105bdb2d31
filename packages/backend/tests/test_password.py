"""PasswordHasher tests — salting, verification, constant output size."""

import pytest

from wayfarer.auth.password import HASH_BYTES, SALT_BYTES, PasswordHasher


@pytest.fixture()
def hasher():
    # One round keeps the suite fast; the KDF is the same at any cost.
    return PasswordHasher(rounds=1)


def test_hash_then_verify(hasher):
    password_hash, salt = hasher.hash("correct horse battery staple")
    assert hasher.verify("correct horse battery staple", password_hash, salt)


def test_wrong_password_does_not_verify(hasher):
    password_hash, salt = hasher.hash("correct horse battery staple")
    assert not hasher.verify("correct horse battery stapler", password_hash, salt)
    assert not hasher.verify("", password_hash, salt)


def test_same_password_gets_new_salt_and_hash(hasher):
    h1, s1 = hasher.hash("Passw0rd!")
    h2, s2 = hasher.hash("Passw0rd!")
    assert s1 != s2
    assert h1 != h2


def test_output_lengths_are_fixed(hasher):
    for password in ("a", "Passw0rd!", "x" * 128, "pässwörd ✈"):
        password_hash, salt = hasher.hash(password)
        assert len(password_hash) == HASH_BYTES
        assert len(salt) == SALT_BYTES


def test_verify_with_other_salt_fails(hasher):
    password_hash, _ = hasher.hash("Passw0rd!")
    _, other_salt = hasher.hash("Passw0rd!")
    assert not hasher.verify("Passw0rd!", password_hash, other_salt)


def test_verify_accepts_memoryview(hasher):
    """Drivers may hand back BYTEA columns as memoryview."""
    password_hash, salt = hasher.hash("Passw0rd!")
    assert hasher.verify("Passw0rd!", memoryview(password_hash), memoryview(salt))


def test_cost_changes_the_hash():
    password_hash, salt = PasswordHasher(rounds=1).hash("Passw0rd!")
    assert not PasswordHasher(rounds=2).verify("Passw0rd!", password_hash, salt)


def test_rounds_must_be_positive():
    with pytest.raises(ValueError):
        PasswordHasher(rounds=0)


@pytest.mark.asyncio
async def test_async_variants(hasher):
    password_hash, salt = await hasher.hash_async("Passw0rd!")
    assert await hasher.verify_async("Passw0rd!", password_hash, salt)
    assert not await hasher.verify_async("nope", password_hash, salt)
