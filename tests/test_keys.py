import copy
import pickle

import pytest
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa

from errors import MalformedKey, RandomSourceFailure
from keys import (
    KeyKind,
    KeyPair,
    generate_ca_key,
    generate_leaf_key,
    load_private_key,
    random_serial,
)
from tests.conftest import BrokenRandom, CountingRandom, ShortRandom


def test_leaf_key_is_p256():
    key = generate_leaf_key()
    assert key.kind is KeyKind.LEAF
    assert isinstance(key.public_key().curve, ec.SECP256R1)
    assert isinstance(key.hash_algorithm, hashes.SHA256)


def test_ca_key_is_p521():
    key = generate_ca_key()
    assert key.kind is KeyKind.CA
    assert isinstance(key.public_key().curve, ec.SECP521R1)
    assert isinstance(key.hash_algorithm, hashes.SHA512)


def test_sign_verifies_with_public_key():
    key = generate_leaf_key()
    sig = key.sign(b"hello")
    key.public_key().verify(sig, b"hello", ec.ECDSA(hashes.SHA256()))


def test_injected_source_reproduces_keys():
    a = generate_ca_key(CountingRandom(b"seed"))
    b = generate_ca_key(CountingRandom(b"seed"))
    c = generate_ca_key(CountingRandom(b"other"))
    assert a.matches(b.public_key())
    assert not a.matches(c.public_key())


def test_injected_source_reproduces_serials():
    assert random_serial(CountingRandom()) == random_serial(CountingRandom())


def test_serial_range():
    rng = CountingRandom()
    for _ in range(1000):
        serial = random_serial(rng)
        assert 0 < serial < 2 ** 128


def test_zero_serial_is_redrawn():
    class ZeroThenOne:
        def __init__(self):
            self.calls = 0

        def token_bytes(self, n):
            self.calls += 1
            return b"\x00" * n if self.calls == 1 else b"\x00" * (n - 1) + b"\x01"

    assert random_serial(ZeroThenOne()) == 1


@pytest.mark.parametrize("rng", [BrokenRandom(), ShortRandom()])
def test_random_failure_propagates(rng):
    with pytest.raises(RandomSourceFailure):
        random_serial(rng)
    with pytest.raises(RandomSourceFailure):
        generate_leaf_key(rng)
    with pytest.raises(RandomSourceFailure):
        generate_ca_key(rng)


def test_matches_rejects_other_keys():
    key = generate_leaf_key()
    assert not key.matches(generate_leaf_key().public_key())
    assert not key.matches(rsa.generate_private_key(public_exponent=65537, key_size=2048).public_key())


def test_private_bytes_round_trip():
    key = generate_leaf_key()
    loaded = load_private_key(key.private_bytes())
    assert loaded.kind is KeyKind.LEAF
    assert loaded.matches(key.public_key())


def test_load_der_key():
    key = generate_ca_key()
    der = key.export_private_key().private_bytes(
        serialization.Encoding.DER,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    assert load_private_key(der).kind is KeyKind.CA


def test_load_rejects_garbage():
    with pytest.raises(MalformedKey):
        load_private_key(b"not a key")
    with pytest.raises(MalformedKey):
        load_private_key(None)


def test_load_rejects_unsupported_algorithms():
    rsa_pem = rsa.generate_private_key(public_exponent=65537, key_size=2048).private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    )
    with pytest.raises(MalformedKey):
        load_private_key(rsa_pem)
    with pytest.raises(MalformedKey):
        KeyPair.from_private_key(ec.generate_private_key(ec.SECP384R1()))


def test_key_pair_is_not_duplicated_implicitly():
    key = generate_leaf_key()
    with pytest.raises(TypeError):
        pickle.dumps(key)
    with pytest.raises(TypeError):
        copy.deepcopy(key)
    assert "_private" not in repr(key)
