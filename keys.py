"""
Key material for the CA and for leaf certificates.

A KeyPair is one of a closed set of kinds:

- CA:   NIST P-521, signs with SHA-512
- LEAF: NIST P-256, signs with SHA-256

Callers get capabilities (sign, public key, explicit export) rather than the
raw private key object. Randomness comes from an injected source so tests can
replay keys and serial numbers.
"""

from __future__ import annotations

import enum
import secrets
from dataclasses import dataclass, field
from typing import Optional, Protocol

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec

from errors import MalformedKey, RandomSourceFailure

SERIAL_BITS = 128


class RandomSource(Protocol):
    def token_bytes(self, n: int) -> bytes: ...


class SystemRandomSource:
    """The operating system CSPRNG, via secrets."""

    def token_bytes(self, n: int) -> bytes:
        return secrets.token_bytes(n)


class KeyKind(enum.Enum):
    CA = "ca"
    LEAF = "leaf"


_CURVES = {
    KeyKind.CA: ec.SECP521R1,
    KeyKind.LEAF: ec.SECP256R1,
}

_HASHES = {
    KeyKind.CA: hashes.SHA512,
    KeyKind.LEAF: hashes.SHA256,
}

# Group orders, needed to map source bytes onto a valid private scalar.
_ORDERS = {
    KeyKind.CA: int(
        "01FFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFF"
        "FA51868783BF2F966B7FCC0148F709A5D03BB5C9B8899C47AEBB6FB71E91386409",
        16,
    ),
    KeyKind.LEAF: int(
        "FFFFFFFF00000000FFFFFFFFFFFFFFFFBCE6FAADA7179E84F3B9CAC2FC632551", 16
    ),
}


def read_random(rng: RandomSource, n: int) -> bytes:
    try:
        data = rng.token_bytes(n)
    except Exception as err:
        raise RandomSourceFailure(f"random source failed: {err}") from err
    if not isinstance(data, (bytes, bytearray)) or len(data) != n:
        raise RandomSourceFailure(f"random source returned a short read (wanted {n} bytes)")
    return bytes(data)


def random_serial(rng: Optional[RandomSource] = None) -> int:
    """Uniform over [0, 2**128); zero is redrawn since X.509 serials must be positive."""
    rng = rng or SystemRandomSource()
    while True:
        serial = int.from_bytes(read_random(rng, SERIAL_BITS // 8), "big")
        if serial:
            return serial


@dataclass(frozen=True, eq=False)
class KeyPair:
    kind: KeyKind
    _private: ec.EllipticCurvePrivateKey = field(repr=False)

    @classmethod
    def from_private_key(cls, key) -> "KeyPair":
        if not isinstance(key, ec.EllipticCurvePrivateKey):
            raise MalformedKey(f"unsupported key algorithm: {type(key).__name__}")
        for kind, curve in _CURVES.items():
            if isinstance(key.curve, curve):
                return cls(kind, key)
        raise MalformedKey(f"unsupported curve: {key.curve.name}")

    @property
    def hash_algorithm(self) -> hashes.HashAlgorithm:
        return _HASHES[self.kind]()

    def public_key(self) -> ec.EllipticCurvePublicKey:
        return self._private.public_key()

    def matches(self, public_key) -> bool:
        """True when public_key is the public half of this pair."""
        if not isinstance(public_key, ec.EllipticCurvePublicKey):
            return False
        return _spki(public_key) == _spki(self.public_key())

    def sign(self, data: bytes) -> bytes:
        return self._private.sign(data, ec.ECDSA(self.hash_algorithm))

    def sign_builder(self, builder):
        # CertificateBuilder and CertificateSigningRequestBuilder share this signature
        return builder.sign(self._private, self.hash_algorithm)

    def private_bytes(self) -> bytes:
        return self._private.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )

    def export_private_key(self) -> ec.EllipticCurvePrivateKey:
        """Hand the raw key to an encoder that needs it (PKCS#12)."""
        return self._private

    def __reduce__(self):
        raise TypeError("KeyPair holds a private key and cannot be pickled or copied")


def _spki(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )


def _generate(kind: KeyKind, rng: Optional[RandomSource]) -> KeyPair:
    curve = _CURVES[kind]()
    if rng is None:
        return KeyPair(kind, ec.generate_private_key(curve))
    order = _ORDERS[kind]
    # 64 extra bits keep the modulo bias negligible
    width = (order.bit_length() + 7) // 8 + 8
    scalar = int.from_bytes(read_random(rng, width), "big") % (order - 1) + 1
    return KeyPair(kind, ec.derive_private_key(scalar, curve))


def generate_leaf_key(rng: Optional[RandomSource] = None) -> KeyPair:
    return _generate(KeyKind.LEAF, rng)


def generate_ca_key(rng: Optional[RandomSource] = None) -> KeyPair:
    return _generate(KeyKind.CA, rng)


def load_private_key(data: bytes) -> KeyPair:
    """Load an unencrypted PEM or DER private key."""
    if isinstance(data, str):
        data = data.encode()
    if not isinstance(data, (bytes, bytearray)):
        raise MalformedKey("private key must be bytes")
    try:
        if bytes(data).lstrip().startswith(b"-----BEGIN"):
            key = serialization.load_pem_private_key(bytes(data), password=None)
        else:
            key = serialization.load_der_private_key(bytes(data), password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as err:
        raise MalformedKey(f"invalid private key: {err}") from err
    return KeyPair.from_private_key(key)
