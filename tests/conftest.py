import hashlib

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtensionOID, NameOID

from keys import generate_leaf_key
from pki import make_csr, new_ca_identity
from store import ExchangeStore


class CountingRandom:
    """Deterministic stand-in for the system random source."""

    def __init__(self, seed=b"simplepki"):
        self.seed = seed
        self.counter = 0

    def token_bytes(self, n):
        out = b""
        while len(out) < n:
            out += hashlib.sha256(self.seed + self.counter.to_bytes(8, "big")).digest()
            self.counter += 1
        return out[:n]


class BrokenRandom:
    def token_bytes(self, n):
        raise OSError("entropy source unavailable")


class ShortRandom:
    def token_bytes(self, n):
        return b"\x01" * (n - 1)


@pytest.fixture(scope="session")
def ca():
    return new_ca_identity("Test Root")


@pytest.fixture
def store():
    return ExchangeStore()


@pytest.fixture
def csr_for():
    def make(name):
        csr, _key = make_csr(name)
        return csr
    return make


@pytest.fixture
def bad_san_csr():
    """Correctly self-signed CSR whose SAN extension does not decode."""
    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "evil")]))
        .add_extension(
            x509.UnrecognizedExtension(ExtensionOID.SUBJECT_ALTERNATIVE_NAME, b"\x30\x03\xff\xff\xff"),
            critical=False,
        )
    )
    return generate_leaf_key().sign_builder(builder).public_bytes(serialization.Encoding.PEM)
