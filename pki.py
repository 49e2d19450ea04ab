"""
Issuance engine: CA bootstrap, CSR construction, request validation and
certificate signing.

Nothing here keeps state or touches the filesystem. Every function either
returns its result or raises one of the errors in errors.py; persisting what
comes out is the caller's job (storage.py, store.py).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from errors import (
    InvalidName,
    KeyCertMismatch,
    MalformedCertificate,
    MalformedCSR,
    ValidationError,
)
from keys import (
    KeyPair,
    RandomSource,
    generate_ca_key,
    generate_leaf_key,
    load_private_key,
    random_serial,
)
from names import valid_name

DEFAULT_VALIDITY = timedelta(days=360)
CA_VALIDITY_YEARS = 10

_PARSE_ERRORS = (ValueError, TypeError, UnsupportedAlgorithm)


@dataclass(frozen=True, eq=False)
class CAIdentity:
    """A certificate together with the private key it certifies."""

    certificate: x509.Certificate
    key: KeyPair

    @property
    def subject(self) -> x509.Name:
        return self.certificate.subject

    @property
    def common_name(self) -> Optional[str]:
        return common_name(self.certificate)

    @property
    def chain(self) -> List[x509.Certificate]:
        # single-level CA: the chain handed to bundles is just the root
        return [self.certificate]

    def cert_pem(self) -> bytes:
        return self.certificate.public_bytes(serialization.Encoding.PEM)

    def key_pem(self) -> bytes:
        return self.key.private_bytes()


def _as_bytes(data) -> Optional[bytes]:
    if isinstance(data, str):
        return data.encode()
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    return None


def _is_pem(data: bytes) -> bool:
    return data.lstrip().startswith(b"-----BEGIN")


def _now() -> datetime:
    # X.509 times carry whole seconds
    return datetime.now(timezone.utc).replace(microsecond=0)


def _add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # 29 February in a non-leap target year
        return moment.replace(year=moment.year + years, month=3, day=1)


def common_name(obj) -> Optional[str]:
    attrs = obj.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    return attrs[0].value if attrs else None


def dns_names(obj) -> List[str]:
    try:
        san = obj.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return []
    return san.value.get_values_for_type(x509.DNSName)


# --- requests -------------------------------------------------------------

def make_csr(name: str, rng: Optional[RandomSource] = None) -> Tuple[bytes, KeyPair]:
    """
    Generate a leaf key and a CSR for `name`.

    The CSR carries CN=name and a single DNS SAN=name. The returned key now
    belongs to the caller; nothing here keeps a reference to it.
    """
    if not valid_name(name):
        raise InvalidName(f"invalid name: {name!r}")
    key = generate_leaf_key(rng)
    builder = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, name)]))
        .add_extension(x509.SubjectAlternativeName([x509.DNSName(name)]), critical=False)
    )
    csr = key.sign_builder(builder)
    return csr.public_bytes(serialization.Encoding.PEM), key


def load_csr(data) -> x509.CertificateSigningRequest:
    """Parse a PEM or DER CSR and check its self-signature."""
    raw = _as_bytes(data)
    if raw is None:
        raise MalformedCSR("csr must be bytes")
    try:
        if _is_pem(raw):
            csr = x509.load_pem_x509_csr(raw)
        else:
            csr = x509.load_der_x509_csr(raw)
        signature_ok = csr.is_signature_valid
        # extensions and the key decode lazily; force both so signing never sees a bad one
        csr.extensions
        csr.public_key()
    except _PARSE_ERRORS + (x509.DuplicateExtension,) as err:
        raise MalformedCSR(f"invalid csr format: {err}") from err
    if not signature_ok:
        raise MalformedCSR("CSR signature invalid")
    return csr


def valid_csr(data) -> bool:
    try:
        load_csr(data)
    except MalformedCSR:
        return False
    return True


# --- certificates ---------------------------------------------------------

def parse_certificate(data) -> x509.Certificate:
    raw = _as_bytes(data)
    if raw is None:
        raise MalformedCertificate("certificate must be bytes")
    try:
        if _is_pem(raw):
            return x509.load_pem_x509_certificate(raw)
        return x509.load_der_x509_certificate(raw)
    except _PARSE_ERRORS as err:
        raise MalformedCertificate(f"invalid certificate: {err}") from err


def verify_issued(cert: x509.Certificate, issuer: x509.Certificate) -> bool:
    """True when `issuer` signed `cert` and the issuer names line up."""
    try:
        cert.verify_directly_issued_by(issuer)
    except (ValueError, TypeError, InvalidSignature, UnsupportedAlgorithm):
        return False
    return True


def sign_cert(
    ca: CAIdentity,
    csr,
    validity: timedelta = DEFAULT_VALIDITY,
    rng: Optional[RandomSource] = None,
) -> bytes:
    """Turn a CSR into a PEM leaf certificate signed by `ca`."""
    if validity <= timedelta(0):
        raise ValueError("validity must be positive")
    req = load_csr(csr)
    serial = random_serial(rng)
    now = _now()

    builder = (
        x509.CertificateBuilder()
        .subject_name(req.subject)
        .issuer_name(ca.subject)
        .public_key(req.public_key())
        .serial_number(serial)
        .not_valid_before(now)
        .not_valid_after(now + validity)
        .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=True,
                content_commitment=False,
                key_encipherment=True,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=False,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(
            x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]),
            critical=False,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(req.public_key()), critical=False)
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(ca.key.public_key()),
            critical=False,
        )
    )
    names = dns_names(req)
    if names:
        builder = builder.add_extension(
            x509.SubjectAlternativeName([x509.DNSName(n) for n in names]), critical=False
        )

    cert = ca.key.sign_builder(builder)
    return cert.public_bytes(serialization.Encoding.PEM)


# --- CA identity ----------------------------------------------------------

def new_ca_identity(common_name: str, rng: Optional[RandomSource] = None) -> CAIdentity:
    """
    Bootstrap a self-signed root: P-521 key, ten years, cert signing only,
    path length zero. A failing random source raises RandomSourceFailure.
    """
    key = generate_ca_key(rng)
    serial = random_serial(rng)
    now = _now()

    subject = issuer = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(key.public_key())
        .serial_number(serial)
        .not_valid_before(now)
        .not_valid_after(_add_years(now, CA_VALIDITY_YEARS))
        .add_extension(x509.BasicConstraints(ca=True, path_length=0), critical=True)
        .add_extension(
            x509.KeyUsage(
                digital_signature=False,
                content_commitment=False,
                key_encipherment=False,
                data_encipherment=False,
                key_agreement=False,
                key_cert_sign=True,
                crl_sign=False,
                encipher_only=False,
                decipher_only=False,
            ),
            critical=True,
        )
        .add_extension(x509.SubjectKeyIdentifier.from_public_key(key.public_key()), critical=False)
    )
    return CAIdentity(key.sign_builder(builder), key)


def load_key_pair_and_cert(cert_bytes, key_bytes) -> CAIdentity:
    cert = parse_certificate(cert_bytes)
    key = load_private_key(key_bytes)
    if not key.matches(cert.public_key()):
        raise KeyCertMismatch("private key does not match certificate public key")
    return CAIdentity(cert, key)


def identify_ca_files(first, second) -> CAIdentity:
    """Pair two blobs when it is not known which one is the certificate."""
    try:
        return load_key_pair_and_cert(first, second)
    except ValidationError as err:
        first_error = err
    try:
        return load_key_pair_and_cert(second, first)
    except ValidationError:
        raise first_error
