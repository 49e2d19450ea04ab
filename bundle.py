"""
PKCS#12 (.pfx / .p12) bundles of a leaf key, its certificate and the issuer
chain, for handing to browsers and operating systems.
"""

from typing import Iterable, List, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from errors import KeyCertMismatch, MalformedKey
from keys import KeyPair
from pki import parse_certificate


def make_pfx(
    name: str,
    key: KeyPair,
    cert,
    chain: Iterable[x509.Certificate] = (),
    password: Optional[str] = None,
) -> bytes:
    leaf = cert if isinstance(cert, x509.Certificate) else parse_certificate(cert)
    if not key.matches(leaf.public_key()):
        raise KeyCertMismatch("private key does not match certificate public key")

    if password:
        encryption = serialization.BestAvailableEncryption(password.encode())
    else:
        encryption = serialization.NoEncryption()

    return pkcs12.serialize_key_and_certificates(
        name=name.encode(),
        key=key.export_private_key(),
        cert=leaf,
        cas=list(chain) or None,
        encryption_algorithm=encryption,
    )


def load_pfx(data: bytes, password: Optional[str] = None) -> Tuple[KeyPair, x509.Certificate, List[x509.Certificate]]:
    try:
        key, cert, cas = pkcs12.load_key_and_certificates(
            data, password.encode() if password else None
        )
    except ValueError as err:
        raise MalformedKey(f"invalid pfx bundle: {err}") from err
    if key is None or cert is None:
        raise MalformedKey("pfx bundle has no key or certificate")
    return KeyPair.from_private_key(key), cert, list(cas)
