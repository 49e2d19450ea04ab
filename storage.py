"""
PEM files on disk for the CA and for issued leaves.

Private keys are created with mode 0400 and never overwritten; certificates
are world-readable.
"""

import os
from pathlib import Path

from cryptography import x509

from keys import KeyPair
from pki import CAIdentity, load_key_pair_and_cert, parse_certificate

PRIVATE_KEY_MODE = 0o400
CERTIFICATE_MODE = 0o644


def save_private_key(path, key: KeyPair) -> Path:
    path = Path(path)
    # O_EXCL: an existing key is never clobbered
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, PRIVATE_KEY_MODE)
    with os.fdopen(fd, "wb") as f:
        f.write(key.private_bytes())
    os.chmod(path, PRIVATE_KEY_MODE)
    return path


def save_certificate(path, cert_pem: bytes) -> Path:
    path = Path(path)
    with open(path, "wb") as f:
        f.write(cert_pem)
    os.chmod(path, CERTIFICATE_MODE)
    return path


def load_certificate(path) -> x509.Certificate:
    with open(path, "rb") as f:
        return parse_certificate(f.read())


def save_ca(ca: CAIdentity, cert_path, key_path) -> None:
    save_private_key(key_path, ca.key)
    save_certificate(cert_path, ca.cert_pem())


def load_ca(cert_path, key_path) -> CAIdentity:
    with open(cert_path, "rb") as f:
        cert_pem = f.read()
    with open(key_path, "rb") as f:
        key_pem = f.read()
    return load_key_pair_and_cert(cert_pem, key_pem)
