import os
import stat

import pytest

from errors import KeyCertMismatch
from keys import generate_leaf_key
from pki import make_csr, new_ca_identity, sign_cert
from storage import load_ca, load_certificate, save_ca, save_certificate, save_private_key


def mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


def test_private_key_is_owner_read_only(tmp_path):
    path = save_private_key(tmp_path / "leaf.key", generate_leaf_key())
    assert mode(path) == 0o400
    assert b"BEGIN PRIVATE KEY" in path.read_bytes()


def test_private_key_never_overwritten(tmp_path):
    path = tmp_path / "leaf.key"
    save_private_key(path, generate_leaf_key())
    with pytest.raises(FileExistsError):
        save_private_key(path, generate_leaf_key())


def test_certificate_round_trip(ca, tmp_path):
    csr, _ = make_csr("stored.example")
    cert = sign_cert(ca, csr)
    path = save_certificate(tmp_path / "stored.cert", cert)
    assert mode(path) == 0o644
    assert load_certificate(path).serial_number > 0


def test_save_and_load_ca(ca, tmp_path):
    cert_path, key_path = tmp_path / "ca.cert", tmp_path / "ca.key"
    save_ca(ca, cert_path, key_path)
    assert mode(key_path) == 0o400
    loaded = load_ca(cert_path, key_path)
    assert loaded.certificate == ca.certificate
    assert loaded.key.matches(ca.certificate.public_key())


def test_load_ca_mismatch(ca, tmp_path):
    other = new_ca_identity("Other")
    save_certificate(tmp_path / "ca.cert", ca.cert_pem())
    save_private_key(tmp_path / "ca.key", other.key)
    with pytest.raises(KeyCertMismatch):
        load_ca(tmp_path / "ca.cert", tmp_path / "ca.key")
