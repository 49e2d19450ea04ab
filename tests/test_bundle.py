import pytest

from bundle import load_pfx, make_pfx
from errors import KeyCertMismatch, MalformedKey
from keys import generate_leaf_key
from pki import common_name, make_csr, parse_certificate, sign_cert


def test_pfx_without_password(ca):
    csr, key = make_csr("bundle.example")
    cert = sign_cert(ca, csr)
    data = make_pfx("bundle.example", key, cert, ca.chain)

    loaded_key, leaf, chain = load_pfx(data)
    assert loaded_key.matches(key.public_key())
    assert leaf == parse_certificate(cert)
    assert chain == [ca.certificate]


def test_pfx_with_password(ca):
    csr, key = make_csr("secret.example")
    cert = sign_cert(ca, csr)
    data = make_pfx("secret.example", key, cert, ca.chain, password="hunter2")

    _, leaf, _ = load_pfx(data, "hunter2")
    assert common_name(leaf) == "secret.example"
    with pytest.raises(MalformedKey):
        load_pfx(data, "wrong")


def test_pfx_requires_matching_key(ca):
    csr, _ = make_csr("mismatch.example")
    cert = sign_cert(ca, csr)
    with pytest.raises(KeyCertMismatch):
        make_pfx("mismatch.example", generate_leaf_key(), cert, ca.chain)
