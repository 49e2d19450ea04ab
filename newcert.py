#!/usr/bin/env python3
"""
Operator command line.

  newcert init-ca --cn "Example Root"        write ca.cert / ca.key
  newcert issue www.example.com mail.local   key + cert + pfx per name
  newcert sign www.example.com --csr req.pem sign a CSR someone sent you
"""

import argparse
import dataclasses
import sys
from datetime import timedelta
from pathlib import Path

from bundle import make_pfx
from config import Settings
from errors import InvalidName, PKIError, RandomSourceFailure
from logger import get_logger
from names import valid_name
from pki import make_csr, new_ca_identity, sign_cert
from storage import load_ca, save_ca, save_certificate, save_private_key

log = get_logger("simplepki.cli")


def _validity(args, settings):
    return timedelta(days=args.days) if args.days else settings.validity


def init_ca(args, settings) -> int:
    cert_path, key_path = settings.ca_cert_file, settings.ca_key_file
    for path in (cert_path, key_path):
        if path.exists():
            log.error("%s already exists, refusing to overwrite", path)
            return 1
    try:
        ca = new_ca_identity(args.cn)
    except RandomSourceFailure as err:
        log.error("CA bootstrap failed: %s", err)
        return 1
    save_ca(ca, cert_path, key_path)
    log.info("wrote %s and %s", cert_path, key_path)
    return 0


def _outputs(out, name, suffixes):
    """Target files for `name`; every one must be new."""
    if not valid_name(name):
        raise InvalidName(f"invalid name: {name!r}")
    paths = [out / f"{name}{suffix}" for suffix in suffixes]
    for path in paths:
        if path.exists():
            raise FileExistsError(f"{path} already exists, refusing to overwrite")
    return paths


def issue(args, settings) -> int:
    out = Path(args.out)
    targets = {name: _outputs(out, name, (".cert", ".key", ".pfx")) for name in args.names}
    ca = load_ca(settings.ca_cert_file, settings.ca_key_file)
    out.mkdir(parents=True, exist_ok=True)
    validity = _validity(args, settings)

    for name, (cert_path, key_path, pfx_path) in targets.items():
        csr, key = make_csr(name)
        cert = sign_cert(ca, csr, validity)
        # key first: O_EXCL fails before anything else is written
        save_private_key(key_path, key)
        save_certificate(cert_path, cert)
        pfx_path.write_bytes(make_pfx(name, key, cert, ca.chain, args.password))
        log.info("issued %s", name)
    return 0


def sign(args, settings) -> int:
    if not valid_name(args.name):
        raise InvalidName(f"invalid name: {args.name!r}")
    ca = load_ca(settings.ca_cert_file, settings.ca_key_file)
    csr = Path(args.csr).read_bytes()
    cert = sign_cert(ca, csr, _validity(args, settings))
    out = Path(args.out)
    out.mkdir(parents=True, exist_ok=True)
    save_certificate(out / f"{args.name}.cert", cert)
    log.info("signed %s", args.name)
    return 0


def build_parser():
    p = argparse.ArgumentParser(prog="newcert")
    p.add_argument("--ca-cert", help="CA certificate file (overrides PKI_CA_CERT_FILE)")
    p.add_argument("--ca-key", help="CA private key file (overrides PKI_CA_KEY_FILE)")
    sub = p.add_subparsers(dest="command", required=True)

    p_init = sub.add_parser("init-ca", help="create a new root CA")
    p_init.add_argument("--cn", required=True)
    p_init.set_defaults(func=init_ca)

    p_issue = sub.add_parser("issue", help="generate key, certificate and pfx per name")
    p_issue.add_argument("names", nargs="+")
    p_issue.add_argument("--days", type=int)
    p_issue.add_argument("--password")
    p_issue.add_argument("--out", default=".")
    p_issue.set_defaults(func=issue)

    p_sign = sub.add_parser("sign", help="sign a CSR file")
    p_sign.add_argument("name")
    p_sign.add_argument("--csr", required=True)
    p_sign.add_argument("--days", type=int)
    p_sign.add_argument("--out", default=".")
    p_sign.set_defaults(func=sign)
    return p


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings.from_env()
    overrides = {}
    if args.ca_cert:
        overrides["ca_cert_file"] = Path(args.ca_cert)
    if args.ca_key:
        overrides["ca_key_file"] = Path(args.ca_key)
    if overrides:
        settings = dataclasses.replace(settings, **overrides)
    log.setLevel(settings.log_level.upper())

    try:
        return args.func(args, settings)
    except (PKIError, OSError) as err:
        log.error("%s: %s", args.command, err)
        return 1


if __name__ == "__main__":
    sys.exit(main())
