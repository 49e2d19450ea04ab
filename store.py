"""
In-memory exchange of pending CSRs and issued certificates, keyed by name.

A name is unregistered, pending or issued, never both pending and issued.
One lock covers both registries, and every read-modify-write holds it for
its whole duration. Parsing happens before the lock is taken.
"""

from __future__ import annotations

import threading
from typing import Dict, Optional, Set

from errors import Conflict, InvalidName, ValidationError
from logger import get_logger
from names import valid_name
from pki import load_csr, parse_certificate

UNREGISTERED = "unregistered"
PENDING = "pending"
ISSUED = "issued"


def _to_bytes(data) -> bytes:
    return data.encode() if isinstance(data, str) else bytes(data)


class ExchangeStore:
    def __init__(self, logger=None):
        self._lock = threading.Lock()
        self._pending: Dict[str, bytes] = {}
        self._issued: Dict[str, bytes] = {}
        self.log = logger or get_logger("simplepki.store")

    # --- raising forms ----------------------------------------------------

    def submit_csr(self, name: str, csr: bytes) -> None:
        if not valid_name(name):
            raise InvalidName(f"invalid name: {name!r}")
        load_csr(csr)
        csr = _to_bytes(csr)
        with self._lock:
            if name in self._pending or name in self._issued:
                raise Conflict(f"{name} is already registered")
            self._pending[name] = csr
        self.log.info("csr registered for %s", name)

    def submit_cert(self, name: str, cert: bytes) -> None:
        if not valid_name(name):
            raise InvalidName(f"invalid name: {name!r}")
        parse_certificate(cert)
        cert = _to_bytes(cert)
        with self._lock:
            if name in self._issued:
                raise Conflict(f"{name} already has a certificate")
            self._pending.pop(name, None)
            self._issued[name] = cert
        self.log.info("certificate registered for %s", name)

    # --- transport-facing forms -------------------------------------------

    def add_csr(self, name: str, csr: bytes) -> bool:
        try:
            self.submit_csr(name, csr)
        except ValidationError as err:
            self.log.warning("csr rejected (%s) for %r: %s", err.kind, name, err)
            return False
        return True

    def add_cert(self, name: str, cert: bytes) -> bool:
        try:
            self.submit_cert(name, cert)
        except ValidationError as err:
            self.log.warning("certificate rejected (%s) for %r: %s", err.kind, name, err)
            return False
        return True

    # --- lookups ----------------------------------------------------------

    def get_csr(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self._pending.get(name)

    def get_cert(self, name: str) -> Optional[bytes]:
        with self._lock:
            return self._issued.get(name)

    def list_csr(self) -> Set[str]:
        with self._lock:
            return set(self._pending)

    def list_cert(self) -> Set[str]:
        with self._lock:
            return set(self._issued)

    def state(self, name: str) -> str:
        """Diagnostic view of a name; not for the transport."""
        with self._lock:
            if name in self._issued:
                return ISSUED
            if name in self._pending:
                return PENDING
            return UNREGISTERED
