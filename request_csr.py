"""
HTTP client for the exchange server.

Requester side: request_certificate() makes a key and CSR locally, submits
the CSR and hands back the key; the key never leaves this process.
Operator side: sign_pending() fetches a pending CSR, signs it with a loaded
CA and posts the certificate back.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Set

import requests

from keys import KeyPair, RandomSource
from pki import DEFAULT_VALIDITY, CAIdentity, make_csr, sign_cert


class ExchangeError(Exception):
    def __init__(self, status_code: int, message: str = ""):
        detail = f": {message}" if message else ""
        super().__init__(f"exchange server returned {status_code}{detail}")
        self.status_code = status_code


class ExchangeClient:
    def __init__(self, base_url: str, session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _url(self, kind: str, name: str = "") -> str:
        return f"{self.base_url}/{kind}/{name}"

    @staticmethod
    def _check(resp) -> None:
        if not resp.ok:
            raise ExchangeError(resp.status_code, resp.text)

    def _list(self, kind: str) -> Set[str]:
        resp = self.session.get(self._url(kind), timeout=self.timeout)
        self._check(resp)
        return set(resp.json())

    def _get(self, kind: str, name: str) -> Optional[bytes]:
        resp = self.session.get(self._url(kind, name), timeout=self.timeout)
        if resp.status_code == 404:
            return None
        self._check(resp)
        return resp.content

    def _post(self, kind: str, name: str, data: bytes, content_type: str) -> None:
        resp = self.session.post(
            self._url(kind, name),
            data=data,
            headers={"Content-Type": content_type},
            timeout=self.timeout,
        )
        self._check(resp)

    def list_csr(self) -> Set[str]:
        return self._list("csr")

    def get_csr(self, name: str) -> Optional[bytes]:
        return self._get("csr", name)

    def submit_csr(self, name: str, csr: bytes) -> None:
        self._post("csr", name, csr, "application/pkcs10")

    def list_cert(self) -> Set[str]:
        return self._list("cer")

    def get_cert(self, name: str) -> Optional[bytes]:
        return self._get("cer", name)

    def submit_cert(self, name: str, cert: bytes) -> None:
        self._post("cer", name, cert, "application/x-pem-file")

    def ca_certificate(self) -> Optional[bytes]:
        resp = self.session.get(f"{self.base_url}/ca", timeout=self.timeout)
        if resp.status_code == 404:
            return None
        self._check(resp)
        return resp.content

    def request_certificate(self, name: str, rng: Optional[RandomSource] = None) -> KeyPair:
        csr, key = make_csr(name, rng)
        self.submit_csr(name, csr)
        return key

    def sign_pending(
        self,
        ca: CAIdentity,
        name: str,
        validity: timedelta = DEFAULT_VALIDITY,
    ) -> bytes:
        csr = self.get_csr(name)
        if csr is None:
            raise ExchangeError(404, f"no pending csr for {name}")
        cert = sign_cert(ca, csr, validity)
        self.submit_cert(name, cert)
        return cert
