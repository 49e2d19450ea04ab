"""
Error kinds raised by the issuance engine and the exchange store.

Everything except RandomSourceFailure is a ValidationError: the store turns
those into a plain False for the transport and keeps the kind for the logs.
RandomSourceFailure always propagates to whoever asked for the key or serial.
"""


class PKIError(Exception):
    kind = "pki_error"


class ValidationError(PKIError):
    kind = "validation_error"


class InvalidName(ValidationError):
    kind = "invalid_name"


class MalformedCSR(ValidationError):
    kind = "malformed_csr"


class MalformedCertificate(ValidationError):
    kind = "malformed_certificate"


class MalformedKey(ValidationError):
    kind = "malformed_key"


class KeyCertMismatch(ValidationError):
    kind = "key_cert_mismatch"


class Conflict(ValidationError):
    kind = "conflict"


class RandomSourceFailure(PKIError):
    kind = "random_source_failure"
