"""
Runtime settings, read from the environment (and a .env file if present).

PKI_CA_CERT_FILE   CA certificate PEM       (default: ca.cert)
PKI_CA_KEY_FILE    CA private key PEM       (default: ca.key)
PKI_VALIDITY_DAYS  leaf validity in days    (default: 360)
PKI_HOST           HTTP bind address        (default: 0.0.0.0)
PKI_PORT           HTTP port                (default: 44332)
PKI_LOG_LEVEL      logging level name       (default: INFO)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    ca_cert_file: Path = Path("ca.cert")
    ca_key_file: Path = Path("ca.key")
    validity_days: int = 360
    host: str = "0.0.0.0"
    port: int = 44332
    log_level: str = "INFO"

    @property
    def validity(self) -> timedelta:
        return timedelta(days=self.validity_days)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None, dotenv_path=None) -> "Settings":
        if env is None:
            load_dotenv(dotenv_path)
            env = os.environ
        validity_days = int(env.get("PKI_VALIDITY_DAYS", cls.validity_days))
        if validity_days <= 0:
            raise ValueError(f"PKI_VALIDITY_DAYS must be positive, got {validity_days}")
        log_level = env.get("PKI_LOG_LEVEL", cls.log_level).upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"PKI_LOG_LEVEL is not a logging level: {log_level}")
        return cls(
            ca_cert_file=Path(env.get("PKI_CA_CERT_FILE", cls.ca_cert_file)),
            ca_key_file=Path(env.get("PKI_CA_KEY_FILE", cls.ca_key_file)),
            validity_days=validity_days,
            host=env.get("PKI_HOST", cls.host),
            port=int(env.get("PKI_PORT", cls.port)),
            log_level=log_level,
        )
