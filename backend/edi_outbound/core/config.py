"""
Runtime configuration for the outbound EDI backend.

All values come from environment variables (``.env`` files are loaded by
``edi_outbound.main`` before the first call).  ``load_settings()`` builds an
immutable :class:`Settings` and validates the parts that must never be
defaulted silently – most importantly the GS1 allocator prefix.

Usage
-----
* FastAPI: ``Depends(get_settings)``
* Celery / scripts: ``settings = get_settings()``
* Tests: ``load_settings({...})`` with an explicit mapping
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Mapping

from edi_outbound.core.errors import ConfigurationError

_DIGITS_RE = re.compile(r"^\d+$")

# SSCC = extension digit + company prefix + serial reference = 17 digits
SSCC_BASE_LENGTH = 17


@dataclass(frozen=True)
class SupplierParty:
    name: str = "Supplier Name"
    street: str = ""
    postal_code: str = ""
    city: str = ""
    country: str = ""
    vat_id: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./edi_outbound.db"

    # --- transfer --------------------------------------------------------
    transport: str = "sftp"
    sftp_host: str = ""
    sftp_port: int = 22
    sftp_user: str = ""
    sftp_password: str = ""
    sftp_out_dir: str = "/partner2dg"
    sftp_timeout: float = 30.0
    # empty: accept unknown host keys with a warning (dev only)
    sftp_known_hosts: str = ""
    local_out_dir: str = "./outbox"

    # --- partner / documents ---------------------------------------------
    supplier_id: str = ""
    supplier: SupplierParty = field(default_factory=SupplierParty)

    # --- SSCC allocation -------------------------------------------------
    gs1_company_prefix: str = ""
    gs1_extension_digit: str = "0"

    # --- packing ---------------------------------------------------------
    parcel_capacity: int = 12
    carrier_allowlist: tuple[str, ...] = ()
    default_carrier: str = "eurosender"

    log_level: str = "INFO"

    # ------------------------------------------------------------------ #
    @property
    def serial_length(self) -> int:
        return SSCC_BASE_LENGTH - 1 - len(self.gs1_company_prefix)

    def validate_allocator(self) -> None:
        """Fail fast on a malformed GS1 prefix / extension digit."""
        prefix = self.gs1_company_prefix
        if not prefix or not _DIGITS_RE.match(prefix):
            raise ConfigurationError("GS1_COMPANY_PREFIX must be a non-empty string of digits")
        if self.serial_length <= 0:
            raise ConfigurationError(
                f"GS1_COMPANY_PREFIX is too long ({len(prefix)} digits) to leave room for a serial"
            )
        digit = self.gs1_extension_digit
        if len(digit) != 1 or not digit.isdigit():
            raise ConfigurationError("GS1_EXTENSION_DIGIT must be a single digit 0-9")

    def validate_transfer(self) -> None:
        if self.transport not in ("sftp", "local"):
            raise ConfigurationError(f"EDI_TRANSPORT must be 'sftp' or 'local', got {self.transport!r}")
        if not self.supplier_id:
            raise ConfigurationError("EDI_SUPPLIER_ID is required to send partner documents")
        if self.transport == "sftp" and not (self.sftp_host and self.sftp_user and self.sftp_password):
            raise ConfigurationError("SFTP_HOST, SFTP_USER and SFTP_PASSWORD are required for sftp transport")
        if self.sftp_timeout <= 0:
            raise ConfigurationError("SFTP_TIMEOUT must be positive")


# --------------------------------------------------------------------------- #
# loading                                                                     #
# --------------------------------------------------------------------------- #
def _split_list(raw: str, sep: str) -> list[str]:
    return [p.strip() for p in raw.split(sep) if p.strip()]


def _int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{key} must be a number, got {raw!r}") from exc


def _supplier_from_env(env: Mapping[str, str]) -> SupplierParty:
    # "Street 1|8000 Zurich|Switzerland"
    lines = _split_list(env.get("SUPPLIER_ADDRESS_LINES", "Street 1|8000 Zurich|Switzerland"), "|")
    street = lines[0] if lines else ""
    postal_code, city = "", ""
    if len(lines) > 1:
        postal_code, _, city = lines[1].partition(" ")
    country = lines[2] if len(lines) > 2 else ""
    return SupplierParty(
        name=env.get("SUPPLIER_NAME", "Supplier Name"),
        street=street,
        postal_code=postal_code,
        city=city.strip(),
        country=country,
        vat_id=env.get("SUPPLIER_VAT_ID") or None,
        email=env.get("SUPPLIER_EMAIL") or None,
        phone=env.get("SUPPLIER_PHONE") or None,
    )


def load_settings(env: Mapping[str, str] | None = None, *, validate: bool = True) -> Settings:
    """Build :class:`Settings` from *env* (defaults to ``os.environ``)."""
    env = os.environ if env is None else env

    settings = Settings(
        database_url=env.get("DATABASE_URL") or Settings.database_url,
        transport=(env.get("EDI_TRANSPORT") or "sftp").strip().lower(),
        sftp_host=env.get("SFTP_HOST", ""),
        sftp_port=_int(env, "SFTP_PORT", 22),
        sftp_user=env.get("SFTP_USER", ""),
        sftp_password=env.get("SFTP_PASSWORD", ""),
        sftp_out_dir=env.get("SFTP_OUT_DIR") or "/partner2dg",
        sftp_timeout=_float(env, "SFTP_TIMEOUT", 30.0),
        sftp_known_hosts=env.get("SFTP_KNOWN_HOSTS", ""),
        local_out_dir=env.get("EDI_LOCAL_OUT_DIR") or "./outbox",
        supplier_id=env.get("EDI_SUPPLIER_ID", "").strip(),
        supplier=_supplier_from_env(env),
        gs1_company_prefix=env.get("GS1_COMPANY_PREFIX", "").strip(),
        # an unset extension digit means "0"; a malformed one is rejected below
        gs1_extension_digit=(env.get("GS1_EXTENSION_DIGIT") or "0").strip(),
        parcel_capacity=_int(env, "PARCEL_CAPACITY", 12),
        carrier_allowlist=tuple(_split_list(env.get("CARRIER_ALLOWLIST", ""), ",")),
        default_carrier=env.get("DEFAULT_CARRIER") or "eurosender",
        log_level=(env.get("LOG_LEVEL") or "INFO").upper(),
    )
    if validate:
        settings.validate_allocator()
        if settings.parcel_capacity < 1:
            raise ConfigurationError("PARCEL_CAPACITY must be at least 1")
    return settings


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Process-wide settings, loaded once on first use."""
    return load_settings()


__all__ = ["Settings", "SupplierParty", "load_settings", "get_settings", "SSCC_BASE_LENGTH"]
