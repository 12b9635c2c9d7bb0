"""
SSCC (Serial Shipping Container Code) allocation.

An SSCC is 18 digits::

    extension digit (1) + GS1 company prefix (n) + serial reference (16 - n) + check digit (1)

Serials come from the ``sscc_counter`` row of the allocation scope.  The
increment is one ``UPDATE … SET last_serial = last_serial + 1 … RETURNING``
statement, so uniqueness rests on the database's row locking and not on
anything held in this process.  A serial that is allocated but never used is
simply burned; serials are never reused.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session

from edi_outbound.core.config import SSCC_BASE_LENGTH, Settings
from edi_outbound.core.errors import ConfigurationError, ExhaustionError, ValidationError
from edi_outbound.models import ContainerIdCounter
from edi_outbound.models.order import utcnow

logger = logging.getLogger(__name__)

DEFAULT_SCOPE = "default"
SSCC_LENGTH = SSCC_BASE_LENGTH + 1

_DIGITS_RE = re.compile(r"^\d+$")
_AI_PREFIX_RE = re.compile(r"^\(00\)")


# --------------------------------------------------------------------------- #
# check digit                                                                 #
# --------------------------------------------------------------------------- #
def gs1_check_digit(digits: str) -> int:
    """GS1 Mod-10 check digit for *digits* (GTIN, SSCC, GLN … without check).

    Weights alternate 3, 1, 3, … starting at the rightmost digit.
    """
    if not digits or not _DIGITS_RE.match(digits):
        raise ValidationError(f"check digit input must be digits only, got {digits!r}")
    total = 0
    weight = 3
    for ch in reversed(digits):
        total += int(ch) * weight
        weight = 1 if weight == 3 else 3
    return (10 - (total % 10)) % 10


def is_valid_gs1(code: str) -> bool:
    """True when the last digit of *code* is its correct GS1 check digit."""
    if len(code) < 2 or not _DIGITS_RE.match(code):
        return False
    return gs1_check_digit(code[:-1]) == int(code[-1])


def normalize_sscc(value: str) -> str:
    """Return the bare 18-digit SSCC, accepting ``(00)`` and spaces."""
    text = _AI_PREFIX_RE.sub("", "".join(str(value).split()))
    if len(text) != SSCC_LENGTH or not is_valid_gs1(text):
        raise ValidationError(f"invalid SSCC {value!r}")
    return text


# --------------------------------------------------------------------------- #
# configuration                                                               #
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class AllocatorConfig:
    company_prefix: str
    extension_digit: str = "0"
    scope: str = DEFAULT_SCOPE

    def __post_init__(self) -> None:
        if not self.company_prefix or not _DIGITS_RE.match(self.company_prefix):
            raise ConfigurationError("GS1 company prefix must be a non-empty string of digits")
        if self.serial_length <= 0:
            raise ConfigurationError("GS1 company prefix is too long to generate an SSCC")
        if len(self.extension_digit) != 1 or not self.extension_digit.isdigit():
            raise ConfigurationError("SSCC extension digit must be a single digit 0-9")

    @property
    def serial_length(self) -> int:
        return SSCC_BASE_LENGTH - 1 - len(self.company_prefix)

    @property
    def max_serial(self) -> int:
        return 10 ** self.serial_length - 1

    @classmethod
    def from_settings(cls, settings: Settings) -> "AllocatorConfig":
        return cls(
            company_prefix=settings.gs1_company_prefix,
            extension_digit=settings.gs1_extension_digit,
        )


def build_sscc(config: AllocatorConfig, serial: int) -> str:
    if serial < 1 or serial > config.max_serial:
        raise ExhaustionError(
            f"SSCC serial {serial} outside 1..{config.max_serial} for prefix {config.company_prefix}"
        )
    base17 = f"{config.extension_digit}{config.company_prefix}{serial:0{config.serial_length}d}"
    return f"{base17}{gs1_check_digit(base17)}"


# --------------------------------------------------------------------------- #
# allocation                                                                  #
# --------------------------------------------------------------------------- #
def _ensure_counter(session: Session, scope: str) -> None:
    """Create the counter row for *scope* if it does not exist yet."""
    dialect = session.get_bind().dialect.name
    values = {"scope": scope, "last_serial": 0, "updated_at": utcnow()}
    if dialect == "postgresql":
        stmt = pg_insert(ContainerIdCounter).values(**values).on_conflict_do_nothing(
            index_elements=["scope"]
        )
        session.execute(stmt)
        return
    if dialect == "sqlite":
        stmt = sqlite_insert(ContainerIdCounter).values(**values).on_conflict_do_nothing(
            index_elements=["scope"]
        )
        session.execute(stmt)
        return
    # Other dialects: insert and tolerate a concurrent creator
    if session.get(ContainerIdCounter, scope) is not None:
        return
    try:
        with session.begin_nested():
            session.add(ContainerIdCounter(**values))
    except IntegrityError:
        logger.debug("sscc counter %s created concurrently", scope)


def next_serial(session: Session, scope: str = DEFAULT_SCOPE) -> int:
    """Atomically increment and return the serial of *scope* (commits)."""
    _ensure_counter(session, scope)
    stmt = (
        update(ContainerIdCounter)
        .where(ContainerIdCounter.scope == scope)
        .values(last_serial=ContainerIdCounter.last_serial + 1, updated_at=utcnow())
        .returning(ContainerIdCounter.last_serial)
    )
    serial = int(session.execute(stmt).scalar_one())
    session.commit()
    return serial


def allocate_container_id(session: Session, config: AllocatorConfig, scope: str | None = None) -> str:
    """Allocate the next SSCC for *config* (counter *scope*, default the config's).

    Raises ``ExhaustionError`` once the serial range of the prefix is used
    up.  The counter is not rolled back in that case, so every later call
    fails the same way until an operator assigns a new prefix.
    """
    scope = scope or config.scope
    serial = next_serial(session, scope)
    if serial > config.max_serial:
        logger.error(
            "SSCC serial range exhausted: scope=%s prefix=%s serial=%s max=%s",
            scope, config.company_prefix, serial, config.max_serial,
        )
        raise ExhaustionError(
            f"SSCC serial range exhausted for prefix {config.company_prefix} "
            f"(serial {serial} > {config.max_serial})"
        )
    sscc = build_sscc(config, serial)
    logger.info("allocated SSCC %s (scope=%s serial=%s)", sscc, scope, serial)
    return sscc


__all__ = [
    "AllocatorConfig",
    "allocate_container_id",
    "build_sscc",
    "gs1_check_digit",
    "is_valid_gs1",
    "next_serial",
    "normalize_sscc",
]
