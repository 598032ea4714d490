"""
Record types for the attestation registry.

Two record kinds are persisted:

    ProgramState   singleton, one per deployment (authority + counter)
    Attestation    one per issued claim, located by its audit hash

Keys (authority, wallets, addresses) are raw 32-byte values in memory and
base64 strings in JSON. Audit hashes are rendered as lowercase hex.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Tuple, Type, TypeVar, Union

from .errors import (
    InvalidAttestationType,
    InvalidJurisdiction,
    InvalidStatus,
    ValidationError,
)
from .util import b64d, b64e, hex_to_bytes


MAX_WALLETS = 10
KEY_LENGTH = 32
AUDIT_HASH_LENGTH = 32

U16_MAX = 0xFFFF
I64_MIN = -(2 ** 63)
I64_MAX = 2 ** 63 - 1

E = TypeVar("E", bound="IndexedEnum")


class IndexedEnum(str, Enum):
    """
    String enum whose members also carry a stable 0-based ordinal.

    The ordinal is the declaration order and is what the binary account
    layout stores in its single discriminant byte.
    """

    @property
    def ordinal(self) -> int:
        return list(type(self)).index(self)

    @classmethod
    def from_ordinal(cls: Type[E], index: int) -> E:
        members = list(cls)
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(members):
            raise cls._raise_invalid(index)
        return members[index]

    @classmethod
    def parse(cls: Type[E], value: Union[str, int, "IndexedEnum"]) -> E:
        """Accept a member, its name, its value, or its ordinal."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            return cls.from_ordinal(value)
        if isinstance(value, str):
            for member in cls:
                if value == member.value or value == member.name:
                    return member
        raise cls._raise_invalid(value)

    @classmethod
    def _raise_invalid(cls, value: Any) -> Exception:
        return ValidationError(cls.__name__, f"unknown value {value!r}")


class Jurisdiction(IndexedEnum):
    US = "US"
    EU = "EU"
    BR = "BR"
    UK = "UK"
    JP = "JP"
    AU = "AU"
    CA = "CA"
    CH = "CH"
    SG = "SG"

    @classmethod
    def _raise_invalid(cls, value: Any) -> Exception:
        return InvalidJurisdiction(f"Invalid jurisdiction: {value!r}")


class AttestationType(IndexedEnum):
    TAX_COMPLIANCE = "TaxCompliance"
    AUDIT_COMPLETE = "AuditComplete"
    REPORTING_COMPLETE = "ReportingComplete"
    QUARTERLY_REVIEW = "QuarterlyReview"
    ANNUAL_REVIEW = "AnnualReview"

    @classmethod
    def _raise_invalid(cls, value: Any) -> Exception:
        return InvalidAttestationType(f"Invalid attestation type: {value!r}")


class AttestationStatus(IndexedEnum):
    """
    Lifecycle states of an attestation.

    PENDING:  defined for a future propose-then-activate flow; no entry
              point creates records in this state
    ACTIVE:   initial state of every created attestation
    EXPIRED:  terminal, set only by an explicit status update
    REVOKED:  terminal, stamps revoked_at
    """
    PENDING = "Pending"
    ACTIVE = "Active"
    EXPIRED = "Expired"
    REVOKED = "Revoked"

    @classmethod
    def _raise_invalid(cls, value: Any) -> Exception:
        return InvalidStatus(f"Invalid attestation status: {value!r}")


# ============================================================
# Field validation
# ============================================================

def validate_key(value: bytes, field_name: str) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != KEY_LENGTH:
        raise ValidationError(field_name, f"must be {KEY_LENGTH} bytes")
    return bytes(value)


def validate_audit_hash(value: bytes) -> bytes:
    if not isinstance(value, (bytes, bytearray)) or len(value) != AUDIT_HASH_LENGTH:
        raise ValidationError("audit_hash", f"must be exactly {AUDIT_HASH_LENGTH} bytes")
    return bytes(value)


def validate_tax_year(value: int) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= U16_MAX:
        raise ValidationError("tax_year", "must be an unsigned 16-bit integer")
    return value


def validate_timestamp(value: int, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or not I64_MIN <= value <= I64_MAX:
        raise ValidationError(field_name, "must be a signed 64-bit integer")
    return value


def decode_key(value: str, field_name: str) -> bytes:
    """Decode a base64 public key string and check its length."""
    if not isinstance(value, str):
        raise ValidationError(field_name, "must be a base64 string")
    try:
        raw = b64d(value)
    except ValueError:
        raise ValidationError(field_name, "must be valid base64")
    return validate_key(raw, field_name)


def decode_audit_hash(value: str) -> bytes:
    """Decode a hex audit hash string and check its length."""
    if not isinstance(value, str):
        raise ValidationError("audit_hash", "must be a hex string")
    try:
        raw = hex_to_bytes(value)
    except ValueError:
        raise ValidationError("audit_hash", "must be valid hexadecimal")
    return validate_audit_hash(raw)


# ============================================================
# Records
# ============================================================

@dataclass(frozen=True)
class ProgramState:
    """Singleton deployment configuration."""
    authority: bytes
    attestation_count: int = 0
    bump: int = 255

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": b64e(self.authority),
            "attestation_count": self.attestation_count,
            "bump": self.bump,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgramState":
        return cls(
            authority=decode_key(data["authority"], "authority"),
            attestation_count=int(data.get("attestation_count", 0)),
            bump=int(data.get("bump", 255)),
        )


@dataclass(frozen=True)
class Attestation:
    """
    An authority-issued compliance claim covering 1..MAX_WALLETS wallets.

    Only ``status`` and ``revoked_at`` change after creation, and only
    through the lifecycle module. ``authority`` records who issued it and
    is never consulted for later authorization.
    """
    authority: bytes
    jurisdiction: Jurisdiction
    attestation_type: AttestationType
    tax_year: int
    audit_hash: bytes
    issued_at: int
    expires_at: int
    wallets: Tuple[bytes, ...] = field(default_factory=tuple)
    status: AttestationStatus = AttestationStatus.ACTIVE
    revoked_at: int = 0
    bump: int = 255

    @property
    def num_wallets(self) -> int:
        return len(self.wallets)

    @property
    def is_revoked(self) -> bool:
        return self.revoked_at != 0

    def is_expired(self, now: int) -> bool:
        """Advisory check against expires_at; never changes status."""
        return self.expires_at < now

    def covers(self, wallet: bytes) -> bool:
        return wallet in self.wallets

    def with_status(self, status: AttestationStatus, revoked_at: int = None) -> "Attestation":
        if revoked_at is None:
            return replace(self, status=status)
        return replace(self, status=status, revoked_at=revoked_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "authority": b64e(self.authority),
            "jurisdiction": self.jurisdiction.value,
            "attestation_type": self.attestation_type.value,
            "status": self.status.value,
            "tax_year": self.tax_year,
            "audit_hash": self.audit_hash.hex(),
            "issued_at": self.issued_at,
            "expires_at": self.expires_at,
            "revoked_at": self.revoked_at,
            "num_wallets": self.num_wallets,
            "wallets": [b64e(w) for w in self.wallets],
            "bump": self.bump,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Attestation":
        wallets: List[bytes] = [
            decode_key(w, f"wallets[{i}]") for i, w in enumerate(data.get("wallets", []))
        ]
        return cls(
            authority=decode_key(data["authority"], "authority"),
            jurisdiction=Jurisdiction.parse(data["jurisdiction"]),
            attestation_type=AttestationType.parse(data["attestation_type"]),
            status=AttestationStatus.parse(data.get("status", AttestationStatus.ACTIVE.value)),
            tax_year=validate_tax_year(data["tax_year"]),
            audit_hash=decode_audit_hash(data["audit_hash"]),
            issued_at=validate_timestamp(data["issued_at"], "issued_at"),
            expires_at=validate_timestamp(data["expires_at"], "expires_at"),
            revoked_at=validate_timestamp(data.get("revoked_at", 0), "revoked_at"),
            wallets=tuple(wallets),
            bump=int(data.get("bump", 255)),
        )
