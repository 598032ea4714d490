"""
Attestation lifecycle state machine.

    Pending --> Active --> Expired
       |          |
       +----------+-----> Revoked

Expired and Revoked are terminal. The generic status update follows the
table above; the dedicated revoke path is narrower and only accepts Active.
Nothing moves a record to Expired automatically: expires_at is advisory.

All functions here are pure. They return new records and never touch the
store, so the caller can validate everything before committing.
"""

from typing import FrozenSet, Sequence, Tuple

from .errors import (
    AttestationNotActive,
    DuplicateWallet,
    InvalidStatusTransition,
    InvalidWalletCount,
)
from .types import (
    MAX_WALLETS,
    Attestation,
    AttestationStatus,
    AttestationType,
    Jurisdiction,
    validate_audit_hash,
    validate_key,
    validate_tax_year,
    validate_timestamp,
)

Status = AttestationStatus

ALLOWED_TRANSITIONS: FrozenSet[Tuple[AttestationStatus, AttestationStatus]] = frozenset({
    (Status.PENDING, Status.ACTIVE),
    (Status.ACTIVE, Status.EXPIRED),
    (Status.ACTIVE, Status.REVOKED),
    (Status.PENDING, Status.REVOKED),
})

TERMINAL_STATES: FrozenSet[AttestationStatus] = frozenset({Status.EXPIRED, Status.REVOKED})


def is_valid_status_transition(old: AttestationStatus, new: AttestationStatus) -> bool:
    return (old, new) in ALLOWED_TRANSITIONS


def validate_wallets(wallets: Sequence[bytes]) -> Tuple[bytes, ...]:
    """Check wallet count, key length and uniqueness; preserve order."""
    if not 1 <= len(wallets) <= MAX_WALLETS:
        raise InvalidWalletCount(
            f"Invalid wallet count: must be 1-{MAX_WALLETS} wallets, got {len(wallets)}"
        )
    keys = tuple(validate_key(w, f"wallets[{i}]") for i, w in enumerate(wallets))
    if len(set(keys)) != len(keys):
        raise DuplicateWallet()
    return keys


def new_attestation(
    authority: bytes,
    jurisdiction: Jurisdiction,
    attestation_type: AttestationType,
    tax_year: int,
    audit_hash: bytes,
    expires_at: int,
    wallets: Sequence[bytes],
    issued_at: int,
    bump: int,
) -> Attestation:
    """
    Build a freshly issued attestation.

    Records always start Active; Pending is never produced here.

    Raises:
        InvalidWalletCount: if wallets is empty or longer than MAX_WALLETS
        DuplicateWallet: if a wallet appears twice
        ValidationError: if a field is out of range
    """
    return Attestation(
        bump=bump,
        authority=validate_key(authority, "authority"),
        jurisdiction=Jurisdiction.parse(jurisdiction),
        attestation_type=AttestationType.parse(attestation_type),
        status=Status.ACTIVE,
        tax_year=validate_tax_year(tax_year),
        audit_hash=validate_audit_hash(audit_hash),
        issued_at=validate_timestamp(issued_at, "issued_at"),
        expires_at=validate_timestamp(expires_at, "expires_at"),
        revoked_at=0,
        wallets=validate_wallets(wallets),
    )


def apply_status_update(record: Attestation, new_status: AttestationStatus, now: int) -> Attestation:
    """
    Move ``record`` to ``new_status`` along an allowed edge.

    Entering Revoked stamps revoked_at with ``now``; every other edge leaves
    revoked_at untouched.
    """
    new_status = Status.parse(new_status)
    if not is_valid_status_transition(record.status, new_status):
        raise InvalidStatusTransition(
            f"Invalid status transition: {record.status.value} -> {new_status.value}"
        )
    if new_status == Status.REVOKED:
        return record.with_status(new_status, revoked_at=now)
    return record.with_status(new_status)


def apply_revoke(record: Attestation, now: int) -> Attestation:
    """Revoke an Active attestation. Pending is rejected here even though the table allows it."""
    if record.status != Status.ACTIVE:
        raise AttestationNotActive(f"Attestation is not active (status: {record.status.value})")
    return record.with_status(Status.REVOKED, revoked_at=now)
