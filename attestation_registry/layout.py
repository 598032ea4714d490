"""
Binary account layout.

Records are stored as the hosting ledger holds them: an 8-byte account
discriminator followed by little-endian fixed-width fields.

    ProgramState  disc(8) authority(32) attestation_count(u64) bump(u8)
    Attestation   disc(8) bump(u8) authority(32) jurisdiction(u8)
                  attestation_type(u8) status(u8) tax_year(u16)
                  audit_hash(32) issued_at(i64) expires_at(i64)
                  revoked_at(i64) num_wallets(u8) wallets(u32 len + N*32)
"""

import struct
from typing import Optional, Tuple

from .errors import LayoutError
from .types import (
    MAX_WALLETS,
    Attestation,
    AttestationStatus,
    AttestationType,
    Jurisdiction,
    ProgramState,
)
from .util import sha256_bytes


def account_discriminator(name: str) -> bytes:
    """First 8 bytes of sha256("account:<Name>")."""
    return sha256_bytes(f"account:{name}")[:8]


PROGRAM_STATE_DISCRIMINATOR = account_discriminator("ProgramState")
ATTESTATION_DISCRIMINATOR = account_discriminator("Attestation")

_STATE = struct.Struct("<8s32sQB")
_ATTESTATION_HEAD = struct.Struct("<8sB32sBBBH32sqqqBI")
_KEY = 32

PROGRAM_STATE_SIZE = _STATE.size
ATTESTATION_MAX_SIZE = _ATTESTATION_HEAD.size + MAX_WALLETS * _KEY


def account_kind(data: bytes) -> Optional[str]:
    """Identify the record kind stored in ``data``, or None."""
    prefix = bytes(data[:8])
    if prefix == PROGRAM_STATE_DISCRIMINATOR:
        return "ProgramState"
    if prefix == ATTESTATION_DISCRIMINATOR:
        return "Attestation"
    return None


def encode_program_state(state: ProgramState) -> bytes:
    return _STATE.pack(
        PROGRAM_STATE_DISCRIMINATOR,
        state.authority,
        state.attestation_count,
        state.bump,
    )


def decode_program_state(data: bytes) -> ProgramState:
    if len(data) < _STATE.size:
        raise LayoutError(f"ProgramState needs {_STATE.size} bytes, got {len(data)}")
    disc, authority, count, bump = _STATE.unpack_from(data)
    if disc != PROGRAM_STATE_DISCRIMINATOR:
        raise LayoutError("Account discriminator is not ProgramState")
    return ProgramState(authority=authority, attestation_count=count, bump=bump)


def encode_attestation(attestation: Attestation) -> bytes:
    head = _ATTESTATION_HEAD.pack(
        ATTESTATION_DISCRIMINATOR,
        attestation.bump,
        attestation.authority,
        attestation.jurisdiction.ordinal,
        attestation.attestation_type.ordinal,
        attestation.status.ordinal,
        attestation.tax_year,
        attestation.audit_hash,
        attestation.issued_at,
        attestation.expires_at,
        attestation.revoked_at,
        attestation.num_wallets,
        len(attestation.wallets),
    )
    return head + b"".join(attestation.wallets)


def decode_attestation(data: bytes) -> Attestation:
    if len(data) < _ATTESTATION_HEAD.size:
        raise LayoutError(
            f"Attestation needs at least {_ATTESTATION_HEAD.size} bytes, got {len(data)}"
        )
    (
        disc, bump, authority, jurisdiction, attestation_type, status,
        tax_year, audit_hash, issued_at, expires_at, revoked_at,
        num_wallets, vec_len,
    ) = _ATTESTATION_HEAD.unpack_from(data)
    if disc != ATTESTATION_DISCRIMINATOR:
        raise LayoutError("Account discriminator is not Attestation")
    if vec_len > MAX_WALLETS or vec_len != num_wallets:
        raise LayoutError(f"Corrupt wallet vector (num_wallets={num_wallets}, len={vec_len})")

    offset = _ATTESTATION_HEAD.size
    end = offset + vec_len * _KEY
    if len(data) < end:
        raise LayoutError("Wallet vector is truncated")
    wallets: Tuple[bytes, ...] = tuple(
        bytes(data[i:i + _KEY]) for i in range(offset, end, _KEY)
    )

    return Attestation(
        bump=bump,
        authority=authority,
        jurisdiction=Jurisdiction.from_ordinal(jurisdiction),
        attestation_type=AttestationType.from_ordinal(attestation_type),
        status=AttestationStatus.from_ordinal(status),
        tax_year=tax_year,
        audit_hash=audit_hash,
        issued_at=issued_at,
        expires_at=expires_at,
        revoked_at=revoked_at,
        wallets=wallets,
    )
