"""Shared fixtures for the registry test suites."""

from nacl.signing import SigningKey

from attestation_registry.clock import FixedClock
from attestation_registry.program import AttestationProgram
from attestation_registry.store import InMemoryRecordStore
from attestation_registry.types import Attestation, AttestationStatus, AttestationType, Jurisdiction
from attestation_registry.util import sha256_bytes

PROGRAM_ID = sha256_bytes("attestation_registry:test")
START = 1_700_000_000
EXPIRES = START + 365 * 86400


def wallet(n: int) -> bytes:
    return sha256_bytes(f"wallet-{n}")


def wallets(count: int, start: int = 0):
    return [wallet(i) for i in range(start, start + count)]


def audit_hash(label: str) -> bytes:
    return sha256_bytes(f"audit:{label}")


def signing_key(label: str = "authority") -> SigningKey:
    return SigningKey(sha256_bytes(f"key:{label}"))


def new_program(store=None, clock=None, program_id=PROGRAM_ID):
    store = store if store is not None else InMemoryRecordStore()
    clock = clock if clock is not None else FixedClock(START)
    return AttestationProgram(store, program_id, clock=clock)


def make_record(status=AttestationStatus.ACTIVE, hash_label="record", authority=None, bump=255):
    return Attestation(
        authority=authority or bytes(signing_key().verify_key),
        jurisdiction=Jurisdiction.US,
        attestation_type=AttestationType.TAX_COMPLIANCE,
        tax_year=2024,
        audit_hash=audit_hash(hash_label),
        issued_at=START,
        expires_at=EXPIRES,
        wallets=(wallet(0), wallet(1)),
        status=status,
        bump=bump,
    )
