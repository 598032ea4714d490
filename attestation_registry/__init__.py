"""
Attestation Registry

An authority-gated registry of compliance attestations (tax compliance,
audit completion, periodic reviews) that cover one to ten wallets.

One configured authority issues attestations and moves them through a small
lifecycle; every mutation is a signed request, is applied atomically, and
emits exactly one hash-chained event. Each record lives at an address
derived from its own audit hash, so anyone can locate it without an index.

Usage:
    from nacl.signing import SigningKey
    from attestation_registry import (
        AttestationProgram,
        InMemoryRecordStore,
        RegistryReader,
        Jurisdiction,
        AttestationType,
    )

    store = InMemoryRecordStore()
    program = AttestationProgram(store, program_id)
    authority = SigningKey.generate()

    program.initialize(authority)
    result = program.create_attestation(
        authority,
        jurisdiction=Jurisdiction.US,
        attestation_type=AttestationType.TAX_COMPLIANCE,
        tax_year=2024,
        audit_hash=audit_hash,
        expires_at=1767225600,
        wallets=[wallet],
    )

    reader = RegistryReader(store, program_id)
    reader.is_compliant(wallet, Jurisdiction.US, 2024).compliant
"""

__version__ = "1.0.0"

# Records
from .types import (
    MAX_WALLETS,
    Attestation,
    AttestationStatus,
    AttestationType,
    Jurisdiction,
    ProgramState,
)

# Errors
from .errors import (
    AttestationError,
    Unauthorized,
    ReplayedRequest,
    InvalidStatusTransition,
    AttestationNotActive,
    AttestationExpired,
    InvalidJurisdiction,
    InvalidAttestationType,
    InvalidWalletCount,
    InvalidStatus,
    DuplicateWallet,
    ValidationError,
    LayoutError,
    DuplicateRecord,
    AlreadyInitialized,
    RecordNotFound,
    NotInitialized,
    AddressMismatch,
)

# Addressing and layout
from .addressing import find_program_address, state_address, attestation_address
from .layout import (
    encode_program_state,
    decode_program_state,
    encode_attestation,
    decode_attestation,
)

# Lifecycle
from .lifecycle import (
    ALLOWED_TRANSITIONS,
    is_valid_status_transition,
    apply_status_update,
    apply_revoke,
    new_attestation,
)

# Store
from .store import RecordStore, InMemoryRecordStore, SqliteRecordStore

# Authorization
from .authorization import SignedRequest, sign_request, verify_request, require_authority

# Events
from .events import (
    Event,
    ProgramInitialized,
    AttestationCreated,
    StatusUpdated,
    AttestationRevoked,
    EventLog,
    LogEntry,
    ChainVerification,
    event_from_dict,
    verify_entries,
)

# Program and queries
from .clock import MonotonicClock, FixedClock
from .program import (
    AttestationProgram,
    ExecutionResult,
    Instruction,
    Initialize,
    CreateAttestation,
    UpdateStatus,
    RevokeAttestation,
    instruction_from_dict,
)
from .queries import RegistryReader, ComplianceResult


__all__ = [
    # Version
    "__version__",

    # Records
    "MAX_WALLETS",
    "Attestation",
    "AttestationStatus",
    "AttestationType",
    "Jurisdiction",
    "ProgramState",

    # Errors
    "AttestationError",
    "Unauthorized",
    "ReplayedRequest",
    "InvalidStatusTransition",
    "AttestationNotActive",
    "AttestationExpired",
    "InvalidJurisdiction",
    "InvalidAttestationType",
    "InvalidWalletCount",
    "InvalidStatus",
    "DuplicateWallet",
    "ValidationError",
    "LayoutError",
    "DuplicateRecord",
    "AlreadyInitialized",
    "RecordNotFound",
    "NotInitialized",
    "AddressMismatch",

    # Addressing and layout
    "find_program_address",
    "state_address",
    "attestation_address",
    "encode_program_state",
    "decode_program_state",
    "encode_attestation",
    "decode_attestation",

    # Lifecycle
    "ALLOWED_TRANSITIONS",
    "is_valid_status_transition",
    "apply_status_update",
    "apply_revoke",
    "new_attestation",

    # Store
    "RecordStore",
    "InMemoryRecordStore",
    "SqliteRecordStore",

    # Authorization
    "SignedRequest",
    "sign_request",
    "verify_request",
    "require_authority",

    # Events
    "Event",
    "ProgramInitialized",
    "AttestationCreated",
    "StatusUpdated",
    "AttestationRevoked",
    "EventLog",
    "LogEntry",
    "ChainVerification",
    "event_from_dict",
    "verify_entries",

    # Program and queries
    "MonotonicClock",
    "FixedClock",
    "AttestationProgram",
    "ExecutionResult",
    "Instruction",
    "Initialize",
    "CreateAttestation",
    "UpdateStatus",
    "RevokeAttestation",
    "instruction_from_dict",
    "RegistryReader",
    "ComplianceResult",
]
