"""
Program entry points.

Four instructions share one shape:

    verify signature -> [store transaction: consume nonce -> authority gate
    -> addressing -> lifecycle -> write record -> append event]

The whole bracketed part is one store transaction, so a failure at any
step leaves no record change, no consumed nonce and no event behind.

Usage:
    program = AttestationProgram(InMemoryRecordStore(), program_id)
    program.initialize(authority_key)
    result = program.create_attestation(
        authority_key,
        jurisdiction=Jurisdiction.US,
        attestation_type=AttestationType.TAX_COMPLIANCE,
        tax_year=2024,
        audit_hash=digest,
        expires_at=1767225600,
        wallets=[w1, w2],
    )
    program.update_status(authority_key, result.address, AttestationStatus.EXPIRED)
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence, Union

from nacl.signing import SigningKey

from . import addressing, lifecycle
from .authorization import (
    SignedRequest,
    nonce_expiry,
    require_authority,
    sign_request,
    verify_request,
)
from .clock import Clock, MonotonicClock
from .errors import (
    AddressMismatch,
    AlreadyInitialized,
    AttestationError,
    DuplicateRecord,
    NotInitialized,
    RecordNotFound,
    Unauthorized,
    ValidationError,
)
from .events import (
    AttestationCreated,
    AttestationRevoked,
    Event,
    EventLog,
    LogEntry,
    ProgramInitialized,
    StatusUpdated,
)
from .layout import (
    decode_attestation,
    decode_program_state,
    encode_attestation,
    encode_program_state,
)
from .logging_config import audit_log
from .store import RecordStore
from .types import (
    Attestation,
    AttestationStatus,
    AttestationType,
    Jurisdiction,
    ProgramState,
    decode_audit_hash,
    decode_key,
    validate_timestamp,
)
from .util import b64e, now_epoch

logger = logging.getLogger(__name__)

DEFAULT_MAX_CLOCK_SKEW = 300


# ============================================================
# Instructions
# ============================================================

@dataclass(frozen=True)
class Instruction:
    kind = "Instruction"

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind}


@dataclass(frozen=True)
class Initialize(Instruction):
    kind = "initialize"


@dataclass(frozen=True)
class CreateAttestation(Instruction):
    kind = "create_attestation"
    jurisdiction: Jurisdiction
    attestation_type: AttestationType
    tax_year: int
    audit_hash: bytes
    expires_at: int
    wallets: tuple

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "jurisdiction": self.jurisdiction.value,
            "attestation_type": self.attestation_type.value,
            "tax_year": self.tax_year,
            "audit_hash": self.audit_hash.hex(),
            "expires_at": self.expires_at,
            "wallets": [b64e(w) for w in self.wallets],
        }


@dataclass(frozen=True)
class UpdateStatus(Instruction):
    kind = "update_status"
    address: bytes
    new_status: AttestationStatus

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "address": b64e(self.address),
            "new_status": self.new_status.value,
        }


@dataclass(frozen=True)
class RevokeAttestation(Instruction):
    kind = "revoke_attestation"
    address: bytes

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "address": b64e(self.address)}


def instruction_from_dict(data: Dict[str, Any]) -> Instruction:
    """
    Decode a tagged instruction dict.

    Wallet count is deliberately not checked here; the lifecycle module
    rejects it with InvalidWalletCount inside the operation.
    """
    kind = data.get("kind")
    try:
        if kind == Initialize.kind:
            return Initialize()
        if kind == CreateAttestation.kind:
            wallets = data.get("wallets")
            if not isinstance(wallets, list):
                raise ValidationError("wallets", "must be a list")
            return CreateAttestation(
                jurisdiction=Jurisdiction.parse(data["jurisdiction"]),
                attestation_type=AttestationType.parse(data["attestation_type"]),
                tax_year=data["tax_year"],
                audit_hash=decode_audit_hash(data["audit_hash"]),
                expires_at=validate_timestamp(data["expires_at"], "expires_at"),
                wallets=tuple(decode_key(w, f"wallets[{i}]") for i, w in enumerate(wallets)),
            )
        if kind == UpdateStatus.kind:
            return UpdateStatus(
                address=decode_key(data["address"], "address"),
                new_status=AttestationStatus.parse(data["new_status"]),
            )
        if kind == RevokeAttestation.kind:
            return RevokeAttestation(address=decode_key(data["address"], "address"))
    except KeyError as e:
        raise ValidationError(f"instruction.{e.args[0]}", "is required")
    raise ValidationError("instruction.kind", f"unknown instruction {kind!r}")


@dataclass(frozen=True)
class ExecutionResult:
    address: bytes
    event: Event
    log_entry: LogEntry

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": b64e(self.address),
            "event": self.event.to_dict(),
            "seq": self.log_entry.seq,
            "entry_hash": self.log_entry.entry_hash,
        }


# ============================================================
# Program
# ============================================================

class AttestationProgram:
    """
    The attestation registry program.

    All mutations go through ``process``; the convenience methods only
    build and sign the request first. Reads live in ``queries``.
    """

    def __init__(
        self,
        store: RecordStore,
        program_id: bytes,
        clock: Optional[Clock] = None,
        max_clock_skew: int = DEFAULT_MAX_CLOCK_SKEW,
    ):
        self.store = store
        self.program_id = program_id
        self.clock = clock or MonotonicClock(now_epoch)
        self.max_clock_skew = max_clock_skew
        self.event_log = EventLog(store)
        self.state_address, self.state_bump = addressing.state_address(program_id)
        self._handlers = {
            Initialize: self._initialize,
            CreateAttestation: self._create_attestation,
            UpdateStatus: self._update_status,
            RevokeAttestation: self._revoke_attestation,
        }

    # ------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------

    def process(self, request: Union[SignedRequest, Dict[str, Any]]) -> ExecutionResult:
        """
        Authenticate, authorize and apply one signed request.

        Raises:
            AttestationError: any failure; nothing is written
        """
        if isinstance(request, dict):
            request = SignedRequest.from_dict(request)
        kind = request.instruction.get("kind", "?")
        now = self.clock()
        logger.debug("Processing %s from %s at %d", kind, request.signer, now)
        try:
            signer = verify_request(request, self.program_id, now, self.max_clock_skew)
            with self.store.transaction():
                self.store.consume_nonce(
                    request.nonce, nonce_expiry(request, self.max_clock_skew), now
                )
                state = None
                if kind != Initialize.kind:
                    state = self._load_state()
                    require_authority(signer, state)
                instruction = instruction_from_dict(request.instruction)
                handler = self._handlers[type(instruction)]
                result = handler(instruction, signer, state, now)
        except Unauthorized as e:
            audit_log.security_event(
                "unauthorized_request",
                severity="high",
                instruction=kind,
                reason=e.message,
                signer=request.signer,
                signature=request.signature,
            )
            raise
        except AttestationError as e:
            audit_log.mutation_rejected(kind, e.code, e.message, signer=request.signer)
            raise

        self._audit_committed(result)
        return result

    def _audit_committed(self, result: ExecutionResult) -> None:
        event = result.event
        address = b64e(result.address)
        if isinstance(event, ProgramInitialized):
            audit_log.program_initialized(b64e(event.authority))
        elif isinstance(event, AttestationCreated):
            audit_log.attestation_created(
                address, event.jurisdiction.value, event.attestation_type.value,
                event.tax_year, len(event.wallets),
            )
        elif isinstance(event, StatusUpdated):
            audit_log.status_updated(address, event.old_status.value, event.new_status.value)
        elif isinstance(event, AttestationRevoked):
            audit_log.attestation_revoked(address, event.revoked_at)

    # ------------------------------------------------------------
    # Handlers (run inside the store transaction)
    # ------------------------------------------------------------

    def _load_state(self) -> ProgramState:
        data = self.store.get(self.state_address)
        if data is None:
            raise NotInitialized()
        return decode_program_state(data)

    def _load_attestation(self, address: bytes) -> Attestation:
        data = self.store.get(address)
        if data is None:
            raise RecordNotFound(f"No attestation at {b64e(address)}")
        record = decode_attestation(data)
        # Re-derive from the record's own hash; never trust the caller's address.
        expected, bump = addressing.attestation_address(record.audit_hash, self.program_id)
        if expected != address or bump != record.bump:
            raise AddressMismatch()
        return record

    def _emit(self, address: bytes, event: Event, now: int) -> ExecutionResult:
        entry = self.event_log.append(event, now)
        return ExecutionResult(address=address, event=event, log_entry=entry)

    def _initialize(self, instruction: Initialize, signer: bytes,
                    state: Optional[ProgramState], now: int) -> ExecutionResult:
        state = ProgramState(authority=signer, attestation_count=0, bump=self.state_bump)
        try:
            self.store.create(self.state_address, encode_program_state(state))
        except DuplicateRecord:
            raise AlreadyInitialized()
        return self._emit(self.state_address, ProgramInitialized(authority=signer), now)

    def _create_attestation(self, instruction: CreateAttestation, signer: bytes,
                            state: ProgramState, now: int) -> ExecutionResult:
        address, bump = addressing.attestation_address(instruction.audit_hash, self.program_id)
        if self.store.exists(address):
            raise DuplicateRecord(
                f"An attestation for audit hash {instruction.audit_hash.hex()} already exists"
            )
        record = lifecycle.new_attestation(
            authority=signer,
            jurisdiction=instruction.jurisdiction,
            attestation_type=instruction.attestation_type,
            tax_year=instruction.tax_year,
            audit_hash=instruction.audit_hash,
            expires_at=instruction.expires_at,
            wallets=instruction.wallets,
            issued_at=now,
            bump=bump,
        )
        self.store.create(address, encode_attestation(record))
        self.store.put(
            self.state_address,
            encode_program_state(ProgramState(
                authority=state.authority,
                attestation_count=state.attestation_count + 1,
                bump=state.bump,
            )),
        )

        return self._emit(address, AttestationCreated(
            attestation=address,
            wallets=record.wallets,
            jurisdiction=record.jurisdiction,
            attestation_type=record.attestation_type,
            tax_year=record.tax_year,
            audit_hash=record.audit_hash,
            issued_at=record.issued_at,
            expires_at=record.expires_at,
        ), now)

    def _update_status(self, instruction: UpdateStatus, signer: bytes,
                       state: ProgramState, now: int) -> ExecutionResult:
        record = self._load_attestation(instruction.address)
        updated = lifecycle.apply_status_update(record, instruction.new_status, now)
        self.store.put(instruction.address, encode_attestation(updated))

        return self._emit(instruction.address, StatusUpdated(
            attestation=instruction.address,
            old_status=record.status,
            new_status=updated.status,
            revoked_at=updated.revoked_at,
        ), now)

    def _revoke_attestation(self, instruction: RevokeAttestation, signer: bytes,
                            state: ProgramState, now: int) -> ExecutionResult:
        record = self._load_attestation(instruction.address)
        revoked = lifecycle.apply_revoke(record, now)
        self.store.put(instruction.address, encode_attestation(revoked))

        return self._emit(instruction.address, AttestationRevoked(
            attestation=instruction.address,
            wallets=revoked.wallets,
            revoked_at=revoked.revoked_at,
        ), now)

    # ------------------------------------------------------------
    # Convenience wrappers
    # ------------------------------------------------------------

    def submit(self, signing_key: SigningKey, instruction: Instruction, nonce: Optional[str] = None) -> ExecutionResult:
        request = sign_request(
            instruction.to_dict(), signing_key, self.program_id,
            nonce=nonce, issued_at=self.clock(),
        )
        return self.process(request)

    def initialize(self, signing_key: SigningKey) -> ExecutionResult:
        return self.submit(signing_key, Initialize())

    def create_attestation(
        self,
        signing_key: SigningKey,
        jurisdiction: Union[Jurisdiction, str],
        attestation_type: Union[AttestationType, str],
        tax_year: int,
        audit_hash: bytes,
        expires_at: int,
        wallets: Sequence[bytes],
    ) -> ExecutionResult:
        return self.submit(signing_key, CreateAttestation(
            jurisdiction=Jurisdiction.parse(jurisdiction),
            attestation_type=AttestationType.parse(attestation_type),
            tax_year=tax_year,
            audit_hash=bytes(audit_hash),
            expires_at=expires_at,
            wallets=tuple(wallets),
        ))

    def update_status(
        self,
        signing_key: SigningKey,
        address: bytes,
        new_status: Union[AttestationStatus, str],
    ) -> ExecutionResult:
        return self.submit(signing_key, UpdateStatus(
            address=address, new_status=AttestationStatus.parse(new_status)
        ))

    def revoke_attestation(self, signing_key: SigningKey, address: bytes) -> ExecutionResult:
        return self.submit(signing_key, RevokeAttestation(address=address))

