"""
Event log for registry mutations.

Each successful operation emits exactly one event, appended in the same
store transaction as the state change it describes. Entries are linked in
a hash chain so that any later edit or deletion is detectable:

    payload_hash = sha256(canonical_json(event))
    entry_hash   = sha256(prev_entry_hash || payload_hash)

Events carry enough data to rebuild the record without reading the store.
"""

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

from .types import (
    AttestationStatus,
    AttestationType,
    Jurisdiction,
    decode_audit_hash,
    decode_key,
)
from .util import b64e, canonicalize, sha256_hex


# ============================================================
# Event types
# ============================================================

@dataclass(frozen=True)
class Event:
    event_type: ClassVar[str] = "Event"

    def payload(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_dict(self) -> Dict[str, Any]:
        return {"event_type": self.event_type, **self.payload()}


@dataclass(frozen=True)
class ProgramInitialized(Event):
    event_type: ClassVar[str] = "ProgramInitialized"
    authority: bytes

    def payload(self) -> Dict[str, Any]:
        return {"authority": b64e(self.authority)}

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "ProgramInitialized":
        return cls(authority=decode_key(data["authority"], "authority"))


@dataclass(frozen=True)
class AttestationCreated(Event):
    event_type: ClassVar[str] = "AttestationCreated"
    attestation: bytes
    wallets: Tuple[bytes, ...]
    jurisdiction: Jurisdiction
    attestation_type: AttestationType
    tax_year: int
    audit_hash: bytes
    issued_at: int
    expires_at: int

    def payload(self) -> Dict[str, Any]:
        return {
            "attestation": b64e(self.attestation),
            "wallets": [b64e(w) for w in self.wallets],
            "jurisdiction": self.jurisdiction.value,
            "attestation_type": self.attestation_type.value,
            "tax_year": self.tax_year,
            "audit_hash": self.audit_hash.hex(),
            "issued_at": self.issued_at,
            "expires_at": self.expires_at,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AttestationCreated":
        return cls(
            attestation=decode_key(data["attestation"], "attestation"),
            wallets=tuple(decode_key(w, "wallets") for w in data["wallets"]),
            jurisdiction=Jurisdiction.parse(data["jurisdiction"]),
            attestation_type=AttestationType.parse(data["attestation_type"]),
            tax_year=int(data["tax_year"]),
            audit_hash=decode_audit_hash(data["audit_hash"]),
            issued_at=int(data["issued_at"]),
            expires_at=int(data["expires_at"]),
        )


@dataclass(frozen=True)
class StatusUpdated(Event):
    event_type: ClassVar[str] = "StatusUpdated"
    attestation: bytes
    old_status: AttestationStatus
    new_status: AttestationStatus
    revoked_at: int = 0

    def payload(self) -> Dict[str, Any]:
        return {
            "attestation": b64e(self.attestation),
            "old_status": self.old_status.value,
            "new_status": self.new_status.value,
            "revoked_at": self.revoked_at,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "StatusUpdated":
        return cls(
            attestation=decode_key(data["attestation"], "attestation"),
            old_status=AttestationStatus.parse(data["old_status"]),
            new_status=AttestationStatus.parse(data["new_status"]),
            revoked_at=int(data.get("revoked_at", 0)),
        )


@dataclass(frozen=True)
class AttestationRevoked(Event):
    event_type: ClassVar[str] = "AttestationRevoked"
    attestation: bytes
    wallets: Tuple[bytes, ...]
    revoked_at: int

    def payload(self) -> Dict[str, Any]:
        return {
            "attestation": b64e(self.attestation),
            "wallets": [b64e(w) for w in self.wallets],
            "revoked_at": self.revoked_at,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "AttestationRevoked":
        return cls(
            attestation=decode_key(data["attestation"], "attestation"),
            wallets=tuple(decode_key(w, "wallets") for w in data["wallets"]),
            revoked_at=int(data["revoked_at"]),
        )


EVENT_TYPES: Dict[str, Type[Event]] = {
    cls.event_type: cls
    for cls in (ProgramInitialized, AttestationCreated, StatusUpdated, AttestationRevoked)
}


def event_from_dict(data: Dict[str, Any]) -> Event:
    """Rebuild a typed event from its dict form (as produced by ``to_dict``)."""
    event_type = data.get("event_type")
    cls = EVENT_TYPES.get(event_type)
    if cls is None:
        raise ValueError(f"Unknown event type: {event_type!r}")
    return cls.from_payload(data)


# ============================================================
# Log entries and hash chain
# ============================================================

def chain_entry_hash(prev_entry_hash: Optional[str], payload_hash: str) -> str:
    """
    Compute the hash chain entry hash.

    Links to the previous entry, forming an append-only chain. The first
    entry has no predecessor and hashes the payload hash alone.
    """
    data = (prev_entry_hash or "").encode("utf-8") + payload_hash.encode("utf-8")
    return sha256_hex(data)


@dataclass(frozen=True)
class LogEntry:
    seq: int
    event_type: str
    slot_time: int
    payload_json: str
    payload_hash: str
    prev_entry_hash: Optional[str]
    entry_hash: str

    @property
    def event(self) -> Event:
        return event_from_dict(json.loads(self.payload_json))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "event_type": self.event_type,
            "slot_time": self.slot_time,
            "event": json.loads(self.payload_json),
            "payload_hash": self.payload_hash,
            "prev_entry_hash": self.prev_entry_hash,
            "entry_hash": self.entry_hash,
        }


@dataclass
class ChainVerification:
    valid: bool
    entries_checked: int
    errors: List[str] = field(default_factory=list)


def verify_entries(entries: List[Dict[str, Any]]) -> ChainVerification:
    """
    Verify an exported event log (list of ``LogEntry.to_dict()`` items).

    Recomputes every payload hash and chain link; does not need the store.
    """
    errors: List[str] = []
    prev: Optional[str] = None
    expected_seq = None
    for entry in entries:
        seq = entry.get("seq")
        if expected_seq is not None and seq != expected_seq:
            errors.append(f"seq {seq}: gap in sequence (expected {expected_seq})")
        expected_seq = (seq or 0) + 1

        payload_hash = sha256_hex(canonicalize(entry.get("event", {})))
        if payload_hash != entry.get("payload_hash"):
            errors.append(f"seq {seq}: payload hash mismatch")
        if entry.get("prev_entry_hash") != prev:
            errors.append(f"seq {seq}: prev_entry_hash does not link to previous entry")
        if chain_entry_hash(prev, entry.get("payload_hash", "")) != entry.get("entry_hash"):
            errors.append(f"seq {seq}: entry hash mismatch")
        prev = entry.get("entry_hash")

    return ChainVerification(valid=not errors, entries_checked=len(entries), errors=errors)


class EventLog:
    """
    Append-only event sink backed by a RecordStore.

    ``append`` must be called inside the store transaction of the mutation
    it reports; the store commits or discards both together.
    """

    def __init__(self, store):
        self._store = store

    def append(self, event: Event, slot_time: int) -> LogEntry:
        body = event.to_dict()
        payload_json = canonicalize(body).decode("utf-8")
        payload_hash = sha256_hex(payload_json)
        prev = self._store.latest_entry_hash()
        return self._store.append_log_entry(
            event_type=event.event_type,
            slot_time=slot_time,
            payload_json=payload_json,
            payload_hash=payload_hash,
            prev_entry_hash=prev,
            entry_hash=chain_entry_hash(prev, payload_hash),
        )

    def entries(self, after_seq: int = 0, limit: Optional[int] = None) -> List[LogEntry]:
        return self._store.log_entries(after_seq=after_seq, limit=limit)

    def events(self) -> List[Event]:
        return [entry.event for entry in self.entries()]

    def export(self) -> List[Dict[str, Any]]:
        return [entry.to_dict() for entry in self.entries()]

    def verify_chain(self) -> ChainVerification:
        return verify_entries(self.export())
