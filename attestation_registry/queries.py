"""
Read-only queries over the registry.

Reads need no signature and never write. Everything is located through
deterministic addressing or a discriminator scan, so a reader only needs
the store and the program id.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from . import addressing
from .errors import LayoutError
from .layout import (
    ATTESTATION_DISCRIMINATOR,
    account_kind,
    decode_attestation,
    decode_program_state,
)
from .store import RecordStore
from .types import (
    Attestation,
    AttestationStatus,
    AttestationType,
    Jurisdiction,
    ProgramState,
    validate_audit_hash,
)
from .util import b64e, constant_time_compare, now_epoch

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComplianceResult:
    compliant: bool
    attestation: Optional[Attestation] = None
    address: Optional[bytes] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "compliant": self.compliant,
            "address": b64e(self.address) if self.address else None,
            "attestation": self.attestation.to_dict() if self.attestation else None,
            "reason": self.reason,
        }


class RegistryReader:
    def __init__(self, store: RecordStore, program_id: bytes):
        self.store = store
        self.program_id = program_id

    def get_state(self) -> Optional[ProgramState]:
        address, _ = addressing.state_address(self.program_id)
        data = self.store.get(address)
        return decode_program_state(data) if data is not None else None

    def get_attestation(self, audit_hash: bytes) -> Optional[Attestation]:
        """Look up an attestation by the audit hash it was issued for."""
        address, _ = addressing.attestation_address(validate_audit_hash(audit_hash), self.program_id)
        return self.get_attestation_by_address(address)

    def get_attestation_by_address(self, address: bytes) -> Optional[Attestation]:
        data = self.store.get(address)
        if data is None or account_kind(data) != "Attestation":
            return None
        return decode_attestation(data)

    def wallet_attestations(self, wallet: bytes) -> List[Tuple[bytes, Attestation]]:
        """
        All attestations covering ``wallet``, as (address, record) pairs.

        Accounts that carry the attestation discriminator but fail to decode
        are logged and skipped.
        """
        found = []
        for address, data in self.store.scan(ATTESTATION_DISCRIMINATOR):
            try:
                record = decode_attestation(data)
            except LayoutError as e:
                logger.warning("Skipping malformed account %s: %s", b64e(address), e.message)
                continue
            if record.covers(wallet):
                found.append((address, record))
        return found

    def is_compliant(
        self,
        wallet: bytes,
        jurisdiction: Union[Jurisdiction, str],
        tax_year: int,
        now: Optional[int] = None,
    ) -> ComplianceResult:
        """
        Check for an Active, unexpired TaxCompliance attestation covering
        ``wallet`` in ``jurisdiction`` for ``tax_year``.

        A compliant match wins over any revoked or expired one; otherwise the
        first match (in address order) supplies the reason.
        """
        jurisdiction = Jurisdiction.parse(jurisdiction)
        now = now_epoch() if now is None else now

        matches = [
            (address, record)
            for address, record in self.wallet_attestations(wallet)
            if record.jurisdiction == jurisdiction
            and record.attestation_type == AttestationType.TAX_COMPLIANCE
            and record.tax_year == tax_year
        ]
        if not matches:
            return ComplianceResult(compliant=False, reason="No attestation found")

        for address, record in matches:
            if record.status == AttestationStatus.ACTIVE and not record.is_expired(now):
                return ComplianceResult(compliant=True, attestation=record, address=address)
        address, record = matches[0]
        if record.status != AttestationStatus.ACTIVE:
            return ComplianceResult(
                compliant=False, attestation=record, address=address,
                reason=f"Attestation status is {record.status.value}",
            )
        return ComplianceResult(
            compliant=False, attestation=record, address=address,
            reason="Attestation has expired",
        )

    def verify_attestation(self, audit_hash: bytes, expected_hash: bytes) -> bool:
        """True iff the attestation exists, is Active and its hash matches."""
        record = self.get_attestation(audit_hash)
        if record is None or record.status != AttestationStatus.ACTIVE:
            return False
        return constant_time_compare(record.audit_hash, bytes(expected_hash))
