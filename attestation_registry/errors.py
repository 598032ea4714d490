"""
Error taxonomy for the attestation registry.

Every failure is detected before any state is written and surfaces to the
caller unchanged. Errors carry a stable string ``code`` and a numeric code in
the 6000 range, matching how the hosting ledger reports program errors.

    Authorization  Unauthorized, ReplayedRequest
    Validation     InvalidStatusTransition, AttestationNotActive, ...
    Addressing     DuplicateRecord, AlreadyInitialized, RecordNotFound, ...
"""

from typing import Optional


class AttestationError(Exception):
    """Base class for all registry errors."""
    code = "AttestationError"
    number = 6999
    default_message = "Attestation registry error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.code, "code": self.number, "message": self.message}


# ============================================================
# Authorization
# ============================================================

class Unauthorized(AttestationError):
    code = "Unauthorized"
    number = 6000
    default_message = "Unauthorized"


class ReplayedRequest(Unauthorized):
    code = "ReplayedRequest"
    number = 6011
    default_message = "Request nonce has already been used"


# ============================================================
# Validation
# ============================================================

class InvalidStatusTransition(AttestationError):
    code = "InvalidStatusTransition"
    number = 6001
    default_message = "Invalid status transition"


class AttestationNotActive(AttestationError):
    code = "AttestationNotActive"
    number = 6002
    default_message = "Attestation is not active"


class AttestationExpired(AttestationError):
    code = "AttestationExpired"
    number = 6003
    default_message = "Attestation has expired"


class InvalidJurisdiction(AttestationError):
    code = "InvalidJurisdiction"
    number = 6004
    default_message = "Invalid jurisdiction"


class InvalidAttestationType(AttestationError):
    code = "InvalidAttestationType"
    number = 6005
    default_message = "Invalid attestation type"


class InvalidWalletCount(AttestationError):
    code = "InvalidWalletCount"
    number = 6006
    default_message = "Invalid wallet count: must be 1-10 wallets"


class InvalidStatus(AttestationError):
    code = "InvalidStatus"
    number = 6007
    default_message = "Invalid attestation status"


class DuplicateWallet(AttestationError):
    code = "DuplicateWallet"
    number = 6008
    default_message = "Wallet listed more than once"


class ValidationError(AttestationError):
    """Raised when a request field is malformed."""
    code = "ValidationError"
    number = 6009

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"{field}: {message}")


class LayoutError(AttestationError):
    code = "LayoutError"
    number = 6010
    default_message = "Account data does not match the expected layout"


# ============================================================
# Addressing and store
# ============================================================

class DuplicateRecord(AttestationError):
    code = "DuplicateRecord"
    number = 6012
    default_message = "An account already exists at the derived address"


class AlreadyInitialized(DuplicateRecord):
    code = "AlreadyInitialized"
    number = 6013
    default_message = "Program state has already been initialized"


class RecordNotFound(AttestationError):
    code = "RecordNotFound"
    number = 6014
    default_message = "No account exists at the given address"


class NotInitialized(RecordNotFound):
    code = "NotInitialized"
    number = 6015
    default_message = "Program state has not been initialized"


class AddressMismatch(AttestationError):
    code = "AddressMismatch"
    number = 6016
    default_message = "Supplied address does not match the record's derived address"
