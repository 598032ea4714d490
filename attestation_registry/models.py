from pydantic import BaseModel, Field
from typing import Dict, Any, List, Optional


class SignedRequestModel(BaseModel):
    program_id: str
    instruction: Dict[str, Any]
    signer: str
    nonce: str
    issued_at: int
    signature: str


class ExecutionResponse(BaseModel):
    address: str
    event: Dict[str, Any]
    seq: int
    entry_hash: str


class ComplianceResponse(BaseModel):
    compliant: bool
    address: Optional[str] = None
    attestation: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


class ChainVerificationResponse(BaseModel):
    valid: bool
    entries_checked: int
    errors: List[str] = Field(default_factory=list)
