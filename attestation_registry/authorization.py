"""
Authorization gate.

Every mutating request is an Ed25519-signed envelope:

    {
      "program_id":  <base64 32 bytes>,
      "instruction": {"kind": "...", ...},
      "signer":      <base64 public key>,
      "nonce":       <hex>,
      "issued_at":   <unix seconds>,
      "signature":   <base64 ed25519 signature over the other fields>
    }

The signature is taken over the canonical JSON of everything except
``signature``. Binding ``program_id`` keeps a request signed for one
deployment from being replayed against another.

Authorization is checked against the CURRENT ProgramState.authority, never
against the authority recorded on an attestation at issuance.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey

from .errors import Unauthorized, ValidationError
from .types import ProgramState, decode_key
from .util import b64d, b64e, canonicalize, constant_time_compare, generate_nonce, now_epoch


@dataclass(frozen=True)
class SignedRequest:
    program_id: str
    instruction: Dict[str, Any]
    signer: str
    nonce: str
    issued_at: int
    signature: str

    def body(self) -> Dict[str, Any]:
        """The signed portion of the request."""
        return {
            "program_id": self.program_id,
            "instruction": self.instruction,
            "signer": self.signer,
            "nonce": self.nonce,
            "issued_at": self.issued_at,
        }

    def signing_payload(self) -> bytes:
        return canonicalize(self.body())

    def to_dict(self) -> Dict[str, Any]:
        d = self.body()
        d["signature"] = self.signature
        return d

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SignedRequest":
        missing = [k for k in ("program_id", "instruction", "signer", "nonce", "issued_at", "signature")
                   if k not in data]
        if missing:
            raise ValidationError("request", f"missing fields: {', '.join(missing)}")
        if not isinstance(data["instruction"], dict):
            raise ValidationError("request.instruction", "must be an object")
        try:
            issued_at = int(data["issued_at"])
        except (TypeError, ValueError):
            raise ValidationError("request.issued_at", "must be an integer timestamp")
        return cls(
            program_id=str(data["program_id"]),
            instruction=data["instruction"],
            signer=str(data["signer"]),
            nonce=str(data["nonce"]),
            issued_at=issued_at,
            signature=str(data["signature"]),
        )


def sign_request(
    instruction: Dict[str, Any],
    signing_key: SigningKey,
    program_id: bytes,
    nonce: Optional[str] = None,
    issued_at: Optional[int] = None,
) -> SignedRequest:
    """
    Build and sign a request envelope.

    Args:
        instruction: Instruction dict (see ``program.Instruction.to_dict``)
        signing_key: The caller's Ed25519 signing key
        program_id: Deployment the request is meant for
        nonce: Replay-protection nonce (random if omitted)
        issued_at: Request timestamp (now if omitted)

    Returns:
        SignedRequest ready for submission
    """
    unsigned = SignedRequest(
        program_id=b64e(program_id),
        instruction=instruction,
        signer=b64e(bytes(signing_key.verify_key)),
        nonce=nonce or generate_nonce(16),
        issued_at=now_epoch() if issued_at is None else issued_at,
        signature="",
    )
    sig = signing_key.sign(unsigned.signing_payload()).signature
    return SignedRequest(**{**unsigned.body(), "signature": b64e(sig)})


def verify_ed25519(signature_b64: str, payload: bytes, public_key: bytes) -> bool:
    """
    Verify an Ed25519 signature.

    Returns:
        True if signature is valid, False otherwise
    """
    try:
        vk = VerifyKey(public_key)
        vk.verify(payload, b64d(signature_b64))
        return True
    except (BadSignatureError, ValueError, TypeError):
        return False


def verify_request(request: SignedRequest, program_id: bytes, now: int, max_skew: int) -> bytes:
    """
    Authenticate a signed request.

    Returns:
        The signer's public key bytes

    Raises:
        Unauthorized: wrong deployment, malformed signer, stale or future
            timestamp, or an invalid signature
    """
    if not constant_time_compare(request.program_id, b64e(program_id)):
        raise Unauthorized("Request was signed for a different program")
    try:
        signer = decode_key(request.signer, "signer")
    except ValidationError:
        raise Unauthorized("Malformed signer key")
    if abs(now - request.issued_at) > max_skew:
        raise Unauthorized("Request timestamp outside the accepted window")
    if not request.nonce:
        raise Unauthorized("Missing request nonce")
    if not verify_ed25519(request.signature, request.signing_payload(), signer):
        raise Unauthorized("Invalid signature")
    return signer


def require_authority(signer: bytes, state: ProgramState) -> None:
    """Raise Unauthorized unless ``signer`` is the current program authority."""
    if not constant_time_compare(signer, state.authority):
        raise Unauthorized("Signer is not the program authority")


def nonce_expiry(request: SignedRequest, max_skew: int) -> int:
    """How long a consumed nonce must be remembered: past the acceptance window."""
    return request.issued_at + 2 * max_skew
