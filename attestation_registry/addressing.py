"""
Deterministic addressing.

Every record lives at an address derived from its own identifying data, so
any party can re-locate it without an index:

    state        seeds = ["state"]
    attestation  seeds = ["attestation", audit_hash]

Derivation hashes the seeds together with a one-byte bump, the program id
and a fixed marker, walking the bump down from 255 until the digest does
NOT decompress to an Ed25519 point. Such an address has no private key, so
nobody can sign for it.
"""

import hashlib
from typing import Sequence, Tuple

from .errors import ValidationError
from .types import validate_audit_hash, validate_key

STATE_SEED = b"state"
ATTESTATION_SEED = b"attestation"
PDA_MARKER = b"ProgramDerivedAddress"

MAX_SEED_LENGTH = 32
MAX_SEEDS = 16

# edwards25519: -x^2 + y^2 = 1 + d*x^2*y^2 over GF(p)
_P = 2 ** 255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


def is_on_curve(candidate: bytes) -> bool:
    """
    True if ``candidate`` decompresses to a point on edwards25519.

    This is a plain curve-membership test: small-order and torsion points
    count as on the curve. The sign bit is ignored and y is reduced mod p,
    matching the ledger's own decompression.
    """
    y = int.from_bytes(candidate, "little") & ((1 << 255) - 1)
    y %= _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    return x2 == 0 or pow(x2, (_P - 1) // 2, _P) == 1


def _hash_seeds(seeds: Sequence[bytes], program_id: bytes) -> bytes:
    if len(seeds) > MAX_SEEDS:
        raise ValidationError("seeds", f"at most {MAX_SEEDS} seeds allowed")
    h = hashlib.sha256()
    for seed in seeds:
        if len(seed) > MAX_SEED_LENGTH:
            raise ValidationError("seeds", f"seed longer than {MAX_SEED_LENGTH} bytes")
        h.update(seed)
    h.update(program_id)
    h.update(PDA_MARKER)
    return h.digest()


def create_program_address(seeds: Sequence[bytes], program_id: bytes) -> bytes:
    """
    Hash seeds into an address.

    Raises:
        ValidationError: if a seed is too long, there are too many seeds,
            or the candidate lies on the curve
    """
    candidate = _hash_seeds(seeds, program_id)
    if is_on_curve(candidate):
        raise ValidationError("seeds", "derived address lies on the ed25519 curve")
    return candidate


def find_program_address(seeds: Sequence[bytes], program_id: bytes) -> Tuple[bytes, int]:
    """Return (address, bump) for the highest bump that yields an off-curve address."""
    validate_key(program_id, "program_id")
    for bump in range(255, -1, -1):
        candidate = _hash_seeds(list(seeds) + [bytes([bump])], program_id)
        if not is_on_curve(candidate):
            return candidate, bump
    raise ValidationError("seeds", "unable to find a viable bump")


def state_address(program_id: bytes) -> Tuple[bytes, int]:
    return find_program_address([STATE_SEED], program_id)


def attestation_address(audit_hash: bytes, program_id: bytes) -> Tuple[bytes, int]:
    """Content address of the attestation backed by ``audit_hash``."""
    return find_program_address([ATTESTATION_SEED, validate_audit_hash(audit_hash)], program_id)
