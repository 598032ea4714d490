"""
HTTP surface for the attestation registry.

Keys and addresses in URL paths may be given in standard or URL-safe
base64; audit hashes are hex.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse

from . import config
from .authorization import SignedRequest
from .clock import Clock
from .errors import (
    AttestationError,
    DuplicateRecord,
    NotInitialized,
    RecordNotFound,
    Unauthorized,
)
from .logging_config import configure_logging, set_request_id
from .models import (
    ChainVerificationResponse,
    ComplianceResponse,
    ExecutionResponse,
    SignedRequestModel,
)
from .program import AttestationProgram
from .queries import RegistryReader
from .store import RecordStore
from .types import decode_audit_hash, decode_key, validate_tax_year
from .util import b64e

logger = logging.getLogger(__name__)

app = FastAPI(title="Attestation Registry")

STORE: Optional[RecordStore] = None
PROGRAM: Optional[AttestationProgram] = None
READER: Optional[RegistryReader] = None


def status_for(error: AttestationError) -> int:
    if isinstance(error, Unauthorized):
        return 401
    if isinstance(error, DuplicateRecord):
        return 409
    if isinstance(error, RecordNotFound):
        return 404
    return 422


def configure(store: RecordStore, program_id: bytes, clock: Optional[Clock] = None) -> None:
    """Wire the app to a store and deployment."""
    global STORE, PROGRAM, READER
    STORE = store
    PROGRAM = AttestationProgram(
        store, program_id, clock=clock, max_clock_skew=config.MAX_CLOCK_SKEW_SECONDS
    )
    READER = RegistryReader(store, program_id)


@app.on_event("startup")
def _startup():
    configure_logging(config.LOG_LEVEL, json_format=config.LOG_JSON)
    if PROGRAM is None:
        configure(config.get_store(), config.program_id_bytes())
    failed = [name for name, ok in config.validate_config().items() if not ok]
    if failed:
        logger.warning("Configuration checks failed: %s", ", ".join(failed))


@app.middleware("http")
async def _request_id(request: Request, call_next):
    request_id = set_request_id(request.headers.get("X-Request-ID"))
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(AttestationError)
async def _attestation_error(request: Request, exc: AttestationError):
    return JSONResponse(status_code=status_for(exc), content=exc.to_dict())


def _path_key(value: str, field_name: str) -> bytes:
    return decode_key(value.replace("-", "+").replace("_", "/"), field_name)


# ============================================================
# Mutations
# ============================================================

@app.post("/instructions", response_model=ExecutionResponse)
def submit_instruction(req: SignedRequestModel):
    request = SignedRequest(**req.model_dump())
    return PROGRAM.process(request).to_dict()


# ============================================================
# Reads
# ============================================================

@app.get("/state")
def get_state():
    state = READER.get_state()
    if state is None:
        raise NotInitialized()
    return {"address": b64e(PROGRAM.state_address), **state.to_dict()}


@app.get("/attestations/by-hash/{audit_hash}")
def get_attestation_by_hash(audit_hash: str):
    record = READER.get_attestation(decode_audit_hash(audit_hash))
    if record is None:
        raise RecordNotFound(f"No attestation for audit hash {audit_hash}")
    return record.to_dict()


@app.get("/attestations/{address}")
def get_attestation(address: str):
    record = READER.get_attestation_by_address(_path_key(address, "address"))
    if record is None:
        raise RecordNotFound(f"No attestation at {address}")
    return record.to_dict()


@app.get("/wallets/{wallet}/attestations")
def wallet_attestations(wallet: str):
    found = READER.wallet_attestations(_path_key(wallet, "wallet"))
    return [{"address": b64e(address), **record.to_dict()} for address, record in found]


@app.get("/wallets/{wallet}/compliance", response_model=ComplianceResponse)
def wallet_compliance(wallet: str, jurisdiction: str = Query(...), tax_year: int = Query(...)):
    result = READER.is_compliant(
        _path_key(wallet, "wallet"), jurisdiction, validate_tax_year(tax_year), now=PROGRAM.clock()
    )
    return result.to_dict()


@app.get("/events")
def list_events(after_seq: int = 0, limit: Optional[int] = Query(None, ge=1, le=1000)):
    return [entry.to_dict() for entry in PROGRAM.event_log.entries(after_seq=after_seq, limit=limit)]


@app.get("/events/verify", response_model=ChainVerificationResponse)
def verify_events():
    result = PROGRAM.event_log.verify_chain()
    return {"valid": result.valid, "entries_checked": result.entries_checked, "errors": result.errors}


@app.get("/health")
def health():
    body = {
        "status": "ok",
        "env": config.ENV,
        "store": type(STORE).__name__,
        "initialized": READER.get_state() is not None,
    }
    if hasattr(STORE, "get_stats"):
        body["stats"] = STORE.get_stats()
    return body
