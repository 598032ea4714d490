import os, sys
import pytest
from fastapi.testclient import TestClient

# Ensure the package is in path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

os.environ.setdefault("ATTESTATION_STORE", "memory")

from attestation_registry import api
from attestation_registry.clock import FixedClock
from attestation_registry.store import SqliteRecordStore
from support import PROGRAM_ID, START


@pytest.fixture
def clock():
    return FixedClock(START)


# Fresh sqlite database per test for isolation
@pytest.fixture
def store(tmp_path):
    s = SqliteRecordStore(tmp_path / "attestations.db")
    yield s
    s.close()


@pytest.fixture
def client(store, clock):
    api.configure(store, PROGRAM_ID, clock=clock)
    return TestClient(api.app)
