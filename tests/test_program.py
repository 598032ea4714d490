"""
Program entry point tests.

Critical invariants tested:
    Only the current authority can mutate the registry
    A rejected operation writes nothing: no record, no nonce, no event
    Every successful operation emits exactly one event
"""

import unittest
from dataclasses import replace
from unittest import mock

from attestation_registry.addressing import attestation_address, state_address
from attestation_registry.authorization import sign_request
from attestation_registry.clock import FixedClock, MonotonicClock
from attestation_registry.errors import (
    AddressMismatch,
    AlreadyInitialized,
    AttestationNotActive,
    DuplicateRecord,
    InvalidAttestationType,
    InvalidJurisdiction,
    InvalidStatusTransition,
    InvalidWalletCount,
    NotInitialized,
    RecordNotFound,
    ReplayedRequest,
    Unauthorized,
    ValidationError,
)
from attestation_registry.events import AttestationCreated, AttestationRevoked, StatusUpdated
from attestation_registry.layout import decode_attestation, decode_program_state, encode_attestation
from attestation_registry.program import (
    CreateAttestation,
    Initialize,
    RevokeAttestation,
    UpdateStatus,
    instruction_from_dict,
)
from attestation_registry.store import InMemoryRecordStore
from attestation_registry.types import AttestationStatus, AttestationType, Jurisdiction
from attestation_registry.util import b64e, sha256_bytes

from support import (
    EXPIRES,
    PROGRAM_ID,
    START,
    audit_hash,
    make_record,
    new_program,
    signing_key,
    wallets,
)

Status = AttestationStatus


class FailingLogStore(InMemoryRecordStore):
    """Store whose event append can be made to fail mid-operation."""

    fail_log = False

    def append_log_entry(self, *args, **kwargs):
        if self.fail_log:
            raise RuntimeError("event sink unavailable")
        return super().append_log_entry(*args, **kwargs)


class ProgramTestCase(unittest.TestCase):

    def setUp(self):
        self.store = InMemoryRecordStore()
        self.clock = FixedClock(START)
        self.program = new_program(self.store, self.clock)
        self.authority = signing_key("authority")
        self.intruder = signing_key("intruder")

    def initialize(self):
        return self.program.initialize(self.authority)

    def create(self, label="audit-1", key=None, **overrides):
        fields = dict(
            jurisdiction=Jurisdiction.US,
            attestation_type=AttestationType.TAX_COMPLIANCE,
            tax_year=2024,
            audit_hash=audit_hash(label),
            expires_at=EXPIRES,
            wallets=wallets(2),
        )
        fields.update(overrides)
        return self.program.create_attestation(key or self.authority, **fields)

    def record_at(self, address):
        return decode_attestation(self.store.get(address))

    def state(self):
        return decode_program_state(self.store.get(state_address(PROGRAM_ID)[0]))

    def event_count(self):
        return len(self.program.event_log.entries())

    def plant(self, record):
        """Write a record directly at its derived address, bypassing the program."""
        address, bump = attestation_address(record.audit_hash, PROGRAM_ID)
        self.store.create(address, encode_attestation(replace(record, bump=bump)))
        return address


class TestInitialize(ProgramTestCase):

    def test_initialize(self):
        result = self.initialize()
        self.assertEqual(result.address, state_address(PROGRAM_ID)[0])
        self.assertEqual(result.event.authority, bytes(self.authority.verify_key))
        state = self.state()
        self.assertEqual(state.authority, bytes(self.authority.verify_key))
        self.assertEqual(state.attestation_count, 0)
        self.assertEqual(state.bump, state_address(PROGRAM_ID)[1])

    def test_initialize_twice(self):
        self.initialize()
        for key in (self.authority, self.intruder):
            with self.assertRaises(AlreadyInitialized):
                self.program.initialize(key)
        self.assertEqual(self.state().authority, bytes(self.authority.verify_key))
        self.assertEqual(self.event_count(), 1)

    def test_already_initialized_is_duplicate_record(self):
        self.assertTrue(issubclass(AlreadyInitialized, DuplicateRecord))

    def test_operations_before_initialize(self):
        with self.assertRaises(NotInitialized):
            self.create()
        with self.assertRaises(NotInitialized):
            self.program.revoke_attestation(self.authority, b"\x09" * 32)
        self.assertEqual(self.event_count(), 0)


class TestCreateAttestation(ProgramTestCase):

    def setUp(self):
        super().setUp()
        self.initialize()

    def test_create(self):
        result = self.create()
        address, bump = attestation_address(audit_hash("audit-1"), PROGRAM_ID)
        self.assertEqual(result.address, address)

        record = self.record_at(address)
        self.assertEqual(record.status, Status.ACTIVE)
        self.assertEqual(record.issued_at, START)
        self.assertEqual(record.revoked_at, 0)
        self.assertEqual(record.bump, bump)
        self.assertEqual(record.wallets, tuple(wallets(2)))
        self.assertEqual(record.authority, bytes(self.authority.verify_key))
        self.assertEqual(self.state().attestation_count, 1)

        event = result.event
        self.assertIsInstance(event, AttestationCreated)
        self.assertEqual(event.attestation, address)
        self.assertEqual(event.wallets, tuple(wallets(2)))
        self.assertEqual(event.audit_hash, audit_hash("audit-1"))
        self.assertEqual(event.expires_at, EXPIRES)

    def test_counter_increments(self):
        for i in range(3):
            self.create(label=f"audit-{i}")
        self.assertEqual(self.state().attestation_count, 3)

    def test_duplicate_audit_hash(self):
        self.create()
        with self.assertRaises(DuplicateRecord):
            self.create(wallets=wallets(1, start=5))
        self.assertEqual(self.state().attestation_count, 1)
        self.assertEqual(self.event_count(), 2)

    def test_duplicate_reported_before_payload_errors(self):
        self.create()
        for bad in ([], wallets(1) * 2, wallets(11)):
            with self.subTest(wallets=len(bad)):
                with self.assertRaises(DuplicateRecord):
                    self.create(wallets=bad)
        self.assertEqual(self.state().attestation_count, 1)
        self.assertEqual(self.event_count(), 2)

    def test_wallet_count_bounds(self):
        self.create(label="one", wallets=wallets(1))
        self.create(label="ten", wallets=wallets(10))
        for count in (0, 11):
            with self.subTest(count=count):
                with self.assertRaises(InvalidWalletCount):
                    self.create(label=f"bad-{count}", wallets=wallets(count))
        self.assertEqual(self.state().attestation_count, 2)

    def test_expired_at_creation_is_still_active(self):
        result = self.create(expires_at=START - 10)
        self.assertEqual(self.record_at(result.address).status, Status.ACTIVE)

    def test_unauthorized(self):
        with self.assertRaises(Unauthorized):
            self.create(key=self.intruder)
        self.assertEqual(self.state().attestation_count, 0)
        self.assertEqual(self.event_count(), 1)

    def test_authorization_checked_before_validation(self):
        with self.assertRaises(Unauthorized):
            self.create(key=self.intruder, wallets=wallets(11))

    def test_invalid_enums_in_instruction(self):
        base = CreateAttestation(
            jurisdiction=Jurisdiction.US,
            attestation_type=AttestationType.TAX_COMPLIANCE,
            tax_year=2024,
            audit_hash=audit_hash("enum"),
            expires_at=EXPIRES,
            wallets=tuple(wallets(1)),
        ).to_dict()
        bad_jurisdiction = dict(base, jurisdiction="XX")
        bad_type = dict(base, attestation_type="Nope")
        with self.assertRaises(InvalidJurisdiction):
            self.program.process(sign_request(bad_jurisdiction, self.authority, PROGRAM_ID, issued_at=START))
        with self.assertRaises(InvalidAttestationType):
            self.program.process(sign_request(bad_type, self.authority, PROGRAM_ID, issued_at=START))


class TestStatusUpdates(ProgramTestCase):

    def setUp(self):
        super().setUp()
        self.initialize()
        self.address = self.create().address

    def test_active_to_expired(self):
        self.clock.advance(60)
        result = self.program.update_status(self.authority, self.address, Status.EXPIRED)
        self.assertIsInstance(result.event, StatusUpdated)
        self.assertEqual(result.event.old_status, Status.ACTIVE)
        self.assertEqual(result.event.new_status, Status.EXPIRED)
        record = self.record_at(self.address)
        self.assertEqual(record.status, Status.EXPIRED)
        self.assertEqual(record.revoked_at, 0)

    def test_expired_is_terminal(self):
        self.program.update_status(self.authority, self.address, Status.EXPIRED)
        for target in (Status.ACTIVE, Status.REVOKED, Status.PENDING):
            with self.assertRaises(InvalidStatusTransition):
                self.program.update_status(self.authority, self.address, target)
        with self.assertRaises(AttestationNotActive):
            self.program.revoke_attestation(self.authority, self.address)

    def test_update_to_revoked_stamps_revoked_at(self):
        self.clock.advance(120)
        result = self.program.update_status(self.authority, self.address, Status.REVOKED)
        self.assertEqual(result.event.revoked_at, START + 120)
        self.assertEqual(self.record_at(self.address).revoked_at, START + 120)

    def test_same_status_rejected(self):
        with self.assertRaises(InvalidStatusTransition):
            self.program.update_status(self.authority, self.address, Status.ACTIVE)

    def test_unauthorized(self):
        with self.assertRaises(Unauthorized):
            self.program.update_status(self.intruder, self.address, Status.EXPIRED)
        self.assertEqual(self.record_at(self.address).status, Status.ACTIVE)
        self.assertEqual(self.event_count(), 2)

    def test_unknown_address(self):
        with self.assertRaises(RecordNotFound):
            self.program.update_status(self.authority, b"\x09" * 32, Status.EXPIRED)

    def test_pending_paths(self):
        to_activate = self.plant(make_record(Status.PENDING, hash_label="pending-1"))
        to_revoke = self.plant(make_record(Status.PENDING, hash_label="pending-2"))
        not_revocable = self.plant(make_record(Status.PENDING, hash_label="pending-3"))

        self.program.update_status(self.authority, to_activate, Status.ACTIVE)
        self.assertEqual(self.record_at(to_activate).status, Status.ACTIVE)

        self.clock.advance(5)
        self.program.update_status(self.authority, to_revoke, Status.REVOKED)
        self.assertEqual(self.record_at(to_revoke).revoked_at, START + 5)

        # the dedicated revoke path only accepts Active
        with self.assertRaises(AttestationNotActive):
            self.program.revoke_attestation(self.authority, not_revocable)

    def test_address_mismatch(self):
        # a record stored somewhere other than its own derived address
        wrong = attestation_address(audit_hash("elsewhere"), PROGRAM_ID)[0]
        record = make_record(Status.ACTIVE, hash_label="misplaced")
        self.store.create(wrong, encode_attestation(record))
        with self.assertRaises(AddressMismatch):
            self.program.update_status(self.authority, wrong, Status.EXPIRED)
        with self.assertRaises(AddressMismatch):
            self.program.revoke_attestation(self.authority, wrong)


class TestRevoke(ProgramTestCase):

    def setUp(self):
        super().setUp()
        self.initialize()
        self.address = self.create(wallets=wallets(3)).address

    def test_revoke(self):
        self.clock.advance(30)
        result = self.program.revoke_attestation(self.authority, self.address)
        self.assertIsInstance(result.event, AttestationRevoked)
        self.assertEqual(result.event.wallets, tuple(wallets(3)))
        self.assertEqual(result.event.revoked_at, START + 30)
        record = self.record_at(self.address)
        self.assertEqual(record.status, Status.REVOKED)
        self.assertEqual(record.revoked_at, START + 30)

    def test_revoke_twice(self):
        self.program.revoke_attestation(self.authority, self.address)
        self.clock.advance(30)
        with self.assertRaises(AttestationNotActive):
            self.program.revoke_attestation(self.authority, self.address)
        self.assertEqual(self.record_at(self.address).revoked_at, START)

    def test_unauthorized(self):
        with self.assertRaises(Unauthorized):
            self.program.revoke_attestation(self.intruder, self.address)
        self.assertEqual(self.record_at(self.address).status, Status.ACTIVE)
        self.assertEqual(self.record_at(self.address).revoked_at, 0)
        self.assertEqual(self.event_count(), 2)


class TestRequestAuthentication(ProgramTestCase):

    def setUp(self):
        super().setUp()
        self.initialize()

    def _create_request(self, **kwargs):
        instruction = CreateAttestation(
            jurisdiction=Jurisdiction.EU,
            attestation_type=AttestationType.AUDIT_COMPLETE,
            tax_year=2024,
            audit_hash=audit_hash("signed"),
            expires_at=EXPIRES,
            wallets=tuple(wallets(kwargs.pop("count", 1))),
        ).to_dict()
        kwargs.setdefault("issued_at", START)
        return sign_request(instruction, self.authority, kwargs.pop("program_id", PROGRAM_ID), **kwargs)

    def test_process_dict(self):
        result = self.program.process(self._create_request().to_dict())
        self.assertEqual(result.address, attestation_address(audit_hash("signed"), PROGRAM_ID)[0])

    def test_replay_rejected(self):
        request = self._create_request()
        self.program.process(request)
        with self.assertRaises(ReplayedRequest):
            self.program.process(request)
        self.assertEqual(self.state().attestation_count, 1)

    def test_replayed_request_is_unauthorized(self):
        self.assertTrue(issubclass(ReplayedRequest, Unauthorized))

    def test_failed_request_does_not_consume_nonce(self):
        request = self._create_request(count=0)
        for _ in range(2):
            with self.assertRaises(InvalidWalletCount):
                self.program.process(request)

    def test_wrong_program(self):
        request = self._create_request(program_id=sha256_bytes("another deployment"))
        with self.assertRaises(Unauthorized):
            self.program.process(request)

    def test_stale_and_future_timestamps(self):
        for issued_at in (START - 301, START + 301):
            with self.assertRaises(Unauthorized):
                self.program.process(self._create_request(issued_at=issued_at))
        self.program.process(self._create_request(issued_at=START - 300))

    def test_tampered_instruction(self):
        request = self._create_request()
        tampered = request.to_dict()
        tampered["instruction"] = dict(tampered["instruction"], tax_year=2020)
        with self.assertRaises(Unauthorized):
            self.program.process(tampered)

    def test_signer_substitution(self):
        request = self._create_request().to_dict()
        request["signer"] = b64e(bytes(self.intruder.verify_key))
        with self.assertRaises(Unauthorized):
            self.program.process(request)

    def test_missing_fields(self):
        request = self._create_request().to_dict()
        del request["signature"]
        with self.assertRaises(ValidationError):
            self.program.process(request)


class TestAtomicity(unittest.TestCase):

    def setUp(self):
        self.store = FailingLogStore()
        self.clock = FixedClock(START)
        self.program = new_program(self.store, self.clock)
        self.authority = signing_key("authority")
        self.program.initialize(self.authority)

    def test_event_failure_rolls_back_record(self):
        self.store.fail_log = True
        request = sign_request(CreateAttestation(
            jurisdiction=Jurisdiction.US,
            attestation_type=AttestationType.TAX_COMPLIANCE,
            tax_year=2024,
            audit_hash=audit_hash("atomic"),
            expires_at=EXPIRES,
            wallets=tuple(wallets(1)),
        ).to_dict(), self.authority, PROGRAM_ID, issued_at=START)
        with mock.patch("attestation_registry.program.audit_log") as audit:
            with self.assertRaises(RuntimeError):
                self.program.process(request)
        audit.attestation_created.assert_not_called()

        address = attestation_address(audit_hash("atomic"), PROGRAM_ID)[0]
        self.assertIsNone(self.store.get(address))
        self.assertEqual(decode_program_state(self.store.get(self.program.state_address)).attestation_count, 0)
        self.assertEqual(len(self.program.event_log.entries()), 1)

        # same request succeeds once the sink recovers: its nonce was not kept
        self.store.fail_log = False
        with mock.patch("attestation_registry.program.audit_log") as audit:
            self.program.process(request)
        audit.attestation_created.assert_called_once()
        self.assertIsNotNone(self.store.get(address))

    def test_event_chain_after_full_lifecycle(self):
        a = self.program.create_attestation(
            self.authority, "US", "TaxCompliance", 2024, audit_hash("a"), EXPIRES, wallets(2)
        ).address
        b = self.program.create_attestation(
            self.authority, "EU", "AnnualReview", 2024, audit_hash("b"), EXPIRES, wallets(1)
        ).address
        self.program.update_status(self.authority, a, "Expired")
        self.program.revoke_attestation(self.authority, b)
        self.assertEqual(
            [e.event_type for e in self.program.event_log.entries()],
            ["ProgramInitialized", "AttestationCreated", "AttestationCreated",
             "StatusUpdated", "AttestationRevoked"],
        )
        self.assertTrue(self.program.event_log.verify_chain().valid)


class TestInstructions(unittest.TestCase):

    def test_to_dict_from_dict(self):
        address = b"\x0a" * 32
        for instruction in (
            Initialize(),
            UpdateStatus(address=address, new_status=Status.EXPIRED),
            RevokeAttestation(address=address),
        ):
            self.assertEqual(instruction_from_dict(instruction.to_dict()), instruction)

    def test_unknown_kind(self):
        with self.assertRaises(ValidationError):
            instruction_from_dict({"kind": "delete_attestation"})

    def test_missing_field(self):
        with self.assertRaises(ValidationError) as ctx:
            instruction_from_dict({"kind": "revoke_attestation"})
        self.assertEqual(ctx.exception.field, "instruction.address")


class TestClock(unittest.TestCase):

    def test_monotonic_clock_never_goes_back(self):
        readings = iter([100, 90, 110])
        clock = MonotonicClock(lambda: next(readings))
        self.assertEqual([clock(), clock(), clock()], [100, 100, 110])

    def test_fixed_clock(self):
        clock = FixedClock(10)
        self.assertEqual(clock(), 10)
        self.assertEqual(clock.advance(5), 15)


if __name__ == "__main__":
    unittest.main()
