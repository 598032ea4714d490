import hashlib
import unittest

from attestation_registry.errors import InvalidJurisdiction, LayoutError
from attestation_registry.layout import (
    ATTESTATION_DISCRIMINATOR,
    ATTESTATION_MAX_SIZE,
    PROGRAM_STATE_DISCRIMINATOR,
    PROGRAM_STATE_SIZE,
    account_kind,
    decode_attestation,
    decode_program_state,
    encode_attestation,
    encode_program_state,
)
from attestation_registry.types import (
    AttestationStatus,
    Jurisdiction,
    ProgramState,
)

from support import make_record, signing_key

HEAD_SIZE = 107


class TestDiscriminators(unittest.TestCase):

    def test_discriminators_are_name_hashes(self):
        self.assertEqual(ATTESTATION_DISCRIMINATOR, hashlib.sha256(b"account:Attestation").digest()[:8])
        self.assertEqual(PROGRAM_STATE_DISCRIMINATOR, hashlib.sha256(b"account:ProgramState").digest()[:8])

    def test_account_kind(self):
        self.assertEqual(account_kind(encode_attestation(make_record())), "Attestation")
        state = ProgramState(authority=bytes(signing_key().verify_key))
        self.assertEqual(account_kind(encode_program_state(state)), "ProgramState")
        self.assertIsNone(account_kind(b"\x00" * 16))


class TestProgramStateLayout(unittest.TestCase):

    def test_encode_decode(self):
        state = ProgramState(authority=bytes(signing_key().verify_key), attestation_count=7, bump=253)
        data = encode_program_state(state)
        self.assertEqual(len(data), PROGRAM_STATE_SIZE)
        self.assertEqual(len(data), 8 + 32 + 8 + 1)
        self.assertEqual(decode_program_state(data), state)

    def test_wrong_discriminator(self):
        data = encode_attestation(make_record())
        with self.assertRaises(LayoutError):
            decode_program_state(data)

    def test_truncated(self):
        with self.assertRaises(LayoutError):
            decode_program_state(b"\x00" * 10)


class TestAttestationLayout(unittest.TestCase):

    def test_encode_decode(self):
        record = make_record(status=AttestationStatus.REVOKED, bump=251)
        data = encode_attestation(record)
        self.assertEqual(len(data), HEAD_SIZE + 32 * record.num_wallets)
        self.assertEqual(decode_attestation(data), record)

    def test_max_size(self):
        self.assertEqual(ATTESTATION_MAX_SIZE, HEAD_SIZE + 10 * 32)

    def test_enum_bytes_are_ordinals(self):
        record = make_record()
        data = encode_attestation(record)
        # discriminator(8) + bump(1) + authority(32)
        self.assertEqual(data[41], Jurisdiction.US.ordinal)
        self.assertEqual(data[43], AttestationStatus.ACTIVE.ordinal)

    def test_wrong_discriminator(self):
        state = ProgramState(authority=bytes(signing_key().verify_key))
        with self.assertRaises(LayoutError):
            decode_attestation(encode_program_state(state) + b"\x00" * 100)

    def test_truncated_wallets(self):
        data = encode_attestation(make_record())
        with self.assertRaises(LayoutError):
            decode_attestation(data[:-1])

    def test_inconsistent_wallet_count(self):
        data = bytearray(encode_attestation(make_record()))
        # num_wallets byte sits right before the 4-byte vector length
        data[HEAD_SIZE - 5] = 3
        with self.assertRaises(LayoutError):
            decode_attestation(bytes(data))

    def test_unknown_jurisdiction_byte(self):
        data = bytearray(encode_attestation(make_record()))
        data[41] = 200
        with self.assertRaises(InvalidJurisdiction):
            decode_attestation(bytes(data))


if __name__ == "__main__":
    unittest.main()
