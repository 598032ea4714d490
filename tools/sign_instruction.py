"""Sign an instruction JSON file for submission to POST /instructions."""
import argparse, json
from pathlib import Path
from nacl.signing import SigningKey
from attestation_registry import config
from attestation_registry.authorization import sign_request
from attestation_registry.program import instruction_from_dict
from attestation_registry.util import b64d

def load_json(p: Path) -> dict:
    return json.loads(p.read_text(encoding="utf-8"))

def main():
    ap = argparse.ArgumentParser()
    ap.add_argument("instruction", help="instruction JSON, e.g. {\"kind\": \"initialize\"}")
    ap.add_argument("--key", default="secrets/authority_key.json")
    ap.add_argument("--program_id", default=None, help="base64 program id (defaults to ATTESTATION_PROGRAM_ID)")
    ap.add_argument("--nonce", default=None)
    ap.add_argument("--issued_at", type=int, default=None)
    args = ap.parse_args()

    instruction = load_json(Path(args.instruction))
    # Fail early on a malformed instruction instead of at the server.
    instruction_from_dict(instruction)

    key = load_json(Path(args.key))
    sk = SigningKey(b64d(key["private_key_b64"]))
    program_id = b64d(args.program_id) if args.program_id else config.program_id_bytes()

    request = sign_request(instruction, sk, program_id, nonce=args.nonce, issued_at=args.issued_at)
    print(json.dumps(request.to_dict(), indent=2, sort_keys=True))

if __name__ == "__main__":
    main()
