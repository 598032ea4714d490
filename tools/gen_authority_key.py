import os, json, sys
from nacl.signing import SigningKey
from attestation_registry.util import b64e

def main(path: str):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    sk = SigningKey.generate()
    with open(path, "w", encoding="utf-8") as f:
        json.dump({
            "private_key_b64": b64e(bytes(sk)),
            "public_key_b64": b64e(bytes(sk.verify_key)),
        }, f, indent=2)
    print(f"Generated authority key {b64e(bytes(sk.verify_key))} -> {path}")

if __name__ == "__main__":
    if len(sys.argv) > 2:
        print("Usage: python tools/gen_authority_key.py [secrets/authority_key.json]"); raise SystemExit(2)
    main(sys.argv[1] if len(sys.argv) == 2 else "secrets/authority_key.json")
