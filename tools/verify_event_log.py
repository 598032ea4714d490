"""Verify the hash-chain integrity of the event log exported from /events."""
import json, sys
from attestation_registry.events import verify_entries

def main(path):
    log = json.load(open(path, "r", encoding="utf-8"))
    result = verify_entries(log)
    if not result.valid:
        for error in result.errors:
            print("FAIL:", error)
        sys.exit(1)
    print(f"PASS: event log chain valid ({result.entries_checked} entries)")

if __name__ == "__main__":
    if len(sys.argv) != 2:
        print("Usage: python tools/verify_event_log.py <event_log_export.json>")
        raise SystemExit(2)
    main(sys.argv[1])
