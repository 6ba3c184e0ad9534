"""
Out-of-process runner for the reference escrow program.

Speaks the `SubprocessOracle` protocol on stdin/stdout:

    python -m escrow_harness.integration.reference_runner < request.json

Exit code 0 with a result object on stdout for any decodable request
(including rejected instructions); exit code 2 with a message on stderr when
the request itself is malformed.
"""

from __future__ import annotations

import json
import sys
from typing import IO

from ..state.canonical import account_from_wire, canonical_json_bytes
from .oracle_runner import instruction_from_wire, result_to_wire
from .reference_oracle import ReferenceEscrowOracle


def serve_once(stdin: IO[bytes], stdout: IO[bytes]) -> None:
    """
    Handle one request.

    Raises:
        ValueError: If the request is not a well-formed oracle request
    """
    try:
        request = json.loads(stdin.read())
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ValueError(f"invalid request JSON: {exc}") from exc
    if not isinstance(request, dict):
        raise ValueError("request must be an object")
    instruction = instruction_from_wire(request.get("instruction"))
    raw_accounts = request.get("accounts")
    if not isinstance(raw_accounts, list):
        raise ValueError("request.accounts must be a list")
    accounts = [account_from_wire(item) for item in raw_accounts]

    result = ReferenceEscrowOracle(instruction.program_id).process_instruction(instruction, accounts)
    stdout.write(canonical_json_bytes(result_to_wire(result)))
    stdout.flush()


def main() -> int:
    try:
        serve_once(sys.stdin.buffer, sys.stdout.buffer)
    except ValueError as exc:
        print(f"reference runner: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
