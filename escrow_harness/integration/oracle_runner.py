"""
Subprocess execution oracle (imperative shell).

Runs an external runner that loads the compiled program and executes one
instruction per invocation.

Protocol:
- stdin: canonical JSON
    {
      "program_name": str,
      "program_dir": str,
      "instruction": {"program_id": str, "accounts": [meta...], "data": base64},
      "accounts": [account...]
    }
- stdout: JSON object
    {"ok": bool, "resulting_accounts": [account...], "error": optional str}

Accounts use the wire form of `state.canonical.account_to_wire`.

The program directory reaches the runner through the request body and the
child's `SBF_OUT_DIR` only; this process's environment is never written.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ..core.codec import AccountMeta, Instruction
from ..errors import OracleProtocolError, OracleUnavailableError
from ..state.accounts import KeyedAccount, Pubkey
from ..state.canonical import account_from_wire, account_to_wire, canonical_json_bytes
from .oracle import ExecutionOracle, OracleResult
from .process import BoundedProcessError, run_bounded

logger = logging.getLogger(__name__)

PROGRAM_DIR_ENV = "SBF_OUT_DIR"


@dataclass(frozen=True)
class OracleConfig:
    # External runner command; receives JSON on stdin; returns JSON on stdout.
    cmd: Optional[Sequence[str]] = None
    # Directory holding <program_name>.so; handed to the child only.
    program_dir: Optional[Path] = None
    program_name: str = "swap"
    # If False, cmd[0] must be an absolute path (fail-closed).
    allow_path_lookup: bool = False
    timeout_s: float = 30.0
    max_stdout_bytes: int = 16_000_000
    max_stderr_bytes: int = 64_000


def instruction_to_wire(instruction: Instruction) -> Dict[str, Any]:
    return {
        "program_id": str(instruction.program_id),
        "accounts": [
            {
                "pubkey": str(meta.pubkey),
                "is_signer": meta.is_signer,
                "is_writable": meta.is_writable,
            }
            for meta in instruction.accounts
        ],
        "data": base64.b64encode(instruction.data).decode("ascii"),
    }


def instruction_from_wire(obj: Any) -> Instruction:
    """
    Runner-side inverse of `instruction_to_wire`.

    Raises:
        ValueError: If any field is missing or has the wrong type
    """
    if not isinstance(obj, dict):
        raise ValueError("instruction must be an object")
    program_id = obj.get("program_id")
    if not isinstance(program_id, str):
        raise ValueError("instruction.program_id must be a string")
    raw_metas = obj.get("accounts")
    if not isinstance(raw_metas, list):
        raise ValueError("instruction.accounts must be a list")
    metas = []
    for idx, item in enumerate(raw_metas):
        if not isinstance(item, dict):
            raise ValueError(f"instruction.accounts[{idx}] must be an object")
        pubkey = item.get("pubkey")
        is_signer = item.get("is_signer")
        is_writable = item.get("is_writable")
        if not isinstance(pubkey, str) or not isinstance(is_signer, bool) or not isinstance(is_writable, bool):
            raise ValueError(f"instruction.accounts[{idx}] is malformed")
        metas.append(AccountMeta(Pubkey.from_string(pubkey), is_signer=is_signer, is_writable=is_writable))
    data = obj.get("data")
    if not isinstance(data, str):
        raise ValueError("instruction.data must be a base64 string")
    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("instruction.data must be valid base64") from exc
    return Instruction(program_id=Pubkey.from_string(program_id), accounts=tuple(metas), data=raw)


def result_to_wire(result: OracleResult) -> Dict[str, Any]:
    if not result.ok:
        return {"ok": False, "error": result.error or "execution failed"}
    return {
        "ok": True,
        "resulting_accounts": [account_to_wire(address, record) for address, record in result.resulting_accounts],
    }


def parse_oracle_output(raw: bytes) -> OracleResult:
    """
    Parse the runner's stdout.

    Raises:
        OracleProtocolError: If the output is not a well-formed result object
    """
    try:
        obj = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise OracleProtocolError(f"invalid oracle output: {exc}") from exc
    if not isinstance(obj, dict):
        raise OracleProtocolError("invalid oracle output (not an object)")

    ok = obj.get("ok")
    if not isinstance(ok, bool):
        raise OracleProtocolError("invalid oracle output (missing ok)")

    if not ok:
        err = obj.get("error")
        if err is not None and not isinstance(err, str):
            raise OracleProtocolError("invalid oracle output (error must be a string)")
        return OracleResult(ok=False, error=err or "execution failed")

    raw_accounts = obj.get("resulting_accounts", [])
    if not isinstance(raw_accounts, list):
        raise OracleProtocolError("invalid oracle output (resulting_accounts must be a list)")
    entries: List[KeyedAccount] = []
    for idx, item in enumerate(raw_accounts):
        try:
            entries.append(account_from_wire(item))
        except (TypeError, ValueError) as exc:
            raise OracleProtocolError(f"invalid oracle output (resulting_accounts[{idx}]: {exc})") from exc
    return OracleResult(ok=True, resulting_accounts=tuple(entries))


class SubprocessOracle:
    """Execute instructions by calling an external runner process."""

    def __init__(
        self,
        *,
        cmd: Sequence[str],
        program_dir: Path,
        program_name: str,
        timeout_s: float,
        max_stdout_bytes: int,
        max_stderr_bytes: int,
    ) -> None:
        if not cmd:
            raise ValueError("cmd must be non-empty")
        if timeout_s <= 0:
            raise ValueError("timeout_s must be positive")
        if max_stdout_bytes <= 0:
            raise ValueError("max_stdout_bytes must be positive")
        if max_stderr_bytes <= 0:
            raise ValueError("max_stderr_bytes must be positive")
        self._cmd = list(cmd)
        self._program_dir = Path(program_dir)
        self._program_name = str(program_name)
        self._timeout_s = float(timeout_s)
        self._max_stdout = int(max_stdout_bytes)
        self._max_stderr = int(max_stderr_bytes)

    @property
    def program_dir(self) -> Path:
        return self._program_dir

    def child_env(self) -> Dict[str, str]:
        env = dict(os.environ)
        env[PROGRAM_DIR_ENV] = str(self._program_dir)
        return env

    def process_instruction(self, instruction: Instruction, accounts: Sequence[KeyedAccount]) -> OracleResult:
        request = {
            "program_name": self._program_name,
            "program_dir": str(self._program_dir),
            "instruction": instruction_to_wire(instruction),
            "accounts": [account_to_wire(address, record) for address, record in accounts],
        }
        payload = canonical_json_bytes(request)

        try:
            out = run_bounded(
                self._cmd,
                input_bytes=payload,
                env=self.child_env(),
                timeout_s=self._timeout_s,
                max_stdout_bytes=self._max_stdout,
                max_stderr_bytes=self._max_stderr,
            )
        except BoundedProcessError as exc:
            raise OracleUnavailableError(f"execution oracle error: {exc}") from exc

        if out.rc != 0:
            raise OracleUnavailableError(
                f"execution oracle failed (exit {out.rc}): {out.stderr_text() or 'no stderr'}"
            )
        if out.stderr:
            logger.debug("oracle stderr: %s", out.stderr_text())
        return parse_oracle_output(out.stdout)


class MisconfiguredOracle:
    """Stands in for a runner that cannot be used; every call fails closed."""

    def __init__(self, reason: str) -> None:
        self._reason = str(reason)

    @property
    def reason(self) -> str:
        return self._reason

    def process_instruction(self, instruction: Instruction, accounts: Sequence[KeyedAccount]) -> OracleResult:
        raise OracleUnavailableError(self._reason)


def make_oracle(config: OracleConfig) -> ExecutionOracle:
    if not config.cmd:
        return MisconfiguredOracle("execution oracle misconfigured (missing cmd)")
    if config.program_dir is None:
        return MisconfiguredOracle("execution oracle misconfigured (missing program_dir)")
    if os.name != "posix":
        return MisconfiguredOracle(f"execution oracle unsupported on platform: os.name={os.name!r}")
    cmd0 = config.cmd[0]
    if not isinstance(cmd0, str) or not cmd0:
        return MisconfiguredOracle("execution oracle misconfigured (cmd[0] must be a non-empty string)")
    if not config.allow_path_lookup:
        if not os.path.isabs(cmd0):
            return MisconfiguredOracle(
                "execution oracle misconfigured (cmd must be an absolute path when allow_path_lookup=False)"
            )
        if not (os.path.isfile(cmd0) and os.access(cmd0, os.X_OK)):
            return MisconfiguredOracle(f"execution oracle misconfigured (cmd not executable): {cmd0}")
    return SubprocessOracle(
        cmd=config.cmd,
        program_dir=config.program_dir,
        program_name=config.program_name,
        timeout_s=config.timeout_s,
        max_stdout_bytes=config.max_stdout_bytes,
        max_stderr_bytes=config.max_stderr_bytes,
    )
