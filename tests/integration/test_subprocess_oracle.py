from __future__ import annotations

import os
import stat
import sys
from pathlib import Path

import pytest

from escrow_harness.core.codec import AccountMeta, Instruction
from escrow_harness.errors import OracleProtocolError, OracleUnavailableError
from escrow_harness.integration.oracle_runner import (
    MisconfiguredOracle,
    OracleConfig,
    SubprocessOracle,
    instruction_from_wire,
    instruction_to_wire,
    make_oracle,
    parse_oracle_output,
)
from escrow_harness.state.accounts import SYSTEM_PROGRAM_ID, AccountRecord, Pubkey


def _write_runner(tmp_path: Path, body: str) -> Path:
    runner = tmp_path / "runner"
    runner.write_text(f"#!{sys.executable}\n" + body, encoding="utf-8")
    runner.chmod(runner.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return runner


def _oracle(runner: Path, program_dir: Path, *, timeout_s: float = 10.0, max_stdout_bytes: int = 1_000_000) -> SubprocessOracle:
    return SubprocessOracle(
        cmd=[str(runner)],
        program_dir=program_dir,
        program_name="swap",
        timeout_s=timeout_s,
        max_stdout_bytes=max_stdout_bytes,
        max_stderr_bytes=10_000,
    )


def _instruction(key: Pubkey) -> Instruction:
    return Instruction(Pubkey.new_unique(), (AccountMeta.writable(key, signer=True),), b"\x01\x02", name="demo")


_ECHO_RUNNER = """
import json
import os
import sys

req = json.load(sys.stdin)
if os.environ.get("SBF_OUT_DIR") != req["program_dir"]:
    print(json.dumps({"ok": False, "error": "SBF_OUT_DIR=%r" % os.environ.get("SBF_OUT_DIR")}))
    sys.exit(0)
acct = dict(req["accounts"][0])
acct["lamports"] += 1
print(json.dumps({"ok": True, "resulting_accounts": [acct]}))
"""


def test_round_trip_through_fake_runner(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("SBF_OUT_DIR", raising=False)
    program_dir = tmp_path / "deploy"
    program_dir.mkdir()
    oracle = _oracle(_write_runner(tmp_path, _ECHO_RUNNER), program_dir)

    key = Pubkey.new_unique()
    result = oracle.process_instruction(_instruction(key), [(key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=5))])

    assert result.ok, result.error
    assert result.resulting_accounts == ((key, AccountRecord(owner=SYSTEM_PROGRAM_ID, lamports=6)),)
    assert "SBF_OUT_DIR" not in os.environ


def test_child_env_carries_program_dir_only(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SBF_OUT_DIR", "/parent/value")
    oracle = _oracle(tmp_path / "unused", tmp_path / "deploy")
    env = oracle.child_env()
    assert env["SBF_OUT_DIR"] == str(tmp_path / "deploy")
    assert os.environ["SBF_OUT_DIR"] == "/parent/value"


def test_rejection_is_a_result_not_an_exception(tmp_path: Path) -> None:
    runner = _write_runner(
        tmp_path,
        "import sys, json\nsys.stdin.read()\nprint(json.dumps({'ok': False, 'error': 'custom program error: 0x1'}))\n",
    )
    key = Pubkey.new_unique()
    result = _oracle(runner, tmp_path).process_instruction(_instruction(key), [])
    assert not result.ok
    assert result.error == "custom program error: 0x1"


def test_nonzero_exit_is_unavailable(tmp_path: Path) -> None:
    runner = _write_runner(tmp_path, "import sys\nsys.stdin.read()\nsys.stderr.write('boom')\nsys.exit(3)\n")
    with pytest.raises(OracleUnavailableError, match="exit 3.*boom"):
        _oracle(runner, tmp_path).process_instruction(_instruction(Pubkey.new_unique()), [])


def test_garbage_output_is_protocol_error(tmp_path: Path) -> None:
    runner = _write_runner(tmp_path, "import sys\nsys.stdin.read()\nprint('not json')\n")
    with pytest.raises(OracleProtocolError):
        _oracle(runner, tmp_path).process_instruction(_instruction(Pubkey.new_unique()), [])


def test_timeout_is_unavailable(tmp_path: Path) -> None:
    runner = _write_runner(tmp_path, "import sys, time\nsys.stdin.read()\ntime.sleep(30)\n")
    with pytest.raises(OracleUnavailableError, match="timed out"):
        _oracle(runner, tmp_path, timeout_s=0.5).process_instruction(_instruction(Pubkey.new_unique()), [])


def test_stdout_cap_is_enforced(tmp_path: Path) -> None:
    runner = _write_runner(tmp_path, "import sys\nsys.stdin.read()\nsys.stdout.write('x' * 100000)\n")
    with pytest.raises(OracleUnavailableError, match="stdout too large"):
        _oracle(runner, tmp_path, max_stdout_bytes=1000).process_instruction(_instruction(Pubkey.new_unique()), [])


@pytest.mark.parametrize(
    "raw",
    [
        b"[]",
        b'{"error": "x"}',
        b'{"ok": "yes"}',
        b'{"ok": false, "error": 5}',
        b'{"ok": true, "resulting_accounts": {}}',
        b'{"ok": true, "resulting_accounts": [{"pubkey": "1"}]}',
    ],
)
def test_parse_oracle_output_rejects_malformed(raw: bytes) -> None:
    with pytest.raises(OracleProtocolError):
        parse_oracle_output(raw)


def test_instruction_wire_round_trip() -> None:
    ix = Instruction(
        Pubkey.new_unique(),
        (AccountMeta.writable(Pubkey.new_unique(), signer=True), AccountMeta.readonly(Pubkey.new_unique())),
        b"\x00\xff" * 10,
    )
    assert instruction_from_wire(instruction_to_wire(ix)) == ix


def test_make_oracle_fails_closed(tmp_path: Path) -> None:
    assert isinstance(make_oracle(OracleConfig()), MisconfiguredOracle)
    assert isinstance(make_oracle(OracleConfig(cmd=["runner"], program_dir=tmp_path)), MisconfiguredOracle)
    missing = make_oracle(OracleConfig(cmd=[str(tmp_path / "missing")], program_dir=tmp_path))
    assert isinstance(missing, MisconfiguredOracle)
    with pytest.raises(OracleUnavailableError, match="not executable"):
        missing.process_instruction(_instruction(Pubkey.new_unique()), [])

    no_dir = make_oracle(OracleConfig(cmd=[sys.executable]))
    assert isinstance(no_dir, MisconfiguredOracle)
    assert "program_dir" in no_dir.reason


def test_make_oracle_builds_subprocess_oracle(tmp_path: Path) -> None:
    runner = _write_runner(tmp_path, _ECHO_RUNNER)
    assert isinstance(make_oracle(OracleConfig(cmd=[str(runner)], program_dir=tmp_path)), SubprocessOracle)
    looked_up = make_oracle(OracleConfig(cmd=["python3"], program_dir=tmp_path, allow_path_lookup=True))
    assert isinstance(looked_up, SubprocessOracle)
