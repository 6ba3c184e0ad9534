from __future__ import annotations

from pathlib import Path

import pytest

from escrow_harness.config import HarnessConfig


def test_defaults_from_empty_env() -> None:
    config = HarnessConfig.from_env({})
    assert config.repository_dir is None
    assert config.program_name == "swap"
    assert config.oracle_cmd == ()
    assert config.allow_path_lookup is False


def test_reads_environment_mapping(tmp_path: Path) -> None:
    config = HarnessConfig.from_env(
        {
            "STACKCLASS_REPOSITORY_DIR": str(tmp_path),
            "ESCROW_HARNESS_PROGRAM_NAME": "escrow",
            "ESCROW_HARNESS_ORACLE_CMD": "/opt/runner --mode 'one shot'",
            "ESCROW_HARNESS_ORACLE_TIMEOUT_S": "2.5",
            "ESCROW_HARNESS_ALLOW_PATH_LOOKUP": "yes",
        }
    )
    assert config.repository_dir == tmp_path
    assert config.program_name == "escrow"
    assert config.oracle_cmd == ("/opt/runner", "--mode", "one shot")
    assert config.oracle_timeout_s == 2.5
    assert config.allow_path_lookup is True

    oracle_config = config.oracle_config(tmp_path / "deploy")
    assert oracle_config.program_dir == tmp_path / "deploy"
    assert oracle_config.cmd == ("/opt/runner", "--mode", "one shot")
    assert oracle_config.timeout_s == 2.5


@pytest.mark.parametrize("raw,expected", [("1", True), ("off", False), ("maybe", False), (" TRUE ", True)])
def test_bool_parsing(raw: str, expected: bool) -> None:
    assert HarnessConfig.from_env({"ESCROW_HARNESS_ALLOW_PATH_LOOKUP": raw}).allow_path_lookup is expected


def test_bad_timeout_rejected() -> None:
    with pytest.raises(ValueError):
        HarnessConfig.from_env({"ESCROW_HARNESS_ORACLE_TIMEOUT_S": "soon"})
    with pytest.raises(ValueError):
        HarnessConfig.from_env({"ESCROW_HARNESS_ORACLE_TIMEOUT_S": "0"})
