"""
Harness configuration, read once from the process environment.

The harness only ever reads the environment; nothing here (or anywhere else
in the package) writes to `os.environ`.
"""

from __future__ import annotations

import os
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

from .integration.oracle_runner import OracleConfig
from .integration.program_locator import DEFAULT_PROGRAM_NAME


REPOSITORY_DIR_ENV = "STACKCLASS_REPOSITORY_DIR"
PROGRAM_NAME_ENV = "ESCROW_HARNESS_PROGRAM_NAME"
ORACLE_CMD_ENV = "ESCROW_HARNESS_ORACLE_CMD"
ORACLE_TIMEOUT_ENV = "ESCROW_HARNESS_ORACLE_TIMEOUT_S"
ALLOW_PATH_LOOKUP_ENV = "ESCROW_HARNESS_ALLOW_PATH_LOOKUP"

DEFAULT_ORACLE_TIMEOUT_S = 30.0


def _bool_env(environ: Mapping[str, str], name: str, *, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None:
        return bool(default)
    v = raw.strip().lower()
    if v in {"1", "true", "yes", "on"}:
        return True
    if v in {"0", "false", "no", "off"}:
        return False
    return bool(default)


def _float_env(environ: Mapping[str, str], name: str, *, default: float) -> float:
    raw = environ.get(name, "").strip()
    if not raw:
        return float(default)
    try:
        value = float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{name} must be positive")
    return value


@dataclass(frozen=True)
class HarnessConfig:
    repository_dir: Optional[Path] = None
    program_name: str = DEFAULT_PROGRAM_NAME
    # Execution oracle runner; shlex-split from the environment.
    oracle_cmd: Tuple[str, ...] = ()
    oracle_timeout_s: float = DEFAULT_ORACLE_TIMEOUT_S
    allow_path_lookup: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HarnessConfig":
        env = os.environ if environ is None else environ
        repo = env.get(REPOSITORY_DIR_ENV, "").strip()
        return cls(
            repository_dir=Path(repo) if repo else None,
            program_name=env.get(PROGRAM_NAME_ENV, "").strip() or DEFAULT_PROGRAM_NAME,
            oracle_cmd=tuple(shlex.split(env.get(ORACLE_CMD_ENV, ""))),
            oracle_timeout_s=_float_env(env, ORACLE_TIMEOUT_ENV, default=DEFAULT_ORACLE_TIMEOUT_S),
            allow_path_lookup=_bool_env(env, ALLOW_PATH_LOOKUP_ENV, default=False),
        )

    def oracle_config(self, program_dir: Path) -> OracleConfig:
        return OracleConfig(
            cmd=self.oracle_cmd or None,
            program_dir=program_dir,
            program_name=self.program_name,
            allow_path_lookup=self.allow_path_lookup,
            timeout_s=self.oracle_timeout_s,
        )
