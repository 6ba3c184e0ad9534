"""
Locate the learner's compiled program and its declared id (imperative shell).
"""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path
from typing import Any, Iterator, List, Mapping, Optional

from ..errors import (
    AnchorConfigNotFoundError,
    InvalidProgramIdError,
    ProgramIdNotFoundError,
    ProgramNotFoundError,
    RepositoryNotFoundError,
)
from ..state.accounts import Pubkey

logger = logging.getLogger(__name__)

DEFAULT_PROGRAM_NAME = "swap"
ANCHOR_CONFIG = "Anchor.toml"


def _require_repo(repo_dir: Optional[Path]) -> Path:
    if repo_dir is None:
        raise RepositoryNotFoundError(None)
    path = Path(repo_dir)
    if not path.is_dir():
        raise RepositoryNotFoundError(path)
    return path


def candidate_paths(repo_dir: Path, program_name: str = DEFAULT_PROGRAM_NAME) -> List[Path]:
    """Fixed locations searched before falling back to a scan of target/."""
    so_name = f"{program_name}.so"
    return [
        repo_dir / "target" / "deploy" / so_name,
        repo_dir / "target" / "sbf-solana-solana" / "release" / so_name,
        repo_dir / "artifacts" / so_name,
    ]


def _scan_for_shared_objects(root: Path) -> Iterator[Path]:
    # Sorted walk so the fallback pick does not depend on directory order.
    for path in sorted(root.rglob("*.so")):
        if path.is_file():
            yield path


def find_program_binary(repo_dir: Optional[Path], program_name: str = DEFAULT_PROGRAM_NAME) -> Path:
    """
    Path of the compiled program.

    Raises:
        RepositoryNotFoundError: If repo_dir is missing
        ProgramNotFoundError: If no candidate exists
    """
    repo = _require_repo(repo_dir)
    for path in candidate_paths(repo, program_name):
        if path.is_file():
            logger.debug("found program binary at %s", path)
            return path

    target = repo / "target"
    if target.is_dir():
        for path in _scan_for_shared_objects(target):
            logger.info("program binary %s.so not at a standard location; using %s", program_name, path)
            return path

    raise ProgramNotFoundError(program_name)


def _lookup_program_id(config: Mapping[str, Any], program_name: str) -> Optional[str]:
    programs = config.get("programs")
    if not isinstance(programs, Mapping):
        return None
    tables: List[Mapping[str, Any]] = [programs]
    tables.extend(value for value in programs.values() if isinstance(value, Mapping))
    for table in tables:
        value = table.get(program_name)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def load_program_id(repo_dir: Optional[Path], program_name: str = DEFAULT_PROGRAM_NAME) -> Pubkey:
    """
    Program id declared for `program_name` in Anchor.toml.

    Looks in `[programs]` and every `[programs.<cluster>]` table for an exact
    key match.

    Raises:
        RepositoryNotFoundError, AnchorConfigNotFoundError,
        ProgramIdNotFoundError, InvalidProgramIdError
    """
    repo = _require_repo(repo_dir)
    anchor_path = repo / ANCHOR_CONFIG
    if not anchor_path.is_file():
        raise AnchorConfigNotFoundError(anchor_path)
    try:
        with anchor_path.open("rb") as fh:
            config = tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise ProgramIdNotFoundError(program_name) from exc

    value = _lookup_program_id(config, program_name)
    if value is None:
        raise ProgramIdNotFoundError(program_name)
    try:
        program_id = Pubkey.from_string(value)
    except ValueError as exc:
        raise InvalidProgramIdError(value) from exc
    if program_id.is_default():
        raise InvalidProgramIdError(value)
    return program_id
