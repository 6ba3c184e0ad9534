"""
Static program description client (imperative shell).

The learner's repository ships `your_program.sh`; `your_program.sh dump_info`
prints a JSON description of the program's instructions, accounts, errors and
structs. Source-level checks work on the parsed `ProgramInfo`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from ..errors import IntrospectionError, RepositoryNotFoundError
from .process import BoundedProcessError, run_bounded

logger = logging.getLogger(__name__)

PROGRAM_SCRIPT = "your_program.sh"
DUMP_INFO_ARG = "dump_info"
U32_MAX = (1 << 32) - 1


@dataclass(frozen=True)
class FieldInfo:
    name: str
    type_name: str


@dataclass(frozen=True)
class ArgumentInfo:
    name: str
    type_name: str


@dataclass(frozen=True)
class InstructionInfo:
    name: str
    arguments: Tuple[ArgumentInfo, ...]


@dataclass(frozen=True)
class AccountInfo:
    name: str
    fields: Tuple[FieldInfo, ...]


@dataclass(frozen=True)
class ErrorInfo:
    name: str
    code: int
    message: str


@dataclass(frozen=True)
class StructInfo:
    name: str
    fields: Tuple[FieldInfo, ...]


@dataclass(frozen=True)
class ProgramInfo:
    program_id: str
    instructions: Tuple[InstructionInfo, ...]
    accounts: Tuple[AccountInfo, ...]
    errors: Tuple[ErrorInfo, ...]
    structs: Tuple[StructInfo, ...]


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _require_str(value: Any, *, name: str, non_empty: bool = False) -> str:
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string")
    if non_empty and not value:
        raise ValueError(f"{name} must be non-empty")
    return value


def _require_int(value: Any, *, name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"{name} must be an int")
    return int(value)


def _require_dict(value: Any, *, name: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be an object")
    return value


def _require_list(value: Any, *, name: str) -> List[Any]:
    if not isinstance(value, list):
        raise ValueError(f"{name} must be a list")
    return value


def _parse_fields(value: Any, *, name: str) -> Tuple[FieldInfo, ...]:
    out = []
    for i, item in enumerate(_require_list(value, name=name)):
        obj = _require_dict(item, name=f"{name}[{i}]")
        out.append(
            FieldInfo(
                name=_require_str(obj.get("name"), name=f"{name}[{i}].name", non_empty=True),
                type_name=_require_str(obj.get("type_name"), name=f"{name}[{i}].type_name"),
            )
        )
    return tuple(out)


def _parse_instruction(obj: Dict[str, Any], idx: int) -> InstructionInfo:
    where = f"instructions[{idx}]"
    args = []
    for i, item in enumerate(_require_list(obj.get("arguments"), name=f"{where}.arguments")):
        arg = _require_dict(item, name=f"{where}.arguments[{i}]")
        args.append(
            ArgumentInfo(
                name=_require_str(arg.get("name"), name=f"{where}.arguments[{i}].name", non_empty=True),
                type_name=_require_str(arg.get("type_name"), name=f"{where}.arguments[{i}].type_name"),
            )
        )
    return InstructionInfo(
        name=_require_str(obj.get("name"), name=f"{where}.name", non_empty=True),
        arguments=tuple(args),
    )


def _parse_error(obj: Dict[str, Any], idx: int) -> ErrorInfo:
    where = f"errors[{idx}]"
    code = _require_int(obj.get("code"), name=f"{where}.code")
    if not 0 <= code <= U32_MAX:
        raise ValueError(f"{where}.code out of u32 range")
    return ErrorInfo(
        name=_require_str(obj.get("name"), name=f"{where}.name", non_empty=True),
        code=code,
        message=_require_str(obj.get("message"), name=f"{where}.message"),
    )


def parse_program_info(obj: Any) -> ProgramInfo:
    """
    Validate and convert a decoded dump_info document.

    Raises:
        IntrospectionError: If any required field is missing or mistyped
    """
    try:
        root = _require_dict(obj, name="program info")
        instructions = tuple(
            _parse_instruction(_require_dict(item, name=f"instructions[{i}]"), i)
            for i, item in enumerate(_require_list(root.get("instructions"), name="instructions"))
        )
        accounts = tuple(
            AccountInfo(
                name=_require_str(item.get("name"), name=f"accounts[{i}].name", non_empty=True),
                fields=_parse_fields(item.get("fields"), name=f"accounts[{i}].fields"),
            )
            for i, item in enumerate(
                _require_dict(entry, name=f"accounts[{j}]")
                for j, entry in enumerate(_require_list(root.get("accounts"), name="accounts"))
            )
        )
        errors = tuple(
            _parse_error(_require_dict(item, name=f"errors[{i}]"), i)
            for i, item in enumerate(_require_list(root.get("errors"), name="errors"))
        )
        structs = tuple(
            StructInfo(
                name=_require_str(item.get("name"), name=f"structs[{i}].name", non_empty=True),
                fields=_parse_fields(item.get("fields"), name=f"structs[{i}].fields"),
            )
            for i, item in enumerate(
                _require_dict(entry, name=f"structs[{j}]")
                for j, entry in enumerate(_require_list(root.get("structs"), name="structs"))
            )
        )
        program_id = _require_str(root.get("program_id"), name="program_id")
    except ValueError as exc:
        raise IntrospectionError(f"Invalid program info: {exc}") from exc

    return ProgramInfo(
        program_id=program_id,
        instructions=instructions,
        accounts=accounts,
        errors=errors,
        structs=structs,
    )


def load_program_info(
    repo_dir: Optional[Path],
    *,
    timeout_s: float = 120.0,
    max_stdout_bytes: int = 4_000_000,
    max_stderr_bytes: int = 64_000,
) -> ProgramInfo:
    """
    Run `<repo>/your_program.sh dump_info` and parse its output.

    Raises:
        RepositoryNotFoundError: If repo_dir is missing
        IntrospectionError: If the script fails or prints invalid JSON
    """
    if repo_dir is None or not Path(repo_dir).is_dir():
        raise RepositoryNotFoundError(Path(repo_dir) if repo_dir is not None else None)
    script = Path(repo_dir) / PROGRAM_SCRIPT
    if not script.is_file():
        raise IntrospectionError(f"Failed to get program info: {script} not found")

    try:
        out = run_bounded(
            [str(script), DUMP_INFO_ARG],
            cwd=Path(repo_dir),
            timeout_s=timeout_s,
            max_stdout_bytes=max_stdout_bytes,
            max_stderr_bytes=max_stderr_bytes,
        )
    except BoundedProcessError as exc:
        raise IntrospectionError(f"Failed to get program info: {exc}") from exc

    if out.rc != 0:
        raise IntrospectionError(f"Failed to run dump_info (exit {out.rc}): {out.stderr_text() or 'no stderr'}")

    text = out.stdout.decode("utf-8", errors="replace").strip()
    try:
        obj = json.loads(text)
    except json.JSONDecodeError as exc:
        raise IntrospectionError(f"Failed to parse JSON: {exc} - {text[:200]}") from exc
    info = parse_program_info(obj)
    logger.debug(
        "program info: %d instructions, %d accounts, %d errors, %d structs",
        len(info.instructions),
        len(info.accounts),
        len(info.errors),
        len(info.structs),
    )
    return info
