from __future__ import annotations

import copy
import json
import stat
from pathlib import Path

import pytest

from escrow_harness.errors import IntrospectionError, RepositoryNotFoundError
from escrow_harness.integration.introspection import (
    ArgumentInfo,
    ErrorInfo,
    load_program_info,
    parse_program_info,
)

DUMP = {
    "program_id": "Fg6PaFpoGXkYsidMpWTK6W2BeZ7FEfcYkg476zPFsLnS",
    "instructions": [
        {"name": "make_offer", "arguments": [{"name": "id", "type_name": "u64"}]},
        {"name": "take_offer", "arguments": []},
    ],
    "accounts": [{"name": "MakeOffer", "fields": [{"name": "maker", "type_name": "Signer"}]}],
    "errors": [{"name": "InsufficientFunds", "code": 6000, "message": "Insufficient funds"}],
    "structs": [{"name": "Offer", "fields": [{"name": "id", "type_name": "u64"}]}],
}


def _script(repo: Path, body: str) -> None:
    script = repo / "your_program.sh"
    script.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def test_parse_program_info() -> None:
    info = parse_program_info(DUMP)
    assert [ix.name for ix in info.instructions] == ["make_offer", "take_offer"]
    assert info.instructions[0].arguments == (ArgumentInfo(name="id", type_name="u64"),)
    assert info.errors == (ErrorInfo(name="InsufficientFunds", code=6000, message="Insufficient funds"),)
    assert info.structs[0].fields[0].name == "id"


@pytest.mark.parametrize(
    "path,value",
    [
        (("program_id",), 5),
        (("instructions",), {}),
        (("instructions", 0, "name"), ""),
        (("instructions", 0, "arguments", 0, "type_name"), None),
        (("accounts", 0, "fields"), None),
        (("errors", 0, "code"), -1),
        (("errors", 0, "code"), "6000"),
        (("errors", 0, "message"), None),
        (("structs", 0), "Offer"),
    ],
)
def test_parse_rejects_malformed_fields(path: tuple, value: object) -> None:
    doc = copy.deepcopy(DUMP)
    target = doc
    for key in path[:-1]:
        target = target[key]
    target[path[-1]] = value
    with pytest.raises(IntrospectionError):
        parse_program_info(doc)


def test_load_program_info_runs_dump_info(tmp_path: Path) -> None:
    (tmp_path / "dump.json").write_text(json.dumps(DUMP), encoding="utf-8")
    _script(tmp_path, '[ "$1" = "dump_info" ] || exit 9\ncat dump.json\n')
    info = load_program_info(tmp_path)
    assert info.program_id == DUMP["program_id"]


def test_load_program_info_failures(tmp_path: Path) -> None:
    with pytest.raises(RepositoryNotFoundError):
        load_program_info(tmp_path / "missing")
    with pytest.raises(IntrospectionError, match="not found"):
        load_program_info(tmp_path)

    _script(tmp_path, "echo broken >&2\nexit 1\n")
    with pytest.raises(IntrospectionError, match="broken"):
        load_program_info(tmp_path)

    _script(tmp_path, "echo '{not json'\n")
    with pytest.raises(IntrospectionError, match="Failed to parse JSON"):
        load_program_info(tmp_path)
