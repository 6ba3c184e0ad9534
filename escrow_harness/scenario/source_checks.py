"""
Source-level checks over the program description printed by `dump_info`.

These only look at declared structure (instruction, account, error and struct
names); they never execute the program.
"""

from __future__ import annotations

from typing import Callable, Dict

from ..errors import SourceCheckError
from ..integration.introspection import ProgramInfo

SourceCheck = Callable[[ProgramInfo], None]


def check_anchor_program(info: ProgramInfo) -> None:
    if not info.instructions:
        raise SourceCheckError("No instructions declared")
    if not info.accounts:
        raise SourceCheckError("No account structs declared")


def check_cpi_usage(info: ProgramInfo) -> None:
    uses_cpi_context = any("CpiContext" in f.type_name for acc in info.accounts for f in acc.fields)
    if not uses_cpi_context and not info.accounts:
        raise SourceCheckError("CPI code not found")


def check_error_messages(info: ProgramInfo) -> None:
    if not any(err.message for err in info.errors):
        raise SourceCheckError("No custom error with a message declared")


def check_offer_struct(info: ProgramInfo) -> None:
    for struct in info.structs:
        if "offer" in struct.name.lower() and len(struct.fields) >= 3:
            return
    raise SourceCheckError("No Offer struct with at least 3 fields declared")


def check_vault_declared(info: ProgramInfo) -> None:
    names = [s.name for s in info.structs] + [a.name for a in info.accounts]
    names += [f.name for a in info.accounts for f in a.fields]
    if not any("vault" in name.lower() for name in names):
        raise SourceCheckError("No vault struct or account declared")


def check_vault_authority_field(info: ProgramInfo) -> None:
    fields = [f for s in info.structs for f in s.fields] + [f for a in info.accounts for f in a.fields]
    if not any("authority" in f.name.lower() or "owner" in f.name.lower() for f in fields):
        raise SourceCheckError("No authority or owner field declared")


SOURCE_CHECKS: Dict[str, SourceCheck] = {
    "anchor_program": check_anchor_program,
    "cpi_usage": check_cpi_usage,
    "error_messages": check_error_messages,
    "offer_struct": check_offer_struct,
    "vault_declared": check_vault_declared,
    "vault_authority_field": check_vault_authority_field,
}
