"""
Integration layer: execution oracles, program discovery and introspection
"""

from .introspection import ProgramInfo, load_program_info, parse_program_info
from .oracle import ExecutionAdapter, ExecutionOracle, OracleResult
from .oracle_runner import MisconfiguredOracle, OracleConfig, SubprocessOracle, make_oracle
from .program_locator import find_program_binary, load_program_id
from .reference_oracle import ReferenceEscrowOracle

__all__ = [
    "ProgramInfo",
    "load_program_info",
    "parse_program_info",
    "ExecutionAdapter",
    "ExecutionOracle",
    "OracleResult",
    "MisconfiguredOracle",
    "OracleConfig",
    "SubprocessOracle",
    "make_oracle",
    "find_program_binary",
    "load_program_id",
    "ReferenceEscrowOracle",
]
