"""Error families for the escrow harness.

Three families are kept distinct so checkpoints can pick precise expectations:

- ``InfrastructureError``: the harness could not run the scenario at all
  (repository, binary, program id, oracle plumbing). Never an expected outcome.
- ``ExecutionError``: the execution oracle rejected an instruction. Whether that
  is a failure or the required outcome depends on the checkpoint asking.
- ``ValidationError``: account data was too short or disagreed with an expected
  value. Always means the program under test misbehaved.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional


class HarnessError(Exception):
    """Base class for every error the harness raises on purpose."""


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


class InfrastructureError(HarnessError):
    """The harness environment is broken; the scenario could not be run."""


class RepositoryNotFoundError(InfrastructureError):
    def __init__(self, path: Optional[Path]) -> None:
        self.path = path
        where = str(path) if path is not None else "not set"
        super().__init__(f"Repository directory not found: {where}")


class AnchorConfigNotFoundError(InfrastructureError):
    def __init__(self, path: Path) -> None:
        self.path = path
        super().__init__(f"Anchor.toml not found: {path}")


class ProgramIdNotFoundError(InfrastructureError):
    def __init__(self, program_name: str) -> None:
        self.program_name = program_name
        super().__init__(f"Program ID for {program_name!r} not found in Anchor.toml")


class InvalidProgramIdError(InfrastructureError):
    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid program ID in Anchor.toml: {value}")


class ProgramNotFoundError(InfrastructureError):
    def __init__(self, program_name: str) -> None:
        self.program_name = program_name
        super().__init__(f"Program binary {program_name}.so not found in any of the expected locations")


class OracleUnavailableError(InfrastructureError):
    """The execution oracle could not be started, timed out or crashed."""


class OracleProtocolError(InfrastructureError):
    """The execution oracle answered with something that is not a valid result."""


class IntrospectionError(InfrastructureError):
    """The learner's program description could not be obtained or parsed."""


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------


class ExecutionError(HarnessError):
    """The execution oracle rejected an instruction.

    ``diagnostic`` is the oracle's opaque failure text; the harness never
    interprets it beyond optional classification helpers.
    """

    def __init__(self, diagnostic: str, *, instruction_name: Optional[str] = None) -> None:
        self.diagnostic = str(diagnostic)
        self.instruction_name = instruction_name
        prefix = f"{instruction_name}: " if instruction_name else ""
        super().__init__(f"Instruction execution failed: {prefix}{self.diagnostic}")

    def mentions(self, *needles: str) -> bool:
        text = self.diagnostic.lower()
        return any(n.lower() in text for n in needles)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class ValidationError(HarnessError):
    """Observed ledger state disagrees with what the scenario requires."""


class DataTooShortError(ValidationError):
    def __init__(self, what: str, *, required: int, actual: int) -> None:
        self.what = what
        self.required = int(required)
        self.actual = int(actual)
        super().__init__(f"{what} data too short: need {self.required} bytes, got {self.actual}")


class FieldMismatchError(ValidationError):
    def __init__(self, field: str, *, expected: Any, actual: Any) -> None:
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(f"{field} mismatch: expected {expected}, got {actual}")


class AccountNotFoundError(ValidationError):
    def __init__(self, address: Any) -> None:
        self.address = address
        super().__init__(f"Account not found: {address}")


class SourceCheckError(ValidationError):
    """A source-level construct the checkpoint looks for is missing."""


# ---------------------------------------------------------------------------
# Derivation / encoding
# ---------------------------------------------------------------------------


class AddressDerivationError(HarnessError):
    """No off-curve address exists for the seeds, or the seeds break network limits."""


class EncodingError(HarnessError, ValueError):
    """An instruction argument cannot be encoded with its declared type."""


class LedgerSealedError(HarnessError, RuntimeError):
    """Direct writes were attempted after setup; only oracle deltas may mutate the ledger."""
