# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/errors.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Error taxonomy and typed stage results for the provisioning pipeline

"""
Provisioning Errors: Fail-closed error taxonomy.

Every failure in the pipeline is fatal. Stages raise a ProvisioningError
subclass at the failing step and convert it into a StageResult at the stage
boundary. The driver stops at the first failed StageResult.

Kinds:
- PRECONDITION: not root, pre-existing account without --force, bad config
- ACQUISITION:  network fetch failure
- TRUST:        fingerprint mismatch, invalid signature, checksum mismatch
- BUILD:        unexpected archive layout, patch rejected, missing binaries
- ENVIRONMENT:  package installation, account tooling, filesystem failures
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Sequence


class ErrorKind(Enum):
    """Fatal error categories."""
    PRECONDITION = "precondition"
    ACQUISITION = "acquisition"
    TRUST = "trust"
    BUILD = "build"
    ENVIRONMENT = "environment"


class ProvisioningError(RuntimeError):
    """Base class for every fatal provisioning failure."""

    kind = ErrorKind.ENVIRONMENT

    def __init__(
        self,
        message: str,
        remediation: Optional[str] = None,
        output: Optional[str] = None,
        command: Optional[Sequence[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.remediation = remediation
        self.output = output
        self.command = list(command) if command else None

    def describe(self) -> str:
        """Render the operator-facing diagnostic."""
        lines = [f"{self.kind.value.upper()} ERROR: {self.message}"]
        if self.command:
            lines.append(f"Failed command: {' '.join(self.command)}")
        if self.output:
            lines.append("")
            lines.append(self.output.rstrip())
        if self.remediation:
            lines.append("")
            lines.append(self.remediation)
        return "\n".join(lines)


class PreconditionError(ProvisioningError):
    kind = ErrorKind.PRECONDITION


class AcquisitionError(ProvisioningError):
    kind = ErrorKind.ACQUISITION


class TrustError(ProvisioningError):
    kind = ErrorKind.TRUST


class BuildError(ProvisioningError):
    kind = ErrorKind.BUILD


class HostEnvironmentError(ProvisioningError):
    kind = ErrorKind.ENVIRONMENT


@dataclass
class StageResult:
    """Outcome of a single pipeline stage."""
    stage: str
    ok: bool
    value: Any = None
    error: Optional[ProvisioningError] = None
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, stage: str, value: Any = None, warnings: Optional[List[str]] = None) -> "StageResult":
        return cls(stage=stage, ok=True, value=value, warnings=list(warnings or []))

    @classmethod
    def failure(cls, stage: str, error: ProvisioningError) -> "StageResult":
        return cls(stage=stage, ok=False, error=error)

    @property
    def kind(self) -> Optional[ErrorKind]:
        return self.error.kind if self.error else None
