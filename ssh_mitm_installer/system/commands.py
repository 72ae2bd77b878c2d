# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/system/commands.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Runs external tools and converts non-zero exits into typed provisioning errors

"""
Command Runner: Thin subprocess wrapper used by every stage.

FAIL-CLOSED: A missing tool or a non-zero exit raises the caller-selected
ProvisioningError subclass carrying the tool's own output verbatim.
Callers that expect non-zero exits (e.g. "no process matched") pass
check=False and inspect the returncode themselves.
"""

import logging
import subprocess
from pathlib import Path
from typing import Optional, Sequence, Type

from ..errors import HostEnvironmentError, ProvisioningError

logger = logging.getLogger(__name__)


def run_command(
    args: Sequence[str],
    error_class: Type[ProvisioningError] = HostEnvironmentError,
    failure_message: Optional[str] = None,
    cwd: Optional[Path] = None,
    check: bool = True,
) -> subprocess.CompletedProcess:
    """
    Run an external command and capture its output.

    Args:
        args: Command and arguments
        error_class: ProvisioningError subclass raised on failure
        failure_message: Operator-facing message (defaults to a generic one)
        cwd: Working directory for the command
        check: Raise on non-zero exit when True

    Returns:
        CompletedProcess with text stdout/stderr

    Raises:
        ProvisioningError: If the tool is missing, or exits non-zero with check=True
    """
    args = [str(a) for a in args]
    logger.info(f"Running: {' '.join(args)}" + (f" (in {cwd})" if cwd else ""))

    try:
        result = subprocess.run(
            args,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        raise error_class(
            failure_message or f"Required tool not found: {args[0]}",
            output=str(e),
            command=args,
        )

    if check and result.returncode != 0:
        output = "\n".join(part for part in (result.stdout, result.stderr) if part)
        raise error_class(
            failure_message or f"{args[0]} returned {result.returncode}",
            output=output,
            command=args,
        )

    return result
