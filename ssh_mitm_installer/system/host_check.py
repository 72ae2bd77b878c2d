# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/system/host_check.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Host variant detection and root privilege precondition

"""
Host Check: Selects the host variant once at startup and enforces root.

Kali Linux needs different build dependencies and extra AppArmor
remediation steps, so it is modelled as its own variant. Every other
apt-based host is treated as generic Debian.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Iterable

from ..errors import PreconditionError

logger = logging.getLogger(__name__)

RELEASE_ID_FILES = (
    Path("/etc/lsb-release"),
    Path("/etc/os-release"),
)


class HostVariant(Enum):
    """Supported host distributions."""
    KALI = "kali"
    DEBIAN = "debian"


def detect_host_variant(release_files: Iterable[Path] = RELEASE_ID_FILES) -> HostVariant:
    """
    Detect the host variant from the release identification files.

    Args:
        release_files: Files to inspect, in order

    Returns:
        HostVariant.KALI if any file mentions Kali, else HostVariant.DEBIAN
    """
    for release_file in release_files:
        try:
            content = Path(release_file).read_text(errors="replace")
        except FileNotFoundError:
            continue
        except OSError as e:
            logger.warning(f"Cannot read {release_file}: {e}")
            continue

        if "Kali" in content:
            logger.info(f"Kali Linux detected via {release_file}")
            return HostVariant.KALI

    return HostVariant.DEBIAN


def require_root() -> None:
    """
    Fail-closed unless running with full administrative privilege.

    Raises:
        PreconditionError: If effective uid is not 0
    """
    if os.geteuid() != 0:
        raise PreconditionError(
            "this installer must be run as root.",
            remediation="Re-run with: sudo python3 -m ssh_mitm_installer [--force]",
        )
