# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/system/prereq_installer.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Installs the build toolchain and libraries needed to compile OpenSSH

"""
Prerequisite Installer: Deterministic apt package set per host variant.

Kali ships OpenSSL 1.1.0, which OpenSSH 7.5 does not support, so the
1.0.2 development package is installed explicitly. A bare-bones Kali may
also lack the psmisc tools.
"""

import logging
from typing import List

from ..context import ProvisioningContext
from ..errors import HostEnvironmentError, ProvisioningError, StageResult
from .commands import run_command
from .host_check import HostVariant

logger = logging.getLogger(__name__)

STAGE_NAME = "prerequisites"

BASE_PACKAGES = ["autoconf", "build-essential", "zlib1g-dev"]

VARIANT_PACKAGES = {
    HostVariant.KALI: ["libssl1.0-dev", "psmisc"],
    HostVariant.DEBIAN: ["libssl-dev"],
}


def packages_for(variant: HostVariant) -> List[str]:
    return BASE_PACKAGES + VARIANT_PACKAGES[variant]


class PrerequisiteInstaller:
    """Installs prerequisites with apt."""

    def install_command(self, variant: HostVariant) -> List[str]:
        return ["apt-get", "install", "-y"] + packages_for(variant)

    def run(self, ctx: ProvisioningContext) -> StageResult:
        command = self.install_command(ctx.host_variant)
        print("Installing prerequisites...\n")
        try:
            run_command(
                command,
                error_class=HostEnvironmentError,
                failure_message=f"Failed to install prerequisites.  Failed: {' '.join(command)}",
            )
        except ProvisioningError as e:
            return StageResult.failure(STAGE_NAME, e)

        print(f"✓ Prerequisites installed ({ctx.host_variant.value}): {' '.join(packages_for(ctx.host_variant))}")
        return StageResult.success(STAGE_NAME, value=packages_for(ctx.host_variant))
