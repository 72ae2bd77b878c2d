# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/services/apparmor_installer.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Installs and activates AppArmor profiles for sshd_mitm and ssh

"""
AppArmor Installer: One profile per installed binary.

Profiles are always copied into /etc/apparmor.d. Activation reloads the
AppArmor service; if AppArmor is not installed the operator gets a
warning with remediation steps, but installation still succeeds. The
operator may not want AppArmor on this system, so it is not forced.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from ..context import ProvisioningContext, profile_name
from ..errors import HostEnvironmentError
from ..system.commands import run_command
from ..system.host_check import HostVariant

logger = logging.getLogger(__name__)

APPARMOR_MISSING_WARNING = (
    "!!! WARNING !!!: AppArmor is not installed.  It is highly recommended (though not "
    "required) that sshd_mitm is run in a restricted environment.\n\n"
    "\tInstall AppArmor with: \"apt install apparmor\"."
)

KALI_APPARMOR_GUIDANCE = (
    "Kali Linux requires extra steps to get AppArmor installed and functional.  Ensure "
    "profiles are loaded upon boot-up with:\n\n"
    "\t\t# update-rc.d apparmor enable\n\n"
    "\tAppArmor must be enabled on boot-up.  Edit the /etc/default/grub file, and change "
    "the following line:\n\n"
    "\t\tGRUB_CMDLINE_LINUX_DEFAULT=\"quiet\"\n\n"
    "\tto:\n\n"
    "\t\tGRUB_CMDLINE_LINUX_DEFAULT=\"quiet apparmor=1 security=apparmor\"\n\n"
    "\tLastly, reboot the system."
)


@dataclass
class SandboxReport:
    """What was installed and whether it is enforced."""
    profiles: List[Path] = field(default_factory=list)
    activated: bool = False
    warnings: List[str] = field(default_factory=list)


def missing_apparmor_warnings(variant: HostVariant) -> List[str]:
    warnings = [APPARMOR_MISSING_WARNING]
    if variant == HostVariant.KALI:
        warnings.append(KALI_APPARMOR_GUIDANCE)
    return warnings


class AppArmorInstaller:
    """Installs the AppArmor profiles."""

    def install_profiles(self, ctx: ProvisioningContext, binaries: List[Path]) -> List[Path]:
        """
        Copy one profile per binary into the AppArmor directory.

        Raises:
            HostEnvironmentError: If a shipped profile is missing or cannot be copied
        """
        target_dir = ctx.apparmor_target_dir
        if not target_dir.is_dir():
            try:
                target_dir.mkdir(mode=0o755, parents=True)
                os.chmod(target_dir, 0o755)
            except OSError as e:
                raise HostEnvironmentError(f"Failed to create {target_dir}: {e}")

        installed = []
        for binary in binaries:
            name = profile_name(binary)
            source = ctx.apparmor_source_dir / name
            if not source.is_file():
                raise HostEnvironmentError(
                    f"AppArmor profile for {binary} not found: {source}",
                    remediation=f"Ensure the apparmor/ directory is present in {ctx.work_dir}.",
                )
            target = target_dir / name
            try:
                shutil.copyfile(source, target)
                os.chmod(target, 0o644)
            except OSError as e:
                raise HostEnvironmentError(f"Failed to install AppArmor profile {target}: {e}")
            installed.append(target)
            logger.info(f"Installed AppArmor profile {target}")
        return installed

    def activate(self) -> bool:
        """Reload AppArmor; False when the subsystem is absent or the reload fails."""
        try:
            result = run_command(["service", "apparmor", "reload"], check=False)
        except HostEnvironmentError as e:
            logger.warning(f"Cannot reload AppArmor: {e}")
            return False
        if result.returncode != 0:
            logger.warning(f"service apparmor reload returned {result.returncode}: {result.stderr.strip()}")
            return False
        return True

    def run(self, ctx: ProvisioningContext, binaries: List[Path]) -> SandboxReport:
        report = SandboxReport(profiles=self.install_profiles(ctx, binaries))
        report.activated = self.activate()

        if report.activated:
            print(f"✓ AppArmor profiles enabled: {', '.join(p.name for p in report.profiles)}")
        else:
            report.warnings = missing_apparmor_warnings(ctx.host_variant)
            for warning in report.warnings:
                print(f"\n\t{warning}\n")
        return report
