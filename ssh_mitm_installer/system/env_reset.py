# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/system/env_reset.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Returns the host to its pre-provisioning state (downloads, build trees, keyring, service account)

"""
Environment Reset: Idempotent cleanup before every provisioning run.

- Transient downloads, build trees and the release keyring are removed
  unconditionally.
- Processes of the service account are terminated.
- An existing service account may hold saved sessions, so it is only
  deleted with --force. Without it the whole pipeline aborts and the home
  directory is left untouched.
"""

import logging
import pwd
import shutil
from pathlib import Path
from typing import List

from ..context import ProvisioningContext
from ..errors import HostEnvironmentError, PreconditionError, ProvisioningError, StageResult
from .commands import run_command

logger = logging.getLogger(__name__)

STAGE_NAME = "environment_reset"


def account_exists(username: str) -> bool:
    try:
        pwd.getpwnam(username)
        return True
    except KeyError:
        return False


class EnvironmentReset:
    """Resets the environment in case the installer was run before."""

    def transient_paths(self, ctx: ProvisioningContext) -> List[Path]:
        """Every path a previous run may have left behind in the work directory."""
        paths = sorted(ctx.work_dir.glob("*.asc"))
        paths.extend([
            ctx.archive_path,
            ctx.source_tree,
            ctx.mitm_tree,
            ctx.keyring_dir,
        ])
        return paths

    def remove_transient_artifacts(self, ctx: ProvisioningContext) -> List[Path]:
        """
        Remove previously downloaded and extracted artifacts.

        Returns:
            Paths that were actually removed
        """
        removed = []
        for path in self.transient_paths(ctx):
            try:
                if path.is_dir() and not path.is_symlink():
                    shutil.rmtree(path)
                elif path.exists() or path.is_symlink():
                    path.unlink()
                else:
                    continue
            except OSError as e:
                raise HostEnvironmentError(f"Failed to remove {path}: {e}")
            removed.append(path)
            logger.info(f"Removed {path}")
        return removed

    def terminate_account_processes(self, username: str) -> None:
        # pkill exits 1 when nothing matched
        result = run_command(["pkill", "-u", username], check=False)
        if result.returncode == 0:
            logger.info(f"Terminated running processes of {username}")
        elif result.returncode == 1:
            logger.info(f"No running processes for {username}")
        else:
            raise HostEnvironmentError(
                f"Failed to terminate processes of {username}: pkill returned {result.returncode}",
                output=result.stderr,
                command=["pkill", "-u", username],
            )

    def delete_account(self, ctx: ProvisioningContext) -> None:
        account = ctx.account
        run_command(
            ["userdel", "-f", "-r", account.username],
            failure_message=f"Failed to delete the {account.username} user",
        )

        if account_exists(account.username):
            raise HostEnvironmentError(f"User {account.username} still exists after userdel")

        # userdel -r leaves the home behind when it is not owned by the user
        if account.home.exists():
            try:
                shutil.rmtree(account.home)
            except OSError as e:
                raise HostEnvironmentError(f"Failed to remove {account.home}: {e}")
        logger.info(f"Deleted user {account.username} and {account.home}")

    def reset(self, ctx: ProvisioningContext) -> None:
        """
        Perform the reset.

        Raises:
            PreconditionError: If the account exists and force was not given
            HostEnvironmentError: If cleanup fails
        """
        self.remove_transient_artifacts(ctx)

        username = ctx.account.username
        if not account_exists(username):
            return

        self.terminate_account_processes(username)

        if not ctx.force:
            raise PreconditionError(
                f"It appears that the {username} user already exists.",
                remediation=(
                    f"Make backups of any saved sessions in {ctx.account.home}/, then re-run "
                    f"this installer with the \"--force\" argument (this will cause the user "
                    f"account to be deleted and re-created)."
                ),
            )

        self.delete_account(ctx)

    def run(self, ctx: ProvisioningContext) -> StageResult:
        try:
            self.reset(ctx)
        except ProvisioningError as e:
            return StageResult.failure(STAGE_NAME, e)
        return StageResult.success(STAGE_NAME)
