# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/context.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Provisioning context, pinned artifact/trust constants, and YAML configuration loader

"""
Provisioning Context: Immutable pins plus per-run settings.

The context is built once by the driver and passed explicitly to every
stage. Trust pins are embedded here and may only be overridden by the
pipeline configuration file (ssh_mitm.yaml), never by downloaded data.

Configuration lookup:
1. $SSH_MITM_CONFIG, if set (file MUST exist)
2. <work_dir>/ssh_mitm.yaml, if present
3. Built-in defaults
"""

import os
import re
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import PreconditionError
from .system.host_check import HostVariant, detect_host_variant

CONFIG_FILE_NAME = "ssh_mitm.yaml"
CONFIG_ENV_VAR = "SSH_MITM_CONFIG"
WORKDIR_ENV_VAR = "SSH_MITM_WORKDIR"

_FINGERPRINT_RE = re.compile(r"^[0-9A-F]{40}$")
_CHECKSUM_RE = re.compile(r"^[0-9a-f]{64}$")


def normalize_fingerprint(fingerprint: str) -> str:
    """Canonical form of an OpenPGP fingerprint: upper-case hex, no whitespace."""
    return "".join(fingerprint.split()).upper()


def profile_name(binary: Path) -> str:
    """AppArmor profile file name for an absolute binary path (/a/b/c -> a.b.c)."""
    return ".".join(Path(binary).parts[1:])


@dataclass(frozen=True)
class ArtifactSpec:
    """Identifies exactly one upstream OpenSSH release."""
    source_archive: str = "openssh-7.5p1.tar.gz"
    source_dir: str = "openssh-7.5p1"
    patch_file: str = "openssh-7.5p1-mitm.patch"
    signature_file: str = "openssh-7.5p1.tar.gz.asc"
    release_key_file: str = "RELEASE_KEY.asc"

    @property
    def mitm_dir(self) -> str:
        return f"{self.source_dir}-mitm"


@dataclass(frozen=True)
class TrustPin:
    """Pinned publisher key fingerprint, artifact checksum and signer identity."""
    expected_fingerprint: str = "59C2 118E D206 D927 E667  EBE3 D3E5 F56B 6D92 0D30"
    expected_checksum: str = "9846e3c5fab9f0547400b4d2c017992f914222b3fd1f8eee6c7dc6bc5e59f9f0"
    signer_identity: str = "Damien Miller <djm@mindrot.org>"

    @property
    def normalized_fingerprint(self) -> str:
        return normalize_fingerprint(self.expected_fingerprint)

    @property
    def normalized_checksum(self) -> str:
        return self.expected_checksum.strip().lower()


@dataclass(frozen=True)
class UpstreamLocation:
    """Fixed upstream publisher location."""
    release_key_url: str = "https://ftp.openbsd.org/pub/OpenBSD/OpenSSH/RELEASE_KEY.asc"
    portable_base_url: str = "https://ftp.openbsd.org/pub/OpenBSD/OpenSSH/portable/"
    timeout: int = 60

    def portable_url(self, file_name: str) -> str:
        return self.portable_base_url.rstrip("/") + "/" + file_name


@dataclass(frozen=True)
class AccountSpec:
    """Privilege-separated service account and its home layout."""
    username: str = "ssh-mitm"
    home: Path = Path("/home/ssh-mitm")
    shell: str = "/bin/bash"

    @property
    def bin_dir(self) -> Path:
        return self.home / "bin"

    @property
    def etc_dir(self) -> Path:
        return self.home / "etc"

    @property
    def tmp_dir(self) -> Path:
        return self.home / "tmp"

    @property
    def empty_dir(self) -> Path:
        return self.home / "empty"

    @property
    def run_script(self) -> Path:
        return self.home / "run.sh"

    @property
    def sshd_binary(self) -> Path:
        return self.bin_dir / "sshd_mitm"

    @property
    def ssh_binary(self) -> Path:
        return self.bin_dir / "ssh"

    @property
    def sshd_config(self) -> Path:
        return self.etc_dir / "sshd_config"


@dataclass
class ProvisioningContext:
    """Everything a stage needs, threaded explicitly through the pipeline."""
    work_dir: Path
    artifact: ArtifactSpec = field(default_factory=ArtifactSpec)
    pin: TrustPin = field(default_factory=TrustPin)
    upstream: UpstreamLocation = field(default_factory=UpstreamLocation)
    account: AccountSpec = field(default_factory=AccountSpec)
    host_variant: HostVariant = HostVariant.DEBIAN
    force: bool = False
    apparmor_target_dir: Path = Path("/etc/apparmor.d")
    build_jobs: int = field(default_factory=lambda: os.cpu_count() or 1)

    @property
    def apparmor_source_dir(self) -> Path:
        return self.work_dir / "apparmor"

    @property
    def keyring_dir(self) -> Path:
        return self.work_dir / ".gnupg-release"

    @property
    def archive_path(self) -> Path:
        return self.work_dir / self.artifact.source_archive

    @property
    def signature_path(self) -> Path:
        return self.work_dir / self.artifact.signature_file

    @property
    def release_key_path(self) -> Path:
        return self.work_dir / self.artifact.release_key_file

    @property
    def patch_path(self) -> Path:
        return self.work_dir / self.artifact.patch_file

    @property
    def source_tree(self) -> Path:
        return self.work_dir / self.artifact.source_dir

    @property
    def mitm_tree(self) -> Path:
        return self.work_dir / self.artifact.mitm_dir


_SECTIONS = {
    "artifact": ArtifactSpec,
    "trust": TrustPin,
    "upstream": UpstreamLocation,
    "account": AccountSpec,
}


def _apply_section(name: str, default: Any, overrides: Any) -> Any:
    if not isinstance(overrides, dict):
        raise PreconditionError(f"Configuration section '{name}' must be a mapping")

    known = {f.name for f in fields(default)}
    unknown = sorted(set(overrides) - known)
    if unknown:
        raise PreconditionError(
            f"Unknown key(s) in configuration section '{name}': {', '.join(unknown)}"
        )

    values: Dict[str, Any] = {}
    for key, value in overrides.items():
        if key == "home":
            value = Path(value)
        elif key == "timeout":
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise PreconditionError(f"Configuration key '{name}.timeout' must be an integer: {value!r}")
        else:
            value = str(value)
        values[key] = value
    return replace(default, **values)


def _validate_pin(pin: TrustPin) -> None:
    if not _FINGERPRINT_RE.match(pin.normalized_fingerprint):
        raise PreconditionError(
            f"Pinned release key fingerprint is not a 40-digit hex fingerprint: {pin.expected_fingerprint!r}"
        )
    if not _CHECKSUM_RE.match(pin.normalized_checksum):
        raise PreconditionError(
            f"Pinned checksum is not a full SHA-256 hex digest: {pin.expected_checksum!r}"
        )
    if not pin.signer_identity.strip():
        raise PreconditionError("Pinned signer identity is empty")


def _validate_profiles(context: ProvisioningContext) -> None:
    account = context.account
    profiles = [context.apparmor_source_dir / profile_name(b) for b in (account.sshd_binary, account.ssh_binary)]
    missing = [p for p in profiles if not p.is_file()]
    if missing:
        raise PreconditionError(
            f"No AppArmor profile shipped for the {account.home} layout: "
            + ", ".join(str(p) for p in missing),
            remediation=f"Provide matching profiles in {context.apparmor_source_dir} or keep the default account home.",
        )


def load_config(config_path: Optional[Path]) -> Dict[str, Any]:
    """
    Load and structurally validate the YAML configuration.

    Returns:
        Mapping of section name to frozen dataclass (only sections present)

    Raises:
        PreconditionError: If the file is unreadable, malformed or has unknown keys
    """
    if config_path is None:
        return {}

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f) or {}
    except OSError as e:
        raise PreconditionError(f"Cannot read configuration {config_path}: {e}")
    except yaml.YAMLError as e:
        raise PreconditionError(f"Configuration {config_path} is not valid YAML: {e}")

    if not isinstance(raw, dict):
        raise PreconditionError(f"Configuration {config_path} must be a mapping")

    unknown = sorted(set(raw) - set(_SECTIONS))
    if unknown:
        raise PreconditionError(f"Unknown configuration section(s): {', '.join(unknown)}")

    return {
        name: _apply_section(name, _SECTIONS[name](), overrides)
        for name, overrides in raw.items()
    }


def _resolve_config_path(work_dir: Path) -> Optional[Path]:
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        path = Path(env_path)
        if not path.is_file():
            raise PreconditionError(f"{CONFIG_ENV_VAR} points to a missing file: {path}")
        return path

    default_path = work_dir / CONFIG_FILE_NAME
    return default_path if default_path.is_file() else None


def resolve_work_dir() -> Path:
    """Working directory holding the patch file and apparmor/ profiles."""
    return Path(os.environ.get(WORKDIR_ENV_VAR) or os.getcwd()).resolve()


def build_context(work_dir: Path, force: bool = False,
                  host_variant: Optional[HostVariant] = None) -> ProvisioningContext:
    """
    Build the provisioning context for one pipeline run.

    Args:
        work_dir: Pipeline working directory
        force: Whether Environment Reset may delete an existing account
        host_variant: Pre-selected variant (detected when None)

    Raises:
        PreconditionError: If configuration is invalid
    """
    sections = load_config(_resolve_config_path(work_dir))

    context = ProvisioningContext(
        work_dir=Path(work_dir),
        artifact=sections.get("artifact", ArtifactSpec()),
        pin=sections.get("trust", TrustPin()),
        upstream=sections.get("upstream", UpstreamLocation()),
        account=sections.get("account", AccountSpec()),
        host_variant=host_variant if host_variant is not None else detect_host_variant(),
        force=force,
    )
    _validate_pin(context.pin)
    _validate_profiles(context)
    return context
