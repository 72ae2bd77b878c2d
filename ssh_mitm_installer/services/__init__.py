# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/services/__init__.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: AppArmor sandbox package initialization

from .apparmor_installer import AppArmorInstaller, SandboxReport

__all__ = ['AppArmorInstaller', 'SandboxReport']
