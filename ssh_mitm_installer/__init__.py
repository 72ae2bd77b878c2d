# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/__init__.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Package initialization for the SSH MITM provisioning installer

"""
SSH MITM Installer Package

Provisions the ssh-mitm service account with a verified, patched and
AppArmor-confined OpenSSH build.

Entry points:
- python3 -m ssh_mitm_installer [--force]
- ssh-mitm-install [--force]
"""

__version__ = "1.0.0"
