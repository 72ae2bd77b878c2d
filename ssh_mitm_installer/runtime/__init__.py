# Path and File Name : /opt/ssh-mitm/rebuild/ssh_mitm_installer/runtime/__init__.py
# Author: nXxBku0CKFAJCBN3X1g3bQk7OxYQylg8CMw1iGsq7gU
# Details of functionality of this file: Runtime deployment package initialization

"""
Runtime Deployment Package: Deploys sshd_mitm into the ssh-mitm account.
"""

from .account_deployer import AccountDeployer

__all__ = ['AccountDeployer']
