"""
Resolution of the non-root user that provisioned files should belong to.
"""

import getpass
import os
from typing import Mapping, Optional


def is_root() -> bool:
    """Return True when the process runs with an effective uid of 0."""
    return os.geteuid() == 0


def effective_user() -> str:
    """Name of the account the process is actually running as."""
    return getpass.getuser()


class CurrentUser:
    """
    Zero-argument accessor for the intended unprivileged account.

    When provisioning runs under sudo the invoking user is taken from
    SUDO_USER, otherwise USER is used.
    """

    def __init__(self, override: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Args:
            override: Fixed user name, takes precedence over the environment
            environ: Environment mapping to read (defaults to os.environ)
        """
        self.override = override
        self.environ = os.environ if environ is None else environ

    def __call__(self) -> str:
        if self.override:
            return self.override

        for key in ("SUDO_USER", "USER"):
            name = self.environ.get(key)
            if name:
                return name

        return effective_user()
