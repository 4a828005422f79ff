"""
Provisioning module for hostprep.

Provides the filesystem gateway used to lay out server environments.
"""

from .filesystem import Filesystem

__all__ = ['Filesystem']
