"""
Services for match coordination.

Support services shared by the operations layer: per-match locking,
notification fan-out and the periodic housekeeping sweeps.
"""

from .base import BaseService
from .match_locks import MatchLockRegistry
from .notifications import NotificationService

__all__ = ['BaseService', 'MatchLockRegistry', 'NotificationService']
