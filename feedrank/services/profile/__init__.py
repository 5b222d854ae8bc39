"""
Tag preference profiles.

Profiles grow with every like and are blended with recent activity on read.
"""

from feedrank.services.profile.service import TagProfileService
from feedrank.services.profile.store import RedisProfileStore

__all__ = ["TagProfileService", "RedisProfileStore"]
