class FeedRankError(Exception):
    """Base error for the ranking engine."""


class UpstreamUnavailable(FeedRankError):
    """A mandatory collaborator (content store, profile store, like log) failed or timed out."""

    def __init__(self, collaborator: str, message: str = ""):
        self.collaborator = collaborator
        self.message = message or f"{collaborator} is unavailable"
        super().__init__(self.message)


class CacheUnavailable(FeedRankError):
    """Cache backend is not configured or unreachable. Never escapes the cache layer."""
