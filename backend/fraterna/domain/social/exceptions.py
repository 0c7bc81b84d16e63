"""Domain-level exceptions for friendships and the allowlist."""

from __future__ import annotations

from fraterna.infra.rate_limit import RateLimitExceeded


class SocialError(Exception):
    """Base class for social feature errors."""

    reason: str = "unknown"

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or self.reason)
        if reason:
            self.reason = reason


class RequestConflict(SocialError):
    reason = "conflict"


class RequestAlreadyPending(RequestConflict):
    reason = "already_pending"


class AlreadyFriends(RequestConflict):
    reason = "already_friends"


class SelfRequest(RequestConflict):
    reason = "self_request"


class RequestForbidden(SocialError):
    reason = "forbidden"


class RequestNotFound(SocialError):
    reason = "not_found"


class RequestNotPending(SocialError):
    reason = "not_pending"


class SocialRateLimitExceeded(RateLimitExceeded):
    """Raised when friendship actions hit a quota."""

    def __init__(self, reason: str = "rate_limited") -> None:
        super().__init__(reason)
        self.reason = reason
