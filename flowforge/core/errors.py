"""
Session error taxonomy.

Raised by vertical handlers when a lookup comes back empty or a status flag
forbids the turn. Caught only by the voice route, which logs the reason and
answers with a generic apology. The reason never reaches the caller.
"""


class SessionError(Exception):
    """Base for every failure that stops a turn before the agent runs."""

    reason: str = "session error"

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__(f"{self.reason}: {detail}" if detail else self.reason)


class SessionContextMissing(SessionError):
    reason = "Session context not found"


class InvalidToken(SessionError):
    reason = "Invalid session token"


class SessionDeactivated(SessionError):
    reason = "Session has been deactivated"


class TenantNotFound(SessionError):
    reason = "Tenant not found"


class TenantInactive(SessionError):
    reason = "Tenant is not active"


class NoActiveSession(SessionError):
    reason = "No active session found"


class SessionDataIncomplete(SessionError):
    reason = "Session data incomplete"
