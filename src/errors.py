"""
Application error types.

Every error raised from a feature module carries the HTTP status the API
answers with; the app factory turns them into JSON responses.
"""


class HouseholdError(Exception):
    """Base class for errors that are reported back to the client."""

    status_code = 500

    def __init__(self, message: str, details: list[str] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(HouseholdError):
    status_code = 400


class AuthenticationError(HouseholdError):
    status_code = 401


class PermissionDeniedError(HouseholdError):
    status_code = 403


class NotFoundError(HouseholdError):
    status_code = 404


class ConflictError(HouseholdError):
    status_code = 409


class InvalidTransitionError(ConflictError):
    """A borrow request was moved along an edge its workflow does not allow."""

    def __init__(self, current: str, action: str):
        super().__init__(f"Cannot {action} a request that is {current}")
        self.current = current
        self.action = action


class RateLimitError(HouseholdError):
    status_code = 429
