"""
Exception Classes - Strongly typed exception hierarchy.

Every failure the core can signal maps to exactly one of these kinds.
"""


class SupportDeskError(Exception):
    """Base exception for all support desk errors."""

    kind = "error"
    status_code = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class AccessDeniedError(SupportDeskError):
    """
    Raised for a bad or missing credential.

    Covers unknown users, password mismatch and stale rotating hashes alike;
    the message never says which.
    """

    kind = "access_denied"
    status_code = 401

    def __init__(self, message: str = "Access Denied") -> None:
        super().__init__(message)


class InvalidLinkError(SupportDeskError):
    """Raised when a one-time link is malformed, mis-signed, expired or consumed."""

    kind = "invalid_link"
    status_code = 400

    def __init__(self, message: str = "Invalid or expired magic link") -> None:
        super().__init__(message)


class ConflictError(SupportDeskError):
    """Raised when a resource already exists (duplicate email on signup)."""

    kind = "conflict"
    status_code = 409


class LinkDeliveryError(ConflictError):
    """Raised when the mail collaborator fails to deliver a one-time link."""

    def __init__(self, message: str = "Failed to send magic link") -> None:
        super().__init__(message)


class NotFoundError(SupportDeskError):
    """Raised when a ticket or user doesn't exist."""

    kind = "not_found"
    status_code = 404

    def __init__(self, resource: str, resource_id: object) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class ForbiddenError(SupportDeskError):
    """Raised when an authenticated user is not allowed to perform an action."""

    kind = "forbidden"
    status_code = 403
