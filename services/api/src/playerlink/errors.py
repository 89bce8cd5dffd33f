"""Domain error taxonomy shared by the identity, session and verification services."""

from __future__ import annotations


class IdentityError(Exception):
    """Base class for all playerlink domain errors."""

    status_code = 500


class MissingIdentityError(IdentityError):
    """A required identity field could not be resolved from any request source."""

    status_code = 400

    def __init__(self, field: str) -> None:
        super().__init__(f"Missing {field.replace('_', ' ')}.")
        self.field = field


class SessionInvalidError(IdentityError):
    """The presented session is expired, revoked or superseded by a newer login."""

    status_code = 401

    def __init__(self, message: str = "Signed out: login from another device.") -> None:
        super().__init__(message)


class NotFoundError(IdentityError):
    """A referenced player, device or session no longer exists.

    Usually the result of a racing merge; callers should re-resolve identity
    rather than retry with the same context.
    """

    status_code = 404

    def __init__(self, kind: str, ident: object = None) -> None:
        detail = f"{kind.capitalize()} not found" if ident is None else f"{kind.capitalize()} {ident} not found"
        super().__init__(detail)
        self.kind = kind
        self.ident = ident


class ConflictError(IdentityError):
    """A uniqueness invariant would be violated."""

    status_code = 409

    def __init__(self, code: str, message: str | None = None) -> None:
        super().__init__(message or code.replace("_", " ").capitalize())
        self.code = code


class GoneError(IdentityError):
    """A one-time token or verification link is expired or already used."""

    status_code = 410

    def __init__(self, message: str = "Link expired or already used.") -> None:
        super().__init__(message)


class TransientStoreError(IdentityError):
    """The store is unavailable or the transaction could not be serialized. Safe to retry."""

    status_code = 503


class MailDeliveryError(IdentityError):
    """The mail provider did not accept the message."""

    status_code = 502


class EmailRateLimitedError(MailDeliveryError):
    """Too many messages were sent to this address recently."""

    status_code = 429
