"""Account errors raised by the reconciler and the user stores."""

from __future__ import annotations


class AccountError(Exception):
    """Base error; the HTTP layer renders `message` with `status_code`."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AccountError):
    """Submitted data is invalid (e.g. mismatched confirmation, missing field)."""


class ConflictError(AccountError):
    """Username and/or email already belong to another account."""


class AuthenticationError(AccountError):
    """Unknown account or wrong password."""


class NotFoundError(AccountError):
    status_code = 404


class OAuthIdentityError(AccountError):
    """
    Provider identity could not be mapped onto a local account.

    Never shown inline; the caller redirects to the login page.
    """
