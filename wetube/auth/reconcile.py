"""
Identity reconciliation: map a login, signup or OAuth assertion onto one local user.

All functions take the user store explicitly and raise `AccountError` subclasses; the
HTTP layer decides how each error is shown.
"""

from __future__ import annotations

import logging
from typing import Optional

from wetube.auth.errors import (
    AuthenticationError,
    ConflictError,
    NotFoundError,
    OAuthIdentityError,
    ValidationError,
)
from wetube.auth.models import ProviderProfile, User
from wetube.auth.passwords import DEFAULT_ROUNDS, hash_password, verify_password
from wetube.auth.util import clean_text, is_user_id, new_user_id, optional_text
from wetube.store.base import DUPLICATE_MESSAGE, UserStore

logger = logging.getLogger(__name__)

NO_SUCH_ACCOUNT = "An account with this username does not exists."
WRONG_PASSWORD = "Wrong password"
CONFIRMATION_MISMATCH = "Password confirmation does not match."
ALREADY_TAKEN = DUPLICATE_MESSAGE
EDIT_CONFLICT = "This email/username already exists."
CANNOT_CHANGE_PASSWORD = "Can't change password."
CURRENT_PASSWORD_INCORRECT = "The current password is incorrect"
PASSWORD_UNCHANGED = "The old password equals new password"
NEW_PASSWORD_MISMATCH = "The password does not match the confirmation"
USER_NOT_FOUND = "User not found."


def reconcile_oauth_identity(store: UserStore, profile: ProviderProfile) -> User:
    """
    Find or create the local user for a verified provider email.

    An existing account (local or social) is returned as-is; provider name/avatar are
    not merged into it. A new account is social-only with an empty password hash.
    """
    email = clean_text(profile.email)
    if not email:
        raise OAuthIdentityError(f"{profile.provider}: no verified primary email")

    existing = store.find_one(email=email)
    if existing is not None:
        logger.info("OAuth login matched existing user (provider=%s id=%s)", profile.provider, existing.id)
        return existing

    username = clean_text(profile.handle)
    user = User(
        id=new_user_id(),
        name=clean_text(profile.name) or username,
        username=username,
        email=email,
        password_hash="",
        social_only=True,
        avatar_url=optional_text(profile.avatar_url),
        location=optional_text(profile.location),
    )
    try:
        created = store.create(user)
    except (ConflictError, ValidationError) as e:
        # The provider handle may already be someone else's username; there is no
        # automatic rename, so the attempt fails.
        logger.warning(
            "OAuth signup rejected (provider=%s username=%s): %s", profile.provider, username, e.message
        )
        raise OAuthIdentityError(e.message) from e
    logger.info("Created social-only user (provider=%s id=%s)", profile.provider, created.id)
    return created


def reconcile_local_identity(store: UserStore, username: str, password: str) -> User:
    """Authenticate a username/password pair; social-only accounts never match."""
    user = store.find_one(username=clean_text(username), social_only=False)
    if user is None:
        raise AuthenticationError(NO_SUCH_ACCOUNT)
    if not verify_password(password or "", user.password_hash):
        raise AuthenticationError(WRONG_PASSWORD)
    return user


def create_local_identity(
    store: UserStore,
    *,
    name: str,
    username: str,
    email: str,
    password: str,
    password2: str,
    location: Optional[str] = None,
    rounds: int = DEFAULT_ROUNDS,
) -> User:
    """
    Sign up a local (password) account.

    The existence check covers username OR email; the store's own uniqueness check
    catches a concurrent signup that passes it too.
    """
    if (password or "") != (password2 or ""):
        raise ValidationError(CONFIRMATION_MISMATCH)

    username = clean_text(username)
    email = clean_text(email)
    if username and email and store.exists_any(username=username, email=email):
        raise ConflictError(ALREADY_TAKEN)
    if not password:
        raise ValidationError("User validation failed: password required")

    user = User(
        id=new_user_id(),
        name=clean_text(name),
        username=username,
        email=email,
        password_hash=hash_password(password, rounds=rounds),
        social_only=False,
        location=optional_text(location),
    )
    # Store-level ValidationError / ConflictError propagate with their own message.
    created = store.create(user)
    logger.info("Created local user (id=%s)", created.id)
    return created


def update_profile(
    store: UserStore,
    user_id: str,
    *,
    name: str,
    email: str,
    username: str,
    location: Optional[str] = None,
    avatar_url: Optional[str] = None,
) -> User:
    """
    Apply a profile edit.

    The new email/username may be the user's own; belonging to anyone else is a single
    combined conflict. A missing `avatar_url` keeps the current avatar.
    """
    current = store.get(user_id)
    if current is None:
        raise NotFoundError(USER_NOT_FOUND)

    email = clean_text(email)
    username = clean_text(username)

    by_email = store.find_one(email=email) if email else None
    by_username = store.find_one(username=username) if username else None
    if (by_email is not None and by_email.id != user_id) or (by_username is not None and by_username.id != user_id):
        raise ConflictError(EDIT_CONFLICT)

    new_name = clean_text(name)
    if not (new_name and email and username):
        raise ValidationError("User validation failed: name, email and username are required")

    try:
        updated = store.update(
            user_id,
            name=new_name,
            email=email,
            username=username,
            location=optional_text(location),
            avatar_url=optional_text(avatar_url) or current.avatar_url,
        )
    except ConflictError as e:
        raise ConflictError(EDIT_CONFLICT) from e
    if updated is None:
        raise NotFoundError(USER_NOT_FOUND)
    return updated


def change_password(
    store: UserStore,
    user_id: str,
    *,
    old: str,
    new_password: str,
    new_password_confirmation: str,
    rounds: int = DEFAULT_ROUNDS,
) -> User:
    """
    Change a local account's password.

    Checks run in order (current password, unchanged, confirmation); any failure leaves
    the stored hash untouched. The caller must end the session on success.
    """
    user = store.get(user_id)
    if user is None:
        raise NotFoundError(USER_NOT_FOUND)
    if user.social_only:
        raise ValidationError(CANNOT_CHANGE_PASSWORD)
    if not verify_password(old or "", user.password_hash):
        raise ValidationError(CURRENT_PASSWORD_INCORRECT)
    if (old or "") == (new_password or ""):
        raise ValidationError(PASSWORD_UNCHANGED)
    if (new_password or "") != (new_password_confirmation or ""):
        raise ValidationError(NEW_PASSWORD_MISMATCH)

    updated = store.update(user_id, password_hash=hash_password(new_password, rounds=rounds))
    if updated is None:
        raise NotFoundError(USER_NOT_FOUND)
    logger.info("Password changed (id=%s)", user_id)
    return updated


def get_profile(store: UserStore, user_id: str) -> User:
    if not is_user_id(user_id):
        raise NotFoundError(USER_NOT_FOUND)
    user = store.get(user_id)
    if user is None:
        raise NotFoundError(USER_NOT_FOUND)
    return user
