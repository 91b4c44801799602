"""Account operations: signup, login, profile changes and soft deletes.

Every operation returns ``Ok`` or ``Err``. Only the public ``AuthUser`` view
ever leaves this module; password digests stay inside.
"""

import logging
import re
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .passwords import hash_password, verify_password
from .results import Err, ErrorKind, Ok, Result, not_found, storage_error, validation_error
from .structured import AuthUser

logger = logging.getLogger(__name__)

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

INVALID_USERNAME = "Username must be URL-friendly (alphanumeric, hyphens, underscores only)"
INVALID_CREDENTIALS = "Invalid username or password"
USERNAME_TAKEN = "Username already taken"


def is_valid_username(name: Any) -> bool:
    if not isinstance(name, str) or not name.strip():
        return False
    return USERNAME_PATTERN.fullmatch(name) is not None


def is_valid_password(password: Any) -> bool:
    return isinstance(password, str) and len(password) > 0


def load_user(store: db.Store, user_id: int) -> Optional[AuthUser]:
    """Fresh non-deleted view of a user, used to re-validate the identity cookie."""
    return db.get_user_by_id(store, user_id)


def signup(store: db.Store, name: str, password: str) -> Result:
    if not is_valid_username(name):
        return validation_error(INVALID_USERNAME)
    if not is_valid_password(password):
        return validation_error("Password cannot be empty")

    if db.username_is_taken(store, name):
        return Err(ErrorKind.CONFLICT, USERNAME_TAKEN)

    try:
        user = db.create_user(store, name, hash_password(password))
    except SQLAlchemyError:
        logger.exception("Failed to create user %r", name)
        return storage_error("Failed to create user")
    logger.info("Created user %s (id=%d)", user.name, user.id)
    return Ok(user)


def login(store: db.Store, name: str, password: str) -> Result:
    # Same message for unknown user and wrong password
    found = db.get_user_with_password(store, name)
    if found is None:
        return Err(ErrorKind.AUTHENTICATION, INVALID_CREDENTIALS)
    user, password_hash = found
    if not verify_password(password, password_hash):
        return Err(ErrorKind.AUTHENTICATION, INVALID_CREDENTIALS)
    return Ok(user)


def update_password(store: db.Store, user_id: int, old_password: str, new_password: str) -> Result:
    if not is_valid_password(new_password):
        return validation_error("New password cannot be empty")

    password_hash = db.get_user_password_hash(store, user_id)
    if password_hash is None:
        return not_found("User not found")
    if not verify_password(old_password, password_hash):
        return validation_error("Current password is incorrect")

    try:
        db.update_user_password(store, user_id, hash_password(new_password))
    except SQLAlchemyError:
        logger.exception("Failed to update password for user %d", user_id)
        return storage_error("Failed to update password")
    return Ok(None)


def update_username(store: db.Store, user_id: int, new_name: str) -> Result:
    if not is_valid_username(new_name):
        return validation_error(INVALID_USERNAME)
    if db.username_is_taken(store, new_name, exclude_user_id=user_id):
        return Err(ErrorKind.CONFLICT, USERNAME_TAKEN)

    try:
        db.update_username(store, user_id, new_name)
    except SQLAlchemyError:
        logger.exception("Failed to rename user %d", user_id)
        return storage_error("Failed to update username")

    user = db.get_user_by_id(store, user_id)
    if user is None:
        return storage_error("Failed to update username")
    return Ok(user)


def update_visibility(store: db.Store, user_id: int, is_public: bool) -> Result:
    try:
        db.update_user_visibility(store, user_id, is_public)
    except SQLAlchemyError:
        logger.exception("Failed to update visibility for user %d", user_id)
        return storage_error("Failed to update profile visibility")

    user = db.get_user_by_id(store, user_id)
    if user is None:
        return not_found("User not found")
    return Ok(user)


def delete_account(store: db.Store, user_id: int, password: str) -> Result:
    password_hash = db.get_user_password_hash(store, user_id)
    if password_hash is None:
        return not_found("User not found")
    if not verify_password(password, password_hash):
        return validation_error("Password is incorrect")

    try:
        db.soft_delete_user(store, user_id)
    except SQLAlchemyError:
        logger.exception("Failed to delete user %d", user_id)
        return storage_error("Failed to delete account")
    logger.info("Soft-deleted user %d", user_id)
    return Ok(None)


def delete_session(store: db.Store, user_id: int, session_id: int) -> Result:
    quiz = db.get_quiz_session(store, session_id) if db.fits_integer_column(session_id) else None
    if quiz is None:
        return not_found("Session not found")
    if quiz.user_id != user_id:
        return Err(ErrorKind.PERMISSION, "You do not have permission to delete this session")

    try:
        db.soft_delete_session(store, session_id)
    except SQLAlchemyError:
        logger.exception("Failed to delete session %d", session_id)
        return storage_error("Failed to delete session")
    return Ok(None)
