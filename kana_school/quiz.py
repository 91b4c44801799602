"""Quiz sessions: creation, guesses, finishing and the remaining-kana query."""

import logging
import math
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError

from . import db
from .results import Err, ErrorKind, Ok, Result, not_found, storage_error, validation_error
from .stats import percentage
from .structured import AuthUser, SessionConfig

logger = logging.getLogger(__name__)

SESSION_NOT_FOUND = "Session not found"


def _coerce_int(value: Any) -> int:
    """Number-like coercion: booleans, numbers and numeric strings that fit a column."""
    number = _to_int(value)
    if not db.fits_integer_column(number):
        raise ValueError(f"out of range: {value!r}")
    return number


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"not a finite number: {value!r}")
        return int(value)
    if isinstance(value, str):
        return int(float(value.strip()))
    raise ValueError(f"not a number: {value!r}")


def parse_session_config(payload: Optional[Mapping[str, Any]]) -> Result:
    """Build a ``SessionConfig`` from a request body. Absent keys default to 1."""
    payload = payload or {}
    values: Dict[str, int] = {}
    for key in ("hiragana", "katakana", "mods", "mult"):
        raw = payload.get(key)
        if raw is None:
            values[key] = 1
            continue
        try:
            values[key] = _coerce_int(raw)
        except (ValueError, OverflowError):
            return validation_error(f"{key} must be a number")

    if values["mult"] < 1:
        return validation_error("mult must be at least 1")

    return Ok(SessionConfig(
        hiragana=1 if values["hiragana"] else 0,
        katakana=1 if values["katakana"] else 0,
        mods=1 if values["mods"] else 0,
        mult=values["mult"],
    ))


def create_session(store: db.Store, user_id: int, config: SessionConfig) -> Result:
    try:
        session_id = db.create_quiz_session(
            store, user_id,
            hiragana=config.hiragana,
            katakana=config.katakana,
            mods=config.mods,
            mult=config.mult,
        )
    except SQLAlchemyError:
        logger.exception("Failed to create session for user %d", user_id)
        return storage_error("Failed to create session")
    logger.debug("User %d started session %d with %s", user_id, session_id, config)
    return Ok(session_id)


def get_owned_session(store: db.Store, session_id: int, user_id: int) -> Result:
    """The session if it exists and belongs to ``user_id``. Non-owners get the same 404."""
    if not db.fits_integer_column(session_id):
        return not_found(SESSION_NOT_FOUND)
    quiz = db.get_user_session(store, session_id, user_id)
    if quiz is None:
        return not_found(SESSION_NOT_FOUND)
    return Ok(quiz)


def record_guess(store: db.Store, session_id: int, kana_id: Any, is_correct: Any) -> Result:
    """Append a guess. Ownership of ``session_id`` must already be checked."""
    if isinstance(kana_id, bool) or not isinstance(kana_id, int):
        return validation_error("kanaId must be an integer")
    if not isinstance(is_correct, bool):
        return validation_error("isCorrect must be a boolean")
    if not db.fits_integer_column(kana_id) or db.get_kana(store, kana_id) is None:
        return validation_error("Unknown kana")

    try:
        guess = db.record_guess(store, session_id, kana_id, is_correct)
    except SQLAlchemyError:
        logger.exception("Failed to record guess of kana %d in session %d", kana_id, session_id)
        return storage_error("Failed to record guess")
    return Ok(guess)


def finish_session(store: db.Store, session_id: int) -> Result:
    # Calling this again just moves finished_at forward
    try:
        db.finish_quiz_session(store, session_id)
    except SQLAlchemyError:
        logger.exception("Failed to finish session %d", session_id)
        return storage_error("Failed to finish session")
    return Ok(None)


def update_session_visibility(store: db.Store, session_id: int, is_public: bool) -> Result:
    try:
        db.update_session_visibility(store, session_id, is_public)
    except SQLAlchemyError:
        logger.exception("Failed to update visibility of session %d", session_id)
        return storage_error("Failed to update session")
    return Ok(None)


def remaining_kanas(store: db.Store, session_id: int, quiz: db.QuizSession) -> List[db.Kana]:
    """Kanas still to be quizzed, freshly shuffled on every call."""
    return db.get_remaining_kanas_for_session(store, session_id, quiz)


def guessed_kanas(store: db.Store, session_id: int) -> List[Dict[str, Any]]:
    return db.get_session_guessed_kanas(store, session_id)


def view_session(store: db.Store, session_id: int, viewer: Optional[AuthUser]) -> Result:
    """Everything needed to display a session, subject to who is looking.

    Ongoing sessions are visible to their owner only. Finished sessions are
    visible to anyone when public and to the owner otherwise.
    """
    if not db.fits_integer_column(session_id):
        return not_found(SESSION_NOT_FOUND)
    quiz = db.get_quiz_session(store, session_id)
    if quiz is None:
        return not_found(SESSION_NOT_FOUND)

    is_owner = viewer is not None and viewer.id == quiz.user_id
    is_finished = quiz.is_finished

    if not is_finished and not is_owner:
        return Err(ErrorKind.PERMISSION, "Cannot view ongoing sessions that are not yours")
    if is_finished and not quiz.is_public and not is_owner:
        return Err(ErrorKind.PERMISSION, "This session is private")

    remaining: List[Dict[str, Any]] = []
    if not is_finished:
        remaining = [kana.to_dict() for kana in remaining_kanas(store, session_id, quiz)]

    return Ok({
        "session": quiz.to_dict(),
        "remainingKanas": remaining,
        "guessedKanas": guessed_kanas(store, session_id),
        "multiplier": quiz.mult,
        "isFinished": is_finished,
        "isOwner": is_owner,
    })


def _with_percentage(store: db.Store, sessions: List[db.QuizSession]) -> List[Dict[str, Any]]:
    enriched = []
    for quiz in sessions:
        stats = db.get_session_answer_stats(store, quiz.id)
        entry = quiz.to_dict()
        entry["percentage"] = percentage(stats.correct, stats.total)
        entry["lastInteraction"] = entry["updated_at"]
        entry["isFinished"] = quiz.is_finished
        enriched.append(entry)
    return enriched


def my_sessions(store: db.Store, user_id: int) -> Dict[str, List[Dict[str, Any]]]:
    """The user's ten most recently touched unfinished and finished sessions."""
    return {
        "unfinishedSessions": _with_percentage(store, db.get_user_unfinished_sessions(store, user_id)),
        "finishedSessions": _with_percentage(store, db.get_user_finished_sessions(store, user_id)),
    }
