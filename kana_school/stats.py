"""Read-only aggregates for the home, sessions, users and profile pages."""

import datetime
import math
from typing import Any, Dict, Optional

from . import db
from .results import Ok, Result, not_found
from .structured import AuthUser

RECENT_WINDOW = datetime.timedelta(days=30)
PROFILE_PAGE_SIZE = 10


def percentage(part: int, total: int) -> int:
    """``part / total`` as a whole percentage, rounding halves up. 0 when there is no total."""
    if not total or total <= 0:
        return 0
    return int(math.floor(part * 100 / total + 0.5))


def _recent_start(now: Optional[datetime.datetime] = None) -> datetime.datetime:
    return (now or db.utcnow()) - RECENT_WINDOW


def home_stats(store: db.Store, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    since = _recent_start(now)
    all_time = db.get_all_time_answer_stats(store)
    last_month = db.get_date_range_answer_stats(store, since)
    return {
        "allTime": {
            "userCount": db.get_total_user_count(store),
            "sessionCount": db.get_total_session_count(store),
            "correctPercentage": all_time.percentage,
        },
        "lastMonth": {
            "accountsCreated": db.get_users_created_since(store, since),
            "sessionCount": db.get_sessions_created_since(store, since),
            "correctPercentage": last_month.percentage,
        },
    }


def sessions_page_stats(store: db.Store, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    since = _recent_start(now)
    kana_ratio = db.get_kana_ratio_stats(store)
    kana_total = kana_ratio.hiragana_count + kana_ratio.katakana_count
    diacritics = db.get_diacritics_ratio_stats(store)
    diacritics_total = diacritics.no_diacritics_count + diacritics.diacritics_count

    return {
        "sessions": {
            "total": db.get_total_session_count(store),
            "lastMonth": db.get_sessions_created_since(store, since),
        },
        "correctAnswers": {
            "allTime": db.get_all_time_answer_stats(store).percentage,
            "lastMonth": db.get_date_range_answer_stats(store, since).percentage,
        },
        "kanaRatio": {
            "hiragana": percentage(kana_ratio.hiragana_count, kana_total),
            "katakana": percentage(kana_ratio.katakana_count, kana_total),
        },
        "diacriticsRatio": {
            "diacritics": percentage(diacritics.diacritics_count, diacritics_total),
            "noDiacritics": percentage(diacritics.no_diacritics_count, diacritics_total),
        },
    }


def users_page_stats(store: db.Store, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
    return {
        "totalUsers": db.get_total_user_count(store),
        "usersLastMonth": db.get_users_created_since(store, _recent_start(now)),
        "averageSessionsPerUser": db.get_average_sessions_per_user(store),
        "maxSessionsForUser": db.get_max_sessions_for_any_user(store),
    }


def user_profile(store: db.Store, name: str, viewer: Optional[AuthUser],
                 page: int = 0, now: Optional[datetime.datetime] = None) -> Result:
    """Profile page data. A private profile looks exactly like a missing one to others."""
    profile = db.get_user_public_profile(store, name)
    if profile is None:
        return not_found("User not found")

    is_own_profile = viewer is not None and viewer.id == profile.id
    if not profile.is_public and not is_own_profile:
        return not_found("User profile is private")

    all_time = db.get_user_answer_stats(store, profile.id)
    last_month = db.get_user_date_range_answer_stats(store, profile.id, _recent_start(now))

    sessions = db.get_user_sessions_with_stats(
        store, profile.id,
        limit=PROFILE_PAGE_SIZE,
        offset=page * PROFILE_PAGE_SIZE,
        is_own_profile=is_own_profile,
    )
    session_list = [
        {
            "id": s["id"],
            "hiragana": s["hiragana"],
            "katakana": s["katakana"],
            "mods": s["mods"],
            "mult": s["mult"],
            "is_public": s["is_public"],
            "created_at": s["created_at"],
            "finished_at": s["finished_at"],
            "percentage": percentage(s["correct_guesses"], s["total_guesses"]),
            "isFinished": s["finished_at"] is not None,
        }
        for s in sessions
    ]

    return Ok({
        "user": {
            "id": profile.id,
            "name": profile.name,
            "is_public": profile.is_public,
            "created_at": profile.created_at,
        },
        "stats": {
            "totalSessions": db.get_user_session_count(store, profile.id),
            "finishedSessions": db.get_finished_session_count(store, profile.id),
            "allTimePercentage": all_time.percentage,
            "lastMonthPercentage": last_month.percentage,
        },
        "sessions": session_list,
        "isOwnProfile": is_own_profile,
    })
