#!/usr/bin/env python3
"""
Script to examine the contents of the KanaSchool database:
users, quiz sessions, the kana catalog and recorded guesses.
"""

import sys

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from kana_school import db
from kana_school.config import Config


def check_database_contents(store: db.Store) -> bool:
    """Print a summary of what is stored. Returns False if the store could not be read."""
    print("🔍 Examining KanaSchool Database Contents")
    print("=" * 60)

    session = store.get_session()

    try:
        users: list[db.User] = list(session.scalars(select(db.User).order_by(db.User.id)))
        active_users = [u for u in users if u.deleted_at is None]
        print(f"\n👤 USERS ({len(active_users)} active, {len(users) - len(active_users)} deleted):")
        for i, user in enumerate(active_users[-10:], 1):  # Show last 10
            visibility = "public" if user.is_public else "private"
            print(f"  {i:2d}. {user.name} | {visibility} | Joined: {user.created_at:%Y-%m-%d}")
        if len(active_users) > 10:
            print(f"     ... and {len(active_users) - 10} more users")

        quizzes: list[db.QuizSession] = list(session.scalars(
            select(db.QuizSession).where(db.QuizSession.deleted_at.is_(None)).order_by(db.QuizSession.id)
        ))
        finished = sum(1 for q in quizzes if q.finished_at is not None)
        print(f"\n📝 SESSIONS ({len(quizzes)} items, {finished} finished):")
        for i, quiz in enumerate(quizzes[-10:], 1):
            scripts = "+".join(name for name, on in (("hiragana", quiz.hiragana), ("katakana", quiz.katakana)) if on)
            state = "finished" if quiz.finished_at is not None else "ongoing"
            print(f"  {i:2d}. #{quiz.id} user={quiz.user_id} | {scripts or 'no scripts'} | x{quiz.mult} | {state}")

        hiragana_count = session.scalar(select(func.count(db.Kana.id)).where(db.Kana.is_katakana.is_(False))) or 0
        katakana_count = session.scalar(select(func.count(db.Kana.id)).where(db.Kana.is_katakana.is_(True))) or 0
        print(f"\n🈂️  KANAS ({hiragana_count} hiragana, {katakana_count} katakana)")

        guess_count = session.scalar(select(func.count(db.SessionKana.id))) or 0
        correct_count = session.scalar(
            select(func.count(db.SessionKana.id)).where(db.SessionKana.is_correct.is_(True))
        ) or 0

        print("\n📊 SUMMARY:")
        print(f"     Total Guesses: {guess_count}")
        print(f"     Correct Guesses: {correct_count}")

    except SQLAlchemyError as e:
        print(f"❌ Error examining database: {e}")
        return False
    finally:
        session.close()
    return True


if __name__ == "__main__":
    store = db.Store(Config().DATABASE_URL)
    if not db.is_db_initialized(store):
        print("❌ Database tables not found!")
        print("   Run `flask --app app init-db` first.")
        sys.exit(1)

    sys.exit(0 if check_database_contents(store) else 1)
