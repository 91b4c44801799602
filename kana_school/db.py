from __future__ import annotations
from sqlalchemy import (
    Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint,
    case, create_engine, false, func, insert, inspect, or_, select,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
import datetime
import logging
from typing import Any, Dict, List, Optional

from .kana_data import catalog_records
from .structured import AnswerStats, AuthUser, DiacriticsRatio, KanaRatio, UserProfile

logger = logging.getLogger(__name__)


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


# Range of an INTEGER column; larger Python ints cannot be bound
SQL_INTEGER_MIN = -(2 ** 63)
SQL_INTEGER_MAX = 2 ** 63 - 1


def fits_integer_column(value: int) -> bool:
    return SQL_INTEGER_MIN <= value <= SQL_INTEGER_MAX


def _iso(value: Optional[datetime.datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    # Unique among non-deleted users only, so no database constraint
    name: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    deleted_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, index=True)

    def to_auth_user(self) -> AuthUser:
        return AuthUser(id=self.id, name=self.name, is_public=bool(self.is_public))


class QuizSession(Base):
    """One practice run. Stored in ``sessions``; unrelated to HTTP or ORM sessions."""
    __tablename__ = "sessions"
    __table_args__ = (CheckConstraint("mult >= 1", name="ck_sessions_mult_positive"),)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    is_public: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    hiragana: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    katakana: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    mods: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    mult: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    created_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    deleted_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime, index=True)
    finished_at: Mapped[Optional[datetime.datetime]] = mapped_column(DateTime)

    @property
    def is_finished(self) -> bool:
        return self.finished_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "is_public": bool(self.is_public),
            "hiragana": self.hiragana,
            "katakana": self.katakana,
            "mods": self.mods,
            "mult": self.mult,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "finished_at": _iso(self.finished_at),
        }


class Kana(Base):
    __tablename__ = "kanas"
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    reading: Mapped[str] = mapped_column(String(8), nullable=False, index=True)
    is_katakana: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    mod: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # 0 = base form
    consonant_line: Mapped[str] = mapped_column(String(4), nullable=False, default="")
    vowel_column: Mapped[str] = mapped_column(String(4), nullable=False, default="")
    unicode: Mapped[str] = mapped_column(String(4), nullable=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "reading": self.reading,
            "is_katakana": bool(self.is_katakana),
            "mod": self.mod,
            "consonant_line": self.consonant_line,
            "vowel_column": self.vowel_column,
            "unicode": self.unicode,
        }


class SessionKana(Base):
    """A single guess. Append-only."""
    __tablename__ = "session_kanas"
    __table_args__ = (
        UniqueConstraint("session_id", "kana_id", "mult_position", name="uq_session_kanas_position"),
    )
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(Integer, ForeignKey("sessions.id"), nullable=False, index=True)
    kana_id: Mapped[int] = mapped_column(Integer, ForeignKey("kanas.id"), nullable=False, index=True)
    mult_position: Mapped[int] = mapped_column(Integer, nullable=False)
    submitted_at: Mapped[datetime.datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    is_correct: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class Store:
    """Handle on the relational store: one engine and its session factory.

    Every data-access function below takes the store as its first argument and
    opens a short-lived ORM session per call. Writes commit before returning.
    """

    def __init__(self, url: str, **engine_kwargs: Any) -> None:
        self.url = url
        self.engine = create_engine(url, **engine_kwargs)
        # Prevent attribute expiration on commit so returned objects remain accessible
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)

    def get_session(self) -> Session:
        return self.SessionLocal()

    def dispose(self) -> None:
        self.engine.dispose()


def is_db_initialized(store: Store) -> bool:
    """Check if the database is already initialized by checking if tables exist."""
    table_names = set(inspect(store.engine).get_table_names())
    return {"users", "sessions", "kanas", "session_kanas"}.issubset(table_names)


def init_db(store: Store) -> None:
    """Initialize the database by creating all tables."""
    Base.metadata.create_all(bind=store.engine)


def seed_kanas(store: Store) -> int:
    """Load the kana catalog if the table is empty. Returns the number of rows added."""
    with store.get_session() as session:
        existing = session.scalar(select(func.count(Kana.id))) or 0
        if existing:
            return 0
        records = catalog_records()
        session.add_all(Kana(**record) for record in records)
        session.commit()
    logger.info("Seeded %d kanas", len(records))
    return len(records)


# ----------------------------------------------------------------------
# Users
# ----------------------------------------------------------------------
def _active_user_by_name(session: Session, name: str) -> Optional[User]:
    return session.scalar(select(User).where(User.name == name, User.deleted_at.is_(None)))


def _active_user_by_id(session: Session, user_id: int) -> Optional[User]:
    return session.scalar(select(User).where(User.id == user_id, User.deleted_at.is_(None)))


def get_user_by_id(store: Store, user_id: int) -> Optional[AuthUser]:
    with store.get_session() as session:
        user = _active_user_by_id(session, user_id)
        return user.to_auth_user() if user else None


def get_user_with_password(store: Store, name: str) -> Optional[tuple[AuthUser, str]]:
    """Public view plus stored digest, for login only."""
    with store.get_session() as session:
        user = _active_user_by_name(session, name)
        return (user.to_auth_user(), user.password_hash) if user else None


def get_user_password_hash(store: Store, user_id: int) -> Optional[str]:
    with store.get_session() as session:
        user = _active_user_by_id(session, user_id)
        return user.password_hash if user else None


def username_is_taken(store: Store, name: str, exclude_user_id: Optional[int] = None) -> bool:
    query = select(User.id).where(User.name == name, User.deleted_at.is_(None))
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    with store.get_session() as session:
        return session.scalar(query.limit(1)) is not None


def create_user(store: Store, name: str, password_hash: str) -> AuthUser:
    now = utcnow()
    with store.get_session() as session:
        user = User(name=name, password_hash=password_hash, is_public=False, created_at=now, updated_at=now)
        session.add(user)
        session.commit()
        return user.to_auth_user()


def _update_user(store: Store, user_id: int, **values: Any) -> None:
    with store.get_session() as session:
        user = session.get(User, user_id)
        if user is None:
            return
        for key, value in values.items():
            setattr(user, key, value)
        user.updated_at = utcnow()
        session.commit()


def update_user_password(store: Store, user_id: int, new_password_hash: str) -> None:
    _update_user(store, user_id, password_hash=new_password_hash)


def update_username(store: Store, user_id: int, new_name: str) -> None:
    _update_user(store, user_id, name=new_name)


def update_user_visibility(store: Store, user_id: int, is_public: bool) -> None:
    _update_user(store, user_id, is_public=bool(is_public))


def soft_delete_user(store: Store, user_id: int) -> None:
    _update_user(store, user_id, deleted_at=utcnow())


def get_user_public_profile(store: Store, name: str) -> Optional[UserProfile]:
    with store.get_session() as session:
        user = _active_user_by_name(session, name)
        if user is None:
            return None
        return UserProfile(
            id=user.id,
            name=user.name,
            is_public=bool(user.is_public),
            created_at=_iso(user.created_at),
            updated_at=_iso(user.updated_at),
        )


# ----------------------------------------------------------------------
# Quiz sessions
# ----------------------------------------------------------------------
def get_quiz_session(store: Store, session_id: int) -> Optional[QuizSession]:
    with store.get_session() as session:
        return session.scalar(
            select(QuizSession).where(QuizSession.id == session_id, QuizSession.deleted_at.is_(None))
        )


def get_user_session(store: Store, session_id: int, user_id: int) -> Optional[QuizSession]:
    with store.get_session() as session:
        return session.scalar(
            select(QuizSession).where(
                QuizSession.id == session_id,
                QuizSession.user_id == user_id,
                QuizSession.deleted_at.is_(None),
            )
        )


def create_quiz_session(store: Store, user_id: int, hiragana: int, katakana: int, mods: int, mult: int) -> int:
    now = utcnow()
    with store.get_session() as session:
        quiz = QuizSession(
            user_id=user_id, is_public=False,
            hiragana=hiragana, katakana=katakana, mods=mods, mult=mult,
            created_at=now, updated_at=now,
        )
        session.add(quiz)
        session.commit()
        return quiz.id


def _update_quiz_session(store: Store, session_id: int, **values: Any) -> None:
    with store.get_session() as session:
        quiz = session.get(QuizSession, session_id)
        if quiz is None:
            return
        for key, value in values.items():
            setattr(quiz, key, value)
        quiz.updated_at = utcnow()
        session.commit()


def finish_quiz_session(store: Store, session_id: int) -> None:
    _update_quiz_session(store, session_id, finished_at=utcnow())


def update_session_visibility(store: Store, session_id: int, is_public: bool) -> None:
    _update_quiz_session(store, session_id, is_public=bool(is_public))


def soft_delete_session(store: Store, session_id: int) -> None:
    _update_quiz_session(store, session_id, deleted_at=utcnow())


def _user_sessions_by_state(store: Store, user_id: int, finished: bool, limit: int = 10) -> List[QuizSession]:
    state = QuizSession.finished_at.is_not(None) if finished else QuizSession.finished_at.is_(None)
    with store.get_session() as session:
        return list(session.scalars(
            select(QuizSession)
            .where(QuizSession.user_id == user_id, QuizSession.deleted_at.is_(None), state)
            .order_by(QuizSession.updated_at.desc(), QuizSession.id.desc())
            .limit(limit)
        ))


def get_user_unfinished_sessions(store: Store, user_id: int) -> List[QuizSession]:
    return _user_sessions_by_state(store, user_id, finished=False)


def get_user_finished_sessions(store: Store, user_id: int) -> List[QuizSession]:
    return _user_sessions_by_state(store, user_id, finished=True)


# ----------------------------------------------------------------------
# Kanas
# ----------------------------------------------------------------------
def get_all_kanas(store: Store) -> List[Kana]:
    with store.get_session() as session:
        return list(session.scalars(select(Kana).order_by(Kana.id)))


def get_hiraganas(store: Store) -> List[Kana]:
    with store.get_session() as session:
        return list(session.scalars(select(Kana).where(Kana.is_katakana.is_(False)).order_by(Kana.id)))


def get_katakanas(store: Store) -> List[Kana]:
    with store.get_session() as session:
        return list(session.scalars(select(Kana).where(Kana.is_katakana.is_(True)).order_by(Kana.id)))


def get_kana(store: Store, kana_id: int) -> Optional[Kana]:
    with store.get_session() as session:
        return session.get(Kana, kana_id)


def get_kana_by_reading(store: Store, reading: str, is_katakana: bool,
                        consonant_line: Optional[str] = None) -> Optional[Kana]:
    query = select(Kana).where(Kana.reading == reading, Kana.is_katakana.is_(bool(is_katakana)))
    if consonant_line is not None:
        query = query.where(Kana.consonant_line == consonant_line)
    with store.get_session() as session:
        return session.scalar(query.order_by(Kana.id).limit(1))


# ----------------------------------------------------------------------
# Guesses
# ----------------------------------------------------------------------
def record_guess(store: Store, session_id: int, kana_id: int, is_correct: bool) -> SessionKana:
    """Append a guess whose ``mult_position`` is one past the prior guesses of that kana.

    The position is computed inside the INSERT itself. Two concurrent inserts
    that still land on the same position violate ``uq_session_kanas_position``
    and the second one raises ``IntegrityError``.
    """
    position = (
        select(func.count(SessionKana.id) + 1)
        .where(SessionKana.session_id == session_id, SessionKana.kana_id == kana_id)
        .correlate(None)
        .scalar_subquery()
    )
    stmt = insert(SessionKana.__table__).values(
        session_id=session_id,
        kana_id=kana_id,
        mult_position=position,
        submitted_at=utcnow(),
        is_correct=bool(is_correct),
    )
    with store.get_session() as session:
        result = session.execute(stmt)
        session.commit()
        return session.get_one(SessionKana, result.inserted_primary_key[0])


def get_remaining_kanas_for_session(store: Store, session_id: int, quiz: QuizSession) -> List[Kana]:
    """Kanas of the session's scripts still guessed fewer than ``mult`` times, shuffled."""
    guess_counts = (
        select(SessionKana.kana_id, func.count(SessionKana.id).label("guesses"))
        .where(SessionKana.session_id == session_id)
        .group_by(SessionKana.kana_id)
        .subquery()
    )

    scripts = []
    if quiz.hiragana:
        scripts.append(Kana.is_katakana.is_(False))
    if quiz.katakana:
        scripts.append(Kana.is_katakana.is_(True))
    script_filter = or_(*scripts) if scripts else false()

    query = (
        select(Kana)
        .outerjoin(guess_counts, guess_counts.c.kana_id == Kana.id)
        .where(script_filter)
        .where(or_(guess_counts.c.guesses.is_(None), guess_counts.c.guesses < quiz.mult))
        .order_by(func.random())
    )
    if not quiz.mods:
        query = query.where(Kana.mod == 0)

    with store.get_session() as session:
        return list(session.scalars(query))


def get_session_guessed_kanas(store: Store, session_id: int) -> List[Dict[str, Any]]:
    """Guesses of a session joined to their kana, oldest first."""
    with store.get_session() as session:
        rows = session.execute(
            select(Kana, SessionKana)
            .join(SessionKana, SessionKana.kana_id == Kana.id)
            .where(SessionKana.session_id == session_id)
            .order_by(SessionKana.submitted_at.asc(), SessionKana.id.asc())
        ).all()

    guessed: List[Dict[str, Any]] = []
    for kana, guess in rows:
        entry = kana.to_dict()
        entry["is_correct"] = bool(guess.is_correct)
        entry["mult_position"] = guess.mult_position
        entry["submitted_at"] = _iso(guess.submitted_at)
        guessed.append(entry)
    return guessed


# ----------------------------------------------------------------------
# Statistics queries
# ----------------------------------------------------------------------
def _count(store: Store, query: Any) -> int:
    with store.get_session() as session:
        return session.scalar(query) or 0


def get_total_user_count(store: Store) -> int:
    return _count(store, select(func.count(User.id)).where(User.deleted_at.is_(None)))


def get_total_session_count(store: Store) -> int:
    return _count(store, select(func.count(QuizSession.id)).where(QuizSession.deleted_at.is_(None)))


def get_user_session_count(store: Store, user_id: int) -> int:
    return _count(store, select(func.count(QuizSession.id)).where(
        QuizSession.user_id == user_id, QuizSession.deleted_at.is_(None)))


def get_finished_session_count(store: Store, user_id: int) -> int:
    return _count(store, select(func.count(QuizSession.id)).where(
        QuizSession.user_id == user_id,
        QuizSession.deleted_at.is_(None),
        QuizSession.finished_at.is_not(None),
    ))


def get_users_created_since(store: Store, start: datetime.datetime) -> int:
    return _count(store, select(func.count(User.id)).where(
        User.deleted_at.is_(None), User.created_at >= start))


def get_sessions_created_since(store: Store, start: datetime.datetime) -> int:
    return _count(store, select(func.count(QuizSession.id)).where(
        QuizSession.deleted_at.is_(None), QuizSession.created_at >= start))


def _answer_stats(store: Store, *conditions: Any) -> AnswerStats:
    query = select(
        func.count(SessionKana.id),
        func.sum(case((SessionKana.is_correct.is_(True), 1), else_=0)),
    ).where(*conditions)
    with store.get_session() as session:
        total, correct = session.execute(query).one()
    return AnswerStats(total=total or 0, correct=correct or 0)


def get_all_time_answer_stats(store: Store) -> AnswerStats:
    """Every guess ever recorded, deleted sessions and users included."""
    return _answer_stats(store)


def get_date_range_answer_stats(store: Store, start: datetime.datetime) -> AnswerStats:
    return _answer_stats(store, SessionKana.submitted_at >= start)


def get_session_answer_stats(store: Store, session_id: int) -> AnswerStats:
    return _answer_stats(store, SessionKana.session_id == session_id)


def get_user_answer_stats(store: Store, user_id: int) -> AnswerStats:
    own_sessions = select(QuizSession.id).where(
        QuizSession.user_id == user_id, QuizSession.deleted_at.is_(None))
    return _answer_stats(store, SessionKana.session_id.in_(own_sessions))


def get_user_date_range_answer_stats(store: Store, user_id: int, start: datetime.datetime) -> AnswerStats:
    # Windowed by when the session was started, not by when each guess was made
    own_sessions = select(QuizSession.id).where(
        QuizSession.user_id == user_id,
        QuizSession.deleted_at.is_(None),
        QuizSession.created_at >= start,
    )
    return _answer_stats(store, SessionKana.session_id.in_(own_sessions))


def get_kana_ratio_stats(store: Store) -> KanaRatio:
    query = (
        select(
            func.count(case((Kana.is_katakana.is_(False), 1))),
            func.count(case((Kana.is_katakana.is_(True), 1))),
        )
        .select_from(SessionKana)
        .join(Kana, SessionKana.kana_id == Kana.id)
    )
    with store.get_session() as session:
        hiragana_count, katakana_count = session.execute(query).one()
    return KanaRatio(hiragana_count=hiragana_count or 0, katakana_count=katakana_count or 0)


def get_diacritics_ratio_stats(store: Store) -> DiacriticsRatio:
    query = (
        select(
            func.count(case((Kana.mod == 0, 1))),
            func.count(case((Kana.mod > 0, 1))),
        )
        .select_from(SessionKana)
        .join(Kana, SessionKana.kana_id == Kana.id)
    )
    with store.get_session() as session:
        plain, diacritics = session.execute(query).one()
    return DiacriticsRatio(no_diacritics_count=plain or 0, diacritics_count=diacritics or 0)


def _sessions_per_user():
    return (
        select(func.count(QuizSession.id).label("session_count"))
        .where(QuizSession.deleted_at.is_(None))
        .group_by(QuizSession.user_id)
        .subquery()
    )


def get_average_sessions_per_user(store: Store) -> float:
    per_user = _sessions_per_user()
    with store.get_session() as session:
        average = session.scalar(select(func.avg(per_user.c.session_count)))
    return round(float(average), 2) if average else 0


def get_max_sessions_for_any_user(store: Store) -> int:
    per_user = _sessions_per_user()
    with store.get_session() as session:
        return session.scalar(select(func.max(per_user.c.session_count))) or 0


def get_user_sessions_with_stats(store: Store, user_id: int, limit: int = 10, offset: int = 0,
                                 is_own_profile: bool = True) -> List[Dict[str, Any]]:
    query = (
        select(
            QuizSession,
            func.count(SessionKana.id).label("total_guesses"),
            func.sum(case((SessionKana.is_correct.is_(True), 1), else_=0)).label("correct_guesses"),
        )
        .outerjoin(SessionKana, SessionKana.session_id == QuizSession.id)
        .where(QuizSession.user_id == user_id, QuizSession.deleted_at.is_(None))
    )
    if not is_own_profile:
        query = query.where(QuizSession.is_public.is_(True))
    query = (
        query.group_by(QuizSession.id)
        .order_by(QuizSession.created_at.desc(), QuizSession.id.desc())
        .limit(limit)
        .offset(offset)
    )

    with store.get_session() as session:
        rows = session.execute(query).all()

    results: List[Dict[str, Any]] = []
    for quiz, total_guesses, correct_guesses in rows:
        entry = quiz.to_dict()
        entry["total_guesses"] = total_guesses or 0
        entry["correct_guesses"] = correct_guesses or 0
        results.append(entry)
    return results


__all__ = [
    "Base", "User", "QuizSession", "Kana", "SessionKana", "Store",
    "is_db_initialized", "init_db", "seed_kanas",
    "SQL_INTEGER_MIN", "SQL_INTEGER_MAX", "fits_integer_column",
    "get_user_by_id", "get_user_with_password", "get_user_password_hash",
    "username_is_taken", "create_user", "update_user_password", "update_username",
    "update_user_visibility", "soft_delete_user", "get_user_public_profile",
    "get_quiz_session", "get_user_session", "create_quiz_session",
    "finish_quiz_session", "update_session_visibility", "soft_delete_session",
    "get_user_unfinished_sessions", "get_user_finished_sessions",
    "get_all_kanas", "get_hiraganas", "get_katakanas", "get_kana", "get_kana_by_reading",
    "record_guess", "get_remaining_kanas_for_session", "get_session_guessed_kanas",
    "get_total_user_count", "get_total_session_count", "get_user_session_count",
    "get_finished_session_count", "get_users_created_since", "get_sessions_created_since",
    "get_all_time_answer_stats", "get_date_range_answer_stats", "get_session_answer_stats",
    "get_user_answer_stats", "get_user_date_range_answer_stats",
    "get_kana_ratio_stats", "get_diacritics_ratio_stats",
    "get_average_sessions_per_user", "get_max_sessions_for_any_user",
    "get_user_sessions_with_stats",
]
