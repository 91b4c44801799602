from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional


@dataclass
class AuthUser:
    """Public-safe view of a user. This is what the identity cookie carries."""
    id: int
    name: str
    is_public: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuthUser":
        return cls(id=int(data["id"]), name=str(data["name"]), is_public=bool(data["is_public"]))


@dataclass
class SessionConfig:
    hiragana: int = 1
    katakana: int = 1
    mods: int = 1
    mult: int = 1


@dataclass
class AnswerStats:
    total: int
    correct: int

    @property
    def percentage(self) -> int:
        from .stats import percentage
        return percentage(self.correct, self.total)


@dataclass
class KanaRatio:
    hiragana_count: int
    katakana_count: int


@dataclass
class DiacriticsRatio:
    no_diacritics_count: int
    diacritics_count: int


@dataclass
class UserProfile:
    id: int
    name: str
    is_public: bool
    created_at: Optional[str]
    updated_at: Optional[str]
