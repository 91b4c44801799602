"""
KanaSchool

Hiragana and katakana practice sessions with accounts, guess tracking and statistics.
"""

from . import db
from . import auth
from . import quiz
from . import stats
from . import contact
from . import structured

__version__ = "0.1.0"
__all__ = ["db", "auth", "quiz", "stats", "contact", "structured"]
