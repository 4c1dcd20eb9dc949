"""
Repository pattern implementations for Snowflake.

Repositories translate between domain models and database representations.
"""

from .medals import MedalRepository
from .program_state import ProgramStateRepository
from .sessions import SessionNotFoundError, SessionRepository

__all__ = [
    "MedalRepository",
    "ProgramStateRepository",
    "SessionNotFoundError",
    "SessionRepository",
]
