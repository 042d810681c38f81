"""Shared infrastructure components."""

from .challenge_ledger import SqlAlchemyChallengeLedger
from .user_directory import SqlAlchemyUserDirectory

__all__ = [
    "SqlAlchemyChallengeLedger",
    "SqlAlchemyUserDirectory",
]
