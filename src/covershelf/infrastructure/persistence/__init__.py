"""Persistence layer - SQLAlchemy models, database and repositories."""

from .database import Database
from .models import Base, BookModel, CoverCandidateModel
from .repositories import BookRepository, CoverCandidateRepository

__all__ = [
    "Base",
    "BookModel",
    "BookRepository",
    "CoverCandidateModel",
    "CoverCandidateRepository",
    "Database",
]
