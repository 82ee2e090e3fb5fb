"""Flows: orchestration between the SRS core and the store."""

from .review import RatingOutcome, ReviewFlow

__all__ = ["RatingOutcome", "ReviewFlow"]
