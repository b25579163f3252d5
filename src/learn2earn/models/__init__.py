# src/learn2earn/models/__init__.py
"""SQLAlchemy models for the Learn2Earn application."""

from .submission import PLACEHOLDER_PROOF, Submission, is_placeholder_proof

__all__ = [
    "PLACEHOLDER_PROOF",
    "Submission",
    "is_placeholder_proof",
]
