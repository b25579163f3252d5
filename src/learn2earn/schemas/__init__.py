# src/learn2earn/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .status import ClaimResponse, ClaimStatusView, StatusView, TxOutcomeResponse
from .submission import (
    ApprovalUpdate,
    RegistrationSync,
    SubmissionCreate,
    SubmissionResponse,
)

__all__ = [
    "ApprovalUpdate", "RegistrationSync", "SubmissionCreate", "SubmissionResponse",
    "ClaimResponse", "ClaimStatusView", "StatusView", "TxOutcomeResponse",
]
