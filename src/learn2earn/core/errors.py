"""Error taxonomy shared by the store, the ledger client and the API layer.

Every error that can reach a client carries a stable machine-readable ``code``
and the HTTP status the API surface maps it to. Messages are written for end
users and never include key material.
"""

from __future__ import annotations


class RewardsError(Exception):
    """Base class for business-rule and ledger failures surfaced to callers."""

    code = "REWARDS_ERROR"
    status_code = 400
    retryable = False
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, object]:
        """Return the JSON body sent to clients for this error."""
        payload: dict[str, object] = {"detail": self.message, "error": self.code}
        if self.retryable:
            payload["canRetryIfFailed"] = True
        return payload


class InvalidAddressError(RewardsError, ValueError):
    """Raised when a wallet address is not a 20-byte hex account address."""

    code = "INVALID_ADDRESS"
    default_message = "Wallet address must be 0x followed by 40 hex characters"


class NotRegisteredError(RewardsError):
    """Raised when the ledger does not confirm the participant's registration."""

    code = "NOT_REGISTERED_IN_CONTRACT"
    default_message = "Student must be registered in the smart contract first"


class NotApprovedError(RewardsError):
    """Raised when a claim is requested without an approved submission."""

    code = "NOT_APPROVED"
    default_message = "No approved submission found for this wallet address"


class AlreadyRewardedError(RewardsError):
    """Raised when the ledger already reports the participant as rewarded."""

    code = "ALREADY_REWARDED"
    default_message = "Reward already claimed; tokens were distributed to this wallet"


class DuplicateSubmissionError(RewardsError):
    """Raised when a real proof already exists for the participant."""

    code = "DUPLICATE_SUBMISSION"
    default_message = "Submission already exists for this wallet address"


class SubmissionNotFoundError(RewardsError):
    """Raised when no submission row exists for the participant."""

    code = "SUBMISSION_NOT_FOUND"
    status_code = 404
    default_message = "Submission not found"


class LedgerSubmissionError(RewardsError):
    """Raised when a signed transaction could not be broadcast.

    No local claim state is written before broadcast succeeds, so the caller
    may retry safely. The underlying exception is kept as ``__cause__``.
    """

    code = "LEDGER_SUBMISSION_FAILED"
    status_code = 500
    retryable = True
    default_message = "Smart contract transaction could not be submitted"
