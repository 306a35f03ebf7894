"""
Error taxonomy for the settlement and release pipeline.

Duplicate/stale events are not errors: the ledger returns None and callers skip.
TransientExternalError is retried by the queue; NonRetriableError subclasses
go straight to the failed-jobs table.
"""


class EditionsError(Exception):
    """Base class for pipeline errors."""


class TransientExternalError(EditionsError):
    """Cache store unreachable, provider rate-limited, network blip."""


class NonRetriableError(EditionsError):
    """Retrying the job cannot succeed without operator action."""


class DomainInvariantError(NonRetriableError):
    """Missing user/plan, edition in an unexpected state, bad preorder."""


class EditionNotFoundError(DomainInvariantError):
    def __init__(self, edition_number: int) -> None:
        super().__init__(f"Edition number={edition_number} not found")
        self.edition_number = edition_number


class PreorderCompletionError(DomainInvariantError):
    """Preorder could not be completed; `status` tells the worker whether to skip."""

    ALREADY_PAID = "ALREADY_PAID"
    PREORDER_NOT_FOUND = "PREORDER_NOT_FOUND"

    def __init__(self, status: str, message: str) -> None:
        super().__init__(message)
        self.status = status

    @property
    def is_benign(self) -> bool:
        return self.status in (self.ALREADY_PAID, self.PREORDER_NOT_FOUND)


class FatalConfigurationError(NonRetriableError):
    """Missing required identifiers or settings."""


class UnsupportedPaymentEventError(NonRetriableError):
    """Event kind this pipeline deliberately does not handle."""


class InvalidWebhookSignature(EditionsError):
    """Inbound webhook failed signature verification or could not be parsed."""


class EmailDeliveryError(NonRetriableError):
    """Email provider rejected the message (4xx other than 429)."""
