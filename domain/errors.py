class DomainError(Exception):
    """Base class for ledger errors surfaced to callers."""

    kind = "domain_error"


class ValidationError(DomainError, ValueError):
    """Bad input: negative amount, missing field, unknown type."""

    kind = "validation_error"


class NotFoundError(DomainError):
    """Referenced row does not exist or belongs to another owner."""

    kind = "not_found"


class ConsistencyError(DomainError):
    """A multi-step effect could not complete and was rolled back."""

    kind = "consistency_error"


class StoreUnavailableError(DomainError):
    """Transient store failure. Reads may be retried, writes may not."""

    kind = "store_unavailable"
