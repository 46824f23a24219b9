from __future__ import annotations


class DomainError(Exception):
    pass


class DomainValidationError(DomainError):
    pass


class DomainInvariantError(DomainError):
    pass


class DomainDependencyError(DomainError):
    pass


class ClassificationUnavailableError(DomainDependencyError):
    pass


class StaleRecordError(DomainInvariantError):
    """Raised by a store when a guarded update finds the record already changed."""

    def __init__(self, record_id: str) -> None:
        super().__init__(f"record changed concurrently: {record_id}")
        self.record_id = record_id
