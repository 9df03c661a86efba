from __future__ import annotations


class BatchCodeError(Exception):
    """Base class for every failure surfaced by batch code allocation."""


class InvalidInputError(BatchCodeError):
    """The value handed to the allocator does not resolve to a calendar day."""


class ExhaustionError(BatchCodeError):
    def __init__(self, group_key: str, issued: int, alphabet_size: int):
        self.group_key = group_key
        self.issued = issued
        self.alphabet_size = alphabet_size
        super().__init__(
            f"Batch code suffixes exhausted for {group_key} "
            f"(issued={issued}, alphabet={alphabet_size})"
        )


class StoreError(BatchCodeError):
    """Code store failure. Transient errors are retried by the allocator."""

    def __init__(self, message: str, *, transient: bool = False):
        self.transient = transient
        super().__init__(message)


class StoreTimeoutError(StoreError):
    def __init__(self, message: str = "Code store deadline exceeded"):
        super().__init__(message, transient=True)


class UniquenessViolation(StoreError):
    """Raised by a store scope when the code being appended already exists."""

    def __init__(self, code: str):
        self.code = code
        super().__init__(f"batch code already exists: {code}", transient=True)
