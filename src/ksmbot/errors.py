"""
Error types raised by the subscription registry.
"""


class StorageFailure(Exception):
    """A database connection or query failed. Never retried by the store."""


class IdentityNotFound(LookupError):
    """No validator snapshot carries the requested on-chain identity."""

    def __init__(self, query: str):
        super().__init__(f"No validator found for identity '{query}'")
        self.query = query


class AmbiguousIdentity(LookupError):
    """More than one validator snapshot carries the requested identity."""

    def __init__(self, query: str, stash_ids: list[str]):
        super().__init__(
            f"Identity '{query}' matches {len(stash_ids)} validators"
        )
        self.query = query
        self.stash_ids = stash_ids
