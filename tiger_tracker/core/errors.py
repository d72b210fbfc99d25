"""
Error taxonomy for the tracker.

Seed errors are reported and swallowed while seeding. Everything raised from
an ingestion cycle derives from IngestionError so the scheduler can decide
whether to skip the cycle or stop the worker.
"""
from typing import Iterable


class TrackerError(Exception):
    """Base class for all tracker errors."""


class SeedError(TrackerError):
    def __init__(self, entity: str, reason: str):
        self.entity = entity
        self.reason = reason
        super().__init__(f"failed to seed {entity}: {reason}")


class IngestionError(TrackerError):
    """A failure that aborts the current ingestion cycle."""

    kind = "ingestion"


class ResolutionError(IngestionError):
    kind = "resolution"


class NotFoundError(ResolutionError):
    pass


class AssetNotFoundError(NotFoundError):
    def __init__(self, symbols: Iterable[str]):
        self.symbols = list(symbols)
        super().__init__(f"assets not found in store: {', '.join(self.symbols)}")


class UserNotFoundError(NotFoundError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"user not found in store: {name}")


class QuoteFetchError(IngestionError):
    kind = "quote_fetch"


class QuoteTransportError(QuoteFetchError):
    pass


class QuoteDecodeError(QuoteFetchError):
    pass


class PersistError(IngestionError):
    kind = "persist"
