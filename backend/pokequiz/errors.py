from __future__ import annotations


class QuizServiceError(Exception):
    pass


class TransientFetchError(QuizServiceError):
    """A single provider request failed (network, status or decoding). Skippable."""


class IncompleteCacheError(QuizServiceError):
    """The cached dataset is missing required fields and must be rebuilt."""


class PersistenceWriteError(QuizServiceError):
    """Writing the dataset cache or a progress row failed."""


class NotFoundError(QuizServiceError):
    """Unknown category, empty pool, nothing to review, or unknown record id."""


class ProviderNotFound(NotFoundError):
    """The provider has no resource for the requested id or name."""
