"""
Domain exceptions raised by the ingestion pipeline and rarity engine.

Malformed chainhook data is never an exception here: the extractor skips it.
These cover the cases a caller has to react to.
"""


class TraitVaultError(Exception):
    """Base class for all application errors."""


class CollectionNotFound(TraitVaultError):
    """A mint or rarity request referenced a collection that is not configured."""

    def __init__(self, ref):
        self.ref = ref
        super().__init__(f"Collection not found: {ref}")


class IngestionFailed(TraitVaultError):
    """
    One or more transaction units failed while applying a webhook payload.

    Every failed unit was rolled back; units that committed stay committed.
    The upstream is expected to redeliver the payload.
    """

    def __init__(self, failures: list[tuple[str, Exception]]):
        self.failures = failures
        detail = "; ".join(f"{ref}: {exc}" for ref, exc in failures[:5])
        more = f" (+{len(failures) - 5} more)" if len(failures) > 5 else ""
        super().__init__(f"{len(failures)} unit(s) failed: {detail}{more}")
