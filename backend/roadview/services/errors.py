"""
Load error taxonomy.

Only ManifestUnavailable, ProviderUnreachable and LoadSuperseded escape a
session load; SourceUnavailable is recovered per source by the aggregator.
"""


class SourceUnavailable(Exception):
    """One data source (GPS, metrics, one detection stream, ...) failed."""

    def __init__(self, source: str, reason: str):
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class LoadError(Exception):
    """A session load failed as a whole."""


class ManifestUnavailable(LoadError):
    """The metadata scan could not be fetched; nothing can be assembled."""


class ProviderUnreachable(LoadError):
    """The source descriptor does not point at a reachable provider."""


class LoadSuperseded(LoadError):
    """A newer load started before this one finished; its result is dropped."""
