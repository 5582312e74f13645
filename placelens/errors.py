"""Exception taxonomy for the context and reporting pipeline."""

from __future__ import annotations


class PlaceLensError(Exception):
    """Base class for every error raised by placelens."""


class AdapterUnavailable(PlaceLensError):
    """A single upstream source failed, timed out or answered garbage.

    Network failures, malformed payloads and "service says it is down" all
    collapse into this one signal; only ``details`` differs.
    """

    def __init__(self, source: str, details: str = "unavailable"):
        super().__init__(f"{source}: {details}")
        self.source = source
        self.details = details


class ValidationFailed(PlaceLensError):
    """A generated report did not pass schema or entity checks."""

    def __init__(self, reasons: list[str] | str):
        if isinstance(reasons, str):
            reasons = [reasons]
        super().__init__("; ".join(reasons))
        self.reasons = list(reasons)


class NoViableSnapshot(PlaceLensError):
    """Neither a fresh nor a stale snapshot could be produced for a query."""


class BackendUnavailable(PlaceLensError):
    """The generative backend could not be reached or returned an error."""
