"""
Error types for the lookup stage.

ConfigurationError is fatal and only raised while the filter registers.
QueryBuildError and BackendError are per-event: the filter catches them,
tags the event and moves on.
"""


class OpenSearchLookupError(Exception):
    """Base class for every error raised by the lookup stage."""


class ConfigurationError(OpenSearchLookupError):
    """Invalid or conflicting settings, or an unreachable backend at startup."""


class QueryBuildError(OpenSearchLookupError):
    """The query could not be built from the event (interpolation or template parse)."""


class BackendError(OpenSearchLookupError):
    """The backend call failed or returned a response we cannot map."""
