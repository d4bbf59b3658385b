class GeoTrackerError(Exception):
    """Base class for errors raised by the ingestion and geofencing engine."""


class ValidationError(GeoTrackerError):
    """Malformed geometry or missing device credentials.

    Raised before any external call or persistence and surfaced to the API
    caller as a 400.
    """


class SessionInvalid(GeoTrackerError):
    """The portal answered with its "session invalid" sentinel."""


class ProviderError(GeoTrackerError):
    """The portal answered with something we cannot use (bad status, malformed body)."""


class PersistenceError(GeoTrackerError):
    """A store write failed."""
