"""Error taxonomy for stable module boundaries."""


class RSSAmplifierError(Exception):
    """Base exception for rss-amplifier."""


class ConfigError(RSSAmplifierError):
    """Raised when configuration is invalid or missing."""


class ValidationError(RSSAmplifierError):
    """Raised when a URL or cron expression fails validation."""

    def __init__(self, message: str, errors: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.errors = errors


class CollaboratorError(RSSAmplifierError):
    """Raised when the feed store or fetcher reports a failure."""


class FetchError(RSSAmplifierError):
    """Raised for a single failed feed fetch attempt."""


class FeedError(RSSAmplifierError):
    """Raised when feed or OPML documents cannot be parsed."""


class PersistenceError(RSSAmplifierError):
    """Raised for schedule/feed store read and write failures."""


class SchedulerError(RSSAmplifierError):
    """Raised for job table and engine lifecycle coordination failures."""


class DiagnosticsError(RSSAmplifierError):
    """Raised for debug event path failures."""
