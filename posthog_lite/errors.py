class ConfigurationError(ValueError):
    """Raised at the call site for a missing key or a malformed argument.

    Never retried and never deferred to a background thread.
    """

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class StaleDataWarning(UserWarning):
    """A feature flag poll failed; the previously loaded definitions are still in use."""

    def __init__(self, cause: Exception):
        self.cause = cause
        super().__init__(
            "Feature flag definitions could not be refreshed, keeping the last loaded set: %s"
            % cause
        )
