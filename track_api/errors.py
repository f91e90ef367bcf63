class TrackingError(Exception):
    """Base error. `message` is safe to show to the end user."""

    status_code = 500
    message = "Internal Server Error"

    def __init__(self, message=None, detail=None, status_code=None):
        self.message = message or self.message
        self.detail = detail or self.message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ClientInputError(TrackingError):
    status_code = 400
    message = "Invalid Request"


class NotFoundError(ClientInputError):
    status_code = 404
    message = "Not found."


class UpstreamError(TrackingError):
    status_code = 500
    message = "Upstream carrier failure."


class ConfigurationError(TrackingError):
    status_code = 500
    message = "Server Error: Configuration Missing"


class AnalyticsError(Exception):
    """Raised inside the aggregator only; never reaches the HTTP layer."""
