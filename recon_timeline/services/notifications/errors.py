class NotificationDeliveryError(Exception):
    """Raised when a channel could not deliver a notification."""

    def __init__(self, message: str, channel: str, target: str | None = None):
        super().__init__(message)
        self.channel = channel
        self.target = target
