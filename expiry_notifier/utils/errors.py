from typing import Optional


class RepositoryUnavailable(Exception):
    """Raised when the extinguisher record store cannot be queried."""

    def __init__(
        self,
        message: str = "Record repository unavailable",
        error_code: str = "REPOSITORY_UNAVAILABLE",
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class ResolutionError(Exception):
    """Custom exception for failures resolving the recipients of one asset."""

    def __init__(
        self, message: str, asset_id: str, error_code: str = "RESOLUTION_ERROR"
    ):
        super().__init__(message)
        self.message = message
        self.asset_id = asset_id
        self.error_code = error_code


class DeliveryError(Exception):
    """Custom exception for a push batch or mail message that could not be handed off."""

    def __init__(
        self,
        message: str,
        channel: str,
        target: Optional[str] = None,
        error_code: str = "DELIVERY_ERROR",
    ):
        super().__init__(message)
        self.message = message
        self.channel = channel
        self.target = target
        self.error_code = error_code


class ConfigurationError(Exception):
    """Custom exception for invalid settings detected at startup."""

    def __init__(self, message: str, error_code: str = "CONFIG_ERROR"):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
