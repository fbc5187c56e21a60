class ActionServerError(Exception):
    """Base exception for all errors raised by the action server."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

class ConfigurationError(ActionServerError):
    """Raised when configuration is invalid (e.g. non-positive concurrency)."""
    pass

class ResourceError(ActionServerError):
    """Raised when a working directory or attachment cannot be prepared."""
    pass

class ToolStartupError(ActionServerError):
    """Raised when the external tool cannot be launched at all."""
    def __init__(self, message: str, command: str, details: dict = None):
        super().__init__(message, details)
        self.command = command
