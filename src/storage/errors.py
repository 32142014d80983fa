class StoreError(Exception):
    """Base exception for counter store errors."""
    pass

class StoreUnavailableError(StoreError):
    """Raised when the backing storage fails during increment or read."""
    pass

class StoreConfigurationError(StoreError):
    """Raised when the store is opened with an invalid or conflicting configuration."""
    pass
