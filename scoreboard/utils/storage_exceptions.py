"""
Custom exceptions for the score storage engine with caller-friendly messages.
"""

class StorageException(Exception):
    """Base exception for score storage errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class ScoreValidationError(StorageException):
    """Raised when a score entry fails validation."""
    def __init__(self, value, reason: str):
        super().__init__(
            f"Invalid score entry {value!r}: {reason}",
            f"❌ {reason}"
        )

class InvalidFilterKeyError(StorageException):
    """Raised when a metadata filter key is not an allowed identifier."""
    def __init__(self, key: str):
        super().__init__(
            f"Metadata filter key {key!r} is not allowed",
            "❌ Filter names may only contain letters, digits and underscores."
        )
        self.key = key

class UnknownSubscriptionTierError(StorageException):
    """Raised when no retention limits exist for a subscription tier."""
    def __init__(self, tier: str):
        super().__init__(
            f"Unknown subscription tier '{tier}'",
            "❌ Subscription tier is not configured."
        )
        self.tier = tier

class InsecureRedisConfigError(StorageException):
    """Raised when no acceptable Redis URL is configured."""
    def __init__(self, reason: str):
        super().__init__(
            f"Redis configuration rejected: {reason}",
            "❌ Score cache is not configured. Please contact an administrator."
        )
