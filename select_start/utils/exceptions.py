"""
Custom exceptions for the RetroAchievements access layer with user-friendly error messages.
"""

class AchievementsAPIError(Exception):
    """Base exception for RetroAchievements API failures."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class RateLimitedError(AchievementsAPIError):
    """Raised when the provider answers a single request with HTTP 429."""
    def __init__(self, endpoint: str):
        super().__init__(
            f"Provider rate limited request to {endpoint}",
            "❌ RetroAchievements is busy right now. Please try again shortly."
        )
        self.endpoint = endpoint

class RateLimitExceededError(AchievementsAPIError):
    """Raised when rate-limit retries are exhausted."""
    def __init__(self, attempts: int):
        super().__init__(
            f"Provider rate limit still active after {attempts} attempts",
            "❌ RetroAchievements is rate limiting us. Please try again in a few minutes."
        )
        self.attempts = attempts

class ProviderUnavailableError(AchievementsAPIError):
    """Raised on network failures, timeouts and non-2xx responses unrelated to throttling."""
    def __init__(self, endpoint: str, details: str = None, status: int = None):
        super().__init__(
            f"Request to {endpoint} failed: {details}" if details else f"Request to {endpoint} failed",
            "❌ Could not reach RetroAchievements. Please try again later."
        )
        self.endpoint = endpoint
        self.status = status

class MalformedResponseError(ProviderUnavailableError):
    """Raised when a response body cannot be decoded or normalized at all."""
    def __init__(self, endpoint: str, details: str = None):
        super().__init__(endpoint, f"malformed response ({details})" if details else "malformed response")

class ProviderNotFoundError(AchievementsAPIError):
    """Raised when the provider reports that a user, game or leaderboard does not exist."""
    def __init__(self, endpoint: str):
        super().__init__(
            f"Resource not found at {endpoint}",
            "❌ That RetroAchievements user, game or leaderboard could not be found."
        )
        self.endpoint = endpoint
