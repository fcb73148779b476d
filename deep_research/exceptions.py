"""
Custom exceptions for the research system
"""


class ResearchSystemError(Exception):
    """Base exception for research system"""
    pass


class ConfigurationError(ResearchSystemError):
    """A required capability or setting is missing; raised before any work starts"""
    pass


class FetchError(ResearchSystemError):
    """A single fetch or search call failed; always recovered by the caller"""
    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class APIError(ResearchSystemError):
    """API related errors"""
    def __init__(self, message: str, provider: str = None, status_code: int = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class RateLimitError(APIError):
    """Rate limit exceeded"""
    pass


class MalformedURLError(ResearchSystemError, ValueError):
    """URL could not be parsed into a host"""
    def __init__(self, url: str):
        super().__init__(f"Malformed URL: {url!r}")
        self.url = url


class Cancelled(ResearchSystemError):
    """Cooperative cancellation was requested"""
    pass
