"""Exceptions raised by the NewRelic API client"""
from typing import Optional


class NewRelicError(Exception):
    """Base class for NewRelic API failures"""


class APIRequestError(NewRelicError):
    """Request could not be completed or returned an unexpected status"""

    def __init__(self, message: str, status_code: Optional[int] = None, url: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class DecodeError(NewRelicError):
    """Response body could not be decoded into the expected shape"""


class RateLimitedError(NewRelicError):
    """Request was throttled with a 429 before every page was read"""

    def __init__(self, message: str, path: str = ""):
        super().__init__(message)
        self.path = path
