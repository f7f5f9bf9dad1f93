"""
HTTP error handling shared by the network providers.
"""

import json
from typing import Any, Optional

import requests


class HttpError(Exception):
    """Exception raised when a provider request fails or returns an unexpected status."""

    def __init__(self, status: Optional[int], message: str):
        self.status = status
        self.message = message
        super().__init__(f"HTTP {status}: {message}" if status is not None else message)


def _response_message(response) -> str:
    try:
        return json.dumps(response.json())
    except (ValueError, TypeError):
        return str(response.text)


def parse_http_error(error: Any) -> HttpError:
    """Turn a failed response, a requests exception or an error payload into an HttpError."""
    if isinstance(error, HttpError):
        return error
    if isinstance(error, requests.RequestException):
        if error.response is not None:
            return HttpError(error.response.status_code, _response_message(error.response))
        return HttpError(None, str(error))
    if hasattr(error, "status_code"):
        return HttpError(error.status_code, _response_message(error))
    if isinstance(error, (dict, list)):
        return HttpError(None, json.dumps(error))
    return HttpError(None, str(error))
