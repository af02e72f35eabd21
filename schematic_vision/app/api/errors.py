from typing import Optional

from starlette import status


class ApiError(Exception):
    """Error rendered as ``{"error": ..., "details": ...}`` with its status code."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, error: str, details: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(error)
        self.error = error
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class InvalidRequestError(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST


def error_body(error: str, details: Optional[str] = None) -> dict:
    body = {"error": error}
    if details:
        body["details"] = details
    return body
