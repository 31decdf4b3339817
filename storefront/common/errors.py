from typing import Any, Dict, Optional
from fastapi import status


class AppError(Exception):
    """Typed application error raised by services and repositories.

    ``code`` is a stable machine readable string the storefront UI switches on,
    ``details`` carries structured context (e.g. ``insufficientItems``) and is
    rendered as the envelope ``body``.
    """

    def __init__(self, code: str, message: str,
                 status_code: int = status.HTTP_400_BAD_REQUEST,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details

    def __repr__(self) -> str:
        return f"AppError(code={self.code!r}, status_code={self.status_code}, message={self.message!r})"


def not_found(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError(code, message, status.HTTP_404_NOT_FOUND, details)


def upstream_error(message: str, details: Optional[Dict[str, Any]] = None) -> AppError:
    return AppError("PAYMENT_PROVIDER_ERROR", message, status.HTTP_502_BAD_GATEWAY, details)
