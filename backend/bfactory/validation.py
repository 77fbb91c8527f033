from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Any, Iterable

from bfactory.time_utils import parse_iso_datetime


# Maximum price: GHS 9,999,999.99 (999,999,999 pesewas)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{1,14}$")
DATE_ONLY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class ServiceError(Exception):
    """Base for errors that map onto an HTTP status."""
    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ServiceError):
    """400-level input problem."""
    status_code = 400


class AuthenticationError(ServiceError):
    status_code = 401


class PermissionDeniedError(ServiceError):
    status_code = 403


class NotFoundError(ServiceError):
    status_code = 404


class ConflictError(ServiceError):
    """409-level business rule conflict (e.g., duplicate payment reference)."""
    status_code = 409


class GatewayError(ServiceError):
    """Upstream payment/LLM gateway failed or answered with garbage."""
    status_code = 502


class ServiceUnavailableError(ServiceError):
    status_code = 503


def require_fields(data: dict | None, *names: str) -> dict:
    """
    Ensure every named key is present and non-empty.

    Returns the payload (never None) so callers can chain.
    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [n for n in names if data.get(n) in (None, "", [])]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    return data


def parse_int(value: Any, field: str, *, minimum: int | None = None) -> int:
    """
    Strict integer parsing: rejects bools, floats, decimals and
    scientific notation.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not re.fullmatch(r"-?\d+", stripped):
            raise ValidationError(f"{field} must be an integer")
        result = int(stripped)
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return result


def parse_money(value: Any, field: str) -> int:
    amount = parse_int(value, field, minimum=0)
    if amount > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}")
    return amount


def parse_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    choices = tuple(choices)
    normalized = str(value).strip().lower() if value is not None else ""
    if normalized not in choices:
        raise ValidationError(f"{field} must be one of: {', '.join(choices)}")
    return normalized


def parse_date_param(value: str | None, field: str) -> datetime | None:
    if value is None or not str(value).strip():
        return None
    try:
        return parse_iso_datetime(str(value))
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def parse_end_date_param(value: str | None, field: str) -> datetime | None:
    """
    Like parse_date_param, but a bare date means the whole day: it becomes
    the last microsecond of that day so `created_at <= end` includes it.
    """
    end = parse_date_param(value, field)
    if end is not None and DATE_ONLY_PATTERN.match(str(value).strip()):
        end += timedelta(days=1) - timedelta(microseconds=1)
    return end


def parse_pagination(args) -> tuple[int, int]:
    """Read page/limit query params; page is 1-indexed, limit capped at MAX_PAGE_SIZE."""
    page = parse_int(args.get("page", 1), "page", minimum=1)
    limit = parse_int(args.get("limit", DEFAULT_PAGE_SIZE), "limit", minimum=1)
    return page, min(limit, MAX_PAGE_SIZE)


def check_length(value: str | None, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    value = str(value).strip()
    if len(value) > max_length:
        raise ValidationError(f"{field} cannot exceed {max_length} characters")
    return value
