# =============================================================================
# vibrate_core/errors/messages.py
# Localized, user-facing error messages
# =============================================================================
"""
Message catalogs used to render errors for operators.

Keys are validation rules (for field errors) or error codes (for everything
else). ``{limit}`` is filled from the error details when present.
"""

from __future__ import annotations
from typing import Dict, List

from .exceptions import VibrateError, ValidationError, RecordValidationError

DEFAULT_LOCALE = "en"

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        # validation rules
        "required": "This value is required",
        "not_a_number": "Value must be a number",
        "negative": "Value cannot be negative",
        "unknown_parameter": "Unknown parameter",
        "max_value": "Maximum value is {limit}",
        "max_decimal_places": "At most {limit} decimal places are allowed",
        "invalid_unit": "Invalid unit",
        "invalid_equipment": "Invalid equipment",
        "equipment_not_in_unit": "Equipment does not belong to this unit",
        "invalid_date": "Invalid date format",
        "future_date": "Date cannot be in the future",
        "too_old": "Date cannot be more than one year ago",
        "notes_type": "Notes must be text",
        "notes_too_long": "Notes cannot exceed {limit} characters",
        "invalid_record_id": "Invalid record reference",
        "out_of_range": "Value must be between {limit}",
        # error codes
        "VAL_002": "Please fix the highlighted fields",
        "STORE_001": "Your entry could not be saved on this device",
        "SYNC_001": "A sync is already in progress",
        "REMOTE_404": "Record not found",
        "REMOTE_409": "This record already exists",
        "REMOTE_401": "Authentication error, please sign in again",
        "REMOTE_503": "Network connection error",
        "REMOTE_000": "The server could not complete the request",
        "CONFIG_001": "The application is not configured correctly",
        "VIB_000": "An unexpected error occurred",
    },
    "fa": {
        "required": "مقدار الزامی است",
        "not_a_number": "مقدار باید عدد باشد",
        "negative": "مقدار نمی‌تواند منفی باشد",
        "unknown_parameter": "پارامتر نامعتبر",
        "max_value": "حداکثر مقدار {limit} است",
        "max_decimal_places": "حداکثر {limit} رقم اعشار مجاز است",
        "invalid_unit": "نوع واحد نامعتبر است",
        "invalid_equipment": "تجهیز نامعتبر است",
        "equipment_not_in_unit": "تجهیز متعلق به این واحد نیست",
        "invalid_date": "فرمت تاریخ نامعتبر است",
        "future_date": "تاریخ نمی‌تواند در آینده باشد",
        "too_old": "تاریخ نمی‌تواند بیشتر از یک سال پیش باشد",
        "notes_type": "یادداشت باید متن باشد",
        "notes_too_long": "یادداشت نباید بیشتر از {limit} کاراکتر باشد",
        "invalid_record_id": "شناسه رکورد نامعتبر است",
        "out_of_range": "مقدار باید بین {limit} باشد",
        "VAL_002": "خطاهای اعتبارسنجی",
        "STORE_001": "خطا در ذخیره محلی داده‌ها",
        "SYNC_001": "همگام‌سازی در حال انجام است",
        "REMOTE_404": "رکوردی یافت نشد",
        "REMOTE_409": "این رکورد قبلاً وجود دارد",
        "REMOTE_401": "خطا در احراز هویت - لطفاً دوباره وارد شوید",
        "REMOTE_503": "خطا در اتصال به شبکه",
        "REMOTE_000": "خطا در ارتباط با سرور",
        "CONFIG_001": "پیکربندی برنامه نامعتبر است",
        "VIB_000": "خطای نامشخص",
    },
}


def _catalog(locale: str) -> Dict[str, str]:
    return MESSAGES.get(locale, MESSAGES[DEFAULT_LOCALE])


def localize(error: Exception, locale: str = DEFAULT_LOCALE) -> str:
    """Render any error as a single human-readable message."""
    catalog = _catalog(locale)

    if isinstance(error, ValidationError):
        template = catalog.get(error.rule)
        if template is None:
            return error.message
        return template.format(limit=error.limit)

    if isinstance(error, RecordValidationError):
        header = catalog["VAL_002"]
        lines = [f"{field}: {message}" for field, message in localize_fields(error, locale).items()]
        return header + ": " + "; ".join(lines)

    if isinstance(error, VibrateError):
        return catalog.get(error.code, error.message)

    return catalog["VIB_000"]


def localize_fields(error: RecordValidationError, locale: str = DEFAULT_LOCALE) -> Dict[str, str]:
    """Per-field messages so every offending field can be shown at once."""
    rendered: Dict[str, str] = {}
    for field, issues in error.by_field().items():
        messages: List[str] = [localize(issue, locale) for issue in issues]
        rendered[field] = ", ".join(messages)
    return rendered
