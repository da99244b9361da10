"""
Address validation and formatting.

The rules are deliberately permissive so that international addresses
pass: a postal code only has to look like a code and contain a digit, and
a phone number only has to carry a plausible number of digits.
"""
import re
from typing import Any, Dict, List

ADDRESS_TYPES = ("shipping", "billing", "both")

REQUIRED_FIELDS = {
    "type": "Address type",
    "first_name": "First name",
    "last_name": "Last name",
    "address1": "Address line 1",
    "city": "City",
    "state": "State",
    "postal_code": "Postal code",
    "country": "Country",
    "phone": "Phone",
}

MAX_LENGTHS = {
    "first_name": 255,
    "last_name": 255,
    "company": 255,
    "address1": 255,
    "address2": 255,
    "city": 255,
    "state": 255,
    "country": 255,
    "postal_code": 20,
    "phone": 20,
}

POSTAL_CODE_RE = re.compile(r"^[A-Z0-9\-]{3,10}$")
US_POSTAL_CODE_RE = re.compile(r"^\d{5}(-\d{4})?$")
CA_POSTAL_CODE_RE = re.compile(r"^[A-Z]\d[A-Z] ?\d[A-Z]\d$")
GB_POSTAL_CODE_RE = re.compile(r"^[A-Z]{1,2}\d[A-Z\d]? ?\d[A-Z]{2}$")

COUNTRY_ALIASES = {
    "US": "US",
    "USA": "US",
    "UNITED STATES": "US",
    "CA": "CA",
    "CAN": "CA",
    "CANADA": "CA",
    "GB": "GB",
    "GBR": "GB",
    "UK": "GB",
    "UNITED KINGDOM": "GB",
}


def _digits(value: str) -> str:
    return re.sub(r"\D", "", value or "")


def _text(data: Dict[str, Any], field: str) -> str:
    value = data.get(field)
    if value is None:
        return ""
    return str(value).strip()


def is_valid_postal_code(postal_code: str) -> bool:
    normalized = re.sub(r"\s", "", postal_code or "").upper()
    if not POSTAL_CODE_RE.match(normalized):
        return False
    return any(ch.isdigit() for ch in normalized)


def is_valid_phone(phone: str) -> bool:
    return 7 <= len(_digits(phone)) <= 15


def _result(errors: List[str]) -> Dict[str, Any]:
    confidence = max(0.0, round(1.0 - 0.1 * len(errors), 2))
    return {
        "isValid": not errors,
        "errors": errors,
        "confidence": confidence,
    }


def validate_address(data: Dict[str, Any]) -> Dict[str, Any]:
    """Validate a snake_case address mapping."""
    errors: List[str] = []

    for field, label in REQUIRED_FIELDS.items():
        if not _text(data, field):
            errors.append(f"{label} is required")

    address_type = _text(data, "type")
    if address_type and address_type not in ADDRESS_TYPES:
        errors.append("Address type must be one of: shipping, billing, both")

    for field, limit in MAX_LENGTHS.items():
        if len(_text(data, field)) > limit:
            errors.append(f"{field} must be at most {limit} characters")

    postal_code = _text(data, "postal_code")
    if postal_code and not is_valid_postal_code(postal_code):
        errors.append("Invalid postal code format")

    phone = _text(data, "phone")
    if phone and not is_valid_phone(phone):
        errors.append("Phone number must contain 7 to 15 digits")

    return _result(errors)


def validate_address_for_country(data: Dict[str, Any], country: str) -> Dict[str, Any]:
    result = validate_address(data)
    errors = list(result["errors"])

    code = COUNTRY_ALIASES.get((country or "").strip().upper())
    postal_code = _text(data, "postal_code").upper()

    if postal_code and code == "US" and not US_POSTAL_CODE_RE.match(postal_code):
        errors.append("US postal code must be 12345 or 12345-6789")
    elif postal_code and code == "CA" and not CA_POSTAL_CODE_RE.match(postal_code):
        errors.append("Canadian postal code must be in the form A1A 1A1")
    elif postal_code and code == "GB" and not GB_POSTAL_CODE_RE.match(postal_code):
        errors.append("UK postcode must be in the form SW1A 1AA")

    return _result(errors)


def format_phone(phone: str) -> str:
    phone = (phone or "").strip()
    digits = _digits(phone)

    if len(digits) == 10:
        return f"({digits[:3]}) {digits[3:6]}-{digits[6:]}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+1 ({digits[1:4]}) {digits[4:7]}-{digits[7:]}"
    if 7 <= len(digits) <= 15 and not phone.startswith("+"):
        return f"+{digits}"
    return phone


def format_address(data: Dict[str, Any]) -> Dict[str, Any]:
    formatted = {}
    for field, value in data.items():
        formatted[field] = value.strip() if isinstance(value, str) else value

    if formatted.get("postal_code"):
        formatted["postal_code"] = formatted["postal_code"].upper()
    if formatted.get("phone"):
        formatted["phone"] = format_phone(formatted["phone"])

    return formatted
