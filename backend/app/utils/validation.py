from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlparse

from flask import jsonify

from app.models import CATEGORIES, CONDITIONS, PRICING_TYPES, ROLES


SA_PROVINCES = (
    "Gauteng",
    "Western Cape",
    "KwaZulu-Natal",
    "Eastern Cape",
    "Free State",
    "Limpopo",
    "Mpumalanga",
    "Northern Cape",
    "North West",
)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
SA_PHONE_RE = re.compile(r"^(\+27|0)[6-8][0-9]{8}$")
SLUG_RE = re.compile(r"^[a-z0-9-]+$")

PASSWORD_MIN_LENGTH = 8


class ValidationError(ValueError):
    """Field-level validation failure; `errors` maps field -> message."""

    def __init__(self, errors: dict[str, str]):
        self.errors = dict(errors)
        first = next(iter(self.errors.values()), "Invalid input")
        super().__init__(first)


def _text(value: Any) -> str:
    return str(value or "").strip()


def _number(value: Any) -> float | None:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def slugify(value: str) -> str:
    raw = (value or "").strip().lower()
    raw = re.sub(r"[^a-z0-9]+", "-", raw)
    raw = re.sub(r"-{2,}", "-", raw)
    return raw.strip("-")


def is_valid_url(value: str) -> bool:
    try:
        parsed = urlparse(_text(value))
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_valid_email(value: str) -> bool:
    return bool(EMAIL_RE.match(_text(value)))


def validate_password(password: str) -> list[str]:
    errors = []
    if len(password or "") < PASSWORD_MIN_LENGTH:
        errors.append("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password or ""):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r"[0-9]", password or ""):
        errors.append("Password must contain at least one number")
    return errors


def validate_registration(data: dict) -> dict:
    errors: dict[str, str] = {}
    name = _text(data.get("name"))
    email = _text(data.get("email")).lower()
    phone = _text(data.get("phone"))
    city = _text(data.get("city"))
    province = _text(data.get("province"))
    password = str(data.get("password") or "")
    confirm = str(data.get("confirmPassword") or data.get("confirm_password") or "")
    role = _text(data.get("role") or "BUYER").upper()

    if not (2 <= len(name) <= 100):
        errors["name"] = "Name must be between 2 and 100 characters"
    if not is_valid_email(email):
        errors["email"] = "Please enter a valid email address"
    if phone and not SA_PHONE_RE.match(phone):
        errors["phone"] = "Please enter a valid South African phone number"
    if city and not (2 <= len(city) <= 100):
        errors["city"] = "City must be between 2 and 100 characters"
    if province and province not in SA_PROVINCES:
        errors["province"] = "Please select a valid province"
    password_errors = validate_password(password)
    if password_errors:
        errors["password"] = password_errors[0]
    elif password != confirm:
        errors["confirmPassword"] = "Passwords do not match"
    if role not in ("BUYER", "SELLER"):
        errors["role"] = "Invalid role"
    if errors:
        raise ValidationError(errors)
    return {
        "name": name,
        "email": email,
        "phone": phone or None,
        "city": city or None,
        "province": province or None,
        "password": password,
        "role": role,
    }


def validate_listing_payload(data: dict, *, partial: bool = False) -> dict:
    """Validate a create/update listing body.

    With ``partial`` only keys present in ``data`` are checked, but the
    pricing rules are still enforced against the values supplied.
    """
    errors: dict[str, str] = {}
    out: dict[str, Any] = {}

    def present(key: str) -> bool:
        return not partial or key in data

    if present("title"):
        title = _text(data.get("title"))
        if not (5 <= len(title) <= 100):
            errors["title"] = "Title must be between 5 and 100 characters"
        out["title"] = title
    if present("description"):
        description = _text(data.get("description"))
        if not (20 <= len(description) <= 2000):
            errors["description"] = "Description must be between 20 and 2000 characters"
        out["description"] = description
    if present("category"):
        category = _text(data.get("category")).upper()
        if category not in CATEGORIES:
            errors["category"] = "Please select a valid category"
        out["category"] = category
    if present("condition"):
        condition = _text(data.get("condition")).upper()
        if condition not in CONDITIONS:
            errors["condition"] = "Please select a valid condition"
        out["condition"] = condition
    if present("images"):
        images = data.get("images") or []
        if not isinstance(images, list) or not (1 <= len(images) <= 10):
            errors["images"] = "Please provide between 1 and 10 images"
        elif not all(is_valid_url(u) for u in images):
            errors["images"] = "Images must be valid URLs"
        else:
            out["images"] = [_text(u) for u in images]
            primary = _text(data.get("primaryImage") or data.get("primary_image")) or out["images"][0]
            if not is_valid_url(primary):
                errors["primaryImage"] = "Primary image must be a valid URL"
            out["primary_image"] = primary
    if present("pricingType") or present("pricing_type") or present("price"):
        pricing_type = _text(data.get("pricingType") or data.get("pricing_type") or "FIXED").upper()
        price = _number(data.get("price"))
        min_offer = _number(data.get("minOffer", data.get("min_offer")))
        if pricing_type not in PRICING_TYPES:
            errors["pricingType"] = "Invalid pricing type"
        elif pricing_type == "FIXED" and (price is None or price <= 0):
            errors["price"] = "Price is required for fixed-price listings"
        elif pricing_type == "OFFERS":
            if price is not None and price <= 0:
                errors["price"] = "Price must be greater than 0"
            elif min_offer is not None and min_offer <= 0:
                errors["minOffer"] = "Minimum offer must be greater than 0"
            elif min_offer is not None and price is not None and min_offer > price:
                errors["minOffer"] = "Minimum offer cannot exceed the asking price"
        out["pricing_type"] = pricing_type
        out["price"] = price
        out["min_offer"] = min_offer if pricing_type == "OFFERS" else None
    if present("city"):
        city = _text(data.get("city"))
        if not (2 <= len(city) <= 100):
            errors["city"] = "City must be between 2 and 100 characters"
        out["city"] = city
    if present("province"):
        province = _text(data.get("province"))
        if province not in SA_PROVINCES:
            errors["province"] = "Please select a valid province"
        out["province"] = province
    for src, dest in (("aiEnhancedImages", "ai_enhanced_images"), ("originalImages", "original_images")):
        if src in data:
            values = data.get(src) or []
            if not isinstance(values, list) or not all(is_valid_url(u) for u in values):
                errors[src] = "Image lists must contain valid URLs"
            else:
                out[dest] = [_text(u) for u in values]
    if "aiGeneratedDesc" in data:
        out["ai_generated_desc"] = bool(data.get("aiGeneratedDesc"))
    if errors:
        raise ValidationError(errors)
    return out


def validate_reason(value: Any, *, label: str) -> str:
    reason = _text(value)
    if len(reason) < 10:
        raise ValidationError({"reason": f"{label} reason must be at least 10 characters"})
    if len(reason) > 500:
        raise ValidationError({"reason": f"{label} reason must not exceed 500 characters"})
    return reason


def normalize_role(value: Any) -> str | None:
    role = _text(value).upper()
    return role if role in ROLES else None


def validation_error_response(error: ValidationError):
    body = {"ok": False, "error": "VALIDATION_ERROR", "message": str(error), "errors": error.errors}
    return jsonify(body), 400
