"""
Cart totals. All amounts are integer cents.
"""
from typing import Any, Dict, Iterable, List

from fastapi import HTTPException

from app.config import DEFAULT_CURRENCY, FREE_SHIPPING_THRESHOLD

DEFAULT_TAX_RATE = 0.08
TAX_RATES = {
    "CA": 0.13,
    "UK": 0.20,
    "GB": 0.20,
}

SHIPPING_RATES = {
    "standard": 500,
    "express": 1500,
    "overnight": 2500,
}
FREE_WEIGHT_KG = 2.0
COST_PER_EXTRA_KG = 200
DEFAULT_ITEM_WEIGHT_KG = 0.5


def tax_rate_for(country: str = None) -> float:
    return TAX_RATES.get((country or "").strip().upper(), DEFAULT_TAX_RATE)


def calculate_tax(subtotal: int, country: str = None) -> int:
    return int(round(subtotal * tax_rate_for(country)))


def calculate_shipping(subtotal: int, total_weight: float, method: str = "standard") -> int:
    if subtotal >= FREE_SHIPPING_THRESHOLD:
        return 0

    if method not in SHIPPING_RATES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid shipping method: {method}. Must be one of: {', '.join(SHIPPING_RATES)}",
        )

    cost = SHIPPING_RATES[method]
    if total_weight > FREE_WEIGHT_KG:
        cost += int(round((total_weight - FREE_WEIGHT_KG) * COST_PER_EXTRA_KG))
    return cost


def calculate_totals(
    lines: Iterable[Dict[str, Any]],
    shipping_method: str = "standard",
    country: str = None,
    currency: str = DEFAULT_CURRENCY,
) -> Dict[str, Any]:
    """
    ``lines`` are mappings with ``total``, ``quantity`` and an optional
    ``weight`` per unit in kilograms.
    """
    lines: List[Dict[str, Any]] = list(lines)

    subtotal = sum(line["total"] for line in lines)
    weight = sum(
        (line.get("weight") or DEFAULT_ITEM_WEIGHT_KG) * line["quantity"]
        for line in lines
    )

    tax = calculate_tax(subtotal, country)
    shipping = calculate_shipping(subtotal, weight, shipping_method) if lines else 0
    discount = 0
    total = max(0, subtotal + tax + shipping - discount)

    return {
        "subtotal": subtotal,
        "tax": tax,
        "shipping": shipping,
        "discount": discount,
        "total": total,
        "currency": currency,
        "itemCount": sum(line["quantity"] for line in lines),
    }


def validate_calculation(totals: Dict[str, Any]) -> List[str]:
    errors = []
    for field in ("subtotal", "tax", "shipping", "discount", "total"):
        if totals[field] < 0:
            errors.append(f"{field} cannot be negative")

    expected = max(0, totals["subtotal"] + totals["tax"] + totals["shipping"] - totals["discount"])
    if abs(expected - totals["total"]) > 1:
        errors.append("Total does not match its components")

    currency = totals.get("currency") or ""
    if len(currency) != 3 or not currency.isalpha():
        errors.append("Currency must be a 3-letter code")
    return errors
