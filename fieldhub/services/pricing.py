"""
Price-list arithmetic for the measurement wizard.
"""
import re
from typing import Dict, Iterable, List, Mapping, Optional, Union

Number = Union[int, float]


PRICE_CATEGORIES = [
    "TOTEM",
    "ABRIGO DE ÔNIBUS CAOS LEVE",
    "ABRIGO DE ÔNIBUS CAOS TOP",
    "ABRIGO DE ÔNIBUS MINIMALISTA LEVE",
    "ABRIGO DE ÔNIBUS MINIMALISTA TOP",
    "ABRIGO DE ÔNIBUS BRUTALISTA LEVE",
    "ABRIGO DE ÔNIBUS BRUTALISTA TOP",
    "INSTALAÇÃO PAINEL DIGITAL",
    "PAINEL ESTÁTICO",
    "POSTE",
]


def sum_prices(prices: Iterable[Number]) -> float:
    """Sum a list of prices, rounded to cents."""
    return round(sum(float(p) for p in prices), 2)


def clamp_quantity(quantity: Optional[Number]) -> float:
    if quantity is None:
        return 0.0
    return max(0.0, float(quantity))


def line_total(unit_price: Number, quantity: Optional[Number]) -> float:
    return round(float(unit_price) * clamp_quantity(quantity), 2)


def selection_total(selected: Mapping[str, Number], price_table: Mapping[str, Number]) -> float:
    """Total of a ``{price_id: quantity}`` selection.

    Unknown price ids contribute nothing and negative quantities count as zero.
    """
    total = 0.0
    for price_id, quantity in selected.items():
        unit = price_table.get(price_id)
        if unit is None:
            continue
        total += float(unit) * clamp_quantity(quantity)
    return round(total, 2)


def grand_total(selections: Iterable[Mapping[str, Number]], price_table: Mapping[str, Number]) -> float:
    return round(sum(selection_total(s, price_table) for s in selections), 2)


def parse_price(raw) -> float:
    """Parse a BRL money cell (``R$ 1.234,56``) into a float.

    Numeric cells pass through unchanged; anything unparsable is 0.
    """
    if raw is None:
        return 0.0
    if isinstance(raw, bool):
        return 0.0
    if isinstance(raw, (int, float)):
        return float(raw)
    text = re.sub(r"R\$|\s", "", str(raw))
    text = text.replace(".", "").replace(",", ".")
    try:
        return float(text)
    except ValueError:
        return 0.0


def format_brl(value: Number) -> str:
    """``1234.5`` -> ``R$ 1.234,50``"""
    text = f"{float(value):,.2f}"
    return "R$ " + text.replace(",", "_").replace(".", ",").replace("_", ".")


def snapshot_items(selected: Mapping[str, Number], prices: Dict[str, dict]) -> List[dict]:
    """Frozen copy of the selected price rows, as stored with a measurement."""
    items = []
    for price_id, quantity in selected.items():
        row = prices.get(price_id)
        if row is None:
            continue
        qty = clamp_quantity(quantity)
        items.append({
            "id": price_id,
            "item_code": row.get("item_code"),
            "description": row["description"],
            "unit": row.get("unit") or "UN",
            "price": float(row["price"]),
            "quantity": qty,
            "total": line_total(row["price"], qty),
        })
    return items
