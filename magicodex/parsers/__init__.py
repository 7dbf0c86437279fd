from magicodex.parsers.scryfall import (
    extract_eur_prices,
    normalize_card,
    normalize_set,
    parse_price,
)

__all__ = [
    "extract_eur_prices",
    "normalize_card",
    "normalize_set",
    "parse_price",
]
