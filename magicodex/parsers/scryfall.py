"""
Scryfall record normalization.

Turns raw Scryfall set and card objects into SetRecord / CardRecord values
ready for the catalog writer.

API docs: https://scryfall.com/docs/api/cards
"""

import logging
from datetime import date
from typing import Any

from magicodex.models.catalog import CardRecord, SetRecord
from magicodex.models.failure import MalformedPriceData

logger = logging.getLogger(__name__)

# Localized fields are only meaningful on non-English printings
ENGLISH = "en"


def _parse_date(value: Any) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        logger.warning("Ignoring malformed release date %r", value)
        return None


def parse_price(field_name: str, value: Any) -> float | None:
    """
    Parse one Scryfall price string ("1.23") into a float.

    Returns None when the price is absent.

    Raises:
        MalformedPriceData: If a value is present but not a finite number
    """
    if value is None or value == "":
        return None
    try:
        price = float(value)
    except (TypeError, ValueError) as e:
        raise MalformedPriceData(field_name, value) from e
    if price != price or price in (float("inf"), float("-inf")):
        raise MalformedPriceData(field_name, value)
    return price


def extract_eur_prices(prices: dict[str, Any] | None) -> tuple[float | None, float | None]:
    """
    Extract numeric (eur, eur_foil) from a Scryfall price bundle.

    Malformed values are treated as absent.
    """
    if not isinstance(prices, dict):
        return None, None

    extracted: list[float | None] = []
    for field_name in ("eur", "eur_foil"):
        try:
            extracted.append(parse_price(field_name, prices.get(field_name)))
        except MalformedPriceData as e:
            logger.debug("%s", e.message)
            extracted.append(None)
    return extracted[0], extracted[1]


def normalize_set(raw: dict[str, Any]) -> SetRecord:
    """
    Normalize one entry from the /sets listing.

    Raises:
        KeyError: If id, code or name is missing
    """
    return SetRecord(
        scryfall_id=str(raw["id"]),
        code=str(raw["code"]).upper(),
        name=str(raw["name"]),
        set_type=str(raw.get("set_type") or ""),
        released_at=_parse_date(raw.get("released_at")),
        card_count=int(raw.get("card_count") or 0),
        icon_svg_uri=str(raw.get("icon_svg_uri") or ""),
    )


def _front_face(raw: dict[str, Any]) -> dict[str, Any]:
    faces = raw.get("card_faces")
    if isinstance(faces, list) and faces and isinstance(faces[0], dict):
        return faces[0]
    return {}


def _joined_faces(raw: dict[str, Any], key: str) -> str | None:
    faces = raw.get("card_faces")
    if not isinstance(faces, list):
        return None
    parts = [face[key] for face in faces if isinstance(face, dict) and face.get(key)]
    return " // ".join(parts) if parts else None


def normalize_card(raw: dict[str, Any]) -> CardRecord:
    """
    Normalize one Scryfall card object.

    Double-faced cards carry text and images on `card_faces`; the front face
    image and the joined face texts are used when the top-level fields are absent.

    Raises:
        KeyError: If id, name, set or collector_number is missing
    """
    lang = str(raw.get("lang") or ENGLISH)
    localized = lang != ENGLISH

    image_uris = raw.get("image_uris") or _front_face(raw).get("image_uris") or {}
    prices = raw.get("prices") or {}
    price_eur, price_eur_foil = extract_eur_prices(prices)

    return CardRecord(
        scryfall_id=str(raw["id"]),
        oracle_id=raw.get("oracle_id") or _front_face(raw).get("oracle_id"),
        name=str(raw["name"]),
        set_code=str(raw["set"]).upper(),
        set_scryfall_id=raw.get("set_id"),
        collector_number=str(raw["collector_number"]),
        rarity=str(raw.get("rarity") or "common"),
        lang=lang,
        name_localized=raw.get("printed_name") if localized else None,
        mana_cost=raw.get("mana_cost") or _joined_faces(raw, "mana_cost"),
        cmc=float(raw.get("cmc") or 0.0),
        type_line=str(raw.get("type_line") or ""),
        type_line_localized=raw.get("printed_type_line") if localized else None,
        oracle_text=raw.get("oracle_text") or _joined_faces(raw, "oracle_text"),
        oracle_text_localized=(
            (raw.get("printed_text") or _joined_faces(raw, "printed_text")) if localized else None
        ),
        power=raw.get("power"),
        toughness=raw.get("toughness"),
        loyalty=raw.get("loyalty"),
        colors=list(raw.get("colors") or _front_face(raw).get("colors") or []),
        color_identity=list(raw.get("color_identity") or []),
        image_uris=dict(image_uris),
        prices=dict(prices),
        price_eur=price_eur,
        price_eur_foil=price_eur_foil,
        legalities=dict(raw.get("legalities") or {}),
        booster=raw.get("booster"),
        promo=raw.get("promo"),
        variation=raw.get("variation"),
        full_art=raw.get("full_art"),
        frame_effects=list(raw.get("frame_effects") or []),
        promo_types=list(raw.get("promo_types") or []),
        border_color=raw.get("border_color"),
    )
