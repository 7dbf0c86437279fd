"""
Extras classification.

An "extra" is a printing you cannot open in a regular booster: promos,
alternate frames, showcase treatments, variations. This is the only place the
rule lives; sync, the extras delta, and stored-card recalculation all call it.
"""

from collections.abc import Mapping
from typing import Any

# Frame treatments that mark a special printing. Normal frames (legendary,
# miracle, nyxtouched, companion, fullart...) are deliberately absent.
EXTRA_FRAME_EFFECTS = frozenset(
    {
        "extendedart",
        "showcase",
        "borderless",
        "etched",
        "inverted",
        "shatteredglass",
        "textless",
        "fandfc",
    }
)

# Promo types that only tag a product line or an in-booster variant
NON_EXTRA_PROMO_TYPES = frozenset(
    {
        "universesbeyond",
        "boosterfun",
        *(
            f"ff{numeral}"
            for numeral in (
                "i",
                "ii",
                "iii",
                "iv",
                "v",
                "vi",
                "vii",
                "viii",
                "ix",
                "x",
                "xi",
                "xii",
                "xiii",
                "xiv",
                "xv",
                "xvi",
            )
        ),
    }
)


def _as_list(value: Any) -> list[str]:
    if isinstance(value, list | tuple | set | frozenset):
        return [str(v) for v in value]
    return []


def compute_is_extra(card: Mapping[str, Any]) -> bool:
    """
    Decide whether a card printing is an extra.

    Args:
        card: Scryfall card object, or any mapping using the same field names
              (booster, promo, variation, frame_effects, promo_types)

    Returns:
        True if any of the following holds:
        - promo is true, or a promo type outside NON_EXTRA_PROMO_TYPES is present
        - variation is true
        - a frame effect from EXTRA_FRAME_EFFECTS is present
        - booster is explicitly false

    Note:
        full_art alone never qualifies; basic lands are full-art in normal boosters.
    """
    frame_effects = {effect.lower() for effect in _as_list(card.get("frame_effects"))}
    has_special_frame = not frame_effects.isdisjoint(EXTRA_FRAME_EFFECTS)

    significant_promo_types = [
        promo_type
        for promo_type in _as_list(card.get("promo_types"))
        if promo_type.lower() not in NON_EXTRA_PROMO_TYPES
    ]
    has_promo = card.get("promo") is True or bool(significant_promo_types)

    is_non_booster = card.get("booster") is False
    is_variation = card.get("variation") is True

    return has_promo or is_variation or has_special_frame or is_non_booster
