from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any


@dataclass
class SetRecord:
    """A set normalized from the Scryfall /sets listing."""

    scryfall_id: str
    code: str  # upper-cased
    name: str
    set_type: str
    released_at: date | None = None
    card_count: int = 0
    icon_svg_uri: str = ""


@dataclass
class CardRecord:
    """
    A card printing normalized from a Scryfall card object.

    Attributes:
        scryfall_id: Stable Scryfall id of the printing
        oracle_id: Id shared by every printing of the same card
        set_code: Upper-cased code of the owning set
        set_scryfall_id: Scryfall id of the owning set, when provided
        price_eur: Numeric EUR price extracted from `prices`
        booster, promo, variation, full_art, frame_effects, promo_types,
        border_color: Provenance flags used to classify extras
    """

    scryfall_id: str
    oracle_id: str | None
    name: str
    set_code: str
    collector_number: str
    rarity: str
    lang: str = "en"
    set_scryfall_id: str | None = None
    name_localized: str | None = None
    mana_cost: str | None = None
    cmc: float = 0.0
    type_line: str = ""
    type_line_localized: str | None = None
    oracle_text: str | None = None
    oracle_text_localized: str | None = None
    power: str | None = None
    toughness: str | None = None
    loyalty: str | None = None
    colors: list[str] = field(default_factory=list)
    color_identity: list[str] = field(default_factory=list)
    image_uris: dict[str, Any] = field(default_factory=dict)
    prices: dict[str, Any] = field(default_factory=dict)
    price_eur: float | None = None
    price_eur_foil: float | None = None
    legalities: dict[str, Any] = field(default_factory=dict)
    booster: bool | None = None
    promo: bool | None = None
    variation: bool | None = None
    full_art: bool | None = None
    frame_effects: list[str] = field(default_factory=list)
    promo_types: list[str] = field(default_factory=list)
    border_color: str | None = None

    def provenance(self) -> dict[str, Any]:
        """Provenance flags under their Scryfall field names."""
        return {
            "booster": self.booster,
            "promo": self.promo,
            "variation": self.variation,
            "full_art": self.full_art,
            "frame_effects": self.frame_effects,
            "promo_types": self.promo_types,
            "border_color": self.border_color,
        }


class UpsertAction(str, Enum):
    """Outcome of writing one record."""

    CREATED = "created"
    UPDATED = "updated"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass
class UpsertStats:
    """Counts accumulated while writing a batch of records."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        """Every record that was looked at, whatever the outcome."""
        return self.created + self.updated + self.skipped + self.errors

    def record(self, action: UpsertAction) -> None:
        if action is UpsertAction.CREATED:
            self.created += 1
        elif action is UpsertAction.UPDATED:
            self.updated += 1
        elif action is UpsertAction.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    def merge(self, other: "UpsertStats") -> "UpsertStats":
        return UpsertStats(
            created=self.created + other.created,
            updated=self.updated + other.updated,
            skipped=self.skipped + other.skipped,
            errors=self.errors + other.errors,
        )

    def summary(self) -> str:
        return (
            f"created={self.created}, updated={self.updated}, "
            f"skipped={self.skipped}, errors={self.errors}"
        )


@dataclass(frozen=True)
class SearchFilters:
    """
    Structured filters applied after the text search.

    Attributes:
        colors: Required color-identity letters (AND semantics). "C" matches
                colorless cards.
        rarity: Exact rarity (common, uncommon, rare, mythic)
        type_contains: Case-insensitive type line substring
        price_min: Lower EUR bound; cards without a price fail it
        price_max: Upper EUR bound; cards without a price fail it
        extras: When set, only cards whose is_extra flag equals it
    """

    colors: frozenset[str] = frozenset()
    rarity: str | None = None
    type_contains: str | None = None
    price_min: float | None = None
    price_max: float | None = None
    extras: bool | None = None


@dataclass
class CandidateRow:
    """The columns a search strategy returns for post-filtering."""

    id: int
    rarity: str
    type_line: str
    type_line_localized: str | None
    price_eur: float | None
    is_extra: bool
    color_identity: list[str] = field(default_factory=list)
