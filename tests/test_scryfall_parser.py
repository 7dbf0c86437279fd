"""Tests for Scryfall record normalization."""

from datetime import date

import pytest

from magicodex.models.failure import MalformedPriceData
from magicodex.parsers.scryfall import (
    extract_eur_prices,
    normalize_card,
    normalize_set,
    parse_price,
)


class TestParsePrice:
    def test_parses_decimal_string(self) -> None:
        assert parse_price("eur", "1.23") == pytest.approx(1.23)

    @pytest.mark.parametrize("value", [None, ""])
    def test_absent_price(self, value) -> None:
        assert parse_price("eur", value) is None

    @pytest.mark.parametrize("value", ["abc", "nan", "inf", [1]])
    def test_malformed_price_raises(self, value) -> None:
        with pytest.raises(MalformedPriceData) as exc_info:
            parse_price("eur", value)

        assert exc_info.value.field_name == "eur"


class TestExtractEurPrices:
    def test_extracts_both_prices(self) -> None:
        assert extract_eur_prices({"eur": "2.50", "eur_foil": "7"}) == (2.5, 7.0)

    def test_malformed_price_treated_as_absent(self) -> None:
        """A bad value is dropped, not raised."""
        assert extract_eur_prices({"eur": "n/a", "eur_foil": "3.00"}) == (None, 3.0)

    def test_missing_bundle(self) -> None:
        assert extract_eur_prices(None) == (None, None)


class TestNormalizeSet:
    def test_normalizes_set(self, raw_set) -> None:
        record = normalize_set(raw_set("dmu"))

        assert record.scryfall_id == "set-dmu"
        assert record.code == "DMU"
        assert record.released_at == date(2022, 9, 9)
        assert record.set_type == "expansion"

    def test_missing_release_date(self, raw_set) -> None:
        record = normalize_set(raw_set("tst", released_at=None))

        assert record.released_at is None

    def test_requires_id(self, raw_set) -> None:
        raw = raw_set()
        del raw["id"]

        with pytest.raises(KeyError):
            normalize_set(raw)


class TestNormalizeCard:
    def test_normalizes_card(self, raw_card) -> None:
        record = normalize_card(raw_card())

        assert record.scryfall_id == "card-1"
        assert record.set_code == "DMU"
        assert record.set_scryfall_id == "set-dmu"
        assert record.color_identity == ["G"]
        assert record.price_eur == pytest.approx(0.25)
        assert record.price_eur_foil == pytest.approx(1.10)
        assert record.booster is True

    def test_english_card_has_no_localized_fields(self, raw_card) -> None:
        """printed_* fields only count on non-English printings."""
        record = normalize_card(raw_card(printed_name="Elfes de Llanowar"))

        assert record.name_localized is None

    def test_localized_printing(self, raw_card) -> None:
        record = normalize_card(
            raw_card(
                lang="fr",
                printed_name="Elfes de Llanowar",
                printed_type_line="Créature : elfe et druide",
                printed_text="{T} : Ajoutez {G}.",
            )
        )

        assert record.lang == "fr"
        assert record.name_localized == "Elfes de Llanowar"
        assert record.type_line_localized == "Créature : elfe et druide"
        assert record.oracle_text_localized == "{T} : Ajoutez {G}."

    def test_double_faced_card(self, raw_card) -> None:
        """Faces supply image, mana cost and text when the top level lacks them."""
        raw = raw_card(
            name="Delver of Secrets // Insectile Aberration",
            mana_cost=None,
            oracle_text=None,
            image_uris=None,
            colors=None,
            card_faces=[
                {
                    "name": "Delver of Secrets",
                    "mana_cost": "{U}",
                    "oracle_text": "Look at the top card.",
                    "colors": ["U"],
                    "image_uris": {"normal": "front.jpg"},
                },
                {
                    "name": "Insectile Aberration",
                    "mana_cost": "",
                    "oracle_text": "Flying",
                    "colors": ["U"],
                    "image_uris": {"normal": "back.jpg"},
                },
            ],
        )

        record = normalize_card(raw)

        assert record.image_uris == {"normal": "front.jpg"}
        assert record.mana_cost == "{U}"
        assert record.oracle_text == "Look at the top card. // Flying"
        assert record.colors == ["U"]

    def test_malformed_price_does_not_fail_card(self, raw_card) -> None:
        record = normalize_card(raw_card(prices={"eur": "??", "eur_foil": None}))

        assert record.price_eur is None
        assert record.prices == {"eur": "??", "eur_foil": None}

    def test_provenance_flags_kept(self, raw_card) -> None:
        record = normalize_card(raw_card(promo=True, frame_effects=["showcase"]))

        assert record.provenance()["promo"] is True
        assert record.provenance()["frame_effects"] == ["showcase"]
