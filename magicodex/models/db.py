"""
SQLAlchemy ORM models for persistent storage.

List and map fields coming from Scryfall are stored as JSON columns so they are
parsed once by the ORM rather than re-decoded by every consumer.
"""

from datetime import date, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


class SetDB(Base):
    """
    A card set (expansion, promo set, commander deck...).

    Keyed on the Scryfall set id. The short code is unique too, but Scryfall
    occasionally reassigns codes so it is never used as the upsert key.
    """

    __tablename__ = "sets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scryfall_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    code: Mapped[str] = mapped_column(String(16), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255))
    name_localized: Mapped[str | None] = mapped_column(String(255), nullable=True)
    released_at: Mapped[date | None] = mapped_column(Date, nullable=True)
    card_count: Mapped[int] = mapped_column(Integer, default=0)
    set_type: Mapped[str] = mapped_column(String(50), default="")
    icon_svg_uri: Mapped[str] = mapped_column(Text, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    cards: Mapped[list["CardDB"]] = relationship(back_populates="set")

    def __repr__(self) -> str:
        return f"<SetDB(code={self.code}, name={self.name})>"


class CardDB(Base):
    """
    A single printing of a card.

    All printings of the same card share an oracle_id. `is_extra` is derived
    from the provenance flags and rewritten on every sync.
    """

    __tablename__ = "cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scryfall_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    oracle_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)

    name: Mapped[str] = mapped_column(String(255), index=True)
    name_localized: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mana_cost: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cmc: Mapped[float] = mapped_column(Float, default=0.0)
    type_line: Mapped[str] = mapped_column(String(255), default="")
    type_line_localized: Mapped[str | None] = mapped_column(String(255), nullable=True)
    oracle_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    oracle_text_localized: Mapped[str | None] = mapped_column(Text, nullable=True)
    power: Mapped[str | None] = mapped_column(String(16), nullable=True)
    toughness: Mapped[str | None] = mapped_column(String(16), nullable=True)
    loyalty: Mapped[str | None] = mapped_column(String(16), nullable=True)

    colors: Mapped[list[str]] = mapped_column(JSON, default=list)
    color_identity: Mapped[list[str]] = mapped_column(JSON, default=list)
    rarity: Mapped[str] = mapped_column(String(20), index=True)
    collector_number: Mapped[str] = mapped_column(String(20))
    lang: Mapped[str] = mapped_column(String(8), default="en")

    image_uris: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    prices: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    # Extracted from `prices` for range filtering
    price_eur: Mapped[float | None] = mapped_column(Float, nullable=True, index=True)
    price_eur_foil: Mapped[float | None] = mapped_column(Float, nullable=True)
    legalities: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    # Provenance flags, only used to classify extras
    booster: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    promo: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    variation: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    full_art: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    frame_effects: Mapped[list[str]] = mapped_column(JSON, default=list)
    promo_types: Mapped[list[str]] = mapped_column(JSON, default=list)
    border_color: Mapped[str | None] = mapped_column(String(20), nullable=True)
    is_extra: Mapped[bool] = mapped_column(Boolean, default=False, index=True)

    set_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sets.id", ondelete="RESTRICT"), index=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    set: Mapped["SetDB"] = relationship(back_populates="cards")

    def provenance(self) -> dict[str, Any]:
        """Provenance flags under their Scryfall field names."""
        return {
            "booster": self.booster,
            "promo": self.promo,
            "variation": self.variation,
            "full_art": self.full_art,
            "frame_effects": self.frame_effects or [],
            "promo_types": self.promo_types or [],
            "border_color": self.border_color,
        }

    def __repr__(self) -> str:
        return f"<CardDB(name={self.name}, scryfall_id={self.scryfall_id})>"


class SyncRunDB(Base):
    """
    Audit record of one catalog synchronization attempt.

    At most one RUNNING record per sync_type is expected; stale ones are swept
    to FAILED before a new run of that type starts.
    """

    __tablename__ = "sync_runs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sync_type: Mapped[str] = mapped_column(String(32), index=True)
    status: Mapped[str] = mapped_column(String(16), index=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    records_processed: Mapped[int] = mapped_column(Integer, default=0)

    def __repr__(self) -> str:
        return f"<SyncRunDB(id={self.id}, type={self.sync_type}, status={self.status})>"


class UserCollectionDB(Base):
    """
    A user's card collection stored in the database.

    Each user has one collection containing their owned printings.
    """

    __tablename__ = "user_collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    cards: Mapped[list["CardOwnershipDB"]] = relationship(
        back_populates="collection", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<UserCollectionDB(id={self.id}, user_id={self.user_id})>"


class CardOwnershipDB(Base):
    """How many copies of one printing a user owns."""

    __tablename__ = "card_ownership"
    __table_args__ = (UniqueConstraint("collection_id", "card_id", name="uq_collection_card"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    collection_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("user_collections.id", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("cards.id", ondelete="CASCADE"), index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1)

    collection: Mapped["UserCollectionDB"] = relationship(back_populates="cards")
    card: Mapped["CardDB"] = relationship()

    def __repr__(self) -> str:
        return f"<CardOwnershipDB(card_id={self.card_id}, qty={self.quantity})>"
