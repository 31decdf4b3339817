import enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, Numeric, Text, UniqueConstraint
from sqlmodel import Column, Field, SQLModel, String
from uuid6 import uuid7
from storefront.common.utils import now


def new_public_id() -> str:
    return str(uuid7())


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    REVOKED = "revoked"


class InstallationOption(str, enum.Enum):
    NONE = "none"
    STORE = "store"
    HOME = "home"


class OrderStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"


class PaymentProvider(str, enum.Enum):
    STRIPE = "stripe"
    TABBY = "tabby"


class ReservationStatus(str, enum.Enum):
    ACTIVE = "active"
    COMMITTED = "committed"
    RELEASED = "released"

#-----------------------------------------------------------------------------------------------------------

# one row per shopper identity , anonymous until user_id gets attached at login
class StorefrontSession(SQLModel, table=True):
    __tablename__ = "storefront_session"

    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: str = Field(sa_column=Column(String(64), nullable=False, unique=True, index=True))
    status: str = Field(default=SessionStatus.ACTIVE.value, sa_column=Column(String(16), nullable=False))
    user_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, index=True))
    cart_id: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    wishlist_id: Optional[int] = Field(default=None, sa_column=Column(Integer, nullable=True))
    # user agent + sha256 of the client ip , raw ip is never stored
    client_meta: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))
    expires_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    last_active_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

#-----------------------------------------------------------------------------------------------------------

class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: str = Field(default_factory=new_public_id,
        sa_column=Column(String(64), unique=True, index=True, nullable=False))
    name: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    description: Optional[str] = Field(default=None, sa_column=Column(Text(), nullable=True))
    base_price: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))
    offer_percentage: Optional[Decimal] = Field(default=None, sa_column=Column(Numeric(5, 2), nullable=True))

    # [{"variant_type_id","variant_type_name","selected_items":[{"id","name"}],"price_modifier"}]
    variants: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    # {"enabled","in_store_price","at_home_price","available_locations":[{"location_id","name","price_delta","enabled"}]}
    installation_service: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    # [{"url","order","mapped_variants":["item" or "item+item"]}]
    images: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    created_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))
    deleted_at: Optional[datetime] = Field(default=None,
        sa_column=Column(DateTime(timezone=True)))


# stock per variant combination , "default" key for products without variants .
# no row for a combination means stock is not tracked for it .
class ProductStock(SQLModel, table=True):
    __tablename__ = "product_stock"

    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(sa_column=Column(Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True))
    variant_key: str = Field(sa_column=Column(String(512), nullable=False))
    stock_count: int = Field(default=0, sa_column=Column(Integer, nullable=False))
    updated_at: datetime = Field(default_factory=now,
        sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    __table_args__ = (
        UniqueConstraint("product_id", "variant_key", name="uq_product_stock_variant"),
    )

#-----------------------------------------------------------------------------------------------------------

# guest carts are keyed by session_id , user carts by user_id (lookup prefers user_id)
class Cart(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, unique=True, index=True))
    user_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, unique=True, index=True))
    billing_details: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


# a line is identified by (cart, product, normalized variant key) ; installation is line data , not identity
class CartLine(SQLModel, table=True):
    __tablename__ = "cart_line"

    id: Optional[int] = Field(default=None, primary_key=True)
    cart_id: int = Field(sa_column=Column(Integer, ForeignKey("cart.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: str = Field(sa_column=Column(String(64), nullable=False))
    variant_key: str = Field(sa_column=Column(String(512), nullable=False))
    selected_variant_item_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    unit_price: Decimal = Field(sa_column=Column(Numeric(12, 2), nullable=False))
    installation_option: str = Field(default=InstallationOption.NONE.value, sa_column=Column(String(8), nullable=False))
    installation_location_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    installation_location_delta: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(12, 2), nullable=False))
    installation_add_on_price: Decimal = Field(default=Decimal("0"), sa_column=Column(Numeric(12, 2), nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now, onupdate=now))

    __table_args__ = (
        UniqueConstraint("cart_id", "product_id", "variant_key", name="uq_cart_line_identity"),
    )

#-----------------------------------------------------------------------------------------------------------

class Wishlist(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    session_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, unique=True, index=True))
    user_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, unique=True, index=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))


class WishlistItem(SQLModel, table=True):
    __tablename__ = "wishlist_item"

    id: Optional[int] = Field(default=None, primary_key=True)
    wishlist_id: int = Field(sa_column=Column(Integer, ForeignKey("wishlist.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: str = Field(sa_column=Column(String(64), nullable=False))
    variant_key: str = Field(sa_column=Column(String(512), nullable=False))
    selected_variant_item_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    __table_args__ = (
        UniqueConstraint("wishlist_id", "product_id", "variant_key", name="uq_wishlist_item_identity"),
    )

# --------------------------------------------------------------------------------------------

# items are a frozen copy taken at order creation , later catalog edits never touch them
class Orders(SQLModel, table=True):

    id: Optional[int] = Field(default=None, primary_key=True)
    public_id: str = Field(default_factory=new_public_id, sa_column=Column(String(64), unique=True, index=True, nullable=False))
    session_id: str = Field(sa_column=Column(String(64), nullable=False, index=True))
    user_id: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True, index=True))
    payment_provider: str = Field(sa_column=Column(String(16), nullable=False))
    # the provider's checkout session / payment id , webhooks correlate on it
    payment_provider_session_id: Optional[str] = Field(default=None, sa_column=Column(String(255), nullable=True, unique=True))
    items: List[Dict[str, Any]] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    total_amount: Decimal = Field(sa_column=Column(Numeric(14, 3), nullable=False))
    currency: str = Field(sa_column=Column(String(8), nullable=False))
    status: str = Field(default=OrderStatus.PENDING.value, sa_column=Column(String(16), nullable=False, index=True))
    billing_details: Dict[str, Any] = Field(sa_column=Column(JSON, nullable=False))
    billing_email: Optional[str] = Field(default=None, sa_column=Column(String(320), nullable=True, index=True))
    idempotency_key: Optional[str] = Field(default=None, sa_column=Column(String(128), nullable=True, unique=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))
    updated_at: datetime = Field(default_factory=now,sa_column=Column(DateTime(timezone=True), nullable=False,default=now, onupdate=now))

    __table_args__ = (
        Index("ix_orders_session_created", "session_id", "created_at"),
    )


class StockReservation(SQLModel, table=True):
    __tablename__ = "stock_reservation"

    id: Optional[int] = Field(default=None, primary_key=True)
    order_id: int = Field(sa_column=Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True))
    product_id: str = Field(sa_column=Column(String(64), nullable=False))
    variant_key: str = Field(sa_column=Column(String(512), nullable=False))
    quantity: int = Field(sa_column=Column(Integer, nullable=False))
    reserved_until: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False, index=True))
    status: str = Field(default=ReservationStatus.ACTIVE.value, sa_column=Column(String(16), nullable=False, index=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    __table_args__ = (
        UniqueConstraint("order_id", "product_id", "variant_key", name="uq_reservation_order_line"),
        Index("ix_reservation_product_variant", "product_id", "variant_key"),
    )


class PaymentWebhookEvent(SQLModel, table=True):
    __tablename__ = "payment_webhook_event"

    id: Optional[int] = Field(default=None, primary_key=True)
    provider: str = Field(sa_column=Column(String(32), nullable=False, index=True))
    provider_event_id: str = Field(sa_column=Column(String(255), nullable=False))
    event_type: Optional[str] = Field(default=None, sa_column=Column(String(64), nullable=True))
    payload: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    processed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True, index=True))
    created_at: datetime = Field(default_factory=now, sa_column=Column(DateTime(timezone=True), nullable=False, default=now))

    __table_args__ = (
        UniqueConstraint("provider", "provider_event_id", name="uq_webhook_provider_event"),
    )
