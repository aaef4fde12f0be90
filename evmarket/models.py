from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import Enum as SAEnum

from .db import db


def utcnow() -> datetime:
    """Naive UTC timestamp, matching how the columns are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(dt):
    return dt.isoformat() if dt else None


class ItemCategory(Enum):
    EV = "EV"
    BATTERY = "BATTERY"


class ListingStatus(Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SOLD = "SOLD"
    INACTIVE = "INACTIVE"
    # legacy rows written before moderation existed
    ACTIVE = "ACTIVE"

    @property
    def is_available(self) -> bool:
        return self in AVAILABLE_STATUSES

    @property
    def needs_moderation_visibility(self) -> bool:
        return self in (ListingStatus.PENDING, ListingStatus.REJECTED)

    @classmethod
    def parse(cls, raw):
        if raw is None:
            return None
        try:
            return cls(str(raw).strip().upper())
        except ValueError:
            return None


AVAILABLE_STATUSES = (ListingStatus.APPROVED, ListingStatus.ACTIVE)


class PaymentMethod(Enum):
    CASH = "CASH"
    BANK_TRANSFER = "BANK_TRANSFER"

    @classmethod
    def parse(cls, raw):
        value = str(raw or "").strip().upper()
        if value == "VIETQR":
            return cls.BANK_TRANSFER
        try:
            return cls(value)
        except ValueError:
            return None


class OrderStatus(Enum):
    PENDING = "PENDING"
    # only reachable through old data; the handshake goes PENDING -> CLOSED
    PAID = "PAID"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.CLOSED, OrderStatus.CANCELLED)


class CancelledBy(Enum):
    BUYER = "BUYER"
    SELLER = "SELLER"


class Listing(db.Model):
    __tablename__ = "listings"

    id                     = db.Column(db.Integer, primary_key=True)
    seller_id              = db.Column(db.Integer, nullable=False, index=True)
    category               = db.Column(SAEnum(ItemCategory), nullable=False, default=ItemCategory.EV, index=True)

    brand                  = db.Column(db.String(80), index=True)
    model                  = db.Column(db.String(120))
    year                   = db.Column(db.Integer, index=True)
    mileage_km             = db.Column(db.Integer)
    battery_capacity_kwh   = db.Column(db.Integer)
    condition_label        = db.Column(db.String(40))
    description            = db.Column(db.String(2000))
    price                  = db.Column(db.Float, nullable=False, index=True)

    payment_method         = db.Column(SAEnum(PaymentMethod), nullable=True)
    bank_account_holder    = db.Column(db.String(120))
    bank_code              = db.Column(db.String(20))
    bank_name              = db.Column(db.String(120))
    bank_account_number    = db.Column(db.String(40))
    payment_amount         = db.Column(db.Float)
    payment_memo           = db.Column(db.String(255))

    status                 = db.Column(SAEnum(ListingStatus), nullable=False, default=ListingStatus.PENDING, index=True)
    edited_after_rejection = db.Column(db.Boolean, nullable=False, default=False)
    created_at             = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at             = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    deleted_at             = db.Column(db.DateTime, nullable=True)

    @property
    def is_removed(self) -> bool:
        return self.deleted_at is not None or self.status == ListingStatus.INACTIVE

    def visible_to(self, viewer) -> bool:
        if self.is_removed:
            return False
        if self.status.needs_moderation_visibility:
            return viewer is not None and (viewer.is_admin or viewer.id == self.seller_id)
        return True

    def payment_info(self):
        if self.payment_method is None:
            return None
        return {
            "method": self.payment_method.value,
            "account_holder": self.bank_account_holder,
            "bank_code": self.bank_code,
            "bank_name": self.bank_name,
            "account_number": self.bank_account_number,
            "amount": self.payment_amount,
            "memo": self.payment_memo,
        }

    def to_dict(self):
        return {
            "id": self.id,
            "seller_id": self.seller_id,
            "category": self.category.value if self.category else None,
            "brand": self.brand,
            "model": self.model,
            "year": self.year,
            "mileage_km": self.mileage_km,
            "battery_capacity_kwh": self.battery_capacity_kwh,
            "condition_label": self.condition_label,
            "description": self.description,
            "price": self.price,
            "status": self.status.value,
            "edited_after_rejection": bool(self.edited_after_rejection),
            "payment_info": self.payment_info(),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Listing id={self.id} seller_id={self.seller_id} status={self.status}>"


class Order(db.Model):
    __tablename__ = "orders"

    id                          = db.Column(db.Integer, primary_key=True)
    listing_id                  = db.Column(db.Integer, db.ForeignKey("listings.id"), nullable=False, index=True)
    buyer_id                    = db.Column(db.Integer, nullable=False, index=True)
    seller_id                   = db.Column(db.Integer, nullable=False, index=True)
    amount                      = db.Column(db.Float, nullable=False)
    status                      = db.Column(SAEnum(OrderStatus), nullable=False, default=OrderStatus.PENDING, index=True)

    buyer_payment_confirmed     = db.Column(db.Boolean, nullable=False, default=False)
    buyer_payment_confirmed_at  = db.Column(db.DateTime)
    seller_payment_received     = db.Column(db.Boolean, nullable=False, default=False)
    seller_payment_received_at  = db.Column(db.DateTime)

    cancelled_by                = db.Column(SAEnum(CancelledBy), nullable=True)
    cancellation_reason         = db.Column(db.String(500))

    buyer_review_id             = db.Column(db.Integer, nullable=True)
    seller_review_id            = db.Column(db.Integer, nullable=True)

    created_at                  = db.Column(db.DateTime, nullable=False, default=utcnow, index=True)
    updated_at                  = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)
    closed_at                   = db.Column(db.DateTime)
    cancelled_at                = db.Column(db.DateTime)

    __table_args__ = (
        # at most one live order per listing
        db.Index(
            "uq_orders_open_listing",
            "listing_id",
            unique=True,
            sqlite_where=db.text("status != 'CANCELLED'"),
            postgresql_where=db.text("status != 'CANCELLED'"),
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "buyer_id": self.buyer_id,
            "seller_id": self.seller_id,
            "amount": self.amount,
            "status": self.status.value,
            "buyer_payment_confirmed": bool(self.buyer_payment_confirmed),
            "buyer_payment_confirmed_at": _iso(self.buyer_payment_confirmed_at),
            "seller_payment_received": bool(self.seller_payment_received),
            "seller_payment_received_at": _iso(self.seller_payment_received_at),
            "cancelled_by": self.cancelled_by.value if self.cancelled_by else None,
            "cancellation_reason": self.cancellation_reason,
            "buyer_review_id": self.buyer_review_id,
            "seller_review_id": self.seller_review_id,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "closed_at": _iso(self.closed_at),
            "cancelled_at": _iso(self.cancelled_at),
        }

    def __repr__(self):
        return f"<Order id={self.id} listing_id={self.listing_id} status={self.status}>"


class Review(db.Model):
    __tablename__ = "reviews"

    id          = db.Column(db.Integer, primary_key=True)
    order_id    = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    reviewer_id = db.Column(db.Integer, nullable=False, index=True)
    reviewee_id = db.Column(db.Integer, nullable=False, index=True)
    rating      = db.Column(db.Integer, nullable=False)
    comment     = db.Column(db.String(1000))
    edit_count  = db.Column(db.Integer, nullable=False, default=0)
    created_at  = db.Column(db.DateTime, nullable=False, default=utcnow)
    updated_at  = db.Column(db.DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("order_id", "reviewer_id", name="uq_review_order_reviewer"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "reviewer_id": self.reviewer_id,
            "reviewee_id": self.reviewee_id,
            "rating": self.rating,
            "comment": self.comment,
            "edit_count": self.edit_count,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Review id={self.id} order_id={self.order_id} reviewer_id={self.reviewer_id} rating={self.rating}>"


class Favorite(db.Model):
    __tablename__ = "favorites"

    id         = db.Column(db.Integer, primary_key=True)
    user_id    = db.Column(db.Integer, index=True, nullable=False)
    listing_id = db.Column(db.Integer, db.ForeignKey("listings.id"), index=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (
        db.UniqueConstraint("user_id", "listing_id", name="uq_user_listing"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "listing_id": self.listing_id,
            "created_at": _iso(self.created_at),
        }
