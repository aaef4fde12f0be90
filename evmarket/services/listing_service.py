"""Listing lifecycle: submission, moderation, amnesty edits and withdrawal.

    submit -> PENDING -> approve -> APPROVED -> (purchase) SOLD
                      -> reject  -> REJECTED -> edit once -> PENDING
                                                 -> reject again -> INACTIVE + deleted_at

A removed listing (``deleted_at`` set or INACTIVE) is invisible on every read
path, owner and administrators included. Every mutation runs under the
listing's lock so moderation never races an edit or a purchase.
"""
import logging
from dataclasses import dataclass, field

from sqlalchemy import exists, false

from ..db import db
from ..errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from ..locks import listing_lock
from ..models import (
    AVAILABLE_STATUSES,
    ItemCategory,
    Listing,
    ListingStatus,
    Order,
    OrderStatus,
    PaymentMethod,
    utcnow,
)
from ..utils.parsing import clean_str, parse_bool, parse_float, parse_int
from ..utils.responses import commit_or_rollback
from . import favorite_service

logger = logging.getLogger(__name__)

OPEN_ORDER_STATUSES = (OrderStatus.PENDING, OrderStatus.PAID)


@dataclass
class PaymentFields:
    method: PaymentMethod
    account_holder: str | None = None
    bank_code: str | None = None
    bank_name: str | None = None
    account_number: str | None = None
    amount: float | None = None
    memo: str | None = None

    BANK_FIELDS = ("account_holder", "bank_code", "bank_name", "account_number", "amount", "memo")

    @classmethod
    def from_payload(cls, data):
        if not isinstance(data, dict):
            raise ValidationError("payment_info must be an object", "invalid_payment_info")
        method = PaymentMethod.parse(data.get("method") or data.get("payment_method"))
        if method is None:
            raise ValidationError("Payment method must be CASH or BANK_TRANSFER", "invalid_payment_method")
        if method is PaymentMethod.CASH:
            return cls(method=method)

        fields = cls(
            method=method,
            account_holder=clean_str(data.get("account_holder"), 120),
            bank_code=clean_str(data.get("bank_code"), 20),
            bank_name=clean_str(data.get("bank_name"), 120),
            account_number=clean_str(data.get("account_number"), 40),
            amount=parse_float(data.get("amount"), None, 0),
            memo=clean_str(data.get("memo"), 255),
        )
        missing = [name for name in cls.BANK_FIELDS if getattr(fields, name) is None]
        if missing:
            raise ValidationError(
                "All bank transfer fields are required: " + ", ".join(cls.BANK_FIELDS),
                "incomplete_payment_info",
            )
        return fields

    def apply(self, listing: Listing):
        listing.payment_method = self.method
        # switching to cash clears the transfer instructions
        listing.bank_account_holder = self.account_holder
        listing.bank_code = self.bank_code
        listing.bank_name = self.bank_name
        listing.bank_account_number = self.account_number
        listing.payment_amount = self.amount
        listing.payment_memo = self.memo


def _str_field(max_len):
    def parse(value):
        if value is not None and not isinstance(value, (str, int, float)):
            raise ValueError
        return clean_str(value, max_len)
    return parse


def _int_field(minv=None, maxv=None):
    def parse(value):
        if value is None or value == "":
            return None
        n = parse_int(value, None, minv, maxv)
        if n is None:
            raise ValueError
        return n
    return parse


def _price(value):
    n = parse_float(value)
    if n is None or n <= 0:
        raise ValueError
    return n


def _category(value):
    c = str(value or "").strip().upper()
    return ItemCategory(c)


# json key -> (attribute, parser)
_LISTING_KEYS = {
    "category": ("category", _category),
    "type": ("category", _category),
    "brand": ("brand", _str_field(80)),
    "model": ("model", _str_field(120)),
    "year": ("year", _int_field(1900, 2100)),
    "mileage_km": ("mileage_km", _int_field(0)),
    "battery_capacity_kwh": ("battery_capacity_kwh", _int_field(0)),
    "condition_label": ("condition_label", _str_field(40)),
    "description": ("description", _str_field(2000)),
    "price": ("price", _price),
}


@dataclass
class ListingFields:
    """The seller-editable part of a listing. Only ``provided`` fields are applied."""

    category: ItemCategory | None = None
    brand: str | None = None
    model: str | None = None
    year: int | None = None
    mileage_km: int | None = None
    battery_capacity_kwh: int | None = None
    condition_label: str | None = None
    description: str | None = None
    price: float | None = None
    payment: PaymentFields | None = None
    provided: frozenset = field(default_factory=frozenset)

    @classmethod
    def from_payload(cls, data, creating=False):
        if not isinstance(data, dict):
            raise ValidationError("Request body must be a JSON object", "invalid_body")

        fields = cls()
        provided = set()
        for key, (attr, parser) in _LISTING_KEYS.items():
            if key not in data:
                continue
            try:
                setattr(fields, attr, parser(data[key]))
            except ValueError:
                raise ValidationError(f"Invalid value for {key}", f"invalid_{attr}") from None
            provided.add(attr)

        if "payment_info" in data and data["payment_info"] is not None:
            fields.payment = PaymentFields.from_payload(data["payment_info"])
            provided.add("payment")

        if creating:
            if fields.category is None:
                raise ValidationError("category must be EV or BATTERY", "invalid_category")
            if fields.price is None:
                raise ValidationError("price must be a positive number", "invalid_price")

        fields.provided = frozenset(provided)
        return fields

    def apply(self, listing: Listing):
        for attr in self.provided:
            if attr == "payment":
                self.payment.apply(listing)
            else:
                setattr(listing, attr, getattr(self, attr))


@dataclass
class SearchFilters:
    category: ItemCategory | None = None
    brand: str | None = None
    status: ListingStatus | None = None
    min_year: int | None = None
    max_year: int | None = None
    min_capacity: int | None = None
    min_price: float | None = None
    max_price: float | None = None
    mine: bool = False

    @classmethod
    def from_args(cls, args):
        raw_category = (args.get("category") or args.get("type") or "").strip().upper()
        return cls(
            category=ItemCategory(raw_category) if raw_category in ItemCategory.__members__ else None,
            brand=clean_str(args.get("brand")),
            status=ListingStatus.parse(args.get("status")),
            min_year=parse_int(args.get("minYear")),
            max_year=parse_int(args.get("maxYear")),
            min_capacity=parse_int(args.get("minCapacity"), None, 0),
            min_price=parse_float(args.get("minPrice"), None, 0),
            max_price=parse_float(args.get("maxPrice"), None, 0),
            mine=parse_bool(args.get("mine")),
        )


def _locked_listing(listing_id) -> Listing | None:
    return Listing.query.filter_by(id=listing_id).with_for_update().populate_existing().first()


def _has_open_order(listing_id) -> bool:
    return db.session.query(
        exists().where(Order.listing_id == listing_id, Order.status.in_(OPEN_ORDER_STATUSES))
    ).scalar()


def _require_pending(listing: Listing, verb: str):
    if listing.is_removed:
        raise InvalidState(f"Cannot {verb} a removed listing", "listing_removed")
    if listing.status != ListingStatus.PENDING:
        raise InvalidState(f"Can only {verb} PENDING listings", "not_pending")


def submit(seller, fields: ListingFields) -> Listing:
    listing = Listing(
        seller_id=seller.id,
        status=ListingStatus.PENDING,
        edited_after_rejection=False,
        deleted_at=None,
        created_at=utcnow(),
    )
    fields.apply(listing)
    db.session.add(listing)
    commit_or_rollback()
    logger.info("listing submitted id=%s seller_id=%s", listing.id, seller.id)
    return listing


def approve(listing_id, moderator) -> Listing:
    with listing_lock(listing_id):
        listing = _locked_listing(listing_id)
        if listing is None:
            raise NotFound("Listing not found", "listing_not_found")
        _require_pending(listing, "approve")
        listing.status = ListingStatus.APPROVED
        commit_or_rollback()
    logger.info("listing approved id=%s by=%s", listing_id, moderator.id)
    return listing


def reject(listing_id, moderator) -> Listing:
    with listing_lock(listing_id):
        listing = _locked_listing(listing_id)
        if listing is None:
            raise NotFound("Listing not found", "listing_not_found")
        _require_pending(listing, "reject")

        if listing.edited_after_rejection:
            # second rejection after the amnesty edit removes the listing for good
            listing.status = ListingStatus.INACTIVE
            listing.deleted_at = utcnow()
            removed = favorite_service.on_listing_removed(listing.id)
            commit_or_rollback()
            logger.info("listing removed on repeat rejection id=%s by=%s favorites_removed=%s",
                        listing_id, moderator.id, removed)
        else:
            listing.status = ListingStatus.REJECTED
            commit_or_rollback()
            logger.info("listing rejected id=%s by=%s", listing_id, moderator.id)
    return listing


def edit(listing_id, actor, fields: ListingFields) -> Listing:
    with listing_lock(listing_id):
        listing = _locked_listing(listing_id)
        if listing is None:
            raise NotFound("Listing not found", "listing_not_found")
        if listing.seller_id != actor.id:
            raise Forbidden("Only the seller can edit this listing", "not_owner")
        if listing.is_removed:
            raise NotFound("Listing not found", "listing_not_found")

        resubmitted = False
        if listing.status == ListingStatus.REJECTED:
            if listing.edited_after_rejection:
                raise InvalidState(
                    "Listing was already edited after rejection and cannot be edited again",
                    "edit_amnesty_exhausted",
                )
            listing.edited_after_rejection = True
            listing.status = ListingStatus.PENDING
            resubmitted = True

        fields.apply(listing)
        commit_or_rollback()
    if resubmitted:
        logger.info("listing resubmitted after rejection id=%s seller_id=%s", listing_id, actor.id)
    else:
        logger.info("listing edited id=%s seller_id=%s", listing_id, actor.id)
    return listing


def withdraw(listing_id, actor) -> None:
    with listing_lock(listing_id):
        listing = _locked_listing(listing_id)
        if listing is None:
            raise NotFound("Listing not found", "listing_not_found")
        if listing.seller_id != actor.id:
            raise Forbidden("Only the seller can delete this listing", "not_owner")
        if listing.is_removed:
            raise NotFound("Listing not found", "listing_not_found")
        if _has_open_order(listing_id):
            raise Conflict("Cannot delete listing with active orders", "active_order_exists")

        removed = favorite_service.on_listing_removed(listing.id)
        listing.status = ListingStatus.INACTIVE
        listing.deleted_at = utcnow()
        commit_or_rollback()
    logger.info("listing withdrawn id=%s seller_id=%s favorites_removed=%s", listing_id, actor.id, removed)


def view(listing_id, viewer) -> Listing:
    """Hidden listings answer NotFound rather than Forbidden so existence never leaks."""
    listing = db.session.get(Listing, listing_id)
    if listing is None or not listing.visible_to(viewer):
        raise NotFound("Listing not found", "listing_not_found")
    return listing


def search(filters: SearchFilters, viewer, page=1, per_page=20):
    q = Listing.query.filter(Listing.deleted_at.is_(None), Listing.status != ListingStatus.INACTIVE)

    if filters.status is not None:
        q = q.filter(Listing.status == filters.status)

    if filters.mine:
        q = q.filter(Listing.seller_id == viewer.id) if viewer else q.filter(false())
    elif filters.status is not None and filters.status.needs_moderation_visibility:
        if viewer is None:
            q = q.filter(false())
        elif not viewer.is_admin:
            q = q.filter(Listing.seller_id == viewer.id)

    if filters.status is None and not filters.mine:
        q = q.filter(
            Listing.status.in_(AVAILABLE_STATUSES),
            ~exists().where(Order.listing_id == Listing.id, Order.status.in_(OPEN_ORDER_STATUSES)),
        )

    if filters.category is not None:
        q = q.filter(Listing.category == filters.category)
    if filters.brand:
        q = q.filter(Listing.brand.ilike(f"%{filters.brand}%"))
    if filters.min_year is not None:
        q = q.filter(Listing.year >= filters.min_year)
    if filters.max_year is not None:
        q = q.filter(Listing.year <= filters.max_year)
    if filters.min_capacity is not None:
        q = q.filter(Listing.battery_capacity_kwh >= filters.min_capacity)
    if filters.min_price is not None:
        q = q.filter(Listing.price >= filters.min_price)
    if filters.max_price is not None:
        q = q.filter(Listing.price <= filters.max_price)

    q = q.order_by(Listing.created_at.desc(), Listing.id.desc())
    return q.paginate(page=page, per_page=per_page, error_out=False)


def pending_queue():
    return (
        Listing.query
        .filter(Listing.status == ListingStatus.PENDING, Listing.deleted_at.is_(None))
        .order_by(Listing.created_at.asc(), Listing.id.asc())
        .all()
    )


def verify(listing_id, moderator) -> Listing:
    with listing_lock(listing_id):
        listing = _locked_listing(listing_id)
        if listing is None or listing.is_removed:
            raise NotFound("Listing not found", "listing_not_found")
        listing.condition_label = "verified"
        commit_or_rollback()
    logger.info("listing verified id=%s by=%s", listing_id, moderator.id)
    return listing


def summary() -> dict:
    live = Listing.query.filter(Listing.deleted_at.is_(None))
    return {
        "approved_listings": live.filter(Listing.status.in_(AVAILABLE_STATUSES)).count(),
        "pending_listings": live.filter(Listing.status == ListingStatus.PENDING).count(),
        "rejected_listings": live.filter(Listing.status == ListingStatus.REJECTED).count(),
        "sold_listings": Listing.query.filter(Listing.status == ListingStatus.SOLD).count(),
    }
