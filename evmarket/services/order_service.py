"""Buy-now orders and the two-party payment handshake.

    purchase -> PENDING --buyer confirms--> (flag) --seller confirms--> CLOSED
                PENDING/PAID --buyer or seller cancels--> CANCELLED

CLOSED and CANCELLED are terminal. Purchase and cancel write both the
listing and the order, always locking the listing first.
"""
import logging

from sqlalchemy import exists, or_
from sqlalchemy.exc import IntegrityError

from ..db import db
from ..errors import Conflict, Forbidden, InvalidOperation, InvalidState, NotFound, Precondition
from ..locks import listing_lock, order_lock
from ..models import (
    AVAILABLE_STATUSES,
    CancelledBy,
    Listing,
    ListingStatus,
    Order,
    OrderStatus,
    Review,
    utcnow,
)
from ..utils.parsing import clean_str
from ..utils.responses import commit_or_rollback
from . import user_directory

logger = logging.getLogger(__name__)

CANCELLABLE = (OrderStatus.PENDING, OrderStatus.PAID)


def _locked_listing(listing_id) -> Listing | None:
    return Listing.query.filter_by(id=listing_id).with_for_update().populate_existing().first()


def _locked_order(order_id) -> Order | None:
    return Order.query.filter_by(id=order_id).with_for_update().populate_existing().first()


def _has_live_order(listing_id) -> bool:
    return db.session.query(
        exists().where(Order.listing_id == listing_id, Order.status != OrderStatus.CANCELLED)
    ).scalar()


def _require_party(order: Order, actor):
    is_buyer = order.buyer_id == actor.id
    is_seller = order.seller_id == actor.id
    if not is_buyer and not is_seller:
        raise Forbidden("Access denied", "not_order_party")
    return is_buyer, is_seller


def _require_open(order: Order):
    if order.status.is_terminal:
        raise InvalidState(f"Order is already {order.status.value}", "order_finalized")


def purchase(listing_id, buyer) -> Order:
    with listing_lock(listing_id):
        listing = _locked_listing(listing_id)
        if listing is None or listing.is_removed or not listing.status.is_available:
            raise Conflict("Listing unavailable", "listing_unavailable")
        if listing.seller_id == buyer.id:
            raise InvalidOperation("You cannot buy your own listing", "self_purchase")
        if _has_live_order(listing_id):
            raise Conflict("Listing already has an active order", "order_exists")

        now = utcnow()
        order = Order(
            listing_id=listing.id,
            buyer_id=buyer.id,
            seller_id=listing.seller_id,
            amount=listing.price,
            status=OrderStatus.PENDING,
            buyer_payment_confirmed=False,
            seller_payment_received=False,
            created_at=now,
            updated_at=now,
        )
        try:
            db.session.add(order)
            # compare-and-swap: only an available row may become SOLD
            swapped = (
                Listing.query
                .filter(
                    Listing.id == listing_id,
                    Listing.status.in_(AVAILABLE_STATUSES),
                    Listing.deleted_at.is_(None),
                )
                .update({Listing.status: ListingStatus.SOLD, Listing.updated_at: now},
                        synchronize_session=False)
            )
            if swapped != 1:
                db.session.rollback()
                raise Conflict("Listing unavailable", "listing_unavailable")
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict("Listing already has an active order", "order_exists") from None

    logger.info("order created id=%s listing_id=%s buyer_id=%s amount=%s",
                order.id, listing_id, buyer.id, order.amount)
    return order


def cancel(order_id, actor, reason=None) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", "order_not_found")
    listing_id = order.listing_id

    with listing_lock(listing_id), order_lock(order_id):
        order = _locked_order(order_id)
        is_buyer, _ = _require_party(order, actor)
        if order.status not in CANCELLABLE:
            raise InvalidState("Order cannot be cancelled", "order_not_cancellable")

        now = utcnow()
        order.status = OrderStatus.CANCELLED
        order.cancelled_by = CancelledBy.BUYER if is_buyer else CancelledBy.SELLER
        order.cancellation_reason = clean_str(reason, 500)
        order.cancelled_at = now
        order.updated_at = now

        listing = _locked_listing(listing_id)
        if listing is not None and not listing.is_removed and listing.status == ListingStatus.SOLD:
            listing.status = ListingStatus.APPROVED
        commit_or_rollback()

    logger.info("order cancelled id=%s by=%s listing_id=%s reactivated",
                order_id, order.cancelled_by.value, listing_id)
    return order


def confirm_payment(order_id, buyer) -> Order:
    with order_lock(order_id):
        order = _locked_order(order_id)
        if order is None:
            raise NotFound("Order not found", "order_not_found")
        if order.buyer_id != buyer.id:
            raise Forbidden("Only the buyer can confirm payment", "not_buyer")
        _require_open(order)

        now = utcnow()
        order.buyer_payment_confirmed = True
        order.buyer_payment_confirmed_at = now
        order.updated_at = now
        commit_or_rollback()
    logger.info("buyer confirmed payment order_id=%s", order_id)
    return order


def confirm_received(order_id, seller) -> Order:
    with order_lock(order_id):
        order = _locked_order(order_id)
        if order is None:
            raise NotFound("Order not found", "order_not_found")
        if order.seller_id != seller.id:
            raise Forbidden("Only the seller can confirm receipt", "not_seller")
        _require_open(order)
        if not order.buyer_payment_confirmed:
            raise Precondition("Buyer has not confirmed payment", "buyer_not_confirmed")

        now = utcnow()
        order.seller_payment_received = True
        order.seller_payment_received_at = now
        order.status = OrderStatus.CLOSED
        order.closed_at = now
        order.updated_at = now
        commit_or_rollback()
    logger.info("order closed id=%s", order_id)
    return order


def _sync_review_refs(order: Order) -> bool:
    changed = False
    if order.buyer_review_id is None:
        review = Review.query.filter_by(order_id=order.id, reviewer_id=order.buyer_id).first()
        if review is not None:
            order.buyer_review_id = review.id
            changed = True
    if order.seller_review_id is None:
        review = Review.query.filter_by(order_id=order.id, reviewer_id=order.seller_id).first()
        if review is not None:
            order.seller_review_id = review.id
            changed = True
    return changed


def get_detail(order_id, actor) -> dict:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found", "order_not_found")
    is_buyer, is_seller = _require_party(order, actor)

    with order_lock(order_id):
        order = _locked_order(order_id)
        if _sync_review_refs(order):
            commit_or_rollback()
            logger.info("order review references repaired order_id=%s", order_id)

    listing = db.session.get(Listing, order.listing_id)
    return {
        "order": order.to_dict(),
        "listing": listing.to_dict() if listing else None,
        "buyer": user_directory.fetch_user_view(order.buyer_id),
        "seller": user_directory.fetch_user_view(order.seller_id),
        "payment_info": listing.payment_info() if listing else None,
        "is_buyer": is_buyer,
        "is_seller": is_seller,
    }


def list_for(actor):
    return (
        Order.query
        .filter(or_(Order.buyer_id == actor.id, Order.seller_id == actor.id))
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
