"""One review per (order, reviewer), only once the order is CLOSED.

Reviews share their order's lock scope, so two reviews for the same order
or two edits of the same review never interleave.
"""
import logging

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..db import db
from ..errors import Conflict, Forbidden, InvalidOperation, InvalidState, NotFound, ValidationError
from ..locks import order_lock
from ..models import Order, OrderStatus, Review, utcnow
from ..utils.parsing import clean_str
from ..utils.responses import commit_or_rollback

logger = logging.getLogger(__name__)


def parse_rating(raw) -> int:
    if isinstance(raw, bool):
        raise ValidationError("rating must be an integer between 1 and 5", "invalid_rating")
    try:
        rating = int(raw)
    except (TypeError, ValueError, OverflowError):
        raise ValidationError("rating must be an integer between 1 and 5", "invalid_rating") from None
    if isinstance(raw, float) and raw != rating:
        raise ValidationError("rating must be an integer between 1 and 5", "invalid_rating")
    if not 1 <= rating <= 5:
        raise ValidationError("rating must be between 1 and 5", "invalid_rating")
    return rating


def _get_authored(review_id, actor) -> Review:
    review = db.session.get(Review, review_id)
    if review is None:
        raise NotFound("Review not found", "review_not_found")
    if review.reviewer_id != actor.id:
        raise Forbidden("Only the author can access this review", "not_author")
    return review


def create(reviewer, order_id, rating, comment=None) -> Review:
    if order_id is None:
        raise InvalidOperation("order_id is required", "order_id_required")

    with order_lock(order_id):
        order = Order.query.filter_by(id=order_id).with_for_update().populate_existing().first()
        if order is None:
            raise NotFound("Order not found", "order_not_found")
        if order.status != OrderStatus.CLOSED:
            raise InvalidState("Order must be closed before it can be reviewed", "order_not_closed")

        is_buyer = order.buyer_id == reviewer.id
        is_seller = order.seller_id == reviewer.id
        if not is_buyer and not is_seller:
            raise Forbidden("Access denied", "not_order_party")

        existing = Review.query.filter_by(order_id=order.id, reviewer_id=reviewer.id).first()
        if existing is not None:
            raise Conflict("You have already reviewed this order; edit the existing review instead",
                           "already_reviewed")

        rating = parse_rating(rating)

        now = utcnow()
        review = Review(
            order_id=order.id,
            reviewer_id=reviewer.id,
            reviewee_id=order.seller_id if is_buyer else order.buyer_id,
            rating=rating,
            comment=clean_str(comment, 1000),
            edit_count=0,
            created_at=now,
            updated_at=now,
        )
        try:
            db.session.add(review)
            db.session.flush()
            if is_buyer:
                order.buyer_review_id = review.id
            else:
                order.seller_review_id = review.id
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise Conflict("You have already reviewed this order", "already_reviewed") from None

    logger.info("review created id=%s order_id=%s reviewer_id=%s rating=%s",
                review.id, order_id, reviewer.id, rating)
    return review


def edit(review_id, actor, rating, comment=None) -> Review:
    review = _get_authored(review_id, actor)
    rating = parse_rating(rating)
    max_edits = current_app.config.get("REVIEW_MAX_EDITS", 2)
    window_days = current_app.config.get("REVIEW_EDIT_WINDOW_DAYS", 90)

    with order_lock(review.order_id):
        review = Review.query.filter_by(id=review_id).with_for_update().populate_existing().first()
        if review is None:
            raise NotFound("Review not found", "review_not_found")
        if review.edit_count >= max_edits:
            raise InvalidState(f"A review can be edited at most {max_edits} times", "review_edit_limit")
        now = utcnow()
        if (now - review.created_at).days > window_days:
            raise InvalidState(f"Reviews cannot be edited after {window_days} days", "review_edit_window_closed")

        review.rating = rating
        review.comment = clean_str(comment, 1000)
        review.edit_count = review.edit_count + 1
        review.updated_at = now
        commit_or_rollback()
    logger.info("review edited id=%s edit_count=%s", review_id, review.edit_count)
    return review


def delete(review_id, actor) -> None:
    review = _get_authored(review_id, actor)
    order_id = review.order_id

    with order_lock(order_id):
        order = db.session.get(Order, order_id)
        if order is not None:
            if order.buyer_review_id == review.id:
                order.buyer_review_id = None
            if order.seller_review_id == review.id:
                order.seller_review_id = None
        db.session.delete(review)
        commit_or_rollback()
    logger.info("review deleted id=%s order_id=%s", review_id, order_id)


def get(review_id, actor) -> Review:
    return _get_authored(review_id, actor)


def received_by(user_id) -> dict:
    reviews = (
        Review.query.filter_by(reviewee_id=user_id)
        .order_by(Review.created_at.desc(), Review.id.desc())
        .all()
    )
    average = None
    if reviews:
        average = round(sum(r.rating for r in reviews) / len(reviews), 2)
    return {
        "user_id": user_id,
        "items": [r.to_dict() for r in reviews],
        "total": len(reviews),
        "average_rating": average,
    }
