import logging

from sqlalchemy.exc import IntegrityError

from ..db import db
from ..errors import Forbidden, NotFound
from ..models import Favorite, Listing
from ..utils.responses import commit_or_rollback

logger = logging.getLogger(__name__)


def on_listing_removed(listing_id) -> int:
    """Drop every favorite pointing at a withdrawn listing.

    Runs inside the caller's unit of work; the caller commits.
    """
    count = Favorite.query.filter(Favorite.listing_id == listing_id).delete(synchronize_session=False)
    if count:
        logger.info("favorites cascaded listing_id=%s removed=%s", listing_id, count)
    return count


def add(user, listing_id) -> Favorite:
    listing = db.session.get(Listing, listing_id)
    if listing is None or not listing.visible_to(user):
        raise NotFound("Listing not found", "listing_not_found")

    existing = Favorite.query.filter_by(user_id=user.id, listing_id=listing_id).first()
    if existing:
        return existing

    fav = Favorite(user_id=user.id, listing_id=listing_id)
    db.session.add(fav)
    try:
        commit_or_rollback()
    except IntegrityError:
        # a concurrent add won the unique constraint
        return Favorite.query.filter_by(user_id=user.id, listing_id=listing_id).one()
    return fav


def list_for(user):
    return (
        Favorite.query.filter_by(user_id=user.id)
        .order_by(Favorite.created_at.desc(), Favorite.id.desc())
        .all()
    )


def remove(user, favorite_id) -> None:
    fav = db.session.get(Favorite, favorite_id)
    if fav is None:
        raise NotFound("Favorite not found", "favorite_not_found")
    if fav.user_id != user.id:
        raise Forbidden("Not your favorite", "not_owner")
    db.session.delete(fav)
    commit_or_rollback()


def remove_for_listing(user, listing_id) -> None:
    fav = Favorite.query.filter_by(user_id=user.id, listing_id=listing_id).first()
    if fav is None:
        raise NotFound("Favorite not found", "favorite_not_found")
    db.session.delete(fav)
    commit_or_rollback()


def find(user, listing_id):
    if user is None:
        return None
    return Favorite.query.filter_by(user_id=user.id, listing_id=listing_id).first()
