from flask import Blueprint, g

from ..auth_mw import current_actor, require_auth
from ..services import favorite_service
from ..utils.responses import no_content, ok

bp_favorites = Blueprint("favorites", __name__, url_prefix="/favorites")


@bp_favorites.get("")
@require_auth
def my_favorites():
    favs = favorite_service.list_for(g.actor)
    return ok({"items": [f.to_dict() for f in favs], "total": len(favs)})


@bp_favorites.post("/<int:listing_id>")
@require_auth
def add_favorite(listing_id: int):
    return ok(favorite_service.add(g.actor, listing_id).to_dict())


@bp_favorites.delete("/<int:favorite_id>")
@require_auth
def delete_favorite(favorite_id: int):
    favorite_service.remove(g.actor, favorite_id)
    return no_content()


@bp_favorites.delete("/listing/<int:listing_id>")
@require_auth
def delete_favorite_for_listing(listing_id: int):
    favorite_service.remove_for_listing(g.actor, listing_id)
    return no_content()


@bp_favorites.get("/listing/<int:listing_id>/check")
def check_favorite(listing_id: int):
    fav = favorite_service.find(current_actor(), listing_id)
    return ok({"is_favorite": fav is not None, "favorite_id": fav.id if fav else None})
