from flask import Blueprint, current_app, g, request

from ..auth_mw import current_actor, require_auth
from ..services import listing_service
from ..services.listing_service import ListingFields, SearchFilters
from ..utils.parsing import parse_int
from ..utils.responses import no_content, ok

bp_listings = Blueprint("listings", __name__, url_prefix="/listings")


@bp_listings.get("")
def search_listings():
    cfg = current_app.config
    filters = SearchFilters.from_args(request.args)
    page = parse_int(request.args.get("page"), 1, 1)
    per_page = parse_int(request.args.get("per_page"), cfg["SEARCH_DEFAULT_PER_PAGE"], 1, cfg["SEARCH_MAX_PER_PAGE"])

    page_obj = listing_service.search(filters, current_actor(), page=page, per_page=per_page)
    return ok({
        "items": [l.to_dict() for l in page_obj.items],
        "page": page_obj.page,
        "per_page": page_obj.per_page,
        "total": page_obj.total,
        "pages": page_obj.pages,
    })


@bp_listings.post("")
@require_auth
def submit_listing():
    fields = ListingFields.from_payload(request.get_json(silent=True), creating=True)
    listing = listing_service.submit(g.actor, fields)
    return ok(listing.to_dict())


@bp_listings.get("/<int:listing_id>")
def get_listing(listing_id: int):
    listing = listing_service.view(listing_id, current_actor())
    return ok(listing.to_dict())


@bp_listings.put("/<int:listing_id>")
@require_auth
def edit_listing(listing_id: int):
    fields = ListingFields.from_payload(request.get_json(silent=True))
    listing = listing_service.edit(listing_id, g.actor, fields)
    return ok(listing.to_dict())


@bp_listings.delete("/<int:listing_id>")
@require_auth
def withdraw_listing(listing_id: int):
    listing_service.withdraw(listing_id, g.actor)
    return no_content()
