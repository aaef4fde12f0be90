from flask import Blueprint, g

from ..auth_mw import require_admin
from ..services import listing_service
from ..utils.responses import ok

bp_admin = Blueprint("admin", __name__, url_prefix="/admin")


@bp_admin.get("/listings/pending")
@require_admin
def pending_listings():
    items = listing_service.pending_queue()
    return ok({"items": [l.to_dict() for l in items], "total": len(items)})


@bp_admin.post("/listings/<int:listing_id>/approve")
@require_admin
def approve_listing(listing_id: int):
    return ok(listing_service.approve(listing_id, g.actor).to_dict())


@bp_admin.post("/listings/<int:listing_id>/reject")
@require_admin
def reject_listing(listing_id: int):
    return ok(listing_service.reject(listing_id, g.actor).to_dict())


@bp_admin.post("/listings/<int:listing_id>/verify")
@require_admin
def verify_listing(listing_id: int):
    return ok(listing_service.verify(listing_id, g.actor).to_dict())


@bp_admin.get("/reports/summary")
@require_admin
def summary():
    return ok(listing_service.summary())
