from flask import Blueprint, g, request

from ..auth_mw import require_auth
from ..services import order_service
from ..utils.responses import ok

bp_orders = Blueprint("orders", __name__, url_prefix="/orders")


@bp_orders.get("")
@require_auth
def my_orders():
    orders = order_service.list_for(g.actor)
    return ok({"items": [o.to_dict() for o in orders], "total": len(orders)})


@bp_orders.post("/buy-now/<int:listing_id>")
@require_auth
def buy_now(listing_id: int):
    return ok(order_service.purchase(listing_id, g.actor).to_dict())


@bp_orders.get("/<int:order_id>")
@require_auth
def order_detail(order_id: int):
    return ok(order_service.get_detail(order_id, g.actor))


@bp_orders.post("/<int:order_id>/cancel")
@require_auth
def cancel_order(order_id: int):
    body = request.get_json(silent=True) or {}
    reason = body.get("reason") if isinstance(body, dict) else None
    return ok(order_service.cancel(order_id, g.actor, reason).to_dict())


@bp_orders.post("/<int:order_id>/confirm-payment")
@require_auth
def confirm_payment(order_id: int):
    return ok(order_service.confirm_payment(order_id, g.actor).to_dict())


@bp_orders.post("/<int:order_id>/confirm-received")
@require_auth
def confirm_received(order_id: int):
    return ok(order_service.confirm_received(order_id, g.actor).to_dict())
