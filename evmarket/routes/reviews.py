from flask import Blueprint, g, request

from ..auth_mw import require_auth
from ..errors import ValidationError
from ..services import review_service
from ..utils.parsing import parse_int
from ..utils.responses import no_content, ok

bp_reviews = Blueprint("reviews", __name__, url_prefix="/reviews")


def _body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object", "invalid_body")
    return data


@bp_reviews.post("")
@require_auth
def create_review():
    data = _body()
    raw_order_id = data.get("order_id")
    order_id = parse_int(raw_order_id)
    if raw_order_id is not None and order_id is None:
        raise ValidationError("order_id must be an integer", "invalid_order_id")
    review = review_service.create(g.actor, order_id, data.get("rating"), data.get("comment"))
    return ok(review.to_dict())


@bp_reviews.get("/<int:review_id>")
@require_auth
def get_review(review_id: int):
    return ok(review_service.get(review_id, g.actor).to_dict())


@bp_reviews.put("/<int:review_id>")
@require_auth
def edit_review(review_id: int):
    data = _body()
    review = review_service.edit(review_id, g.actor, data.get("rating"), data.get("comment"))
    return ok(review.to_dict())


@bp_reviews.delete("/<int:review_id>")
@require_auth
def delete_review(review_id: int):
    review_service.delete(review_id, g.actor)
    return no_content()


@bp_reviews.get("/user/<int:user_id>")
def reviews_received(user_id: int):
    return ok(review_service.received_by(user_id))
