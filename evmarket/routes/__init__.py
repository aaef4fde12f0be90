from .admin import bp_admin
from .favorites import bp_favorites
from .listings import bp_listings
from .orders import bp_orders
from .reviews import bp_reviews

ALL_BLUEPRINTS = (bp_listings, bp_admin, bp_orders, bp_reviews, bp_favorites)
