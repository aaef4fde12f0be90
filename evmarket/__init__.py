"""EV & battery marketplace: listing moderation, buy-now orders and reviews."""

__version__ = "0.1.0"
