import logging
import os

from flask import Flask, jsonify
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from .config import Config
from .db import db
from .errors import MarketError
from .routes import ALL_BLUEPRINTS


def _register_error_handlers(app: Flask):
    @app.errorhandler(MarketError)
    def _market_error(error: MarketError):
        db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(SQLAlchemyError)
    def _storage_error(error: SQLAlchemyError):
        db.session.rollback()
        app.logger.exception("storage failure: %s", error)
        return jsonify({"error": "server_error", "message": "Internal server error"}), 500

    @app.errorhandler(HTTPException)
    def _http_error(error: HTTPException):
        code = int(error.code or 500)
        return jsonify({"error": error.name.lower().replace(" ", "_"),
                        "message": error.description or error.name}), code

    @app.errorhandler(Exception)
    def _unhandled(error: Exception):
        db.session.rollback()
        app.logger.exception("unhandled exception")
        return jsonify({"error": "server_error", "message": "Internal server error"}), 500


def create_app(overrides=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(Config)
    if overrides:
        app.config.update(overrides)

    logging.basicConfig(level=app.config.get("LOG_LEVEL", "INFO"))

    db.init_app(app)
    _register_error_handlers(app)
    for bp in ALL_BLUEPRINTS:
        app.register_blueprint(bp)

    @app.get("/")
    def index():
        return jsonify(service="evmarket", status="ok")

    @app.get("/health")
    def health():
        return jsonify(ok=True), 200

    with app.app_context():
        db.create_all()

    return app


if __name__ == "__main__":
    app = create_app()
    app.logger.info("evmarket database: %s", app.config["SQLALCHEMY_DATABASE_URI"])
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", "5005")), debug=True)
