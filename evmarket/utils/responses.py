from flask import jsonify

from ..db import db


def ok(data=None, code=200):  return jsonify(data or {}), code
def no_content():             return "", 204


def commit_or_rollback():
    try:
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
