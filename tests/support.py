from __future__ import annotations

import unittest

from evmarket.app import create_app
from evmarket.auth_mw import issue_token
from evmarket.db import db
from evmarket.models import Listing, Order, Review

SELLER_ID = 1
BUYER_ID = 2
STRANGER_ID = 3
ADMIN_ID = 99

BANK_TRANSFER = {
    "method": "BANK_TRANSFER",
    "account_holder": "NGUYEN VAN A",
    "bank_code": "VCB",
    "bank_name": "Vietcombank",
    "account_number": "0123456789",
    "amount": 1000,
    "memo": "EV-1000",
}


def ev_payload(**overrides) -> dict:
    body = {
        "category": "EV",
        "brand": "VinFast",
        "model": "VF e34",
        "year": 2022,
        "mileage_km": 12000,
        "condition_label": "used",
        "description": "One owner, garage kept",
        "price": 1000,
    }
    body.update(overrides)
    return body


class MarketTestCase(unittest.TestCase):
    database_uri = "sqlite:///:memory:"

    def setUp(self):
        self.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": self.database_uri,
            "USER_SERVICE_URL": "",
            "JWT_SECRET": "test-secret",
        })
        self.client = self.app.test_client()

    def tearDown(self):
        with self.app.app_context():
            db.session.remove()
            db.drop_all()
            db.engine.dispose()

    # ---------- identity ----------
    def headers(self, user_id: int, role: str = "member") -> dict:
        with self.app.app_context():
            token = issue_token(user_id, role=role)
        return {"Authorization": f"Bearer {token}"}

    @property
    def seller(self):
        return self.headers(SELLER_ID)

    @property
    def buyer(self):
        return self.headers(BUYER_ID)

    @property
    def stranger(self):
        return self.headers(STRANGER_ID)

    @property
    def admin(self):
        return self.headers(ADMIN_ID, role="admin")

    # ---------- flows ----------
    def submit(self, headers=None, **overrides) -> dict:
        res = self.client.post("/listings", json=ev_payload(**overrides), headers=headers or self.seller)
        self.assertEqual(res.status_code, 200, res.get_json())
        return res.get_json()

    def approved_listing(self, **overrides) -> dict:
        listing = self.submit(**overrides)
        res = self.client.post(f"/admin/listings/{listing['id']}/approve", headers=self.admin)
        self.assertEqual(res.status_code, 200, res.get_json())
        return res.get_json()

    def purchased(self, **overrides) -> tuple[dict, dict]:
        listing = self.approved_listing(**overrides)
        res = self.client.post(f"/orders/buy-now/{listing['id']}", headers=self.buyer)
        self.assertEqual(res.status_code, 200, res.get_json())
        return listing, res.get_json()

    def closed_order(self) -> tuple[dict, dict]:
        listing, order = self.purchased()
        res = self.client.post(f"/orders/{order['id']}/confirm-payment", headers=self.buyer)
        self.assertEqual(res.status_code, 200, res.get_json())
        res = self.client.post(f"/orders/{order['id']}/confirm-received", headers=self.seller)
        self.assertEqual(res.status_code, 200, res.get_json())
        return listing, res.get_json()

    # ---------- direct storage access ----------
    def update_listing(self, listing_id: int, **values):
        with self.app.app_context():
            row = db.session.get(Listing, listing_id)
            for key, value in values.items():
                setattr(row, key, value)
            db.session.commit()

    def load_listing(self, listing_id: int) -> Listing:
        with self.app.app_context():
            row = db.session.get(Listing, listing_id)
            db.session.expunge(row)
            return row

    def load_order(self, order_id: int) -> Order:
        with self.app.app_context():
            row = db.session.get(Order, order_id)
            db.session.expunge(row)
            return row

    def update_review(self, review_id: int, **values):
        with self.app.app_context():
            row = db.session.get(Review, review_id)
            for key, value in values.items():
                setattr(row, key, value)
            db.session.commit()

    def assertError(self, res, status: int, code: str | None = None):
        self.assertEqual(res.status_code, status, res.get_json())
        body = res.get_json() or {}
        if code is not None:
            self.assertEqual(body.get("error"), code)
