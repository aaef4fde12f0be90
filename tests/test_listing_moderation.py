import unittest

from evmarket.models import ListingStatus, utcnow

from .support import BANK_TRANSFER, MarketTestCase, ev_payload


class SubmitTestCase(MarketTestCase):
    def test_submit_starts_pending(self):
        listing = self.submit()
        self.assertEqual(listing["status"], "PENDING")
        self.assertFalse(listing["edited_after_rejection"])
        self.assertEqual(listing["seller_id"], 1)
        self.assertEqual(listing["category"], "EV")

    def test_submit_requires_token(self):
        res = self.client.post("/listings", json=ev_payload())
        self.assertError(res, 401, "missing_token")

    def test_submit_rejects_missing_category(self):
        body = ev_payload()
        body.pop("category")
        res = self.client.post("/listings", json=body, headers=self.seller)
        self.assertError(res, 400, "invalid_category")

    def test_submit_rejects_non_positive_price(self):
        res = self.client.post("/listings", json=ev_payload(price=0), headers=self.seller)
        self.assertError(res, 400, "invalid_price")

    def test_submit_rejects_bad_year(self):
        res = self.client.post("/listings", json=ev_payload(year="soon"), headers=self.seller)
        self.assertError(res, 400, "invalid_year")

    def post_raw(self, raw_json, method="post", path="/listings"):
        return getattr(self.client, method)(path, data=raw_json, content_type="application/json",
                                            headers=self.seller)

    def test_submit_rejects_non_finite_price(self):
        for token in ("NaN", "Infinity", "-Infinity", "1e400"):
            res = self.post_raw('{"category": "EV", "price": %s}' % token)
            self.assertError(res, 400, "invalid_price")

    def test_edit_rejects_non_finite_price(self):
        listing = self.submit()
        for token in ("NaN", "Infinity"):
            res = self.post_raw('{"price": %s}' % token, method="put", path=f"/listings/{listing['id']}")
            self.assertError(res, 400, "invalid_price")
        self.assertEqual(self.load_listing(listing["id"]).price, 1000)

    def test_non_finite_transfer_amount(self):
        bank = ('{"method": "BANK_TRANSFER", "account_holder": "A", "bank_code": "VCB", '
                '"bank_name": "Vietcombank", "account_number": "1", "memo": "m", "amount": %s}')
        for token in ("NaN", "Infinity"):
            res = self.post_raw('{"category": "EV", "price": 10, "payment_info": %s}' % (bank % token))
            self.assertError(res, 400, "incomplete_payment_info")

    def test_fractional_year_is_not_truncated(self):
        res = self.client.post("/listings", json=ev_payload(year=2021.9), headers=self.seller)
        self.assertError(res, 400, "invalid_year")
        listing = self.submit(year=2021.0)
        self.assertEqual(listing["year"], 2021)

    def test_boolean_mileage(self):
        res = self.client.post("/listings", json=ev_payload(mileage_km=True), headers=self.seller)
        self.assertError(res, 400, "invalid_mileage_km")

    def test_battery_listing_via_type_key(self):
        body = ev_payload(battery_capacity_kwh=42)
        body.pop("category")
        body["type"] = "battery"
        res = self.client.post("/listings", json=body, headers=self.seller)
        self.assertEqual(res.status_code, 200, res.get_json())
        self.assertEqual(res.get_json()["category"], "BATTERY")
        self.assertEqual(res.get_json()["battery_capacity_kwh"], 42)

    def test_bank_transfer_requires_every_field(self):
        partial = dict(BANK_TRANSFER)
        partial.pop("memo")
        res = self.client.post("/listings", json=ev_payload(payment_info=partial), headers=self.seller)
        self.assertError(res, 400, "incomplete_payment_info")

    def test_bank_transfer_stored(self):
        listing = self.submit(payment_info=BANK_TRANSFER)
        info = listing["payment_info"]
        self.assertEqual(info["method"], "BANK_TRANSFER")
        self.assertEqual(info["account_number"], "0123456789")
        self.assertEqual(info["amount"], 1000)

    def test_vietqr_is_bank_transfer(self):
        listing = self.submit(payment_info=dict(BANK_TRANSFER, method="vietqr"))
        self.assertEqual(listing["payment_info"]["method"], "BANK_TRANSFER")

    def test_unknown_payment_method(self):
        res = self.client.post("/listings", json=ev_payload(payment_info={"method": "CRYPTO"}),
                               headers=self.seller)
        self.assertError(res, 400, "invalid_payment_method")

    def test_switching_to_cash_clears_bank_details(self):
        listing = self.submit(payment_info=BANK_TRANSFER)
        res = self.client.put(f"/listings/{listing['id']}", json={"payment_info": {"method": "CASH"}},
                              headers=self.seller)
        self.assertEqual(res.status_code, 200, res.get_json())
        info = res.get_json()["payment_info"]
        self.assertEqual(info["method"], "CASH")
        self.assertIsNone(info["account_number"])
        self.assertIsNone(info["memo"])


class ModerationTestCase(MarketTestCase):
    def test_approve(self):
        listing = self.approved_listing()
        self.assertEqual(listing["status"], "APPROVED")

    def test_moderation_requires_admin(self):
        listing = self.submit()
        res = self.client.post(f"/admin/listings/{listing['id']}/approve", headers=self.seller)
        self.assertError(res, 403, "not_admin")
        res = self.client.post(f"/admin/listings/{listing['id']}/approve")
        self.assertError(res, 401, "missing_token")

    def test_approve_unknown_listing(self):
        res = self.client.post("/admin/listings/404/approve", headers=self.admin)
        self.assertError(res, 404, "listing_not_found")

    def test_approve_twice_is_invalid_state(self):
        listing = self.approved_listing()
        res = self.client.post(f"/admin/listings/{listing['id']}/approve", headers=self.admin)
        self.assertError(res, 400, "not_pending")
        res = self.client.post(f"/admin/listings/{listing['id']}/reject", headers=self.admin)
        self.assertError(res, 400, "not_pending")

    def test_rejection_amnesty_then_removal(self):
        listing = self.submit()
        lid = listing["id"]

        res = self.client.post(f"/admin/listings/{lid}/reject", headers=self.admin)
        self.assertEqual(res.get_json()["status"], "REJECTED")

        res = self.client.put(f"/listings/{lid}", json={"price": 900}, headers=self.seller)
        self.assertEqual(res.status_code, 200, res.get_json())
        body = res.get_json()
        self.assertEqual(body["status"], "PENDING")
        self.assertTrue(body["edited_after_rejection"])
        self.assertEqual(body["price"], 900)

        res = self.client.post(f"/admin/listings/{lid}/reject", headers=self.admin)
        self.assertEqual(res.status_code, 200, res.get_json())

        row = self.load_listing(lid)
        self.assertEqual(row.status, ListingStatus.INACTIVE)
        self.assertIsNotNone(row.deleted_at)

        for headers in (self.seller, self.admin, {}):
            self.assertError(self.client.get(f"/listings/{lid}", headers=headers), 404)
        self.assertError(self.client.put(f"/listings/{lid}", json={"price": 800}, headers=self.seller), 404)
        self.assertError(self.client.post(f"/admin/listings/{lid}/approve", headers=self.admin),
                         400, "listing_removed")

    def test_edit_after_amnesty_used_is_refused(self):
        listing = self.submit()
        self.update_listing(listing["id"], status=ListingStatus.REJECTED, edited_after_rejection=True)
        res = self.client.put(f"/listings/{listing['id']}", json={"price": 1}, headers=self.seller)
        self.assertError(res, 400, "edit_amnesty_exhausted")
        self.assertEqual(self.load_listing(listing["id"]).price, 1000)

    def test_pending_edit_keeps_status(self):
        listing = self.submit()
        res = self.client.put(f"/listings/{listing['id']}", json={"brand": "Tesla"}, headers=self.seller)
        body = res.get_json()
        self.assertEqual(body["status"], "PENDING")
        self.assertFalse(body["edited_after_rejection"])
        self.assertEqual(body["brand"], "Tesla")
        self.assertEqual(body["model"], "VF e34")

    def test_edit_by_non_owner(self):
        listing = self.submit()
        res = self.client.put(f"/listings/{listing['id']}", json={"price": 1}, headers=self.stranger)
        self.assertError(res, 403, "not_owner")

    def test_pending_queue_and_summary(self):
        first = self.submit()
        self.submit(brand="Tesla")
        self.approved_listing(brand="Kia")
        self.client.post(f"/admin/listings/{first['id']}/reject", headers=self.admin)

        res = self.client.get("/admin/listings/pending", headers=self.admin)
        body = res.get_json()
        self.assertEqual(body["total"], 1)
        self.assertEqual(body["items"][0]["brand"], "Tesla")

        summary = self.client.get("/admin/reports/summary", headers=self.admin).get_json()
        self.assertEqual(summary["approved_listings"], 1)
        self.assertEqual(summary["pending_listings"], 1)
        self.assertEqual(summary["rejected_listings"], 1)
        self.assertEqual(summary["sold_listings"], 0)

    def test_verify_marks_condition(self):
        listing = self.approved_listing()
        res = self.client.post(f"/admin/listings/{listing['id']}/verify", headers=self.admin)
        self.assertEqual(res.get_json()["condition_label"], "verified")
        self.assertEqual(res.get_json()["status"], "APPROVED")


class VisibilityTestCase(MarketTestCase):
    def test_pending_listing_hidden_from_others(self):
        listing = self.submit()
        lid = listing["id"]
        self.assertError(self.client.get(f"/listings/{lid}"), 404, "listing_not_found")
        self.assertError(self.client.get(f"/listings/{lid}", headers=self.stranger), 404)
        self.assertEqual(self.client.get(f"/listings/{lid}", headers=self.seller).status_code, 200)
        self.assertEqual(self.client.get(f"/listings/{lid}", headers=self.admin).status_code, 200)

    def test_approved_and_sold_are_public(self):
        listing, _ = self.purchased()
        res = self.client.get(f"/listings/{listing['id']}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.get_json()["status"], "SOLD")

    def test_inactive_without_timestamp_is_removed(self):
        listing = self.approved_listing()
        self.update_listing(listing["id"], status=ListingStatus.INACTIVE)
        self.assertError(self.client.get(f"/listings/{listing['id']}", headers=self.seller), 404)

    def test_deleted_timestamp_hides_any_status(self):
        listing = self.approved_listing()
        self.update_listing(listing["id"], deleted_at=utcnow())
        self.assertError(self.client.get(f"/listings/{listing['id']}", headers=self.admin), 404)

    def test_bad_token_reads_as_anonymous(self):
        listing = self.approved_listing()
        res = self.client.get(f"/listings/{listing['id']}", headers={"Authorization": "Bearer nope"})
        self.assertEqual(res.status_code, 200)


class WithdrawTestCase(MarketTestCase):
    def test_withdraw(self):
        listing = self.approved_listing()
        res = self.client.delete(f"/listings/{listing['id']}", headers=self.seller)
        self.assertEqual(res.status_code, 204)
        row = self.load_listing(listing["id"])
        self.assertEqual(row.status, ListingStatus.INACTIVE)
        self.assertIsNotNone(row.deleted_at)
        self.assertError(self.client.get(f"/listings/{listing['id']}"), 404)

    def test_withdraw_twice_is_not_found(self):
        listing = self.approved_listing()
        self.client.delete(f"/listings/{listing['id']}", headers=self.seller)
        res = self.client.delete(f"/listings/{listing['id']}", headers=self.seller)
        self.assertError(res, 404)

    def test_withdraw_by_non_owner(self):
        listing = self.approved_listing()
        res = self.client.delete(f"/listings/{listing['id']}", headers=self.stranger)
        self.assertError(res, 403, "not_owner")

    def test_withdraw_blocked_by_active_order(self):
        listing, _ = self.purchased()
        res = self.client.delete(f"/listings/{listing['id']}", headers=self.seller)
        self.assertError(res, 400, "active_order_exists")
        self.assertEqual(self.load_listing(listing["id"]).status, ListingStatus.SOLD)

    def test_withdraw_allowed_after_cancellation(self):
        listing, order = self.purchased()
        self.client.post(f"/orders/{order['id']}/cancel", headers=self.buyer)
        res = self.client.delete(f"/listings/{listing['id']}", headers=self.seller)
        self.assertEqual(res.status_code, 204)


if __name__ == "__main__":
    unittest.main()
