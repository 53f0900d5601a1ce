import pytest

from carrental.models.booking import BookingStatus


def _payload(car, start="2024-06-01", end="2024-06-05", **extra):
    body = {
        "carId": car.id,
        "startDate": start,
        "endDate": end,
        "pickupTime": "10:00",
        "dropoffTime": "18:00",
        "pickupLocation": "Airport",
        "dropoffLocation": "Downtown",
        "totalAmount": 250,
    }
    body.update(extra)
    return body


def _create(client, headers, car, start="2024-06-01", end="2024-06-05", **extra):
    return client.post("/api/bookings", json=_payload(car, start, end, **extra), headers=headers)


# ── BOOKINGS ──────────────────────────────────────────────────────────────────

def test_booking_flow_status_codes(client, renter_headers, car):
    first = _create(client, renter_headers, car, "2024-06-01", "2024-06-05")
    assert first.status_code == 201
    assert first.get_json()["booking"]["status"] == "pending"
    assert first.get_json()["booking"]["payment_status"] == "unpaid"

    clash = _create(client, renter_headers, car, "2024-06-03", "2024-06-04")
    assert clash.status_code == 400
    assert clash.get_json() == {"success": False, "message": "Car is already booked for these dates"}

    later = _create(client, renter_headers, car, "2024-06-06", "2024-06-10")
    assert later.status_code == 201


def test_create_booking_requires_a_renter_token(client, car, admin_headers):
    assert client.post("/api/bookings", json=_payload(car)).status_code == 401
    assert client.post("/api/bookings", json=_payload(car), headers=admin_headers).status_code == 401


@pytest.mark.parametrize("start, end", [("2024-06-05", "2024-06-01"), ("soon", "2024-06-01")])
def test_create_booking_bad_dates(client, renter_headers, car, start, end):
    resp = _create(client, renter_headers, car, start, end)
    assert resp.status_code == 400
    assert resp.get_json()["success"] is False


def test_create_booking_missing_car(client, renter_headers, car):
    resp = client.post("/api/bookings", json=_payload(car, carId=777), headers=renter_headers)
    assert resp.status_code == 404
    assert resp.get_json()["message"] == "Car not found"


def test_create_booking_withdrawn_car(client, renter_headers, withdrawn_car):
    resp = _create(client, renter_headers, withdrawn_car)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Car is not available for rental"


def test_my_bookings_lists_own_bookings_with_car(client, renter_headers, other_renter_headers, car):
    _create(client, renter_headers, car, "2024-06-01", "2024-06-02")
    _create(client, other_renter_headers, car, "2024-06-03", "2024-06-04")

    body = client.get("/api/bookings/my-bookings", headers=renter_headers).get_json()
    assert body["total"] == 1
    assert body["bookings"][0]["car"]["brand"] == "Toyota"


def test_renters_cannot_touch_each_others_bookings(client, renter_headers, other_renter_headers, car):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]

    assert client.get(f"/api/bookings/{booking_id}", headers=other_renter_headers).status_code == 403
    assert client.put(f"/api/bookings/{booking_id}/cancel", headers=other_renter_headers).status_code == 403
    assert client.get(f"/api/bookings/{booking_id}", headers=renter_headers).status_code == 200


def test_status_update_codes(client, renter_headers, car):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]

    bad = client.put(f"/api/bookings/{booking_id}/status", json={"status": "lost"}, headers=renter_headers)
    assert bad.status_code == 400

    missing = client.put("/api/bookings/nope/status", json={"status": "confirmed"}, headers=renter_headers)
    assert missing.status_code == 404

    ok = client.put(f"/api/bookings/{booking_id}/status", json={"status": "confirmed"}, headers=renter_headers)
    assert ok.status_code == 200
    assert ok.get_json()["booking"]["status"] == "confirmed"


def test_cancel_codes(client, engine, renter_headers, car):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]

    ok = client.put(f"/api/bookings/{booking_id}/cancel", headers=renter_headers)
    assert ok.status_code == 200
    assert ok.get_json()["booking"]["status"] == "cancelled"
    assert ok.get_json()["booking"]["pickup_location"] == "Airport"

    again = client.put(f"/api/bookings/{booking_id}/cancel", headers=renter_headers)
    assert again.status_code == 400
    assert again.get_json()["message"] == "Booking cannot be cancelled as it is already cancelled"

    assert client.put("/api/bookings/nope/cancel", headers=renter_headers).status_code == 404


def test_cancel_completed_booking(client, engine, renter_headers, car):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]
    engine.transition_status(booking_id, "completed")

    resp = client.put(f"/api/bookings/{booking_id}/cancel", headers=renter_headers)
    assert resp.status_code == 400
    assert resp.get_json()["message"] == "Booking cannot be cancelled as it is already completed"


# ── AVAILABILITY ──────────────────────────────────────────────────────────────

def test_availability_endpoint(client, renter_headers, car):
    url = f"/api/cars/{car.id}/availability"
    free = client.get(url, query_string={"startDate": "2024-06-01", "endDate": "2024-06-05"})
    assert free.status_code == 200
    assert free.get_json()["available"] is True

    _create(client, renter_headers, car)
    taken = client.get(url, query_string={"startDate": "2024-06-04", "endDate": "2024-06-07"})
    assert taken.status_code == 200
    assert taken.get_json() == {
        "success": True,
        "available": False,
        "message": "Car is not available for the selected dates",
    }


def test_availability_errors(client, car, withdrawn_car):
    url = f"/api/cars/{car.id}/availability"
    assert client.get(url).status_code == 400
    assert client.get(url, query_string={"startDate": "2024-06-05", "endDate": "2024-06-01"}).status_code == 400
    assert client.get(url, query_string={"startDate": "june", "endDate": "2024-06-01"}).status_code == 400
    assert client.get(
        "/api/cars/31337/availability", query_string={"startDate": "2024-06-01", "endDate": "2024-06-02"}
    ).status_code == 404

    withdrawn = client.get(
        f"/api/cars/{withdrawn_car.id}/availability",
        query_string={"startDate": "2024-06-01", "endDate": "2024-06-02"},
    )
    assert withdrawn.status_code == 200
    assert withdrawn.get_json()["available"] is False
    assert withdrawn.get_json()["message"] == "Car is not available for rental"


# ── PAYMENTS ──────────────────────────────────────────────────────────────────

def test_payment_round_trip(client, provider, renter_headers, car):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]

    opened = client.post(
        "/api/payments/create-payment-intent", json={"bookingId": booking_id}, headers=renter_headers
    )
    assert opened.status_code == 200
    intent_id = opened.get_json()["paymentIntentId"]
    assert provider.created[0]["amount"] == 25000

    provider.set_intent(intent_id, "succeeded", metadata={"booking_id": booking_id})
    confirmed = client.post(
        "/api/payments/confirm-payment",
        json={"bookingId": booking_id, "paymentIntentId": intent_id},
        headers=renter_headers,
    )
    body = confirmed.get_json()
    assert confirmed.status_code == 200
    assert body["booking"]["status"] == "confirmed"
    assert body["booking"]["payment_status"] == "paid"
    assert body["receipt"]["rental_period"]["days"] == 5

    replay = client.post(
        "/api/payments/confirm-payment",
        json={"bookingId": booking_id, "paymentIntentId": intent_id},
        headers=renter_headers,
    )
    assert replay.status_code == 200
    assert replay.get_json()["receipt"] == body["receipt"]


@pytest.mark.parametrize("status, code", [
    ("processing", 202),
    ("requires_payment_method", 400),
    ("requires_capture", 400),
])
def test_confirm_payment_pending_states(client, engine, provider, renter_headers, car, status, code):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]
    provider.set_intent("pi_9", status)

    resp = client.post(
        "/api/payments/confirm-payment",
        json={"bookingId": booking_id, "paymentIntentId": "pi_9"},
        headers=renter_headers,
    )

    assert resp.status_code == code
    assert "booking" not in resp.get_json()
    assert engine.get_booking(booking_id).status is BookingStatus.PENDING


def test_confirm_payment_provider_outage(client, provider, renter_headers, car):
    from carrental.services.errors import ProviderError

    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]
    provider.fail_with = ProviderError("Payment provider request failed, please retry")

    resp = client.post(
        "/api/payments/confirm-payment",
        json={"bookingId": booking_id, "paymentIntentId": "pi_1"},
        headers=renter_headers,
    )
    assert resp.status_code == 500
    assert resp.get_json() == {"success": False, "message": "Payment provider request failed, please retry"}


def test_confirm_payment_for_someone_elses_booking(client, provider, renter_headers, other_renter_headers, car):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]
    provider.set_intent("pi_1", "succeeded", metadata={"booking_id": booking_id})

    resp = client.post(
        "/api/payments/confirm-payment",
        json={"bookingId": booking_id, "paymentIntentId": "pi_1"},
        headers=other_renter_headers,
    )

    assert resp.status_code == 404
    assert "receipt" not in resp.get_json()
    assert provider.lookups == 0


def test_confirm_payment_unknown_booking(client, renter_headers):
    resp = client.post(
        "/api/payments/confirm-payment",
        json={"bookingId": "missing", "paymentIntentId": "pi_1"},
        headers=renter_headers,
    )
    assert resp.status_code == 404


# ── ADMIN ─────────────────────────────────────────────────────────────────────

def test_admin_booking_console(client, admin_headers, renter_headers, car):
    booking_id = _create(client, renter_headers, car).get_json()["booking"]["id"]

    listing = client.get("/api/admin/bookings", query_string={"status": "pending"}, headers=admin_headers)
    assert listing.status_code == 200
    body = listing.get_json()
    assert body["totalBookings"] == 1
    assert body["totalPages"] == 1
    assert body["bookings"][0]["user"]["email"] == "alice@example.com"

    single = client.get(f"/api/admin/bookings/{booking_id}", headers=admin_headers)
    assert single.get_json()["booking"]["car"]["model"] == "Corolla"

    done = client.put(f"/api/admin/bookings/{booking_id}/status", json={"status": "completed"}, headers=admin_headers)
    assert done.status_code == 200
    assert done.get_json()["booking"]["status"] == "completed"

    frozen = client.put(f"/api/admin/bookings/{booking_id}/status", json={"status": "pending"}, headers=admin_headers)
    assert frozen.status_code == 400


def test_admin_routes_reject_renter_tokens(client, renter_headers):
    assert client.get("/api/admin/bookings", headers=renter_headers).status_code == 401


def test_admin_list_bad_status(client, admin_headers):
    assert client.get("/api/admin/bookings", query_string={"status": "x"}, headers=admin_headers).status_code == 400


def test_unknown_route_is_json(client):
    resp = client.get("/api/nowhere")
    assert resp.status_code == 404
    assert resp.get_json()["success"] is False
