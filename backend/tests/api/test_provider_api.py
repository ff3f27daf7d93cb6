"""
服务商端接口测试
"""
from concierge.models.domain import BookingStatus


class TestServices:

    def test_requires_provider_role(self, client, guest_headers, admin_headers):
        assert client.get("/api/service/services", headers=guest_headers).status_code == 403
        assert client.get("/api/service/services", headers=admin_headers).status_code == 403

    def test_crud(self, client, provider_headers):
        response = client.post("/api/service/services", headers=provider_headers, json={
            "name": "Deep Tissue", "category": "spa", "base_price": 400, "duration_minutes": 60,
        })
        assert response.status_code == 201
        service_id = response.json()["id"]

        updated = client.put(f"/api/service/services/{service_id}", headers=provider_headers, json={"base_price": 450})
        assert updated.json()["base_price"] == 450.0

        toggled = client.patch(f"/api/service/services/{service_id}/toggle-availability", headers=provider_headers)
        assert toggled.json()["is_available"] is False

        assert client.delete(f"/api/service/services/{service_id}", headers=provider_headers).status_code == 200
        assert client.get("/api/service/services", headers=provider_headers).json() == []
        listed = client.get("/api/service/services?include_inactive=true", headers=provider_headers).json()
        assert listed[0]["is_active"] is False

    def test_category_not_enabled(self, client, provider_headers):
        response = client.post("/api/service/services", headers=provider_headers, json={
            "name": "Airport", "category": "transportation", "base_price": 100,
        })
        assert response.status_code == 400

    def test_negative_price(self, client, provider_headers):
        response = client.post("/api/service/services", headers=provider_headers, json={
            "name": "Wash", "category": "laundry", "base_price": -1,
        })
        assert response.status_code == 422


class TestBookings:

    def test_list(self, client, provider_headers, sample_booking):
        data = client.get("/api/service/bookings", headers=provider_headers).json()
        assert data["items"][0]["booking_number"] == sample_booking.booking_number

    def test_status_flow(self, client, provider_headers, sample_booking):
        url = f"/api/service/bookings/{sample_booking.id}/status"
        for status in ("confirmed", "in-progress", "completed"):
            response = client.patch(url, headers=provider_headers, json={"status": status})
            assert response.status_code == 200
            assert response.json()["status"] == status

        assert client.patch(url, headers=provider_headers, json={"status": "pending"}).status_code == 400

    def test_cannot_skip_to_completed(self, client, provider_headers, sample_booking):
        response = client.patch(f"/api/service/bookings/{sample_booking.id}/status", headers=provider_headers,
                                json={"status": "completed"})
        assert response.status_code == 400


class TestReports:

    def test_dashboard(self, client, provider_headers, sample_booking):
        data = client.get("/api/service/dashboard", headers=provider_headers).json()
        assert data["status_breakdown"]["pending"] == 1
        assert data["services"]["total"] == 1

    def test_earnings(self, client, provider_headers):
        assert client.get("/api/service/earnings?time_range=week", headers=provider_headers).status_code == 200
        assert client.get("/api/service/earnings?time_range=decade", headers=provider_headers).status_code == 400

    def test_feedback(self, client, db_session, provider_headers, guest_headers, sample_booking):
        sample_booking.status = BookingStatus.COMPLETED
        db_session.commit()
        client.post(f"/api/client/bookings/{sample_booking.id}/review", headers=guest_headers,
                    json={"rating": 5})

        data = client.get("/api/service/feedback?rating=5", headers=provider_headers).json()
        assert [item["rating"] for item in data["items"]] == [5]
        assert data["statistics"]["rating_distribution"]["5"] == 1
