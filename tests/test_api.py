"""
Tests for health, metrics, content and the public pages.
"""

import pytest


class TestHealth:
    """Test the liveness and readiness probes."""

    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_request_id_header(self, client):
        response = client.get("/health/live")
        assert response.headers["X-Request-ID"]

    def test_request_id_header_is_reused(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "edge-1234"})
        assert response.headers["X-Request-ID"] == "edge-1234"


class TestMetrics:
    def test_metrics_exposed(self, client, shipment):
        client.post("/api/tracking", json={"tracking_number": shipment["tracking_number"]})
        client.post("/api/quote", json={"weight_kg": 3, "shipping_method": "ground"})

        response = client.get("/metrics")

        assert response.status_code == 200
        body = response.text
        assert 'tracking_lookups_total{result="found"}' in body
        assert 'quotes_total{method="ground"}' in body
        assert "realtime_subscriptions_open" in body
        assert "http_requests_total" in body


class TestContent:
    def test_content(self, client):
        data = client.get("/api/content").json()

        assert data["company"]["name"] == "SwiftLogix"
        assert len(data["services"]) == 6
        assert "USA" in data["countries"]

    def test_contact(self, client):
        response = client.post("/api/contact", json={
            "name": "Sam", "email": "sam@example.com", "message": "Need ocean rates",
        })

        assert response.status_code == 200
        assert response.json()["message"].startswith("Message sent successfully")

    @pytest.mark.parametrize("payload,detail", [
        ({"email": "sam@example.com", "message": "Hi"}, "Name is required"),
        ({"name": "Sam", "email": "sam", "message": "Hi"}, "Please enter a valid email address"),
        ({"name": "Sam", "email": "sam@example.com"}, "Message is required"),
    ])
    def test_contact_validation(self, client, payload, detail):
        response = client.post("/api/contact", json=payload)

        assert response.status_code == 400
        assert response.json()["detail"] == detail


class TestPages:
    @pytest.mark.parametrize("path", [
        "/", "/services", "/air-freight", "/ocean-freight", "/about", "/contact", "/tracking", "/ship", "/auth",
    ])
    def test_public_pages(self, client, path):
        response = client.get(path)

        assert response.status_code == 200
        assert "text/html" in response.headers["content-type"]

    def test_static_assets(self, client):
        assert client.get("/static/js/site.js").status_code == 200
        assert client.get("/static/css/site.css").status_code == 200
