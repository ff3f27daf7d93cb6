"""
应用入口与全局错误处理测试
"""
from concierge import __version__
from concierge_core.notification import NotificationChannelRegistry
from concierge_core.payments import PaymentGatewayRegistry


class TestApp:

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["version"] == __version__

    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_lifespan_registers_channels_and_gateway(self, client):
        channels = {c.get_channel_type() for c in NotificationChannelRegistry().get_all_channels()}
        assert {"email", "in_app"} <= channels
        assert PaymentGatewayRegistry().get_gateway().get_gateway_name() == "local"


class TestErrorResponses:

    def test_missing_token_is_401(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["success"] is False

    def test_invalid_token_is_401(self, client):
        response = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert response.status_code == 401

    def test_validation_error_shape(self, client):
        response = client.post("/api/auth/login", json={"email": "a@b.test"})
        assert response.status_code == 422
        body = response.json()
        assert body["success"] is False
        assert body["errors"][0]["loc"] == ["body", "password"]

    def test_not_found_route(self, client):
        response = client.get("/api/nope")
        assert response.status_code == 404
        assert response.json()["success"] is False
