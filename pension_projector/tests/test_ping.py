from flask.testing import FlaskClient

from pension_projector.core.parity import POLICY_VERSION


def test_ping_returns_pong(client: FlaskClient):
    response = client.get("/api/ping")

    assert response.status_code == 200
    assert response.json == {"message": "pong", "policy_version": POLICY_VERSION}
