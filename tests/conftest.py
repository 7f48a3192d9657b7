import json

import pytest

from src.config import Config
from src.main import create_app


@pytest.fixture
def config(tmp_path):
    """A configuration that keeps every file inside the test's tmp dir."""
    config_file = tmp_path / "config.json"
    config_file.write_text(
        json.dumps(
            {
                "app": {"environment": "testing", "secret_key": "test-secret"},
                "database": {"path": str(tmp_path / "data" / "household.db")},
                "auth": {"login_per_minute": 1000, "login_per_hour": 10000},
                "uploads": {"directory": str(tmp_path / "uploads")},
                "backup": {"directory": str(tmp_path / "backups"), "keep": 3},
                "health": {"cpu_sample_seconds": 0},
                "logging": {"file": str(tmp_path / "logs" / "household.log")},
            }
        )
    )
    return Config(str(config_file))


@pytest.fixture
def app(config):
    return create_app(config)


@pytest.fixture
def client(app):
    """Create a Flask test client."""
    with app.test_client() as client:
        yield client


@pytest.fixture
def register(client):
    """Sign up a user; returns the token, the user and ready-made auth headers."""

    def _register(name="Alice", email=None, password="secret123"):
        email = email or f"{name.lower()}@example.com"
        response = client.post(
            "/api/auth/register",
            json={"name": name, "email": email, "password": password},
        )
        assert response.status_code == 201, response.get_json()
        data = response.get_json()
        return {
            "user": data["user"],
            "token": data["token"],
            "headers": {"Authorization": f"Bearer {data['token']}"},
        }

    return _register


@pytest.fixture
def household(client, register):
    """Alice's household, with Alice as its first member."""
    alice = register("Alice")
    response = client.post(
        "/api/households", json={"name": "Home"}, headers=alice["headers"]
    )
    assert response.status_code == 201, response.get_json()
    data = response.get_json()
    household_id = data["household"]["id"]
    return {
        "id": household_id,
        "invite_code": data["household"]["invite_code"],
        "member": data["member"],
        "headers": alice["headers"],
        "url": f"/api/households/{household_id}",
    }


@pytest.fixture
def second_member(client, register, household):
    """Bob, who joined Alice's household with the invite code."""
    bob = register("Bob")
    response = client.post(
        "/api/households/join",
        json={"invite_code": household["invite_code"]},
        headers=bob["headers"],
    )
    assert response.status_code == 201, response.get_json()
    return {"member": response.get_json()["member"], "headers": bob["headers"]}


@pytest.fixture
def outsider(client, register):
    """A signed-in user with a household of their own."""
    carol = register("Carol")
    response = client.post(
        "/api/households", json={"name": "Elsewhere"}, headers=carol["headers"]
    )
    data = response.get_json()
    return {
        "id": data["household"]["id"],
        "member": data["member"],
        "headers": carol["headers"],
        "url": f"/api/households/{data['household']['id']}",
    }


@pytest.fixture
def create_task(client, household):
    def _create_task(headers=None, **fields):
        fields.setdefault("name", "Take out the trash")
        response = client.post(
            f"{household['url']}/tasks",
            json=fields,
            headers=headers or household["headers"],
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()

    return _create_task


@pytest.fixture
def create_inventory_item(client, household):
    def _create_item(headers=None, **fields):
        fields.setdefault("name", "Drill")
        fields.setdefault("ownership_type", "household")
        response = client.post(
            f"{household['url']}/inventory",
            json=fields,
            headers=headers or household["headers"],
        )
        assert response.status_code == 201, response.get_json()
        return response.get_json()

    return _create_item
