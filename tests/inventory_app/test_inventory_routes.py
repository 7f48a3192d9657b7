import pytest


@pytest.fixture
def inventory_url(household):
    return f"{household['url']}/inventory"


def test_create_household_item(household, create_inventory_item):
    item = create_inventory_item(name="Ladder", details="3 m, aluminium")
    assert item["ownership_type"] == "household"
    assert item["owner_ids"] == []
    assert item["created_by"] == household["member"]["id"]


def test_create_personal_item(household, second_member, create_inventory_item):
    item = create_inventory_item(
        name="Camera",
        ownership_type="personal",
        owner_ids=[second_member["member"]["id"], household["member"]["id"]],
    )
    assert item["owner_names"] == ["Alice", "Bob"]


def test_personal_item_needs_owner(client, household, inventory_url):
    response = client.post(
        inventory_url,
        json={"name": "Camera", "ownership_type": "personal"},
        headers=household["headers"],
    )
    assert response.status_code == 400


def test_owner_must_be_household_member(client, household, outsider, inventory_url):
    response = client.post(
        inventory_url,
        json={
            "name": "Camera",
            "ownership_type": "personal",
            "owner_ids": [outsider["member"]["id"]],
        },
        headers=household["headers"],
    )
    assert response.status_code == 404


def test_list_items_with_availability(client, household, inventory_url, create_inventory_item):
    create_inventory_item(name="Saw")
    create_inventory_item(name="drill")
    items = client.get(inventory_url, headers=household["headers"]).get_json()
    assert [item["name"] for item in items] == ["drill", "Saw"]
    assert {item["availability"] for item in items} == {"available"}


def test_update_item(client, household, second_member, inventory_url, create_inventory_item):
    item = create_inventory_item()
    response = client.patch(
        f"{inventory_url}/{item['id']}",
        json={
            "name": None,
            "ownership_type": "personal",
            "owner_ids": [second_member["member"]["id"]],
        },
        headers=household["headers"],
    )
    updated = response.get_json()
    assert updated["name"] == "Drill"
    assert updated["ownership_type"] == "personal"
    assert updated["owner_names"] == ["Bob"]

    # Back to a household item drops the owners
    response = client.patch(
        f"{inventory_url}/{item['id']}",
        json={"ownership_type": "household"},
        headers=household["headers"],
    )
    assert response.get_json()["owner_ids"] == []


def test_delete_item(client, household, inventory_url, create_inventory_item):
    item = create_inventory_item()
    response = client.delete(f"{inventory_url}/{item['id']}", headers=household["headers"])
    assert response.status_code == 200
    response = client.get(f"{inventory_url}/{item['id']}", headers=household["headers"])
    assert response.status_code == 404


def test_items_of_other_households_are_hidden(client, household, outsider, create_inventory_item):
    item = create_inventory_item()
    response = client.get(
        f"{outsider['url']}/inventory/{item['id']}", headers=outsider["headers"]
    )
    assert response.status_code == 404


def test_availability_window(client, household, second_member, inventory_url, create_inventory_item):
    item = create_inventory_item()
    client.post(
        f"{household['url']}/borrow/requests",
        json={
            "inventory_item_id": item["id"],
            "start_date": "2026-05-10T09:00:00",
            "end_date": "2026-05-20T18:00:00",
        },
        headers=second_member["headers"],
    )

    response = client.get(
        f"{inventory_url}/{item['id']}/availability"
        "?start=2026-05-12T00:00:00&end=2026-05-14T00:00:00",
        headers=household["headers"],
    )
    result = response.get_json()
    assert result["status"] == "borrowed"
    assert result["available"] is False
    assert result["conflicts"][0]["borrower_name"] == "Bob"

    response = client.get(
        f"{inventory_url}/{item['id']}/availability"
        "?start=2026-05-18T00:00:00&end=2026-05-25T00:00:00",
        headers=household["headers"],
    )
    assert response.get_json()["status"] == "partially_available"

    response = client.get(
        f"{inventory_url}/{item['id']}/availability"
        "?start=2026-06-01T00:00:00&end=2026-06-02T00:00:00",
        headers=household["headers"],
    )
    assert response.get_json()["status"] == "available"


def test_availability_rejects_inverted_range(client, household, inventory_url, create_inventory_item):
    item = create_inventory_item()
    response = client.get(
        f"{inventory_url}/{item['id']}/availability"
        "?start=2026-05-12T00:00:00&end=2026-05-01T00:00:00",
        headers=household["headers"],
    )
    assert response.status_code == 400
