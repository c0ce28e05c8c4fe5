from conftest import organization_admin


def test_material_crud(client):
    headers, _ = organization_admin(client)
    resp = client.post("/api/materials", json={"name": "Gloss vinyl", "unit": "m2", "quantity": 50}, headers=headers)
    assert resp.status_code == 201
    material = resp.json()

    dup = client.post("/api/materials", json={"name": "Gloss vinyl"}, headers=headers)
    assert dup.status_code == 409

    negative = client.post("/api/materials", json={"name": "Matte", "quantity": -1}, headers=headers)
    assert negative.status_code == 422

    upd = client.put(f"/api/materials/{material['id']}", json={"quantity": 42.5}, headers=headers)
    assert upd.json()["quantity"] == 42.5

    listed = client.get("/api/materials", headers=headers).json()
    assert [m["name"] for m in listed] == ["Gloss vinyl"]

    assert client.delete(f"/api/materials/{material['id']}", headers=headers).status_code == 204
    assert client.get(f"/api/materials/{material['id']}", headers=headers).status_code == 404


def test_same_material_name_in_two_organizations(client):
    headers_a, _ = organization_admin(client, "A")
    headers_b, _ = organization_admin(client, "B")
    assert client.post("/api/materials", json={"name": "Laminate"}, headers=headers_a).status_code == 201
    assert client.post("/api/materials", json={"name": "Laminate"}, headers=headers_b).status_code == 201
