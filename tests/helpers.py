def register_and_login(client, email="test@example.com", password="password123", name="Test User"):
    resp = client.post("/api/auth/register", json={"email": email, "password": password, "name": name})
    assert resp.status_code == 201, resp.text
    resp = client.post("/api/auth/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def categories_by_type(client, headers, entry_type):
    resp = client.get("/api/categories", headers=headers)
    assert resp.status_code == 200, resp.text
    return [c["id"] for c in resp.json() if c["type"] == entry_type]
