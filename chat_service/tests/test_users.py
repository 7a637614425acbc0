import uuid


def test_login_is_idempotent(client):
    name = "n" + uuid.uuid4().hex[:8]
    first = client.post("/session", json={"name": name})
    second = client.post("/session", json={"name": name})
    assert first.status_code == 201
    assert second.status_code == 201
    assert first.json()["identifier"] == second.json()["identifier"]


def test_username_length_is_checked(client):
    for name in ("ab", "x" * 17):
        resp = client.post("/session", json={"name": name})
        assert resp.status_code == 400
        assert resp.json()["code"] == "bad-request"


def test_get_me(client, make_user):
    alice = make_user()
    resp = client.get("/me", headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json() == {"id": alice.id, "name": alice.name}


def test_change_username(client, make_user):
    alice, bob = make_user(), make_user()
    new_name = "r" + uuid.uuid4().hex[:8]

    resp = client.put("/me/username", json={"name": new_name}, headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == new_name

    resp = client.put("/me/username", json={"name": new_name}, headers=bob.headers)
    assert resp.status_code == 409
    assert resp.json()["code"] == "conflict"

    # logging in with the new name returns the same account
    login = client.post("/session", json={"name": new_name})
    assert login.json()["identifier"] == alice.id


def test_set_photo(client, make_user):
    alice = make_user()
    resp = client.put("/me/photo", json={"photoUrl": "http://img/me.png"}, headers=alice.headers)
    assert resp.status_code == 200
    assert resp.json()["photoUrl"] == "http://img/me.png"
    assert client.get("/me", headers=alice.headers).json()["photoUrl"] == "http://img/me.png"


def test_search_users(client, make_user):
    tag = uuid.uuid4().hex[:6]
    alice = make_user("a" + tag)
    make_user("b" + tag)

    resp = client.get(f"/users?q={tag}", headers=alice.headers)
    assert resp.status_code == 200
    names = [u["name"] for u in resp.json()["users"]]
    assert names == ["a" + tag, "b" + tag]
