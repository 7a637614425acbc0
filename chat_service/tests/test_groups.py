def create_group(client, owner, name="team", members=()):
    resp = client.post(
        "/groups", json={"name": name, "memberIds": [m.id for m in members]}, headers=owner.headers
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_create_group_includes_creator(client, make_user):
    alice, bob = make_user(), make_user()
    group = create_group(client, alice, members=[bob, bob])

    assert group["name"] == "team"
    assert group["createdBy"] == alice.id
    assert {m["id"] for m in group["members"]} == {alice.id, bob.id}

    summaries = client.get("/conversations", headers=bob.headers).json()
    summary = next(s for s in summaries if s["id"] == group["id"])
    assert summary["type"] == "group"
    assert summary["title"] == "team"


def test_group_name_required(client, make_user):
    alice = make_user()
    for name in ("", "   "):
        resp = client.post("/groups", json={"name": name}, headers=alice.headers)
        assert resp.status_code == 400


def test_group_with_unknown_member(client, make_user):
    alice = make_user()
    resp = client.post("/groups", json={"name": "x", "memberIds": ["ghost"]}, headers=alice.headers)
    assert resp.status_code == 404


def test_add_member_and_leave(client, make_user):
    alice, bob, carol = make_user(), make_user(), make_user()
    group = create_group(client, alice, members=[bob])
    gid = group["id"]

    # outsiders cannot add themselves
    resp = client.post(f"/groups/{gid}/members", json={"userId": carol.id}, headers=carol.headers)
    assert resp.status_code == 404

    resp = client.post(f"/groups/{gid}/members", json={"userId": carol.id}, headers=bob.headers)
    assert resp.status_code == 200
    assert carol.id in {m["id"] for m in resp.json()["members"]}
    assert client.get(f"/groups/{gid}", headers=carol.headers).status_code == 200

    assert client.delete(f"/groups/{gid}/members/me", headers=carol.headers).status_code == 204
    assert client.get(f"/groups/{gid}", headers=carol.headers).status_code == 404
    assert client.get(f"/conversations/{gid}", headers=carol.headers).status_code == 404


def test_rename_and_photo(client, make_user):
    alice, bob = make_user(), make_user()
    gid = create_group(client, alice, members=[bob])["id"]

    resp = client.put(f"/groups/{gid}/name", json={"name": "renamed"}, headers=bob.headers)
    assert resp.status_code == 200
    assert resp.json()["name"] == "renamed"

    resp = client.put(f"/groups/{gid}/photo", json={"photoUrl": "http://img/g.png"}, headers=alice.headers)
    assert resp.json()["photoUrl"] == "http://img/g.png"

    group = client.get(f"/groups/{gid}", headers=bob.headers).json()
    assert group["name"] == "renamed"
    assert group["photoUrl"] == "http://img/g.png"


def test_direct_conversation_is_not_a_group(client, make_user, direct_chat):
    alice, bob = make_user(), make_user()
    cid = direct_chat(alice, bob)
    assert client.get(f"/groups/{cid}", headers=alice.headers).status_code == 404
