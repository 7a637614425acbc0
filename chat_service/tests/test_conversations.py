def test_requests_need_a_valid_identifier(client):
    resp = client.get("/conversations")
    assert resp.status_code == 401
    assert resp.json()["code"] == "unauthorized"

    resp = client.get("/conversations", headers={"Authorization": "Bearer not-a-user"})
    assert resp.status_code == 401


def test_start_direct_conversation_once(client, make_user):
    alice, bob = make_user(), make_user()

    created = client.post("/conversations", json={"userId": bob.id}, headers=alice.headers)
    assert created.status_code == 201
    body = created.json()
    assert body["type"] == "direct"
    assert body["title"] == bob.name
    assert body["messages"] == []
    assert {p["id"] for p in body["participants"]} == {alice.id, bob.id}

    # either side gets the same conversation back
    again = client.post("/conversations", json={"userId": alice.id}, headers=bob.headers)
    assert again.status_code == 200
    assert again.json()["id"] == body["id"]
    assert again.json()["title"] == alice.name


def test_start_conversation_with_unknown_user(client, make_user):
    alice = make_user()
    resp = client.post("/conversations", json={"userId": "missing"}, headers=alice.headers)
    assert resp.status_code == 404
    assert resp.json()["code"] == "not-found"


def test_outsiders_cannot_see_conversation(client, make_user, direct_chat, send):
    alice, bob, eve = make_user(), make_user(), make_user()
    cid = direct_chat(alice, bob)
    message = send(alice, cid)

    assert client.get(f"/conversations/{cid}", headers=eve.headers).status_code == 404
    assert client.get(f"/conversations/{cid}/messages", headers=eve.headers).status_code == 404
    resp = client.post(
        f"/conversations/{cid}/messages", json={"contentType": "text", "text": "x"}, headers=eve.headers
    )
    assert resp.status_code == 404
    resp = client.post(
        f"/conversations/{cid}/messages/{message['id']}/comments", json={"emoji": "👀"}, headers=eve.headers
    )
    assert resp.status_code == 404
    assert client.get("/conversations/does-not-exist", headers=alice.headers).status_code == 404


def test_conversation_list_summaries(client, make_user, direct_chat, send):
    alice, bob, carol = make_user(), make_user(), make_user()
    with_bob = direct_chat(alice, bob)
    with_carol = direct_chat(alice, carol)
    send(bob, with_bob, "older")
    send(carol, with_carol, text=None, contentType="photo", photoUrl="http://img/1.png")

    resp = client.get("/conversations", headers=alice.headers)
    assert resp.status_code == 200
    summaries = resp.json()
    assert [s["id"] for s in summaries] == [with_carol, with_bob]

    photo, text = summaries
    assert photo["title"] == carol.name
    assert photo["lastMessageIsPhoto"] is True
    assert photo["lastMessageSnippet"] == "[photo]"
    assert text["lastMessageSnippet"] == "older"
    assert text["lastMessageIsPhoto"] is False
    assert text["lastMessageAt"].endswith("Z")


def test_open_conversation_lists_newest_first(client, make_user, direct_chat, send):
    alice, bob = make_user(), make_user()
    cid = direct_chat(alice, bob)
    first = send(alice, cid, "one")
    second = send(bob, cid, "two")

    body = client.get(f"/conversations/{cid}", headers=alice.headers).json()
    assert [m["id"] for m in body["messages"]] == [second["id"], first["id"]]
    assert body["title"] == bob.name


def test_liveness(client):
    assert client.get("/liveness").json() == {"status": "ok"}
