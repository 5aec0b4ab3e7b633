from writory.extensions import db
from writory.models import User, WallPost

MOD = {"admin-email": "admin@writory.test"}


def _post(client, uid="uid-1", title="Evening", content="Lines about dusk"):
    resp = client.post("/api/wall-posts", json={"userUid": uid, "title": title, "content": content, "category": "nature"})
    assert resp.status_code == 201, resp.get_json()
    return resp.get_json()["post"]["id"]


def _approve(client, post_id):
    resp = client.post(f"/api/wall-posts/{post_id}/approve", headers=MOD)
    assert resp.status_code == 200, resp.get_json()


def test_new_posts_are_pending_and_hidden(client):
    post_id = _post(client)
    assert db.session.get(WallPost, post_id).status == "pending"
    assert client.get("/api/wall-posts").get_json()["posts"] == []

    mine = client.get("/api/wall-posts/user/uid-1").get_json()["posts"]
    assert [p["id"] for p in mine] == [post_id]


def test_approval_publishes(client):
    post_id = _post(client)
    _approve(client, post_id)
    posts = client.get("/api/wall-posts").get_json()["posts"]
    assert [p["id"] for p in posts] == [post_id]
    post = db.session.get(WallPost, post_id)
    assert post.moderated_by == "admin@writory.test"
    assert post.moderated_at is not None


def test_reject_with_notes(client):
    post_id = _post(client)
    resp = client.post(f"/api/wall-posts/{post_id}/reject", json={"notes": "off topic"}, headers=MOD)
    assert resp.status_code == 200
    post = db.session.get(WallPost, post_id)
    assert post.status == "rejected"
    assert post.moderation_notes == "off topic"


def test_moderation_requires_admin(client):
    post_id = _post(client)
    resp = client.post(f"/api/wall-posts/{post_id}/approve", headers={"admin-email": "someone@example.com"})
    assert resp.status_code == 403
    resp = client.post(f"/api/wall-posts/{post_id}/approve")
    assert resp.status_code == 401
    assert db.session.get(WallPost, post_id).status == "pending"


def test_like_is_idempotent_per_user(client):
    post_id = _post(client)
    _approve(client, post_id)

    first = client.post(f"/api/wall-posts/{post_id}/like", json={"userId": "fan"}).get_json()
    again = client.post(f"/api/wall-posts/{post_id}/like", json={"userId": "fan"}).get_json()
    other = client.post(f"/api/wall-posts/{post_id}/like", json={"userId": "fan2"}).get_json()
    assert first["changed"] is True and first["likes"] == 1
    assert again["changed"] is False and again["likes"] == 1
    assert other["likes"] == 2

    undo = client.post(f"/api/wall-posts/{post_id}/unlike", json={"userId": "fan"}).get_json()
    assert undo["likes"] == 1
    undo_again = client.post(f"/api/wall-posts/{post_id}/unlike", json={"userId": "fan"}).get_json()
    assert undo_again["changed"] is False and undo_again["likes"] == 1

    post = db.session.get(WallPost, post_id)
    assert post.liked_by_ids() == ["fan2"]
    assert post.likes == len(post.liked_by_ids())


def test_cannot_like_pending_post(client):
    post_id = _post(client)
    resp = client.post(f"/api/wall-posts/{post_id}/like", json={"userId": "fan"})
    assert resp.status_code == 409


def test_owner_can_delete(client):
    db.session.add(User(uid="uid-1", email="owner@example.com"))
    db.session.commit()
    post_id = _post(client)

    resp = client.delete(f"/api/wall-posts/{post_id}", headers={"x-user-email": "stranger@example.com"})
    assert resp.status_code == 403

    resp = client.delete(f"/api/wall-posts/{post_id}", headers={"x-user-email": "owner@example.com"})
    assert resp.status_code == 200
    assert db.session.get(WallPost, post_id).deleted
    assert client.get("/api/wall-posts/user/uid-1").get_json()["posts"] == []


def test_admin_list_counts(client):
    a = _post(client, title="A")
    _post(client, title="B")
    _approve(client, a)
    body = client.get("/api/wall-posts/admin", headers=MOD).get_json()
    assert body["counts"] == {"pending": 1, "approved": 1, "rejected": 0}
    pending = client.get("/api/wall-posts/admin?status=pending", headers=MOD).get_json()["posts"]
    assert [p["title"] for p in pending] == ["B"]


def test_admin_can_restore_deleted_post(client):
    post_id = _post(client)
    _approve(client, post_id)
    assert client.post(f"/api/wall-posts/{post_id}/delete", headers=MOD).status_code == 200
    assert client.get("/api/wall-posts").get_json()["posts"] == []

    not_admin = client.post(f"/api/wall-posts/{post_id}/restore", headers={"admin-email": "someone@example.com"})
    assert not_admin.status_code == 403

    resp = client.post(f"/api/wall-posts/{post_id}/restore", headers=MOD)
    assert resp.status_code == 200
    post = db.session.get(WallPost, post_id)
    assert post.deleted is False and post.deleted_at is None
    assert [p["id"] for p in client.get("/api/wall-posts").get_json()["posts"]] == [post_id]

    again = client.post(f"/api/wall-posts/{post_id}/restore", headers=MOD)
    assert again.status_code == 409
