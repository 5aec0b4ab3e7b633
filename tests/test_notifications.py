from conftest import ADMIN

from writory.extensions import render_email
from writory.models import Notification, UserNotification
from writory.services import submissions


def _register(client, uid, email, name=None):
    resp = client.post("/api/users", json={"uid": uid, "email": email, "name": name})
    assert resp.status_code == 200
    return resp.get_json()["user"]


def _send(client, **body):
    return client.post("/api/admin/notifications/send", json=body, headers=ADMIN)


def test_broadcast_reaches_every_user(client):
    _register(client, "u-1", "one@example.com")
    _register(client, "u-2", "two@example.com")

    resp = _send(client, type="broadcast", title="Results out", message="Winners are on the wall")
    assert resp.status_code == 201
    body = resp.get_json()
    assert body["recipients"] == 2
    assert body["notification"]["type"] == "broadcast"
    assert body["notification"]["sentBy"] == "admin@writory.test"

    inbox = client.get("/api/users/u-2/notifications").get_json()
    assert inbox["unreadCount"] == 1
    assert inbox["notifications"][0]["title"] == "Results out"
    assert inbox["notifications"][0]["isRead"] is False


def test_individual_notification_targets_one_user(client):
    _register(client, "u-1", "one@example.com")
    _register(client, "u-2", "two@example.com")

    resp = _send(client, type="individual", title="Payment", message="Please resend proof", userEmail="Two@Example.com")
    assert resp.status_code == 201
    assert resp.get_json()["recipients"] == 1
    assert Notification.query.one().target_user_email == "two@example.com"

    assert client.get("/api/users/u-1/notifications").get_json()["notifications"] == []
    assert client.get("/api/users/u-2/notifications").get_json()["unreadCount"] == 1


def test_send_validation(client):
    _register(client, "u-1", "one@example.com")
    assert _send(client, type="broadcast", title="", message="x").status_code == 400
    assert _send(client, type="individual", title="t", message="m").status_code == 400

    missing = _send(client, type="individual", title="t", message="m", userEmail="ghost@example.com")
    assert missing.status_code == 404
    assert Notification.query.count() == 0

    assert client.post("/api/admin/notifications/send", json={"title": "t", "message": "m"}).status_code == 401


def test_mark_read_is_scoped_to_owner(client):
    _register(client, "u-1", "one@example.com")
    _register(client, "u-2", "two@example.com")
    _send(client, type="broadcast", title="Hello", message="Welcome aboard")

    mine = client.get("/api/users/u-1/notifications").get_json()["notifications"][0]["id"]
    # u-2 cannot mark u-1's copy
    assert client.post(f"/api/users/u-2/notifications/{mine}/read").status_code == 404

    resp = client.post(f"/api/users/u-1/notifications/{mine}/read")
    assert resp.status_code == 200
    assert resp.get_json()["notification"]["isRead"] is True
    assert resp.get_json()["notification"]["readAt"]

    assert client.get("/api/users/u-1/notifications").get_json()["unreadCount"] == 0
    assert client.get("/api/users/u-1/notifications?unread=1").get_json()["notifications"] == []
    assert client.get("/api/users/u-2/notifications").get_json()["unreadCount"] == 1


def test_read_all_and_deactivate(client):
    _register(client, "u-1", "one@example.com")
    _send(client, type="broadcast", title="A", message="first")
    _send(client, type="broadcast", title="B", message="second")

    assert client.post("/api/users/u-1/notifications/read-all").get_json()["marked"] == 2
    assert UserNotification.query.filter_by(is_read=False).count() == 0

    history = client.get("/api/admin/notifications", headers=ADMIN).get_json()["notifications"]
    assert [n["title"] for n in history] == ["B", "A"]
    assert history[0]["recipients"] == 1 and history[0]["readCount"] == 1

    note_id = history[0]["id"]
    assert client.delete(f"/api/admin/notifications/{note_id}", headers=ADMIN).status_code == 200
    titles = [n["title"] for n in client.get("/api/users/u-1/notifications").get_json()["notifications"]]
    assert titles == ["A"]


def test_unknown_user_has_empty_inbox(client):
    assert client.get("/api/users/nobody/notifications").get_json() == {"notifications": [], "unreadCount": 0}


def test_welcome_email_sent_once_on_registration(app, client, monkeypatch):
    sent = []
    monkeypatch.setattr(submissions, "send_email_async", lambda *args, **kw: sent.append(args))
    app.config["WELCOME_EMAILS_ENABLED"] = True
    app.config["PUBLIC_BASE_URL"] = "https://writory.test"

    _register(client, "u-1", "Poet@Example.com", name="Meera Iyer")
    _register(client, "u-1", "poet@example.com")

    assert len(sent) == 1
    _, template, recipients, subject, context = sent[0]
    assert template == "welcome"
    assert recipients == ["poet@example.com"]
    assert subject == "Welcome to Writory"
    assert context == {"name": "Meera", "brand": "Writory", "submit_url": "https://writory.test/submit"}


def test_welcome_email_respects_toggle(client, monkeypatch):
    sent = []
    monkeypatch.setattr(submissions, "send_email_async", lambda *args, **kw: sent.append(args))
    _register(client, "u-1", "poet@example.com")
    assert sent == []


def test_welcome_template_renders():
    html, text = render_email("welcome", {"name": "Meera", "brand": "Writory", "submit_url": "https://w.test/submit"})
    assert "Welcome to Writory, Meera!" in text
    assert 'href="https://w.test/submit"' in html
