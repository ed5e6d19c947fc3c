"""
API tests for the messaging endpoints.

Every request goes through JWT authentication and the project exception
handler, so these also pin the HTTP status of each domain error.
"""
import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.test import APIClient

from messaging.models import CommunicationRelation, Message
from messaging.services import MessageSpec
from messaging.stores import MessageStore

BASE = "/api/messaging"


def _send(client, receiver, text="hello"):
    return client.post(
        f"{BASE}/messages/",
        {"receiver_id": receiver.id, "message_type": "TEXT", "text_content": text},
        format="json",
    )


@pytest.mark.django_db
def test_requires_authentication(messaging_service, other_user):
    resp = APIClient().post(f"{BASE}/messages/", {"receiver_id": other_user.id, "text_content": "x"}, format="json")
    assert resp.status_code == 401


@pytest.mark.django_db
def test_send_message(auth_client, messaging_service, user, other_user):
    resp = _send(auth_client, other_user)

    assert resp.status_code == 201
    body = resp.json()
    assert body["sender_id"] == user.id
    assert body["receiver_id"] == other_user.id
    assert body["text_content"] == "hello"
    assert body["media_url"] is None
    assert CommunicationRelation.objects.count() == 1


@pytest.mark.django_db
def test_send_errors_map_to_status_codes(auth_client, messaging_service, user, other_user):
    assert _send(auth_client, user).status_code == 400
    assert _send(auth_client, other_user, text="  ").json()["code"] == "invalid_message"

    missing = auth_client.post(f"{BASE}/messages/", {"receiver_id": 99999, "text_content": "x"}, format="json")
    assert missing.status_code == 404


@pytest.mark.django_db
def test_second_message_without_relation_is_forbidden(auth_client, messaging_service, user, other_user):
    MessageStore().insert(sender_id=user.id, receiver_id=other_user.id, message_type="TEXT", text_content="first")

    resp = _send(auth_client, other_user, "second")

    assert resp.status_code == 403
    assert resp.json() == {
        "detail": "Cannot send message. Communication not established.",
        "code": "communication_not_permitted",
    }


@pytest.mark.django_db
def test_send_media_message(auth_client, messaging_service, media_store, other_user):
    upload = SimpleUploadedFile("clip.ogg", b"OggS", content_type="audio/ogg")

    resp = auth_client.post(
        f"{BASE}/messages/media/",
        {"receiver_id": other_user.id, "message_type": "VOICE", "media_file": upload},
        format="multipart",
    )

    assert resp.status_code == 201
    body = resp.json()
    assert body["message_type"] == "VOICE"
    assert body["media_path"].startswith("messages/voice/voice_")
    assert body["media_url"].startswith("http://testserver/media/messages/voice/")
    assert media_store.exists(body["media_path"])


@pytest.mark.django_db
def test_media_endpoint_rejects_text_type(auth_client, messaging_service, other_user):
    upload = SimpleUploadedFile("a.txt", b"x", content_type="text/plain")
    resp = auth_client.post(
        f"{BASE}/messages/media/",
        {"receiver_id": other_user.id, "message_type": "TEXT", "media_file": upload},
        format="multipart",
    )
    assert resp.status_code == 400


@pytest.mark.django_db
def test_delete_message(auth_client, messaging_service, user, other_user):
    own = messaging_service.send(user.id, MessageSpec(receiver_id=other_user.id, text_content="mine"))
    theirs = messaging_service.send(other_user.id, MessageSpec(receiver_id=user.id, text_content="theirs"))

    assert auth_client.delete(f"{BASE}/messages/{theirs.id}/").status_code == 403
    assert auth_client.delete(f"{BASE}/messages/{own.id}/").status_code == 204
    assert auth_client.delete(f"{BASE}/messages/{own.id}/").status_code == 404
    assert list(Message.objects.values_list("id", flat=True)) == [theirs.id]


@pytest.mark.django_db
def test_conversation_lists_newest_first(auth_client, messaging_service, user, other_user):
    for i in range(5):
        messaging_service.send(user.id, MessageSpec(receiver_id=other_user.id, text_content=f"m{i}"))

    resp = auth_client.get(f"{BASE}/conversations/{other_user.id}/")

    assert resp.status_code == 200
    assert [m["text_content"] for m in resp.json()] == ["m4", "m3", "m2"]


@pytest.mark.django_db
def test_communication_details_endpoint(auth_client, messaging_service, user, other_user):
    messaging_service.send(user.id, MessageSpec(receiver_id=other_user.id, text_content="hi"))

    body = auth_client.get(f"{BASE}/communication/{other_user.id}/").json()

    assert body["user_id"] == other_user.id
    assert body["can_communicate"] is True
    assert body["is_last_message_from_me"] is True
    assert body["last_message"]["text_content"] == "hi"


@pytest.mark.django_db
def test_retention_config_read_and_update(auth_client, staff_client, messaging_service):
    assert auth_client.get(f"{BASE}/retention/config/").json() == {"enabled": True, "retention_count": 3}

    forbidden = auth_client.put(f"{BASE}/retention/config/", {"enabled": True, "retention_count": 5}, format="json")
    assert forbidden.status_code == 403

    resp = staff_client.put(f"{BASE}/retention/config/", {"enabled": False, "retention_count": 50}, format="json")
    assert resp.status_code == 200
    assert resp.json() == {"enabled": False, "retention_count": 50}
    assert messaging_service.get_retention_config().count == 50


@pytest.mark.django_db
@pytest.mark.parametrize("count", [0, 101])
def test_retention_config_rejects_out_of_range(staff_client, messaging_service, count):
    resp = staff_client.put(f"{BASE}/retention/config/", {"enabled": True, "retention_count": count}, format="json")

    assert resp.status_code == 400
    assert messaging_service.get_retention_config().count == 3


@pytest.mark.django_db
def test_retention_stats_and_cleanup(auth_client, messaging_service, retention_config, user, other_user):
    retention_config.set(count=10, enabled=True)
    for i in range(5):
        messaging_service.send(user.id, MessageSpec(receiver_id=other_user.id, text_content=f"m{i}"))
    retention_config.set(count=2, enabled=True)

    stats = auth_client.get(f"{BASE}/retention/stats/{other_user.id}/").json()
    assert stats == {"total_messages": 5, "retention_count": 2, "messages_to_delete": 3, "needs_cleanup": True}

    cleanup = auth_client.post(f"{BASE}/retention/cleanup/{other_user.id}/")
    assert cleanup.status_code == 200
    assert cleanup.json() == {"deleted": 3, "remaining": 2}


@pytest.mark.django_db
def test_cleanup_all_is_staff_only(auth_client, staff_client, messaging_service, retention_config, user, other_user):
    retention_config.set(count=10, enabled=True)
    for i in range(4):
        messaging_service.send(user.id, MessageSpec(receiver_id=other_user.id, text_content=f"m{i}"))
    retention_config.set(count=1, enabled=True)

    assert auth_client.post(f"{BASE}/retention/cleanup-all/").status_code == 403

    resp = staff_client.post(f"{BASE}/retention/cleanup-all/")
    assert resp.status_code == 200
    body = resp.json()
    assert (body["pairs"], body["deleted"], body["failures"]) == (1, 3, [])
    assert Message.objects.count() == 1


@pytest.mark.django_db
def test_json_send_ignores_client_media_path(auth_client, messaging_service, media_store, user, other_user, third_user):
    photo = messaging_service.send_with_media(
        third_user.id, other_user.id, "IMAGE", SimpleUploadedFile("p.jpg", b"jpeg", content_type="image/jpeg")
    )

    resp = auth_client.post(
        f"{BASE}/messages/",
        {"receiver_id": other_user.id, "message_type": "TEXT", "text_content": "hi", "media_path": photo.media_path},
        format="json",
    )
    assert resp.status_code == 201
    assert resp.json()["media_path"] is None

    assert auth_client.delete(f"{BASE}/messages/{resp.json()['id']}/").status_code == 204
    assert media_store.exists(photo.media_path)
    assert Message.objects.filter(pk=photo.pk).exists()
