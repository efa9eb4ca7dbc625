import json
import shutil
import tempfile
import unittest

from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from messenger.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StorageError,
    ValidationError,
)
from messenger.db.database import Base, build_engine, get_db
from messenger.main import app
from messenger.storage import LocalStorageClient, get_storage


def auth(user_id):
    return {"Authorization": f"Bearer {user_id}"}


class ChatApiTestCase(unittest.TestCase):
    def setUp(self):
        self.engine = build_engine("sqlite://")
        Base.metadata.create_all(bind=self.engine)
        SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        self.media_root = tempfile.mkdtemp()
        storage = LocalStorageClient(base_path=self.media_root, url_prefix="/media/")

        def override_get_db():
            db = SessionLocal()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_storage] = lambda: storage
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()
        Base.metadata.drop_all(bind=self.engine)
        self.engine.dispose()
        shutil.rmtree(self.media_root, ignore_errors=True)

    def login(self, name):
        response = self.client.post("/session", json={"name": name})
        self.assertEqual(response.status_code, 201)
        return response.json()["identifier"]

    def start_conversation(self, user_id, recipient_name):
        response = self.client.post(
            "/conversations", json={"recipientName": recipient_name}, headers=auth(user_id)
        )
        self.assertEqual(response.status_code, 201)
        return response.json()["conversationId"]

    def send(self, user_id, conversation_id, content, **extra):
        body = {"conversationId": conversation_id, "content": content, "contentType": "text"}
        body.update(extra)
        return self.client.post("/messages", json=body, headers=auth(user_id))

    def test_alice_and_bob(self):
        alice = self.login("alice")
        bob = self.login("bob")
        self.assertEqual((alice, bob), (1, 2))
        self.assertEqual(self.login("alice"), alice)

        conversation_id = self.start_conversation(alice, "bob")
        members = self.client.get(f"/conversations/{conversation_id}/members", headers=auth(bob)).json()
        self.assertEqual([m["name"] for m in members], ["alice", "bob"])

        response = self.send(alice, conversation_id, "hi")
        self.assertEqual(response.status_code, 201)
        message = response.json()
        self.assertEqual(message["senderName"], "alice")
        self.assertEqual(message["status"], 0)

        conversations = self.client.get("/conversations", headers=auth(bob)).json()
        self.assertEqual(len(conversations), 1)
        self.assertEqual(conversations[0]["latestMessagePreview"], "hi")
        self.assertEqual(conversations[0]["name"], "alice")
        self.assertEqual(conversations[0]["unreadCount"], 1)

        response = self.client.get(f"/conversations/{conversation_id}", headers=auth(bob))
        self.assertEqual(response.status_code, 200)
        self.assertEqual([m["content"] for m in response.json()], ["hi"])
        self.assertEqual(response.json()[0]["status"], 2)

        conversations = self.client.get("/conversations", headers=auth(bob)).json()
        self.assertEqual(conversations[0]["unreadCount"], 0)

        url = f"/messages/{message['id']}/reaction"
        self.client.post(url, json={"emoticon": "👍"}, headers=auth(alice))
        response = self.client.post(url, json={"emoticon": "❤️"}, headers=auth(alice))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [{"userId": alice, "reactorName": "alice", "emoticon": "❤️"}])

    def test_listing_delivers_messages(self):
        alice = self.login("alice")
        bob = self.login("bob")
        conversation_id = self.start_conversation(alice, "bob")
        self.send(alice, conversation_id, "hi")

        self.client.get("/conversations", headers=auth(bob))
        conversations = self.client.get("/conversations", headers=auth(alice)).json()
        self.assertEqual(conversations[0]["latestMessageStatus"], 1)

    def test_duplicate_pairwise_conversation(self):
        alice = self.login("alice")
        bob = self.login("bob")
        conversation_id = self.start_conversation(alice, "bob")

        for user_id, name in [(alice, "bob"), (bob, "alice")]:
            response = self.client.post("/conversations", json={"recipientName": name}, headers=auth(user_id))
            self.assertEqual(response.status_code, 409)
            self.assertEqual(response.json()["conversationId"], conversation_id)

    def test_conversation_with_unknown_user_or_self(self):
        alice = self.login("alice")
        response = self.client.post("/conversations", json={"recipientName": "ghost"}, headers=auth(alice))
        self.assertEqual(response.status_code, 404)
        response = self.client.post("/conversations", json={"recipientName": "alice"}, headers=auth(alice))
        self.assertEqual(response.status_code, 400)

    def test_authentication_required(self):
        self.login("alice")
        for headers in [{}, {"Authorization": "Bearer"}, {"Authorization": "Bearer abc"},
                        {"Authorization": "Bearer 0"}, {"Authorization": "Basic 1"},
                        {"Authorization": "Bearer 77"}]:
            response = self.client.get("/conversations", headers=headers)
            self.assertEqual(response.status_code, 401)
        self.assertEqual(self.client.get("/conversations", headers=auth(1)).status_code, 200)

    def test_login_validation(self):
        response = self.client.post("/session", json={"name": "al"})
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_rename(self):
        alice = self.login("alice")
        self.login("bob")
        response = self.client.put("/user/name", json={"newName": "bob"}, headers=auth(alice))
        self.assertEqual(response.status_code, 409)
        response = self.client.put("/user/name", json={"newName": "alicia"}, headers=auth(alice))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get("/me", headers=auth(alice)).json()["name"], "alicia")

    def test_search_users(self):
        alice = self.login("alice")
        self.login("malik")
        self.login("bob")
        response = self.client.get("/users", params={"q": "LI"}, headers=auth(alice))
        self.assertEqual([u["name"] for u in response.json()], ["alice", "malik"])

    def test_photo_upload(self):
        alice = self.login("alice")
        response = self.client.put(
            "/user/photo",
            files={"newPhoto": ("me.png", b"\x89PNG fake", "image/png")},
            headers=auth(alice),
        )
        self.assertEqual(response.status_code, 200)
        photo_url = response.json()["photoUrl"]
        self.assertTrue(photo_url.startswith("/media/users/user_1/"))
        self.assertTrue(photo_url.endswith(".png"))
        self.assertEqual(self.client.get("/me", headers=auth(alice)).json()["photoUrl"], photo_url)

        response = self.client.put(
            "/user/photo", json={"photoUrl": "https://example.com/a.png"}, headers=auth(alice)
        )
        self.assertEqual(response.json()["photoUrl"], "https://example.com/a.png")

        for body in [{"photoUrl": 5}, {}, ["a.png"]]:
            response = self.client.put("/user/photo", json=body, headers=auth(alice))
            self.assertEqual(response.status_code, 400)

        response = self.client.put(
            "/user/photo",
            files={"newPhoto": ("notes.txt", b"text", "text/plain")},
            headers=auth(alice),
        )
        self.assertEqual(response.status_code, 400)

    def test_membership_is_checked(self):
        alice = self.login("alice")
        self.login("bob")
        carol = self.login("carol")
        conversation_id = self.start_conversation(alice, "bob")

        response = self.client.get(f"/conversations/{conversation_id}", headers=auth(carol))
        self.assertEqual(response.status_code, 403)
        response = self.send(carol, conversation_id, "let me in")
        self.assertEqual(response.status_code, 403)
        response = self.client.get("/conversations/999", headers=auth(carol))
        self.assertEqual(response.status_code, 404)

    def test_delete_message(self):
        alice = self.login("alice")
        bob = self.login("bob")
        conversation_id = self.start_conversation(alice, "bob")
        message_id = self.send(alice, conversation_id, "hi").json()["id"]

        self.assertEqual(self.client.delete(f"/messages/{message_id}", headers=auth(bob)).status_code, 403)
        messages = self.client.get(f"/conversations/{conversation_id}", headers=auth(bob)).json()
        self.assertEqual(messages[0]["content"], "hi")

        self.assertEqual(self.client.delete(f"/messages/{message_id}", headers=auth(alice)).status_code, 204)
        messages = self.client.get(f"/conversations/{conversation_id}", headers=auth(bob)).json()
        self.assertTrue(messages[0]["isDeleted"])

        self.assertEqual(self.client.delete("/messages/999", headers=auth(alice)).status_code, 404)

    def test_forward(self):
        alice = self.login("alice")
        self.login("bob")
        self.login("carol")
        self.login("dave")
        with_bob = self.start_conversation(alice, "bob")
        with_carol = self.start_conversation(alice, "carol")
        bob_dave = self.start_conversation(2, "dave")
        message_id = self.send(2, with_bob, "news").json()["id"]

        response = self.client.post(
            f"/messages/{message_id}/forward",
            json={"conversationIds": [with_carol, bob_dave]},
            headers=auth(alice),
        )
        self.assertEqual(response.status_code, 200)
        forwarded = response.json()
        self.assertEqual(len(forwarded), 1)
        self.assertEqual(forwarded[0]["conversationId"], with_carol)
        self.assertEqual(forwarded[0]["senderId"], alice)
        self.assertIsNone(forwarded[0]["replyToId"])

    def test_groups(self):
        alice = self.login("alice")
        bob = self.login("bob")
        carol = self.login("carol")
        dave = self.login("dave")

        response = self.client.post(
            "/groups", json={"name": "friends", "initialMembers": [bob]}, headers=auth(alice)
        )
        self.assertEqual(response.status_code, 400)

        response = self.client.post(
            "/groups", json={"name": "friends", "initialMembers": [bob, carol]}, headers=auth(alice)
        )
        self.assertEqual(response.status_code, 201)
        group_id = response.json()["groupId"]

        response = self.client.post(
            f"/groups/{group_id}/members", json={"userIds": [dave, 404]}, headers=auth(bob)
        )
        self.assertEqual(response.json(), {"added": [dave]})

        response = self.client.put(f"/groups/{group_id}/name", json={"newName": "family"}, headers=auth(carol))
        self.assertEqual(response.json()["name"], "family")

        response = self.client.put(
            f"/groups/{group_id}/photo",
            files={"photo": ("g.jpg", b"jpeg bytes", "image/jpeg")},
            headers=auth(carol),
        )
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["photoUrl"].startswith(f"/media/groups/group_{group_id}/"))

        self.assertEqual(self.client.delete(f"/groups/{group_id}/me", headers=auth(dave)).status_code, 204)
        response = self.client.put(f"/groups/{group_id}/name", json={"newName": "again"}, headers=auth(dave))
        self.assertEqual(response.status_code, 403)

        # pairwise conversations are not groups
        pair_id = self.start_conversation(alice, "dave")
        response = self.client.put(f"/groups/{pair_id}/name", json={"newName": "nope"}, headers=auth(alice))
        self.assertEqual(response.status_code, 400)

    def test_liveness(self):
        response = self.client.get("/liveness")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(json.loads(response.content), {"status": "ok"})

    def test_error_kinds_map_to_one_status_each(self):
        mapping = {
            ValidationError: 400,
            AuthorizationError: 403,
            NotFoundError: 404,
            ConflictError: 409,
            StorageError: 500,
        }
        for error_class, expected in mapping.items():
            self.assertEqual(error_class("boom").status_code, expected)


if __name__ == "__main__":
    unittest.main()
