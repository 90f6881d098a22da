"""
HTTP API tests
"""
import uuid
from datetime import datetime, timedelta

import pytest

from conftest import CRON_SECRET
from topichat.models import FeedPost, Message, PopularTopic


def auth(user_id):
    return {"X-User-Id": str(user_id)}


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"


class TestChatroomEndpoints:
    """Test suite for room endpoints"""

    def test_create_and_get(self, client, user_id):
        response = client.post("/api/chatrooms", json={"name": "러닝", "interest": "러닝"}, headers=auth(user_id))
        assert response.status_code == 201
        room_id = response.json()["id"]

        detail = client.get(f"/api/chatrooms/{room_id}", headers=auth(user_id)).json()
        assert detail["is_admin"]
        assert detail["name"] == "러닝"

    def test_mutations_require_viewer(self, client, make_room):
        room = make_room()
        assert client.post("/api/chatrooms", json={"name": "x"}).status_code == 401
        assert client.post(f"/api/chatrooms/{room.id}/messages", json={"content": "hi"}).status_code == 401
        assert client.post(f"/api/chatrooms/{room.id}/join").status_code == 401

    def test_settings_are_admin_only(self, client, make_room, user_id):
        room = make_room(members=[user_id])
        response = client.patch(f"/api/chatrooms/{room.id}/settings", json={"persona": "x"}, headers=auth(user_id))
        assert response.status_code == 403

    def test_admin_changes_settings(self, client, make_room, user_id):
        room = make_room(admins=[user_id])
        response = client.patch(
            f"/api/chatrooms/{room.id}/settings",
            json={"idle_threshold_minutes": 60, "enable_article_summary": False},
            headers=auth(user_id),
        )
        assert response.status_code == 200
        assert response.json()["idle_threshold_minutes"] == 60
        assert response.json()["enable_article_summary"] is False

    def test_missing_room(self, client, user_id):
        assert client.get(f"/api/chatrooms/{uuid.uuid4()}", headers=auth(user_id)).status_code == 404

    def test_suggestions(self, client):
        response = client.get("/api/chatrooms/commands/suggest", params={"text": "/질"})
        assert response.json() == {"suggestions": ["/질문"]}

    def test_on_login_joins_interest_rooms(self, client, make_profile):
        profile = make_profile("newbie", interests=["건강", "수면"])
        response = client.post("/api/auth/on-login", json={"user_id": str(profile.id)})
        assert response.status_code == 200
        assert len(response.json()["chatroom_ids"]) == 2


class TestProfileEndpoints:
    """Test suite for profile setup and onboarding"""

    def test_profile_setup_then_login(self, client, user_id):
        response = client.put("/api/profiles/me", json={"interests": ["건강", "수면"]}, headers=auth(user_id))
        assert response.status_code == 200
        assert response.json()["interests"] == ["건강", "수면"]

        named = client.put("/api/profiles/me", json={"nickname": "runner"}, headers=auth(user_id)).json()
        assert named["nickname"] == "runner"
        assert named["interests"] == ["건강", "수면"]

        joined = client.post("/api/auth/on-login", json={"user_id": str(user_id)}).json()
        assert len(joined["chatroom_ids"]) == 2

    def test_taken_nickname(self, client, make_profile, user_id):
        make_profile("alice")
        response = client.put("/api/profiles/me", json={"nickname": "alice"}, headers=auth(user_id))
        assert response.status_code == 409

    def test_empty_interest_list_is_rejected(self, client, user_id):
        response = client.put("/api/profiles/me", json={"interests": []}, headers=auth(user_id))
        assert response.status_code == 422

    def test_requires_viewer(self, client, user_id):
        assert client.put("/api/profiles/me", json={"nickname": "x"}).status_code == 401
        assert client.get("/api/profiles/me", headers=auth(user_id)).status_code == 404


class TestFeedEndpoints:
    """Test suite for feed posts and popular topics"""

    def test_popular_and_subscribed(self, client, db, make_room, user_id):
        joined = make_room(name="joined", members=[user_id])
        other = make_room(name="other")
        db.add_all([
            FeedPost(chatroom_id=joined.id, title="오늘의 대화 요약", content="- a"),
            FeedPost(chatroom_id=other.id, title="오늘의 대화 요약", content="- b"),
        ])
        db.commit()

        popular = client.get("/api/feeds").json()
        assert sorted(p["chatroom_name"] for p in popular) == ["joined", "other"]

        subscribed = client.get("/api/feeds", params={"scope": "subscribed"}, headers=auth(user_id)).json()
        assert [p["chatroom_name"] for p in subscribed] == ["joined"]

    def test_subscribed_requires_viewer(self, client):
        assert client.get("/api/feeds", params={"scope": "subscribed"}).status_code == 401
        assert client.get("/api/feeds", params={"scope": "everything"}).status_code == 422

    def test_popular_topics(self, client, db):
        db.add(PopularTopic(topic="마그네슘", summary="급증", period="weekly", score=11))
        db.commit()

        topics = client.get("/api/popular-topics").json()
        assert [(t["topic"], t["score"]) for t in topics] == [("마그네슘", 11.0)]


class TestMessageEndpoints:
    """Test suite for messages, reactions and comments"""

    def test_send_and_list(self, client, make_room, user_id):
        room = make_room()
        sent = client.post(f"/api/chatrooms/{room.id}/messages", json={"content": "안녕하세요"}, headers=auth(user_id))
        assert sent.status_code == 201
        assert sent.json()["is_command"] is False

        page = client.get(f"/api/chatrooms/{room.id}/messages").json()
        assert [m["display_content"] for m in page] == ["안녕하세요"]

    def test_command_is_stored_and_answered(self, client, db, generator, make_room, user_id):
        room = make_room(interest="영양제")
        generator.reply = "마그네슘은 저녁에 드세요."

        response = client.post(
            f"/api/chatrooms/{room.id}/messages",
            json={"content": "/질문 마그네슘 언제 먹어?"},
            headers=auth(user_id),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["is_command"] is True
        assert body["message"]["display_content"] == "/질문 마그네슘 언제 먹어?"
        assert generator.calls[0][0] == "마그네슘 언제 먹어?"

        kinds = [m.curator_kind for m in db.query(Message).filter(Message.chatroom_id == room.id)]
        assert sorted(kinds) == ["none", "qa"]

    def test_reaction_toggle(self, client, store, make_room, user_id):
        room = make_room()
        row = store.insert_message(room.id, uuid.uuid4(), "react")

        liked = client.post(f"/api/messages/{row['id']}/reactions/like", headers=auth(user_id)).json()
        assert (liked["like_count"], liked["viewer_has_liked"]) == (1, True)

        disliked = client.post(f"/api/messages/{row['id']}/reactions/dislike", headers=auth(user_id)).json()
        assert (disliked["like_count"], disliked["dislike_count"]) == (0, 1)
        assert (disliked["viewer_has_liked"], disliked["viewer_has_disliked"]) == (False, True)

        cleared = client.post(f"/api/messages/{row['id']}/reactions/dislike", headers=auth(user_id)).json()
        assert (cleared["viewer_has_liked"], cleared["viewer_has_disliked"]) == (False, False)

    def test_unknown_reaction_kind(self, client, store, make_room, user_id):
        room = make_room()
        row = store.insert_message(room.id, user_id, "react")
        assert client.post(f"/api/messages/{row['id']}/reactions/love", headers=auth(user_id)).status_code == 400

    def test_delete_is_author_only(self, client, store, make_room, user_id):
        room = make_room()
        row = store.insert_message(room.id, user_id, "mine")

        assert client.delete(f"/api/messages/{row['id']}", headers=auth(uuid.uuid4())).status_code == 403
        deleted = client.delete(f"/api/messages/{row['id']}", headers=auth(user_id)).json()
        assert deleted["display_content"] == "삭제된 메시지입니다."

    def test_comment_tree(self, client, store, make_room, user_id):
        room = make_room()
        row = store.insert_message(room.id, user_id, "topic")
        url = f"/api/messages/{row['id']}/comments"

        first = client.post(url, json={"content": "first"}, headers=auth(user_id)).json()
        client.post(url, json={"content": "reply", "replying_to_id": first["id"]}, headers=auth(user_id))
        client.delete(f"/api/comments/{first['id']}", headers=auth(user_id))

        tree = client.get(url).json()
        assert len(tree) == 1
        assert tree[0]["comment"]["display_content"] == "삭제된 메시지입니다."
        assert tree[0]["children"][0]["comment"]["display_content"] == "reply"


class TestCuratorEndpoints:
    """Test suite for cron-triggered curator jobs"""

    @pytest.mark.parametrize("path", [
        "/api/curator/idle-starter",
        "/api/curator/news-sharer",
        "/api/curator/summarize",
        "/api/curator/trending-topics",
        "/api/curator/activity-metrics",
    ])
    def test_secret_is_required(self, client, path):
        missing = client.post(path)
        wrong = client.post(path, headers={"X-Cron-Secret": "nope"})

        assert missing.status_code == 401
        assert wrong.status_code == 401
        assert "error" in missing.json()

    def test_unconfigured_secret_rejects_everyone(self, client, settings):
        settings.cron_secret = None
        response = client.post("/api/curator/idle-starter", headers={"X-Cron-Secret": ""})
        assert response.status_code == 401

    def test_idle_starter(self, client, db, make_room):
        room = make_room(last_message_at=datetime.utcnow() - timedelta(days=2))

        response = client.post("/api/curator/idle-starter", headers={"X-Cron-Secret": CRON_SECRET})

        assert response.status_code == 200
        assert "processed 1" in response.json()["message"]
        assert db.query(Message).filter(Message.chatroom_id == room.id, Message.curator_kind == "idle").count() == 1

    def test_news_sharer(self, client, make_room):
        make_room(interest="건강")
        response = client.post("/api/curator/news-sharer", headers={"X-Cron-Secret": CRON_SECRET})
        assert response.json() == {"message": "news-sharer: processed 1."}

    def test_all_failed_batch_is_an_error(self, client, generator, make_room):
        generator.fail_on = "건강"
        make_room(interest="건강", last_message_at=datetime.utcnow() - timedelta(days=2))

        response = client.post("/api/curator/idle-starter", headers={"X-Cron-Secret": CRON_SECRET})

        assert response.status_code == 500
        assert "error" in response.json()

    def test_activity_metrics(self, client, make_profile):
        make_profile("alice")
        response = client.post("/api/curator/activity-metrics", headers={"X-Cron-Secret": CRON_SECRET})
        assert response.status_code == 200
        assert response.json()["message"].startswith("activity-metrics: processed")

    def test_qa_requires_fields(self, client):
        assert client.post("/api/curator/qa", json={"question": "hi"}).status_code == 400
        assert client.post("/api/curator/qa", json={"chatroom_id": str(uuid.uuid4())}).status_code == 400

    def test_qa_posts_answer(self, client, db, make_room):
        room = make_room()
        response = client.post("/api/curator/qa", json={"question": "hi", "chatroom_id": str(room.id)})

        assert response.json() == {"message": "Answer posted."}
        assert db.query(Message).filter(Message.curator_kind == "qa").count() == 1

    def test_qa_generation_failure(self, client, generator, make_room):
        generator.fail_on = "hi"
        room = make_room()
        response = client.post("/api/curator/qa", json={"question": "hi", "chatroom_id": str(room.id)})

        assert response.status_code == 500
        assert "error" in response.json()
