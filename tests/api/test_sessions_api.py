"""Tests for session creation, context updates and anon-token auth."""

import hashlib
import uuid

import pytest
from sqlalchemy.exc import IntegrityError

pytestmark = pytest.mark.unit


class TestCreateSession:
    def test_create_session_returns_token(self, api_client, store, session_factory):
        created = session_factory()
        store.create_session.return_value = created

        response = api_client.post(
            "/api/session?utm_source=google&utm_campaign=spring",
            headers={"Referer": "https://blog.example.com", "User-Agent": "pytest", "X-Real-IP": "203.0.113.7"},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["session_id"] == str(created.id)
        assert len(data["anon_token"]) == 64

        kwargs = store.create_session.call_args.kwargs
        assert kwargs["anon_token"] == data["anon_token"]
        assert kwargs["utm_source"] == "google"
        assert kwargs["utm_medium"] is None
        assert kwargs["utm_campaign"] == "spring"
        assert kwargs["referrer"] == "https://blog.example.com"
        assert kwargs["user_agent"] == "pytest"
        assert kwargs["ip_hash"] == hashlib.sha256(b"203.0.113.7").hexdigest()
        store.update_session_context.assert_not_called()

    def test_create_session_with_initial_context(self, api_client, store, session_factory):
        created = session_factory()
        store.create_session.return_value = created

        response = api_client.post("/api/session", json={"biz_name": "Acme", "industry": "Retail"})

        assert response.status_code == 201
        store.update_session_context.assert_awaited_once_with(created.id, "Acme", "Retail", None)

    def test_initial_context_failure_still_creates_session(self, api_client, store, session_factory):
        created = session_factory()
        store.create_session.return_value = created
        store.update_session_context.side_effect = RuntimeError("db hiccup")

        response = api_client.post("/api/session", json={"biz_name": "Acme"})

        assert response.status_code == 201
        assert response.json()["session_id"] == str(created.id)


class TestAnonTokenAuth:
    def test_missing_token_is_401(self, api_client, session):
        response = api_client.patch(f"/api/session/{session.id}/context", json={"biz_name": "Acme"})

        assert response.status_code == 401
        assert "debug_id" in response.json()

    def test_unknown_token_is_401(self, api_client, session):
        response = api_client.patch(
            f"/api/session/{session.id}/context",
            json={"biz_name": "Acme"},
            headers={"X-Anon-Token": "b" * 64},
        )

        assert response.status_code == 401

    def test_token_for_other_session_is_403(self, api_client, auth_headers):
        response = api_client.patch(
            f"/api/session/{uuid.uuid4()}/context",
            json={"biz_name": "Acme"},
            headers=auth_headers,
        )

        assert response.status_code == 403

    def test_malformed_session_id_is_422(self, api_client, auth_headers):
        response = api_client.patch("/api/session/not-a-uuid/context", json={}, headers=auth_headers)

        assert response.status_code == 422


class TestUpdateContext:
    def test_update_context(self, api_client, store, session, session_factory, auth_headers):
        store.update_session_context.return_value = session_factory(
            id=session.id, biz_name="Acme", industry="Retail", stage=None
        )

        response = api_client.patch(
            f"/api/session/{session.id}/context",
            json={"biz_name": "Acme", "industry": "Retail"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {
            "session_id": str(session.id),
            "biz_name": "Acme",
            "industry": "Retail",
            "stage": "",
        }
        store.update_session_context.assert_awaited_once_with(session.id, "Acme", "Retail", None)

    def test_biz_name_too_long_is_422(self, api_client, session, auth_headers):
        response = api_client.patch(
            f"/api/session/{session.id}/context",
            json={"biz_name": "x" * 256},
            headers=auth_headers,
        )

        assert response.status_code == 422


class TestUpsertAnswers:
    def test_upsert_answers(self, api_client, store, session, auth_headers):
        store.upsert_answers.return_value = 2

        response = api_client.put(
            f"/api/session/{session.id}/answers",
            json={
                "answers": [
                    {"question_id": "fin_runway", "answer_text": "3-6"},
                    {"question_id": "ops_key_person", "answer_text": "No", "client_p": 8, "client_i": 9},
                ]
            },
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert response.json() == {"upserted": 2}
        session_id, answers = store.upsert_answers.call_args.args
        assert session_id == session.id
        assert answers[1] == {"question_id": "ops_key_person", "answer_text": "No", "client_p": 8, "client_i": 9}

    def test_empty_batch_is_422(self, api_client, session, auth_headers):
        response = api_client.put(f"/api/session/{session.id}/answers", json={"answers": []}, headers=auth_headers)

        assert response.status_code == 422

    def test_client_score_out_of_range_is_422(self, api_client, session, auth_headers):
        response = api_client.put(
            f"/api/session/{session.id}/answers",
            json={"answers": [{"question_id": "q1", "client_p": 11}]},
            headers=auth_headers,
        )

        assert response.status_code == 422

    def test_unknown_question_is_422(self, api_client, store, session, auth_headers):
        store.upsert_answers.side_effect = IntegrityError("INSERT", {}, Exception("fk violation"))

        response = api_client.put(
            f"/api/session/{session.id}/answers",
            json={"answers": [{"question_id": "nope", "answer_text": "x"}]},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert response.json()["detail"] == "Unknown question_id in batch"
