"""Tests for chat routes."""

from unittest.mock import AsyncMock, patch

API = "/api/v1/jobs"
ROUTES = "app.routes.marketplace.chat"


def _row(message_id="m1", sender_id="usr_TEST_WORKER", receiver_id="usr_TEST_POSTER", **overrides):
    row = {
        "id": message_id,
        "job_id": "job-1",
        "sender_id": sender_id,
        "receiver_id": receiver_id,
        "text": "On my way",
        "created_at": "2023-11-14T22:13:20Z",
        "is_deleted": False,
        "read": False,
    }
    row.update(overrides)
    return row


class TestChatAccess:
    """The gate decision endpoint never errors for a known job."""

    def test_unavailable_before_hire(self, client, marketplace, open_job, auth_headers):
        marketplace(open_job)
        response = client.get(f"{API}/job-1/chat", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["availability"] == "unavailable"
        assert data["allowed"] is False

    def test_hired_worker_allowed(self, client, marketplace, hired_job, worker_headers):
        marketplace(hired_job)
        data = client.get(f"{API}/job-1/chat", headers=worker_headers).json()
        assert data["allowed"] is True
        assert data["counterpart_id"] == "usr_TEST_POSTER"

    def test_losing_bidder_not_participant(self, client, marketplace, hired_job, other_worker_headers):
        marketplace(hired_job)
        data = client.get(f"{API}/job-1/chat", headers=other_worker_headers).json()
        assert data["availability"] == "not_participant"


class TestListMessages:
    def test_rows_returned_oldest_first(self, client, marketplace, hired_job, auth_headers):
        marketplace(hired_job)
        rows = [
            _row("m2", created_at="2023-11-14T22:15:00Z"),
            _row("m1", created_at="2023-11-14T22:13:20Z"),
        ]
        with patch(f"{ROUTES}.fetch_messages", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = rows
            response = client.get(f"{API}/job-1/messages?page=1", headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert [m["id"] for m in data["messages"]] == ["m1", "m2"]
        assert data["page"] == 1
        assert data["has_more"] is False
        assert mock_fetch.await_args.args[1:] == ("job-1", 1)

    def test_deleted_message_text_hidden(self, client, marketplace, hired_job, auth_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.fetch_messages", new_callable=AsyncMock) as mock_fetch:
            mock_fetch.return_value = [_row(is_deleted=True, text="secret")]
            data = client.get(f"{API}/job-1/messages", headers=auth_headers).json()
        assert data["messages"][0]["text"] == "This message was deleted"

    def test_outsider_forbidden(self, client, marketplace, hired_job, other_worker_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.fetch_messages", new_callable=AsyncMock) as mock_fetch:
            response = client.get(f"{API}/job-1/messages", headers=other_worker_headers)
        assert response.status_code == 403
        mock_fetch.assert_not_awaited()

    def test_before_hire_conflicts(self, client, marketplace, open_job, auth_headers):
        marketplace(open_job)
        response = client.get(f"{API}/job-1/messages", headers=auth_headers)
        assert response.status_code == 409


class TestSendMessage:
    def test_receiver_derived_from_job(self, client, marketplace, hired_job, worker_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.insert_message", new_callable=AsyncMock) as mock_insert:
            mock_insert.return_value = None
            response = client.post(
                f"{API}/job-1/messages",
                json={"text": "On my way", "id": "client-1"},
                headers=worker_headers,
            )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == "client-1"
        assert data["receiver_id"] == "usr_TEST_POSTER"
        sent = mock_insert.await_args.args[1]
        assert sent.sender_id == "usr_TEST_WORKER"

    def test_stored_row_returned(self, client, marketplace, hired_job, worker_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.insert_message", new_callable=AsyncMock) as mock_insert:
            mock_insert.return_value = _row("client-1")
            data = client.post(
                f"{API}/job-1/messages", json={"text": "On my way", "id": "client-1"}, headers=worker_headers
            ).json()
        assert data["timestamp"] == 1_700_000_000_000

    def test_wrong_receiver_forbidden(self, client, marketplace, hired_job, auth_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.insert_message", new_callable=AsyncMock) as mock_insert:
            response = client.post(
                f"{API}/job-1/messages",
                json={"text": "hi", "receiver_id": "usr_TEST_WORKER_2"},
                headers=auth_headers,
            )
        assert response.status_code == 403
        mock_insert.assert_not_awaited()

    def test_empty_text_rejected(self, client, marketplace, hired_job, auth_headers):
        marketplace(hired_job)
        response = client.post(f"{API}/job-1/messages", json={"text": ""}, headers=auth_headers)
        assert response.status_code == 422


class TestEditDeleteMessage:
    def test_edit_own_message(self, client, marketplace, hired_job, worker_headers):
        marketplace(hired_job)
        with (
            patch(f"{ROUTES}.get_message", new_callable=AsyncMock) as mock_get,
            patch(f"{ROUTES}.update_message", new_callable=AsyncMock) as mock_update,
        ):
            mock_get.return_value = _row()
            mock_update.return_value = _row(text="Running late")
            response = client.patch(
                f"{API}/job-1/messages/m1", json={"text": "Running late"}, headers=worker_headers
            )
        assert response.status_code == 200
        assert response.json()["text"] == "Running late"
        mock_update.assert_awaited_once()
        assert mock_update.await_args.kwargs == {"text": "Running late"}

    def test_cannot_edit_others_message(self, client, marketplace, hired_job, auth_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.get_message", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _row()
            response = client.patch(f"{API}/job-1/messages/m1", json={"text": "x"}, headers=auth_headers)
        assert response.status_code == 403

    def test_cannot_edit_deleted_message(self, client, marketplace, hired_job, worker_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.get_message", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _row(is_deleted=True)
            response = client.patch(f"{API}/job-1/messages/m1", json={"text": "x"}, headers=worker_headers)
        assert response.status_code == 409

    def test_message_from_other_job_not_found(self, client, marketplace, hired_job, worker_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.get_message", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = _row(job_id="job-2")
            response = client.delete(f"{API}/job-1/messages/m1", headers=worker_headers)
        assert response.status_code == 404

    def test_soft_delete(self, client, marketplace, hired_job, worker_headers):
        marketplace(hired_job)
        with (
            patch(f"{ROUTES}.get_message", new_callable=AsyncMock) as mock_get,
            patch(f"{ROUTES}.update_message", new_callable=AsyncMock) as mock_update,
        ):
            mock_get.return_value = _row()
            mock_update.return_value = _row(is_deleted=True)
            response = client.delete(f"{API}/job-1/messages/m1", headers=worker_headers)
        assert response.status_code == 200
        assert response.json()["is_deleted"] is True
        assert mock_update.await_args.kwargs == {"is_deleted": True}


class TestMarkRead:
    def test_marks_incoming_messages(self, client, marketplace, hired_job, auth_headers):
        marketplace(hired_job)
        with patch(f"{ROUTES}.mark_messages_read", new_callable=AsyncMock) as mock_mark:
            mock_mark.return_value = 3
            response = client.post(f"{API}/job-1/messages/read", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() == {"job_id": "job-1", "marked_read": 3}
        assert mock_mark.await_args.args[1:] == ("job-1", "usr_TEST_POSTER")
