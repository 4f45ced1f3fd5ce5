"""Unit tests for Firestore service."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from config.errors import EstimatorError, ErrorCode, AuthorizationError, NotFoundError


class TestFirestoreService:
    """Tests for FirestoreService."""

    @pytest.mark.asyncio
    async def test_get_estimate_exists(self, mock_firestore_service, make_snapshot):
        """Test getting an existing estimate."""
        mock_firestore_service.db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=make_snapshot("est-123", {"status": "draft", "user_id": "user-1"})
        )

        result = await mock_firestore_service.get_estimate("est-123", user_id="user-1")

        assert result == {"id": "est-123", "status": "draft", "user_id": "user-1"}
        mock_firestore_service.db.collection.assert_called_with("estimates")

    @pytest.mark.asyncio
    async def test_get_estimate_not_exists(self, mock_firestore_service, make_snapshot):
        """Test getting a non-existent estimate."""
        mock_firestore_service.db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=make_snapshot("est-missing", {}, exists=False)
        )

        result = await mock_firestore_service.get_estimate("est-missing")

        assert result is None

    @pytest.mark.asyncio
    async def test_get_estimate_other_owner(self, mock_firestore_service, make_snapshot):
        """Another user's estimate is not returned."""
        mock_firestore_service.db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=make_snapshot("est-123", {"user_id": "user-2"})
        )

        with pytest.raises(AuthorizationError) as exc_info:
            await mock_firestore_service.get_estimate("est-123", user_id="user-1")

        assert exc_info.value.code == ErrorCode.NOT_AUTHORIZED

    @pytest.mark.asyncio
    async def test_create_estimate(self, mock_firestore_service):
        """Test creating a new estimate."""
        doc_ref = mock_firestore_service.db.collection.return_value.document.return_value

        result = await mock_firestore_service.create_estimate(
            "user-1",
            {"project_name": "Harbor Office Roof", "status": "draft"}
        )

        assert result == {
            "id": "est-123",
            "project_name": "Harbor Office Roof",
            "status": "draft",
            "user_id": "user-1",
        }
        stored = doc_ref.set.call_args.args[0]
        assert stored["user_id"] == "user-1"
        assert "created_at" in stored
        assert "updated_at" in stored

    @pytest.mark.asyncio
    async def test_create_estimate_failure(self, mock_firestore_service):
        mock_firestore_service.db.collection.return_value.document.return_value.set = AsyncMock(
            side_effect=Exception("Deadline exceeded")
        )

        with pytest.raises(EstimatorError) as exc_info:
            await mock_firestore_service.create_estimate("user-1", {})

        assert exc_info.value.code == ErrorCode.FIRESTORE_WRITE_FAILED

    @pytest.mark.asyncio
    async def test_list_estimates(self, mock_firestore_service, make_snapshot):
        """Estimates are queried by owner, newest first."""
        query = mock_firestore_service.db.collection.return_value.where.return_value.order_by.return_value
        query.limit.return_value.stream.return_value = [
            make_snapshot("est-2", {"user_id": "user-1", "total_estimate": 200}),
            make_snapshot("est-1", {"user_id": "user-1", "total_estimate": 100}),
        ]

        result = await mock_firestore_service.list_estimates("user-1", limit=10)

        assert [r["id"] for r in result] == ["est-2", "est-1"]
        query.limit.assert_called_once_with(10)
        order_args = mock_firestore_service.db.collection.return_value.where.return_value.order_by.call_args
        assert order_args.args[0] == "created_at"

    @pytest.mark.asyncio
    async def test_list_estimates_without_limit(self, mock_firestore_service):
        query = mock_firestore_service.db.collection.return_value.where.return_value.order_by.return_value
        query.stream.return_value = []

        assert await mock_firestore_service.list_estimates("user-1") == []
        query.limit.assert_not_called()

    @pytest.mark.asyncio
    async def test_update_estimate(self, mock_firestore_service):
        """Test updating an estimate returns the merged record."""
        doc_ref = mock_firestore_service.db.collection.return_value.document.return_value

        result = await mock_firestore_service.update_estimate(
            "est-123",
            {"status": "sent"},
            user_id="user-1"
        )

        assert result["status"] == "sent"
        assert result["user_id"] == "user-1"
        update_data = doc_ref.update.call_args.args[0]
        assert update_data["status"] == "sent"
        assert "updated_at" in update_data

    @pytest.mark.asyncio
    async def test_update_missing_estimate(self, mock_firestore_service, make_snapshot):
        mock_firestore_service.db.collection.return_value.document.return_value.get = AsyncMock(
            return_value=make_snapshot("est-404", {}, exists=False)
        )

        with pytest.raises(NotFoundError) as exc_info:
            await mock_firestore_service.update_estimate("est-404", {"status": "sent"})

        assert exc_info.value.code == ErrorCode.ESTIMATE_NOT_FOUND

    @pytest.mark.asyncio
    async def test_update_other_owner_not_written(self, mock_firestore_service):
        doc_ref = mock_firestore_service.db.collection.return_value.document.return_value

        with pytest.raises(AuthorizationError):
            await mock_firestore_service.update_estimate("est-123", {"status": "sent"}, user_id="user-2")

        doc_ref.update.assert_not_called()

    @pytest.mark.asyncio
    async def test_delete_estimate(self, mock_firestore_service):
        doc_ref = mock_firestore_service.db.collection.return_value.document.return_value

        await mock_firestore_service.delete_estimate("est-123", user_id="user-1")

        doc_ref.delete.assert_called_once()

    @pytest.mark.asyncio
    async def test_firestore_error_handling(self, mock_firestore_service):
        """Test error handling for Firestore operations."""
        mock_firestore_service.db.collection.return_value.document.return_value.get = AsyncMock(
            side_effect=Exception("Connection failed")
        )

        with pytest.raises(EstimatorError) as exc_info:
            await mock_firestore_service.get_estimate("est-123")

        assert exc_info.value.code == ErrorCode.FIRESTORE_ERROR

    def test_sync_client_results(self, make_snapshot):
        """Plain (non-awaitable) SDK results are accepted."""
        import asyncio
        from services.firestore_service import FirestoreService

        client = MagicMock()
        client.collection.return_value.document.return_value.get.return_value = make_snapshot(
            "est-9", {"user_id": "user-1"}
        )

        result = asyncio.run(FirestoreService(db=client).get_estimate("est-9"))

        assert result["id"] == "est-9"
