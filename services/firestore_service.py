"""Firestore service for the estimator.

Estimate Store: persists and retrieves estimate records scoped to the
owning user.
"""

from typing import Dict, Any, Optional, List
import inspect
import structlog

from firebase_admin import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from config.errors import EstimatorError, ErrorCode, AuthorizationError, NotFoundError

logger = structlog.get_logger(__name__)


class FirestoreService:
    """Service for Firestore operations on estimate records.

    Note: Firebase Admin SDK for Python is synchronous. Methods are
    marked async for interface compatibility but operations are sync.
    """

    COLLECTION_ESTIMATES = "estimates"

    def __init__(self, db=None):
        """Initialize FirestoreService.

        Args:
            db: Optional Firestore client. If not provided, uses default.
        """
        self._db = db

    @property
    def db(self):
        """Get Firestore client (lazy initialization)."""
        if self._db is None:
            self._db = firestore.client()
        return self._db

    async def _maybe_await(self, result: Any) -> Any:
        """Await result if it is awaitable (supports AsyncMock in unit tests)."""
        if inspect.isawaitable(result):
            return await result
        return result

    def _estimates(self):
        return self.db.collection(self.COLLECTION_ESTIMATES)

    @staticmethod
    def _check_owner(estimate: Dict[str, Any], user_id: Optional[str]) -> None:
        if user_id is not None and estimate.get("user_id") != user_id:
            raise AuthorizationError(
                "Not authorized to access this estimate",
                details={"estimate_id": estimate.get("id")}
            )

    async def create_estimate(
        self,
        user_id: str,
        record: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Create a new estimate document with a generated ID.

        Args:
            user_id: Owner of the estimate.
            record: Flat estimate fields.

        Returns:
            The stored record including its ``id``.

        Raises:
            EstimatorError: If Firestore operation fails.
        """
        try:
            doc_ref = self._estimates().document()
            data = {
                **record,
                "user_id": user_id,
                "created_at": firestore.SERVER_TIMESTAMP,
                "updated_at": firestore.SERVER_TIMESTAMP,
            }
            await self._maybe_await(doc_ref.set(data))

        except Exception as e:
            logger.error("estimate_create_failed", user_id=user_id, error=str(e))
            raise EstimatorError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to save estimate: {str(e)}",
                details={"user_id": user_id}
            )

        logger.info("estimate_created", estimate_id=doc_ref.id, user_id=user_id)
        return {"id": doc_ref.id, **record, "user_id": user_id}

    async def get_estimate(
        self,
        estimate_id: str,
        user_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """Fetch estimate document by ID.

        Args:
            estimate_id: The estimate document ID.
            user_id: When given, the estimate must belong to this user.

        Returns:
            Estimate document data or None if not found.

        Raises:
            AuthorizationError: If the estimate belongs to another user.
            EstimatorError: If Firestore operation fails.
        """
        try:
            doc = await self._maybe_await(self._estimates().document(estimate_id).get())
        except Exception as e:
            logger.error("firestore_get_failed", estimate_id=estimate_id, error=str(e))
            raise EstimatorError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to get estimate: {str(e)}",
                details={"estimate_id": estimate_id}
            )

        if not doc.exists:
            return None

        estimate = {"id": doc.id, **(doc.to_dict() or {})}
        self._check_owner(estimate, user_id)
        return estimate

    async def list_estimates(
        self,
        user_id: str,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """List a user's estimates, newest first.

        Args:
            user_id: Owner whose estimates are listed.
            limit: Optional maximum number of estimates.

        Raises:
            EstimatorError: If Firestore operation fails.
        """
        try:
            query = (
                self._estimates()
                .where(filter=FieldFilter("user_id", "==", user_id))
                .order_by("created_at", direction=firestore.Query.DESCENDING)
            )
            if limit is not None:
                query = query.limit(int(limit))

            return [{"id": doc.id, **(doc.to_dict() or {})} for doc in query.stream()]

        except Exception as e:
            logger.error("estimate_list_failed", user_id=user_id, error=str(e))
            raise EstimatorError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to list estimates: {str(e)}",
                details={"user_id": user_id}
            )

    async def update_estimate(
        self,
        estimate_id: str,
        updates: Dict[str, Any],
        user_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Update estimate fields.

        Args:
            estimate_id: The estimate document ID.
            updates: Fields to update.
            user_id: When given, the estimate must belong to this user.

        Returns:
            The estimate with the updates applied.

        Raises:
            NotFoundError: If the estimate does not exist.
            AuthorizationError: If the estimate belongs to another user.
            EstimatorError: If Firestore operation fails.
        """
        existing = await self.get_estimate(estimate_id, user_id)
        if existing is None:
            raise NotFoundError(estimate_id)

        try:
            doc_ref = self._estimates().document(estimate_id)
            await self._maybe_await(doc_ref.update({
                **updates,
                "updated_at": firestore.SERVER_TIMESTAMP
            }))

        except Exception as e:
            logger.error("firestore_update_failed", estimate_id=estimate_id, error=str(e))
            raise EstimatorError(
                code=ErrorCode.FIRESTORE_WRITE_FAILED,
                message=f"Failed to update estimate: {str(e)}",
                details={"estimate_id": estimate_id}
            )

        logger.info("estimate_updated", estimate_id=estimate_id, fields=list(updates.keys()))
        return {**existing, **updates}

    async def delete_estimate(
        self,
        estimate_id: str,
        user_id: Optional[str] = None
    ) -> None:
        """Delete an estimate.

        Raises:
            NotFoundError: If the estimate does not exist.
            AuthorizationError: If the estimate belongs to another user.
            EstimatorError: If Firestore operation fails.
        """
        existing = await self.get_estimate(estimate_id, user_id)
        if existing is None:
            raise NotFoundError(estimate_id)

        try:
            await self._maybe_await(self._estimates().document(estimate_id).delete())
        except Exception as e:
            logger.error("estimate_delete_failed", estimate_id=estimate_id, error=str(e))
            raise EstimatorError(
                code=ErrorCode.FIRESTORE_ERROR,
                message=f"Failed to delete estimate: {str(e)}",
                details={"estimate_id": estimate_id}
            )

        logger.info("estimate_deleted", estimate_id=estimate_id)
