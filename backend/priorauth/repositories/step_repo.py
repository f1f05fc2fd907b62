"""Step Repository - Data access for authorization workflow steps"""
from typing import Any, Dict, List, Optional
from pymongo import ASCENDING, ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .mongo_client import AUTHORIZATION_STEPS, is_duplicate_key_error, resolve_database, storage_guard
from ..domain.models import AuthorizationStep
from ..domain.enums import StepStatus
from ..domain.errors import AlreadyInitializedError, ConcurrencyError, StepNotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _to_document(step: AuthorizationStep) -> Dict[str, Any]:
    # Plain dump keeps datetimes native so MongoDB can sort on them
    doc = step.model_dump()
    doc["status"] = step.status.value
    doc["_id"] = step.step_id
    return doc


def _from_document(doc: Dict[str, Any]) -> AuthorizationStep:
    doc.pop("_id", None)
    return AuthorizationStep.model_validate(doc)


class StepRepository:
    """Repository for workflow step operations"""

    def __init__(self, database: Optional[Database] = None):
        self._steps: Collection = resolve_database(database)[AUTHORIZATION_STEPS]

    def create_steps(self, authorization_id: str, steps: List[AuthorizationStep]) -> List[AuthorizationStep]:
        """
        Insert the full step set for an authorization

        Raises:
            AlreadyInitializedError: if any step already exists (unique index
                on authorization_id + step_number)
        """
        docs = [_to_document(step) for step in steps]
        try:
            with storage_guard("create_steps"):
                self._steps.insert_many(docs, ordered=True)
        except PyMongoError as e:
            if not is_duplicate_key_error(e):
                raise
            # Step IDs are deterministic and inserted in order, so a clash
            # always happens on step 1 and nothing from this batch is stored
            raise AlreadyInitializedError(
                f"Workflow already initialized for authorization {authorization_id}",
                details={"authorization_id": authorization_id}
            ) from e
        logger.info(
            f"Created {len(steps)} workflow steps",
            extra={"authorization_id": authorization_id}
        )
        return steps

    def get_step(self, authorization_id: str, step_number: int) -> Optional[AuthorizationStep]:
        """Get a step by authorization and step number"""
        with storage_guard("get_step"):
            doc = self._steps.find_one({"authorization_id": authorization_id, "step_number": step_number})
        if doc:
            return _from_document(doc)
        return None

    def get_step_or_raise(self, authorization_id: str, step_number: int) -> AuthorizationStep:
        """Get a step or raise StepNotFoundError"""
        step = self.get_step(authorization_id, step_number)
        if not step:
            raise StepNotFoundError(
                f"Workflow step {step_number} not found for authorization {authorization_id}",
                details={"authorization_id": authorization_id, "step_number": step_number}
            )
        return step

    def list_steps(self, authorization_id: str) -> List[AuthorizationStep]:
        """All steps of an authorization in ascending step order"""
        with storage_guard("list_steps"):
            cursor = self._steps.find({"authorization_id": authorization_id}).sort("step_number", ASCENDING)
            return [_from_document(doc) for doc in cursor]

    def count_steps(self, authorization_id: str) -> int:
        """Number of materialized steps for an authorization"""
        with storage_guard("count_steps"):
            return self._steps.count_documents({"authorization_id": authorization_id})

    def update_step(
        self,
        step: AuthorizationStep,
        updates: Dict[str, Any],
        expected_status: Optional[StepStatus] = None
    ) -> AuthorizationStep:
        """
        Update a step with optimistic concurrency on its version

        Raises:
            ConcurrencyError: the stored step moved on since it was read
        """
        updates = dict(updates)
        if isinstance(updates.get("status"), StepStatus):
            updates["status"] = updates["status"].value
        updates["version"] = step.version + 1

        filter_query: Dict[str, Any] = {"step_id": step.step_id, "version": step.version}
        if expected_status is not None:
            filter_query["status"] = expected_status.value

        with storage_guard("update_step"):
            result = self._steps.find_one_and_update(
                filter_query,
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )

        if result is None:
            raise ConcurrencyError(
                f"Step {step.step_number} of authorization {step.authorization_id} was modified concurrently",
                details={
                    "authorization_id": step.authorization_id,
                    "step_number": step.step_number,
                    "expected_version": step.version,
                }
            )

        logger.info(
            f"Updated workflow step {step.step_number}",
            extra={"authorization_id": step.authorization_id, "step_number": step.step_number}
        )
        return _from_document(result)
