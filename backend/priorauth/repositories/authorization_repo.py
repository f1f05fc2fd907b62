"""Authorization Repository - The workflow's view of the parent authorization"""
from typing import Any, Dict, Optional
from pymongo import ReturnDocument
from pymongo.collection import Collection
from pymongo.database import Database

from .mongo_client import AUTHORIZATIONS, resolve_database, storage_guard
from ..domain.models import Authorization
from ..domain.errors import AlreadyExistsError, AuthorizationNotFoundError, ConcurrencyError
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class AuthorizationRepository:
    """
    Repository for prior authorization records

    The workflow engine only touches ``current_step`` and the generated form
    package; the remaining authorization fields belong to the CRUD layer.
    """

    def __init__(self, database: Optional[Database] = None):
        self._authorizations: Collection = resolve_database(database)[AUTHORIZATIONS]

    def create_authorization(self, authorization: Authorization) -> Authorization:
        """Register an authorization record"""
        doc = authorization.model_dump()
        doc["_id"] = authorization.authorization_id

        with storage_guard("create_authorization"):
            if self._authorizations.find_one({"_id": authorization.authorization_id}, {"_id": 1}):
                raise AlreadyExistsError(
                    f"Authorization {authorization.authorization_id} already exists",
                    details={"authorization_id": authorization.authorization_id}
                )
            self._authorizations.insert_one(doc)

        logger.info(
            f"Created authorization: {authorization.authorization_id}",
            extra={"authorization_id": authorization.authorization_id}
        )
        return authorization

    def get_authorization(self, authorization_id: str) -> Optional[Authorization]:
        """Get authorization by ID"""
        with storage_guard("get_authorization"):
            doc = self._authorizations.find_one({"authorization_id": authorization_id})
        if doc:
            doc.pop("_id", None)
            return Authorization.model_validate(doc)
        return None

    def get_current_step_number(self, authorization_id: str) -> Optional[int]:
        """Current step pointer, or None when the authorization is unknown"""
        with storage_guard("get_current_step_number"):
            doc = self._authorizations.find_one(
                {"authorization_id": authorization_id},
                {"current_step": 1}
            )
        if doc is None:
            return None
        return int(doc.get("current_step", 1))

    def set_current_step_number(
        self,
        authorization_id: str,
        step_number: int,
        expected: Optional[int] = None
    ) -> Authorization:
        """
        Move the current step pointer

        With ``expected`` set this is a compare-and-set: the write only
        applies while the stored pointer still equals ``expected``.

        Raises:
            AuthorizationNotFoundError: unknown authorization
            ConcurrencyError: pointer no longer equals ``expected``
        """
        filter_query: Dict[str, Any] = {"authorization_id": authorization_id}
        if expected is not None:
            filter_query["current_step"] = expected

        result = self._update(
            "set_current_step_number",
            filter_query,
            {"current_step": step_number}
        )

        if result is None:
            current = self.get_current_step_number(authorization_id)
            if current is None:
                raise AuthorizationNotFoundError(
                    f"Authorization {authorization_id} not found",
                    details={"authorization_id": authorization_id}
                )
            raise ConcurrencyError(
                f"Authorization {authorization_id} moved to step {current} concurrently",
                details={
                    "authorization_id": authorization_id,
                    "expected_step": expected,
                    "current_step": current,
                }
            )

        logger.info(
            f"Authorization pointer moved to step {step_number}",
            extra={"authorization_id": authorization_id, "current_step": step_number}
        )
        return result

    def set_form_package(
        self,
        authorization_id: str,
        form_package_path: str,
        package_data: Dict[str, Any]
    ) -> Authorization:
        """Store the generated form package on the authorization"""
        result = self._update(
            "set_form_package",
            {"authorization_id": authorization_id},
            {"form_package_path": form_package_path, "generated_form_data": package_data}
        )
        if result is None:
            raise AuthorizationNotFoundError(
                f"Authorization {authorization_id} not found",
                details={"authorization_id": authorization_id}
            )
        return result

    def _update(self, operation: str, filter_query: Dict[str, Any], updates: Dict[str, Any]) -> Optional[Authorization]:
        updates = dict(updates)
        updates["updated_at"] = utc_now()
        with storage_guard(operation):
            result = self._authorizations.find_one_and_update(
                filter_query,
                {"$set": updates},
                return_document=ReturnDocument.AFTER
            )
        if result is None:
            return None
        result.pop("_id", None)
        return Authorization.model_validate(result)
