"""Form Template Repository - State-specific prior authorization form templates"""
from typing import List, Optional
from pymongo import ASCENDING, DESCENDING
from pymongo.collection import Collection
from pymongo.database import Database

from .mongo_client import STATE_FORM_TEMPLATES, resolve_database, storage_guard
from ..domain.models import StateFormTemplate
from ..utils.logger import get_logger

logger = get_logger(__name__)


class FormTemplateRepository:
    """Repository for state form templates"""

    def __init__(self, database: Optional[Database] = None):
        self._templates: Collection = resolve_database(database)[STATE_FORM_TEMPLATES]

    def create_template(self, template: StateFormTemplate) -> StateFormTemplate:
        """Register a template (state codes are stored upper-case)"""
        template = template.model_copy(update={"state": template.state.upper()})
        doc = template.model_dump()
        doc["_id"] = template.template_id

        with storage_guard("create_template"):
            self._templates.insert_one(doc)
        logger.info(f"Created form template {template.form_name} for {template.state}")
        return template

    def get_template(self, state: str, form_type: str = "prior_auth") -> Optional[StateFormTemplate]:
        """Active template for a state and form type, or None"""
        with storage_guard("get_template"):
            doc = self._templates.find_one(
                {"state": state.upper(), "form_type": form_type, "is_active": True},
                sort=[("version", DESCENDING)]
            )
        if doc:
            doc.pop("_id", None)
            return StateFormTemplate.model_validate(doc)
        return None

    def list_templates(self) -> List[StateFormTemplate]:
        """All templates, ordered by state"""
        with storage_guard("list_templates"):
            cursor = self._templates.find({}).sort([("state", ASCENDING), ("form_type", ASCENDING)])
            templates = []
            for doc in cursor:
                doc.pop("_id", None)
                templates.append(StateFormTemplate.model_validate(doc))
        return templates
