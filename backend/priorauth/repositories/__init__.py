"""Repository modules - Data access layer"""
from .mongo_client import get_database, create_indexes, close_connection, health_check
from .step_repo import StepRepository
from .authorization_repo import AuthorizationRepository
from .form_template_repo import FormTemplateRepository
from .audit_repo import AuditRepository

__all__ = [
    "get_database",
    "create_indexes",
    "close_connection",
    "health_check",
    "StepRepository",
    "AuthorizationRepository",
    "FormTemplateRepository",
    "AuditRepository",
]
