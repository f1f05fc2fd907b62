"""Workflow Engine - The brain of the system"""
from .engine import WorkflowEngine
from .audit_writer import AuditWriter
from .keyed_lock import KeyedLock
from .change_differ import diff

__all__ = [
    "WorkflowEngine",
    "AuditWriter",
    "KeyedLock",
    "diff",
]
