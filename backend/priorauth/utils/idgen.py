"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'AUD', 'STEP')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('AUD')
        'AUD-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_step_id(authorization_id: str, step_number: int) -> str:
    """Deterministic step ID; doubles as the uniqueness key per authorization"""
    return f"STEP-{authorization_id}-{step_number:02d}"


def generate_audit_event_id() -> str:
    """Generate audit event ID"""
    return generate_id("AUD")


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
