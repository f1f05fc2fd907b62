"""
Change Differ - Field-by-field diff between two record states

Pure functions only: no I/O, no logging, never raises. The audit writer
runs every before/after pair through ``diff`` so the stored
``field_changes`` is always derived, never supplied.
"""
import json
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_jsonable_python

from ..domain.enums import ChangeType, FieldChangeType
from ..domain.models import ChangeSet, FieldChange

Record = Union[Mapping[str, Any], BaseModel]

_MISSING = object()
_UNSERIALIZABLE = object()


def to_record(value: Optional[Record]) -> Optional[Dict[str, Any]]:
    """Normalize a mapping or pydantic model into a plain dict"""
    if value is None:
        return None
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    return dict(value)


def _plain(value: Any) -> Any:
    """JSON-compatible form (datetimes, decimals, models...) or _UNSERIALIZABLE"""
    try:
        return to_jsonable_python(value)
    except (PydanticSerializationError, TypeError, ValueError, RecursionError):
        return _UNSERIALIZABLE


def _canonical(value: Any) -> Optional[str]:
    """Canonical JSON for comparison; None when the value can't be serialized"""
    plain = _plain(value)
    if plain is _UNSERIALIZABLE:
        return None
    try:
        # Non-finite floats must still compare equal to themselves
        return json.dumps(plain, sort_keys=True, separators=(",", ":"))
    except (TypeError, ValueError, RecursionError):
        return None


def values_equal(old_value: Any, new_value: Any) -> bool:
    """Deep structural equality via canonical serialization"""
    old_text = _canonical(old_value)
    new_text = _canonical(new_value)
    if old_text is None or new_text is None:
        return False
    return old_text == new_text


def _jsonable(value: Any) -> Any:
    """Stored form of a value; ones that cannot be serialized are kept by repr"""
    plain = _plain(value)
    return repr(value) if plain is _UNSERIALIZABLE else plain


def _sorted_keys(keys) -> List[str]:
    return sorted(str(key) for key in keys)


def diff(before: Optional[Record], after: Optional[Record]) -> Optional[ChangeSet]:
    """
    Compute the change-set between two record states

    Args:
        before: State before the mutation (None for creation)
        after: State after the mutation (None for deletion)

    Returns:
        CREATE / DELETE / UPDATE change-set, or None when nothing changed
    """
    try:
        before_record = to_record(before)
        after_record = to_record(after)
    except (TypeError, ValueError):
        return None

    if before_record is None and after_record is None:
        return None
    if before_record is None:
        return ChangeSet(type=ChangeType.CREATE, new_fields=_sorted_keys(after_record))
    if after_record is None:
        return ChangeSet(type=ChangeType.DELETE, removed_fields=_sorted_keys(before_record))

    modified: Dict[str, FieldChange] = {}
    before_record = {str(key): value for key, value in before_record.items()}
    after_record = {str(key): value for key, value in after_record.items()}
    for key in _sorted_keys(set(before_record) | set(after_record)):
        old_value = before_record.get(key, _MISSING)
        new_value = after_record.get(key, _MISSING)

        if old_value is _MISSING:
            modified[key] = FieldChange(new_value=_jsonable(new_value), change_type=FieldChangeType.ADDED)
        elif new_value is _MISSING:
            modified[key] = FieldChange(old_value=_jsonable(old_value), change_type=FieldChangeType.REMOVED)
        elif not values_equal(old_value, new_value):
            modified[key] = FieldChange(
                old_value=_jsonable(old_value),
                new_value=_jsonable(new_value),
                change_type=FieldChangeType.MODIFIED
            )

    if not modified:
        return None
    return ChangeSet(type=ChangeType.UPDATE, modified_fields=modified)


def diff_document(before: Optional[Record], after: Optional[Record]) -> Optional[Dict[str, Any]]:
    """``diff`` serialized to the canonical document stored on audit records"""
    change_set = diff(before, after)
    return change_set.to_document() if change_set is not None else None
