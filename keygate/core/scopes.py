"""Scope strings: ``resource:action``, compared by exact equality."""

import re
from typing import Any, List

from keygate.core.errors import ValidationInputError

SCOPE_PATTERN = re.compile(r"^\S+:\S+$")

SCOPES_FORMAT_MESSAGE = 'Scopes must be an array of strings in format "resource:action" (e.g., "orders:read")'
SCOPE_FORMAT_MESSAGE = 'Scope must be in format "resource:action"'


def is_well_formed(scope: Any) -> bool:
    return isinstance(scope, str) and SCOPE_PATTERN.fullmatch(scope) is not None


def validate_scopes(scopes: Any) -> List[str]:
    """Check a scope list and return it de-duplicated in first-seen order.

    Raises ValidationInputError when *scopes* is not a list or any element is malformed.
    """
    if not isinstance(scopes, list) or not all(is_well_formed(s) for s in scopes):
        raise ValidationInputError(SCOPES_FORMAT_MESSAGE, code="KG-API-002")
    return list(dict.fromkeys(scopes))
