"""
Staff identity normalization.

Preferred-staff references reach the demand matrix in more than one shape:
a bare id string (sometimes upper-cased or padded), a number, or a structured
record carrying ``staffId``/``fullName`` (camel or snake case). They are
parsed once into a ``StaffRef`` at ingestion and compared only through
``normalize``, which yields a trimmed, lower-cased identity or ``None`` for
"unassigned".
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)


# Literal strings that upstream serializers emit for a missing value
_NULL_TOKENS = {"null", "undefined", "none"}

_ID_KEYS = ("staffId", "staff_id", "id")
_NAME_KEYS = ("fullName", "full_name", "name")


# =============================================================================
# STAFF REFERENCE VARIANTS
# =============================================================================

@dataclass(frozen=True)
class PlainStaffRef:
    """A bare staff id."""
    staff_id: str


@dataclass(frozen=True)
class StructuredStaffRef:
    """A staff record embedded in a task: id plus display name."""
    staff_id: Optional[str] = None
    full_name: Optional[str] = None


StaffRef = Union[PlainStaffRef, StructuredStaffRef]


def _clean(value: Any) -> Optional[str]:
    """Trim and lower-case a scalar id; None for anything unusable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if value != value:  # NaN
            return None
        value = str(value)
    if not isinstance(value, str):
        return None
    cleaned = value.strip().lower()
    if not cleaned or cleaned in _NULL_TOKENS:
        return None
    return cleaned


def _first_present(raw: Mapping[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = raw.get(key)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, str) and value.strip():
            return value
    return None


def parse_staff_ref(raw: Any) -> Optional[StaffRef]:
    """
    Convert a raw preferred-staff value into a ``StaffRef``.

    Strings and numbers become ``PlainStaffRef``; mappings become
    ``StructuredStaffRef``. Empty or unrecognised input returns None
    (logged at WARNING when the shape itself is unrecognised).
    """
    if raw is None:
        return None
    if isinstance(raw, (PlainStaffRef, StructuredStaffRef)):
        return raw
    if isinstance(raw, bool):
        logger.warning("Unrecognised preferred staff reference %r; treating as unassigned", raw)
        return None
    if isinstance(raw, (int, float)):
        return PlainStaffRef(str(raw)) if _clean(raw) else None
    if isinstance(raw, str):
        return PlainStaffRef(raw) if _clean(raw) else None
    if isinstance(raw, Mapping):
        staff_id = _first_present(raw, _ID_KEYS)
        full_name = _first_present(raw, _NAME_KEYS)
        if staff_id is None and full_name is None:
            return None
        return StructuredStaffRef(staff_id=staff_id, full_name=full_name)

    logger.warning("Unrecognised preferred staff reference of type %s; treating as unassigned",
                   type(raw).__name__)
    return None


# =============================================================================
# NORMALIZATION
# =============================================================================

def normalize(ref: Any) -> Optional[str]:
    """
    Canonical identity for a staff reference.

    Accepts a ``StaffRef``, a raw id, a raw mapping or None. Never raises;
    ``normalize(normalize(x)) == normalize(x)``.
    """
    if isinstance(ref, PlainStaffRef):
        return _clean(ref.staff_id)
    if isinstance(ref, StructuredStaffRef):
        return _clean(ref.staff_id) or _clean(ref.full_name)
    if isinstance(ref, Mapping):
        return normalize(parse_staff_ref(ref))
    return _clean(ref)


def compare(a: Any, b: Any) -> bool:
    """True when both references normalize to the same identity (None == None)."""
    return normalize(a) == normalize(b)


def is_in(ref: Any, ids: Iterable[Any]) -> bool:
    """True when ``ref`` resolves to an identity present in ``ids``."""
    key = normalize(ref)
    if key is None:
        return False
    return any(normalize(candidate) == key for candidate in ids)


def normalize_all(ids: Iterable[Any]) -> frozenset:
    """Normalized identities of ``ids``, unusable entries dropped."""
    keys = (normalize(item) for item in ids)
    return frozenset(key for key in keys if key is not None)


# =============================================================================
# VALIDATION HELPERS
# =============================================================================

@dataclass
class StaffIdValidation:
    """Outcome of checking a list of staff ids."""
    valid_ids: List[str] = field(default_factory=list)
    invalid_ids: List[Any] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.invalid_ids and not self.duplicates


def validate_staff_ids(ids: Iterable[Any]) -> StaffIdValidation:
    """
    Split ``ids`` into usable and unusable entries.

    Entries that normalize to the same identity are reported once under
    ``duplicates`` and kept once under ``valid_ids``.
    """
    result = StaffIdValidation()
    counts: Counter = Counter()

    for item in ids:
        key = normalize(item)
        if key is None:
            result.invalid_ids.append(item)
            continue
        counts[key] += 1
        if counts[key] == 1:
            result.valid_ids.append(key)

    result.duplicates = [key for key, count in counts.items() if count > 1]
    return result


@dataclass
class StaffIdMatches:
    """Identities shared by, and exclusive to, two id lists."""
    matches: List[str] = field(default_factory=list)
    left_only: List[str] = field(default_factory=list)
    right_only: List[str] = field(default_factory=list)

    @property
    def total_matches(self) -> int:
        return len(self.matches)


def find_matches(left: Iterable[Any], right: Iterable[Any]) -> StaffIdMatches:
    """Compare two id lists by normalized identity, preserving first-seen order."""
    left_keys = list(dict.fromkeys(k for k in (normalize(i) for i in left) if k is not None))
    right_keys = list(dict.fromkeys(k for k in (normalize(i) for i in right) if k is not None))
    right_set = set(right_keys)
    left_set = set(left_keys)

    return StaffIdMatches(
        matches=[key for key in left_keys if key in right_set],
        left_only=[key for key in left_keys if key not in right_set],
        right_only=[key for key in right_keys if key not in left_set],
    )
