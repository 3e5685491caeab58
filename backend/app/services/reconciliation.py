"""
StitchCraft Backend — Measurement Reconciliation
=================================================

What:  Pure functions that compare a tailor's measurement record with a
       client's profile record and resolve them into one merged map.
Why:   Tailors keep their own measurements per client while customers keep
       a global profile; the two drift apart and must be reconciled.
How:   Three steps, no I/O:
       1. decode_record()   – raw map or envelope → tagged record, metadata stripped
       2. compare_records() – sorted comparable keys + differing keys
       3. resolve()         – use_client | use_tailor | merge → flat map
       SyncWorkflow wraps the steps in the comparing → resolving → committed
       state machine used by MeasurementService.sync_from_profile().

Tolerance:
    Malformed input never raises here. A payload that is not a mapping
    decodes to an empty record, and per-key values that are not a number or
    a string (nested maps, lists, booleans, null) are left out of the record.
"""

import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from app.exceptions import SyncUnavailableError, ValidationError

logger = logging.getLogger(__name__)

Scalar = Union[int, float, str]

# Keys that describe a record rather than measure a body
METADATA_KEYS = frozenset({
    "unit",
    "updatedAt",
    "createdAt",
    "id",
    "clientId",
    "templateId",
    "notes",
    "sketch",
    "isSynced",
    "clientSideId",
    "values",
})


class MeasurementUnit(str, Enum):
    CM = "CM"
    INCH = "INCH"


_UNIT_ALIASES = {
    "CM": MeasurementUnit.CM,
    "CMS": MeasurementUnit.CM,
    "INCH": MeasurementUnit.INCH,
    "INCHES": MeasurementUnit.INCH,
    "IN": MeasurementUnit.INCH,
}


def parse_unit(value: Any) -> Optional[MeasurementUnit]:
    """Map a stored unit string onto MeasurementUnit; unknown values give None."""
    if isinstance(value, MeasurementUnit):
        return value
    if not isinstance(value, str):
        return None
    return _UNIT_ALIASES.get(value.strip().upper())


class SyncStrategy(str, Enum):
    USE_CLIENT = "use_client"
    USE_TAILOR = "use_tailor"
    MERGE = "merge"


class MergeSource(str, Enum):
    CLIENT = "client"
    TAILOR = "tailor"


# ══════════════════════════════════════════════════════════════════════════
# Decoding: raw maps and envelopes become one tagged type at the boundary
# ══════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class RawRecord:
    """A bare {field: value} map with no metadata."""
    values: Dict[str, Scalar]


@dataclass(frozen=True)
class EnvelopedRecord:
    """A {values, unit, updatedAt} envelope around a measurement map."""
    values: Dict[str, Scalar]
    unit: Optional[MeasurementUnit] = None
    updated_at: Optional[str] = None


MeasurementInput = Union[RawRecord, EnvelopedRecord]


def is_scalar(value: Any) -> bool:
    # bool is an int subclass but never a measurement
    if isinstance(value, bool):
        return False
    if isinstance(value, float):
        # JSON parsing yields inf for 1e999 and accepts NaN
        return math.isfinite(value)
    return isinstance(value, (int, str))


def _measurement_fields(mapping: Mapping[Any, Any]) -> Dict[str, Scalar]:
    return {
        key: value
        for key, value in mapping.items()
        if isinstance(key, str) and key not in METADATA_KEYS and is_scalar(value)
    }


def decode_record(payload: Any) -> MeasurementInput:
    """
    Decode a stored or posted measurement payload exactly once.

    Accepts None, a flat map, an envelope whose `values` is a map, or an
    already decoded record. Anything else decodes to an empty RawRecord.
    """
    if isinstance(payload, (RawRecord, EnvelopedRecord)):
        return payload
    if not isinstance(payload, Mapping):
        if payload is not None:
            logger.debug("Ignoring measurement payload of type %s", type(payload).__name__)
        return RawRecord(values={})

    inner = payload.get("values")
    if isinstance(inner, Mapping):
        updated_at = payload.get("updatedAt")
        return EnvelopedRecord(
            values=_measurement_fields(inner),
            unit=parse_unit(payload.get("unit")),
            updated_at=str(updated_at) if updated_at is not None else None,
        )
    return RawRecord(values=_measurement_fields(payload))


def record_unit(record: MeasurementInput, default: MeasurementUnit) -> MeasurementUnit:
    if isinstance(record, EnvelopedRecord) and record.unit is not None:
        return record.unit
    return default


# ══════════════════════════════════════════════════════════════════════════
# Difference detection
# ══════════════════════════════════════════════════════════════════════════

_MISSING = object()


def _comparable(value: Any) -> bool:
    return value is _MISSING or is_scalar(value)


def comparable_keys(tailor_values: Mapping[str, Any], client_values: Mapping[str, Any]) -> List[str]:
    """
    Sorted union of keys whose value on each side is a scalar or absent.

    Sorting makes the result independent of either map's insertion order.
    """
    candidates = set(tailor_values) | set(client_values)
    return sorted(
        key for key in candidates
        if _comparable(tailor_values.get(key, _MISSING))
        and _comparable(client_values.get(key, _MISSING))
    )


def differing_keys(
    tailor_values: Mapping[str, Any],
    client_values: Mapping[str, Any],
    keys: Optional[Iterable[str]] = None,
) -> List[str]:
    """Comparable keys whose values differ, counting one-sided presence as a difference."""
    if keys is None:
        keys = comparable_keys(tailor_values, client_values)
    return [
        key for key in keys
        if tailor_values.get(key, _MISSING) != client_values.get(key, _MISSING)
    ]


def default_merge_choices(
    keys: Iterable[str], client_values: Mapping[str, Any]
) -> Dict[str, MergeSource]:
    """Client wins wherever the client record defines the key, otherwise the tailor."""
    return {
        key: MergeSource.CLIENT if key in client_values else MergeSource.TAILOR
        for key in keys
    }


@dataclass(frozen=True)
class MeasurementComparison:
    """Both decoded sides plus the comparison derived from them."""
    tailor_values: Dict[str, Scalar]
    client_values: Dict[str, Scalar]
    keys: Tuple[str, ...]
    differing_keys: Tuple[str, ...]
    tailor_unit: MeasurementUnit
    client_unit: MeasurementUnit
    client_updated_at: Optional[str] = None

    @property
    def sync_available(self) -> bool:
        """False when the client side has nothing to sync from."""
        return len(self.client_values) > 0

    @property
    def has_differences(self) -> bool:
        return len(self.differing_keys) > 0

    def default_merge_choices(self) -> Dict[str, MergeSource]:
        return default_merge_choices(self.keys, self.client_values)


def compare_records(
    tailor_payload: Any,
    client_payload: Any,
    default_unit: MeasurementUnit = MeasurementUnit.CM,
) -> MeasurementComparison:
    """
    Compare the tailor's record with the client's profile record.

    Args:
        tailor_payload: the tailor's local measurements (raw map, envelope or None)
        client_payload: the client's global profile measurements (same shapes)
        default_unit: unit assumed for a side that does not declare one
    """
    tailor = decode_record(tailor_payload)
    client = decode_record(client_payload)
    keys = comparable_keys(tailor.values, client.values)
    return MeasurementComparison(
        tailor_values=dict(tailor.values),
        client_values=dict(client.values),
        keys=tuple(keys),
        differing_keys=tuple(differing_keys(tailor.values, client.values, keys)),
        tailor_unit=record_unit(tailor, default_unit),
        client_unit=record_unit(client, MeasurementUnit.CM),
        client_updated_at=client.updated_at if isinstance(client, EnvelopedRecord) else None,
    )


# ══════════════════════════════════════════════════════════════════════════
# Strategy resolution & numeric normalization
# ══════════════════════════════════════════════════════════════════════════


def _strategy(value: Union[str, SyncStrategy]) -> SyncStrategy:
    try:
        return SyncStrategy(value)
    except ValueError:
        raise ValidationError(
            message=f"Unknown sync strategy '{value}'",
            field="strategy",
            context={"allowed": [s.value for s in SyncStrategy]},
        )


def _source(key: str, value: Union[str, MergeSource]) -> MergeSource:
    try:
        return MergeSource(value)
    except ValueError:
        raise ValidationError(
            message=f"Merge choice for '{key}' must be 'client' or 'tailor'",
            field="merge_choices",
            context={"key": key, "choice": str(value)},
        )


def resolve(
    strategy: Union[str, SyncStrategy],
    tailor_values: Mapping[str, Scalar],
    client_values: Mapping[str, Scalar],
    keys: Iterable[str],
    merge_choices: Optional[Mapping[str, Union[str, MergeSource]]] = None,
) -> Dict[str, Scalar]:
    """
    Produce the merged map for a strategy.

    use_client replaces everything with the client's values, use_tailor keeps
    the tailor's, and merge takes each key from its chosen side. In merge mode
    a key with no choice, or whose chosen side lacks it, is left out.
    """
    chosen = _strategy(strategy)
    if chosen is SyncStrategy.USE_CLIENT:
        return dict(client_values)
    if chosen is SyncStrategy.USE_TAILOR:
        return dict(tailor_values)

    choices = merge_choices or {}
    merged: Dict[str, Scalar] = {}
    for key in keys:
        if key not in choices:
            continue
        source = client_values if _source(key, choices[key]) is MergeSource.CLIENT else tailor_values
        if key in source:
            merged[key] = source[key]
    return merged


def normalize_value(value: Scalar) -> Scalar:
    """
    Store numeric strings as numbers.

    "36" -> 36, "36.5" -> 36.5, "" -> "", "L" -> "L", "1e999" -> "1e999".
    """
    if not isinstance(value, str):
        return value
    text = value.strip()
    if not text or "_" in text:
        return value
    try:
        # Integral strings stay exact; float() would round past 2**53
        return int(text)
    except ValueError:
        pass
    try:
        number = float(text)
    except ValueError:
        return value
    if not math.isfinite(number):
        return value
    return int(number) if number.is_integer() else number


def normalize_values(values: Mapping[str, Scalar]) -> Dict[str, Scalar]:
    return {key: normalize_value(value) for key, value in values.items()}


def sync_notes(strategy: SyncStrategy) -> str:
    return f'Synced from profile using "{strategy.value}" strategy'


# ══════════════════════════════════════════════════════════════════════════
# Workflow: comparing → resolving → committed
# ══════════════════════════════════════════════════════════════════════════


class SyncState(str, Enum):
    COMPARING = "comparing"
    RESOLVING = "resolving"
    COMMITTED = "committed"


@dataclass(frozen=True)
class SyncResult:
    """What gets persisted: normalized values, unit and provenance notes."""
    strategy: SyncStrategy
    values: Dict[str, Scalar]
    unit: MeasurementUnit
    notes: str


@dataclass
class SyncWorkflow:
    """
    One reconciliation attempt for one client.

    The workflow starts in COMPARING with both records loaded. choose()
    moves it to RESOLVING (and may be called again to change strategy),
    pick() adjusts one field in merge mode, result() builds the SyncResult
    and mark_committed() seals it. Dropping the object before commit has
    no side effects.
    """

    comparison: MeasurementComparison
    state: SyncState = SyncState.COMPARING
    strategy: Optional[SyncStrategy] = None
    merge_choices: Dict[str, MergeSource] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.comparison.sync_available:
            raise SyncUnavailableError()

    def _require(self, *states: SyncState) -> None:
        if self.state not in states:
            raise ValidationError(
                message=f"Sync is already {self.state.value}",
                field="state",
                context={"state": self.state.value},
            )

    def choose(self, strategy: Union[str, SyncStrategy]) -> None:
        self._require(SyncState.COMPARING, SyncState.RESOLVING)
        self.strategy = _strategy(strategy)
        self.merge_choices = (
            self.comparison.default_merge_choices()
            if self.strategy is SyncStrategy.MERGE
            else {}
        )
        self.state = SyncState.RESOLVING

    def _require_merge(self) -> None:
        self._require(SyncState.RESOLVING)
        if self.strategy is not SyncStrategy.MERGE:
            raise ValidationError(
                message="Per-field choices are only allowed with the merge strategy",
                field="merge_choices",
            )

    def pick(self, key: str, source: Union[str, MergeSource]) -> None:
        self._require_merge()
        if key not in self.comparison.keys:
            raise ValidationError(
                message=f"'{key}' is not a comparable measurement",
                field="merge_choices",
                context={"key": key},
            )
        self.merge_choices[key] = _source(key, source)

    def replace_choices(self, choices: Mapping[str, Union[str, MergeSource]]) -> None:
        """Use exactly these choices; comparable keys without one are left out."""
        self._require_merge()
        unknown = sorted(set(choices) - set(self.comparison.keys))
        if unknown:
            logger.debug("Ignoring merge choices for non-comparable keys: %s", unknown)
        self.merge_choices = {
            key: _source(key, value)
            for key, value in choices.items()
            if key in self.comparison.keys
        }

    def result(self) -> SyncResult:
        self._require(SyncState.RESOLVING)
        if self.strategy is SyncStrategy.USE_TAILOR:
            raise ValidationError(
                message="Keeping your own measurements changes nothing; there is nothing to sync",
                field="strategy",
                context={"strategy": self.strategy.value},
            )
        comparison = self.comparison
        merged = resolve(
            self.strategy,
            comparison.tailor_values,
            comparison.client_values,
            comparison.keys,
            self.merge_choices,
        )
        if not merged:
            raise ValidationError(
                message="The chosen measurements resolve to nothing; there is nothing to sync",
                field="merge_choices",
                context={"strategy": self.strategy.value},
            )
        unit = (
            comparison.client_unit
            if self.strategy is SyncStrategy.USE_CLIENT
            else comparison.tailor_unit
        )
        return SyncResult(
            strategy=self.strategy,
            values=normalize_values(merged),
            unit=unit,
            notes=sync_notes(self.strategy),
        )

    def mark_committed(self) -> None:
        self._require(SyncState.RESOLVING)
        self.state = SyncState.COMMITTED
