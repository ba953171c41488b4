"""
Data models and validation for the OKR hierarchy.

This module defines the **schema layer** for OKR Pulse.  It provides typed
dataclasses describing every entity the roll-up engine reads, plus builders
that turn persistence-shaped records (plain dicts, as fetched from the
backing tables) into those dataclasses.

Dataclass hierarchy
-------------------
::

    OrgObjective
        Departments
            FunctionalObjectives   (formula per FO)
                KeyResults         (formula per KR)
                    Indicators     (current / target values, the leaves)

    ScoreRecord
        A single CSM score for an (indicator, customer, feature, period)
        combination, used by compliance tracking.

The engine never mutates these objects.  Filtering produces new copies via
``dataclasses.replace`` and every aggregate is recomputed from the snapshot
it is given.

Normalisation conventions
-------------------------
- Numeric fields go through ``to_float``: ``None``, NaN and unparseable
  strings all become ``None`` (no data), never 0.
- Link lists accept either ``customer_ids`` / ``feature_ids`` or the
  camel-case ``linkedCustomerIds`` / ``linkedFeatureIds`` spellings.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Any

from ..core.utils import to_float, clean_text


# ============================================================================
# RAG STATUS
# ============================================================================

class RAGStatus(Enum):
    """
    Traffic-light health status.

    NOT_SET is a first-class value meaning "insufficient data to classify";
    it is distinct from a 0% progress, which is RED.
    """
    GREEN = "green"
    AMBER = "amber"
    RED = "red"
    NOT_SET = "not-set"

    @classmethod
    def from_value(cls, value) -> 'RAGStatus':
        """Parse a stored status string (``'Green'``, ``'not_set'``, None ...)."""
        if isinstance(value, RAGStatus):
            return value
        if value is None:
            return cls.NOT_SET
        normalized = str(value).strip().lower().replace('_', '-').replace(' ', '-')
        if normalized in ('notset', 'none', ''):
            return cls.NOT_SET
        for status in cls:
            if status.value == normalized:
                return status
        raise ValueError(f"Unknown RAG status: {value!r}")


# ============================================================================
# HIERARCHY ENTITIES
# ============================================================================

@dataclass
class Indicator:
    """A measured KPI: the leaf of the hierarchy.

    An indicator is *set* only when both values are present and the target is
    positive.  Unset indicators are excluded from every aggregate.
    """
    id: str
    name: str = ""
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    unit: str = ""
    formula: Optional[str] = None            # Indicator-level progress formula
    weight: Optional[float] = None           # Weight under a WEIGHTED KR formula
    code: Optional[str] = None               # Reference name, e.g. "KPI1"
    period: Optional[str] = None             # "YYYY-MM" of the current value
    customer_ids: List[str] = field(default_factory=list)
    feature_ids: List[str] = field(default_factory=list)
    position: Optional[int] = None           # 1-based slot under the unfiltered KR

    @property
    def is_set(self) -> bool:
        return (self.current_value is not None
                and self.target_value is not None
                and self.target_value > 0)

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'Indicator':
        return cls(
            id=_require_id(record, 'indicator'),
            name=clean_text(record.get('name')),
            current_value=to_float(record.get('current_value')),
            target_value=to_float(record.get('target_value')),
            unit=clean_text(record.get('unit')),
            formula=_optional_text(record.get('formula')),
            weight=to_float(record.get('weight')),
            code=_optional_text(record.get('code')),
            period=_optional_text(record.get('period')),
            customer_ids=_id_list(record, 'customer_ids', 'linkedCustomerIds'),
            feature_ids=_id_list(record, 'feature_ids', 'linkedFeatureIds'),
        )


@dataclass
class KeyResult:
    """A Key Result aggregating its indicators with its own formula.

    ``current_value`` / ``target_value`` are the KR's own figures, only used
    when none of its indicators carries data.
    """
    id: str
    name: str = ""
    formula: Optional[str] = None
    indicators: List[Indicator] = field(default_factory=list)
    code: Optional[str] = None
    weight: Optional[float] = None
    current_value: Optional[float] = None
    target_value: Optional[float] = None
    position: Optional[int] = None           # 1-based slot under the unfiltered FO

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'KeyResult':
        return cls(
            id=_require_id(record, 'key result'),
            name=clean_text(record.get('name')),
            formula=_optional_text(record.get('formula')),
            indicators=[Indicator.from_dict(r) for r in record.get('indicators') or []],
            code=_optional_text(record.get('code')),
            weight=to_float(record.get('weight')),
            current_value=to_float(record.get('current_value')),
            target_value=to_float(record.get('target_value')),
        )


@dataclass
class FunctionalObjective:
    """A Functional Objective aggregating its Key Results with its own formula."""
    id: str
    name: str = ""
    formula: Optional[str] = None
    key_results: List[KeyResult] = field(default_factory=list)
    code: Optional[str] = None

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'FunctionalObjective':
        return cls(
            id=_require_id(record, 'functional objective'),
            name=clean_text(record.get('name')),
            formula=_optional_text(record.get('formula')),
            key_results=[KeyResult.from_dict(r) for r in record.get('key_results') or []],
            code=_optional_text(record.get('code')),
        )


@dataclass
class Department:
    """A department; always rolls its Functional Objectives up by plain average."""
    id: str
    name: str = ""
    color: Optional[str] = None
    functional_objectives: List[FunctionalObjective] = field(default_factory=list)

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'Department':
        return cls(
            id=_require_id(record, 'department'),
            name=clean_text(record.get('name')),
            color=_optional_text(record.get('color')),
            functional_objectives=[
                FunctionalObjective.from_dict(r)
                for r in record.get('functional_objectives') or []
            ],
        )


@dataclass
class OrgObjective:
    """Top of the hierarchy; rolls its departments up by plain average."""
    id: str
    name: str = ""
    color: Optional[str] = None
    classification: Optional[str] = None    # 'CORE' or 'Enabler'
    business_outcome: Optional[str] = None
    departments: List[Department] = field(default_factory=list)

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'OrgObjective':
        return cls(
            id=_require_id(record, 'org objective'),
            name=clean_text(record.get('name')),
            color=_optional_text(record.get('color')),
            classification=_optional_text(record.get('classification')),
            business_outcome=_optional_text(record.get('business_outcome')),
            departments=[Department.from_dict(r) for r in record.get('departments') or []],
        )

    def iter_indicators(self):
        """Yield ``(department, functional_objective, key_result, indicator)`` tuples."""
        for dept in self.departments:
            for fo in dept.functional_objectives:
                for kr in fo.key_results:
                    for ind in kr.indicators:
                        yield dept, fo, kr, ind


# ============================================================================
# COMPLIANCE RECORDS
# ============================================================================

@dataclass
class ScoreRecord:
    """A CSM score for one indicator/customer/feature in one period.

    ``value`` is the band weight: 1 = Green, 0.5 = Amber, 0 = Red.
    """
    indicator_id: str
    customer_id: str
    feature_id: Optional[str] = None
    value: Optional[float] = None
    period: str = ""

    @classmethod
    def from_dict(cls, record: Dict[str, Any]) -> 'ScoreRecord':
        return cls(
            indicator_id=str(record['indicator_id']),
            customer_id=str(record['customer_id']),
            feature_id=_optional_text(record.get('feature_id')),
            value=to_float(record.get('value')),
            period=clean_text(record.get('period')),
        )


# ============================================================================
# BUILDERS
# ============================================================================

def load_hierarchy(records: List[Dict[str, Any]]) -> List[OrgObjective]:
    """
    Build the org objective trees from persistence records.

    Records that are already ``OrgObjective`` instances are passed through.

    Raises:
        ValueError: If any entity record has no ``id``.
    """
    objectives = []
    for record in records or []:
        if isinstance(record, OrgObjective):
            objectives.append(record)
        else:
            objectives.append(OrgObjective.from_dict(record))
    return objectives


def _require_id(record: Dict[str, Any], entity: str) -> str:
    value = record.get('id') if isinstance(record, dict) else None
    if value is None or str(value).strip() == "":
        raise ValueError(f"Missing id for {entity} record: {record!r}")
    return str(value)


def _optional_text(value) -> Optional[str]:
    text = clean_text(value)
    return text or None


def _id_list(record: Dict[str, Any], *keys) -> List[str]:
    for key in keys:
        values = record.get(key)
        if values:
            return [str(v) for v in values]
    return []
