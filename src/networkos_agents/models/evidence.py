#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Evidence Models - One source's partial, confidence-scored view of an entity.
"""

import copy
import json
import math
import uuid
from types import MappingProxyType
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Any, Mapping, Optional, Tuple

from .entities import EntityKind


def is_empty_value(value: Any) -> bool:
    """True for values that carry no information (None, blank strings, empty containers)."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _json_default(value: Any) -> Any:
    # Sets serialize sorted so the output does not depend on hash order
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=canonical_json)
    return str(value)


def canonical_json(value: Any) -> str:
    """Stable serialization used for deterministic ordering and duplicate checks."""
    return json.dumps(value, sort_keys=True, default=_json_default, separators=(",", ":"))


@dataclass(frozen=True, eq=False)
class Evidence:
    """
    One provider's or sub-agent's opinion about an entity.

    Evidence is immutable once produced. ``fields`` is a read-only deep copy of
    what the provider reported.
    """

    entity_kind: EntityKind
    entity_key: str
    provider: str
    confidence: float
    fields: Mapping[str, Any] = field(default_factory=dict)
    data_points: Tuple[str, ...] = ()
    cost: float = 0.0
    duration_ms: float = 0.0
    collected_at: datetime = field(default_factory=datetime.now)
    evidence_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self):
        if not 0.0 <= float(self.confidence) <= 1.0:
            raise ValueError(f"Evidence confidence must be within [0, 1], got {self.confidence}")
        if not math.isfinite(self.cost) or self.cost < 0:
            raise ValueError(f"Evidence cost must be finite and non-negative, got {self.cost}")
        if not self.entity_key:
            raise ValueError("Evidence requires an entity key")

        frozen_fields = MappingProxyType(copy.deepcopy(dict(self.fields)))
        object.__setattr__(self, "entity_kind", EntityKind(self.entity_kind))
        object.__setattr__(self, "confidence", float(self.confidence))
        object.__setattr__(self, "fields", frozen_fields)
        if not self.data_points:
            populated = tuple(k for k, v in frozen_fields.items() if not is_empty_value(v))
            object.__setattr__(self, "data_points", populated)
        else:
            object.__setattr__(self, "data_points", tuple(self.data_points))

    @property
    def is_informative(self) -> bool:
        """Zero-confidence or empty evidence is accepted but contributes nothing."""
        return self.confidence > 0 and any(not is_empty_value(v) for v in self.fields.values())

    def sort_key(self) -> Tuple[float, str, str]:
        """Descending confidence, then a deterministic tie-break."""
        return (-self.confidence, self.provider, canonical_json(dict(self.fields)))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "evidence_id": self.evidence_id,
            "entity_kind": self.entity_kind.value,
            "entity_key": self.entity_key,
            "provider": self.provider,
            "confidence": self.confidence,
            "fields": copy.deepcopy(dict(self.fields)),
            "data_points": list(self.data_points),
            "cost": self.cost,
            "duration_ms": self.duration_ms,
            "collected_at": self.collected_at.isoformat(),
        }


@dataclass
class ProviderResult:
    """
    What a single enrichment provider returned for one lookup.

    This is the native shape collaborators hand back; capability handlers turn
    each one into an Evidence record.
    """

    provider: str
    data: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0
    data_points: List[str] = field(default_factory=list)
    cost: float = 0.0
    duration_ms: float = 0.0
    tokens_used: int = 0
    error: Optional[str] = None

    @classmethod
    def empty(cls, provider: str, error: Optional[str] = None,
              duration_ms: float = 0.0) -> 'ProviderResult':
        return cls(provider=provider, error=error, duration_ms=duration_ms)

    def to_evidence(self, kind: EntityKind, key: str) -> Evidence:
        return Evidence(
            entity_kind=kind,
            entity_key=key,
            provider=self.provider,
            confidence=self.confidence,
            fields=self.data,
            data_points=tuple(self.data_points),
            cost=self.cost,
            duration_ms=self.duration_ms,
        )
