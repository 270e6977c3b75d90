#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Evidence Fusion Engine - merges partial, confidence-scored records.

Every fused record is recomputed from the full multiset of evidence seen for
its entity in a single confidence-ordered pass:

- scalars come from the highest-confidence evidence that sets them,
- list fields are unioned across all evidence with case-insensitive
  duplicate suppression,
- nested mappings are merged key by key with the scalar rule.

Ties in confidence are broken by provider name and then by the canonical
serialization of the evidence fields, so the result never depends on arrival
order.
"""

import copy
from types import MappingProxyType
from dataclasses import dataclass, field
from typing import Dict, List, Any, Iterable, Mapping, Optional, Tuple

from ..models.entities import EntityKind, contact_identity_key
from ..models.evidence import Evidence, is_empty_value, canonical_json
from ..utils.logger import get_logger
from .scoring_policy import AttributeUnion, PolicySet, ScoreResult, flatten_for_scoring

logger = get_logger(__name__)

LIST_TYPES = (list, tuple, set, frozenset)


def normalized_item(value: Any) -> str:
    """Duplicate-suppression key for a list item."""
    if isinstance(value, str):
        return " ".join(value.split()).casefold()
    if isinstance(value, Mapping) and isinstance(value.get("name"), str):
        return "name:" + " ".join(value["name"].split()).casefold()
    return canonical_json(value)


@dataclass(frozen=True, eq=False)
class FusedRecord:
    """
    Current best-known state of one entity within a run.

    ``field_confidence`` and ``field_sources`` are keyed by dotted field path
    ("industry", "funding.stage") and record which evidence won each scalar.
    """

    entity_kind: EntityKind
    entity_key: str
    fields: Mapping[str, Any] = field(default_factory=dict)
    field_confidence: Mapping[str, float] = field(default_factory=dict)
    field_sources: Mapping[str, str] = field(default_factory=dict)
    evidence: Tuple[Evidence, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(copy.deepcopy(dict(self.fields))))
        object.__setattr__(self, "field_confidence", MappingProxyType(dict(self.field_confidence)))
        object.__setattr__(self, "field_sources", MappingProxyType(dict(self.field_sources)))
        object.__setattr__(self, "evidence", tuple(self.evidence))

    @property
    def providers(self) -> List[str]:
        """Providers that contributed informative evidence, highest confidence first."""
        seen: List[str] = []
        for ev in sorted(self.evidence, key=Evidence.sort_key):
            if ev.is_informative and ev.provider not in seen:
                seen.append(ev.provider)
        return seen

    @property
    def confidence(self) -> float:
        informative = [ev.confidence for ev in self.evidence if ev.is_informative]
        return max(informative) if informative else 0.0

    @property
    def total_cost(self) -> float:
        return sum(ev.cost for ev in self.evidence)

    def as_dict(self) -> Dict[str, Any]:
        """Mutable deep copy of the merged fields."""
        return copy.deepcopy(dict(self.fields))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_kind": self.entity_kind.value,
            "entity_key": self.entity_key,
            "fields": self.as_dict(),
            "confidence": self.confidence,
            "providers": self.providers,
            "field_sources": dict(self.field_sources),
            "evidence_count": len(self.evidence),
        }


class _FieldMerger:
    """Accumulates one confidence-ordered pass over a set of evidence."""

    def __init__(self):
        self.fields: Dict[str, Any] = {}
        self.confidence: Dict[str, float] = {}
        self.sources: Dict[str, str] = {}
        self._seen_items: Dict[str, set] = {}

    def merge(self, target: Dict[str, Any], name: str, value: Any, ev: Evidence, path: str) -> None:
        if is_empty_value(value):
            return

        if isinstance(value, LIST_TYPES):
            existing = target.get(name)
            if existing is not None and not isinstance(existing, list):
                return
            items = target.setdefault(name, [])
            seen = self._seen_items.setdefault(path, set())
            for item in value:
                if is_empty_value(item):
                    continue
                marker = normalized_item(item)
                if marker in seen:
                    continue
                seen.add(marker)
                items.append(copy.deepcopy(item))
            self.confidence.setdefault(path, ev.confidence)
            self.sources.setdefault(path, ev.provider)
            return

        if isinstance(value, Mapping):
            existing = target.get(name)
            if existing is not None and not isinstance(existing, dict):
                return
            nested = target.setdefault(name, {})
            for key, sub_value in value.items():
                self.merge(nested, key, sub_value, ev, f"{path}.{key}")
            if not nested:
                del target[name]
            return

        # Scalar: first writer in confidence order wins
        if name in target:
            return
        target[name] = copy.deepcopy(value)
        self.confidence[path] = ev.confidence
        self.sources[path] = ev.provider


class EvidenceFusionEngine:
    """
    Folds evidence into fused records and deduplicates contact collections.

    The engine is stateless apart from its scoring policies; a run owns the
    records it produces.
    """

    def __init__(self, policies: Optional[PolicySet] = None):
        self.policies = policies or PolicySet()

    def fuse(self, evidence: Iterable[Evidence]) -> FusedRecord:
        """
        Build a fused record from a non-empty collection of evidence about one entity.

        Raises:
            ValueError: If the evidence is empty or describes more than one entity
        """
        items = list(evidence)
        if not items:
            raise ValueError("Cannot fuse an empty evidence set")

        identities = {(ev.entity_kind, ev.entity_key) for ev in items}
        if len(identities) != 1:
            raise ValueError(f"Evidence describes more than one entity: {sorted(str(i) for i in identities)}")
        kind, key = identities.pop()

        merger = _FieldMerger()
        for ev in sorted(items, key=Evidence.sort_key):
            if not ev.is_informative:
                continue
            for name, value in ev.fields.items():
                merger.merge(merger.fields, name, value, ev, name)

        return FusedRecord(
            entity_kind=kind,
            entity_key=key,
            fields=merger.fields,
            field_confidence=merger.confidence,
            field_sources=merger.sources,
            evidence=tuple(items),
        )

    def fold(self, record: Optional[FusedRecord], evidence: Evidence) -> FusedRecord:
        """
        Fold one more piece of evidence into a record.

        Returns a new record; ``record`` itself is left untouched.
        """
        if record is None:
            return self.fuse([evidence])
        if (record.entity_kind, record.entity_key) != (evidence.entity_kind, evidence.entity_key):
            raise ValueError(
                f"Cannot fold evidence for {evidence.entity_kind.value}:{evidence.entity_key} "
                f"into {record.entity_kind.value}:{record.entity_key}"
            )
        return self.fuse(record.evidence + (evidence,))

    # ------------------------------------------------------------------
    # Scoring
    # ------------------------------------------------------------------

    def score_company(self, company: Mapping[str, Any]) -> ScoreResult:
        return self.policies.company.score(company)

    def score_contact(self, contact: Any) -> ScoreResult:
        return self.policies.contact.score(contact)

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    def deduplicate_contacts(self, contacts: Iterable[Mapping[str, Any]]) -> List['DedupedContact']:
        """
        Deduplicate contacts by email, falling back to full name.

        The first occurrence of each identity survives and is gap-filled from
        its duplicates. Authority scores are computed afterwards, over every
        attribute value any duplicate contributed.

        Args:
            contacts: Contact dictionaries, in provider priority order

        Returns:
            Deduplicated contacts sorted by authority score, highest first
        """
        groups: Dict[str, List[Dict[str, Any]]] = {}
        order: List[str] = []

        for contact in contacts:
            record = dict(contact)
            if not record.get("full_name") and (record.get("first_name") or record.get("last_name")):
                record["full_name"] = " ".join(
                    p for p in (record.get("first_name"), record.get("last_name")) if p
                )
            key = contact_identity_key(record.get("email"), record.get("full_name"))
            if key is None:
                logger.debug("Dropping contact without email or name")
                continue
            if key not in groups:
                groups[key] = []
                order.append(key)
            groups[key].append(record)

        deduped = []
        for key in order:
            members = groups[key]
            survivor = copy.deepcopy(members[0])
            for duplicate in members[1:]:
                for name, value in duplicate.items():
                    if is_empty_value(survivor.get(name)) and not is_empty_value(value):
                        survivor[name] = copy.deepcopy(value)
                    elif isinstance(value, bool) and value and survivor.get(name) is False:
                        survivor[name] = True

            sources = []
            for member in members:
                for source in _as_list(member.get("sources")) + _as_list(member.get("source")):
                    if source not in sources:
                        sources.append(source)
            survivor["sources"] = sources
            survivor.pop("source", None)

            union = AttributeUnion.from_records(flatten_for_scoring(m) for m in members)
            score = self.score_contact(union)
            survivor["authority_score"] = score.total
            deduped.append(DedupedContact(key=key, record=survivor, members=members, score=score))

        received = sum(len(m) for m in groups.values())
        if received > len(deduped):
            logger.debug(f"Deduplicated {received} contacts into {len(deduped)}")

        # Stable: equal scores keep first-occurrence order
        deduped.sort(key=lambda d: -d.score.total)
        return deduped


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, LIST_TYPES):
        return [str(v) for v in value if v]
    return [str(value)] if value else []


@dataclass
class DedupedContact:
    """A surviving contact plus the duplicates it absorbed."""
    key: str
    record: Dict[str, Any]
    members: List[Dict[str, Any]]
    score: ScoreResult

    @property
    def duplicate_count(self) -> int:
        return len(self.members) - 1

    def to_dict(self) -> Dict[str, Any]:
        data = copy.deepcopy(self.record)
        data["authority_score"] = self.score.total
        data["score_factors"] = [name for name, _ in self.score.matched]
        return data
