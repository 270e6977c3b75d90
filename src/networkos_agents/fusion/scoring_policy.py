#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Scoring Policy - ordered (predicate, points) rules for aggregate entity scores.

A policy sums the points of every matching rule and clamps the total to
[floor, cap]. Rules that share a ``group`` are exclusive: only the first
matching rule of the group counts, so tiered tables (seniority, company size)
can be listed highest tier first.

Predicates receive an AttributeUnion: every value each field took across the
records being scored. A single record is the one-element case; a deduplicated
contact is scored over the union of all its duplicates.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from ..models.evidence import is_empty_value, canonical_json
from ..utils.logger import get_logger

logger = get_logger(__name__)

Predicate = Callable[["AttributeUnion"], bool]


class PolicyConfigError(ValueError):
    """Raised when a policy definition cannot be built."""


class AttributeUnion(Mapping[str, Tuple[Any, ...]]):
    """Field name -> distinct non-empty values contributed by a set of records."""

    def __init__(self, values: Dict[str, Tuple[Any, ...]]):
        self._values = values

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> 'AttributeUnion':
        collected: Dict[str, List[Any]] = {}
        seen: Dict[str, set] = {}
        for record in records:
            for key, value in record.items():
                items = value if isinstance(value, (list, tuple, set, frozenset)) else [value]
                for item in items:
                    if is_empty_value(item):
                        continue
                    marker = canonical_json(item)
                    if marker in seen.setdefault(key, set()):
                        continue
                    seen[key].add(marker)
                    collected.setdefault(key, []).append(item)
        return cls({k: tuple(v) for k, v in collected.items()})

    def __getitem__(self, key: str) -> Tuple[Any, ...]:
        return self._values[key]

    def __iter__(self):
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def values_of(self, key: str) -> Tuple[Any, ...]:
        return self._values.get(key, ())

    def first(self, key: str, default: Any = None) -> Any:
        values = self._values.get(key)
        return values[0] if values else default

    def strings(self, key: str) -> List[str]:
        return [str(v).lower() for v in self.values_of(key)]


# ---------------------------------------------------------------------------
# Predicate factories
# ---------------------------------------------------------------------------

def always() -> Predicate:
    return lambda attrs: True


def present(field_name: str) -> Predicate:
    return lambda attrs: len(attrs.values_of(field_name)) > 0


def is_true(field_name: str) -> Predicate:
    return lambda attrs: any(v is True for v in attrs.values_of(field_name))


def equals(field_name: str, expected: Any) -> Predicate:
    target = str(expected).lower()
    return lambda attrs: target in attrs.strings(field_name)


def one_of(field_name: str, options: Sequence[Any]) -> Predicate:
    targets = {str(o).lower() for o in options}
    return lambda attrs: any(v in targets for v in attrs.strings(field_name))


def contains(field_name: str, keyword: str) -> Predicate:
    """Any value of the field contains the keyword (case-insensitive)."""
    needle = keyword.lower()
    return lambda attrs: any(needle in v for v in attrs.strings(field_name))


def matches(field_name: str, pattern: str) -> Predicate:
    regex = re.compile(pattern, re.IGNORECASE)
    return lambda attrs: any(regex.search(str(v)) for v in attrs.values_of(field_name))


def greater_than(field_name: str, threshold: float) -> Predicate:
    def predicate(attrs: AttributeUnion) -> bool:
        for value in attrs.values_of(field_name):
            try:
                if float(value) > threshold:
                    return True
            except (TypeError, ValueError):
                continue
        return False
    return predicate


def count_at_least(field_name: str, minimum: int, keywords: Optional[Sequence[str]] = None) -> Predicate:
    """At least ``minimum`` distinct values, optionally only those containing one of ``keywords``."""
    needles = [k.lower() for k in keywords or []]

    def predicate(attrs: AttributeUnion) -> bool:
        values = attrs.strings(field_name)
        if needles:
            values = [v for v in values if any(n in v for n in needles)]
        return len(set(values)) >= minimum
    return predicate


PREDICATE_FACTORIES: Dict[str, Callable[..., Predicate]] = {
    "always": lambda field_name=None, value=None: always(),
    "present": lambda field_name, value=None: present(field_name),
    "is_true": lambda field_name, value=None: is_true(field_name),
    "equals": lambda field_name, value: equals(field_name, value),
    "one_of": lambda field_name, value: one_of(field_name, value),
    "contains": lambda field_name, value: contains(field_name, value),
    "matches": lambda field_name, value: matches(field_name, value),
    "greater_than": lambda field_name, value: greater_than(field_name, float(value)),
    "count_at_least": lambda field_name, value: count_at_least(
        field_name,
        int(value["min"]) if isinstance(value, dict) else int(value),
        value.get("keywords") if isinstance(value, dict) else None,
    ),
}


@dataclass(frozen=True)
class ScoringRule:
    """One policy row: ``points`` are awarded when ``predicate`` matches."""
    name: str
    predicate: Predicate
    points: float
    group: Optional[str] = None


@dataclass
class ScoreResult:
    """Total score plus the rules that contributed to it."""
    total: int
    matched: List[Tuple[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "factors": [{"rule": name, "points": points} for name, points in self.matched],
        }


class ScoringPolicy:
    """An ordered list of scoring rules."""

    def __init__(self, rules: Sequence[ScoringRule], floor: float = 0, cap: float = 100,
                 name: str = "policy"):
        self.rules = list(rules)
        self.floor = floor
        self.cap = cap
        self.name = name

    def score(self, attributes: Any) -> ScoreResult:
        """
        Score an entity.

        Args:
            attributes: An AttributeUnion, a single record mapping, or a list of records

        Returns:
            ScoreResult with the clamped total and the matched rules in policy order
        """
        if isinstance(attributes, AttributeUnion):
            union = attributes
        elif isinstance(attributes, Mapping):
            union = AttributeUnion.from_records([flatten_for_scoring(attributes)])
        else:
            union = AttributeUnion.from_records(flatten_for_scoring(r) for r in attributes)

        total = 0.0
        matched: List[Tuple[str, float]] = []
        settled_groups = set()

        for rule in self.rules:
            if rule.group and rule.group in settled_groups:
                continue
            try:
                hit = rule.predicate(union)
            except Exception as e:
                logger.warning(f"Scoring rule '{rule.name}' in {self.name} failed: {e}")
                continue
            if not hit:
                continue
            total += rule.points
            matched.append((rule.name, rule.points))
            if rule.group:
                settled_groups.add(rule.group)

        clamped = int(round(min(self.cap, max(self.floor, total))))
        return ScoreResult(total=clamped, matched=matched)

    @classmethod
    def from_config(cls, definition: Mapping[str, Any], name: str = "policy") -> 'ScoringPolicy':
        """
        Build a policy from its JSON form.

        Args:
            definition: {"floor": 0, "cap": 100, "rules": [{"name", "op", "field", "value", "points", "group"}]}

        Raises:
            PolicyConfigError: If a rule names an unknown operator or is malformed
        """
        rules = []
        for index, raw in enumerate(definition.get("rules", [])):
            op = raw.get("op")
            factory = PREDICATE_FACTORIES.get(op)
            if factory is None:
                raise PolicyConfigError(f"{name}: rule {index} has unknown op '{op}'")
            try:
                predicate = factory(raw.get("field"), raw.get("value"))
                rule = ScoringRule(
                    name=raw.get("name") or f"{op}:{raw.get('field')}",
                    predicate=predicate,
                    points=float(raw["points"]),
                    group=raw.get("group"),
                )
            except (KeyError, TypeError, ValueError, re.error) as e:
                raise PolicyConfigError(f"{name}: rule {index} is invalid: {e}") from e
            rules.append(rule)
        return cls(
            rules,
            floor=float(definition.get("floor", 0)),
            cap=float(definition.get("cap", 100)),
            name=name,
        )


# ---------------------------------------------------------------------------
# Default policies
# ---------------------------------------------------------------------------

SENIORITY_POINTS = [
    ("C-Level", 40), ("VP", 35), ("Director", 30), ("Manager", 20),
    ("Senior", 15), ("Mid-Level", 10), ("Junior", 5), ("Intern", 0),
]

TARGET_INDUSTRY_POINTS = [
    ("Media & Entertainment", 25), ("Gaming", 25), ("E-Learning", 24),
    ("Publishing", 23), ("Customer Service", 21), ("Healthcare", 20),
    ("Finance", 19), ("Technology", 18), ("Retail", 16),
]

TARGET_SIZE_POINTS = [
    ("51-200", 15), ("201-500", 15), ("501-1000", 14), ("1001-5000", 14),
    ("11-50", 12), ("5001-10000", 11), ("10000+", 11), ("1-10", 8),
]

TECH_INDICATORS = [
    "aws", "gcp", "azure", "kubernetes", "docker",
    "react", "node", "python", "api", "microservices",
]


def default_contact_policy() -> ScoringPolicy:
    """Authority score for a contact: seniority, decision power, reachable channels."""
    rules = [ScoringRule("base", always(), 50)]
    rules += [
        ScoringRule(f"seniority:{level}", equals("seniority", level), points, group="seniority")
        for level, points in SENIORITY_POINTS
    ]
    rules += [
        ScoringRule("decision_maker", is_true("decision_maker"), 15),
        ScoringRule("verified_email", greater_than("email_confidence", 80), 10),
        ScoringRule("linkedin_presence", present("linkedin_url"), 5),
        ScoringRule("relevant_department", one_of("department", ["Engineering", "Product", "Executive"]), 10),
    ]
    return ScoringPolicy(rules, name="contact_authority")


def default_company_policy() -> ScoringPolicy:
    """Company fit against the ideal customer profile."""
    rules = [ScoringRule("base", always(), 50)]
    rules += [
        ScoringRule(f"industry:{industry}", contains("industry", industry), points, group="industry")
        for industry, points in TARGET_INDUSTRY_POINTS
    ]
    rules += [
        ScoringRule(f"size:{band}", equals("size", band), points, group="size")
        for band, points in TARGET_SIZE_POINTS
    ]
    rules += [
        ScoringRule(f"tech_stack:{n}+", count_at_least("tech_stack", n, TECH_INDICATORS), 2 * n, group="tech")
        for n in (5, 4, 3, 2, 1)
    ]
    rules.append(
        ScoringRule("funding_stage", one_of("funding.stage", ["Series A", "Series B", "Series C"]), 10)
    )
    return ScoringPolicy(rules, name="company_fit")


@dataclass
class PolicySet:
    """The policies a run scores with."""
    contact: ScoringPolicy = field(default_factory=default_contact_policy)
    company: ScoringPolicy = field(default_factory=default_company_policy)

    @classmethod
    def from_config(cls, definition: Mapping[str, Any]) -> 'PolicySet':
        """Build from a policy file; sections that are absent keep their defaults."""
        policies = cls()
        if definition.get("contact_authority"):
            policies.contact = ScoringPolicy.from_config(definition["contact_authority"], "contact_authority")
        if definition.get("company_fit"):
            policies.company = ScoringPolicy.from_config(definition["company_fit"], "company_fit")
        return policies


def flatten_for_scoring(record: Mapping[str, Any], prefix: str = "") -> Dict[str, Any]:
    """Expose nested mappings as dotted keys ("funding.stage") next to the originals."""
    flat: Dict[str, Any] = {}
    for key, value in record.items():
        name = f"{prefix}{key}"
        flat[name] = value
        if isinstance(value, Mapping):
            flat.update(flatten_for_scoring(value, prefix=f"{name}."))
    return flat
