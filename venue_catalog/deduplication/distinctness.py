"""
Distinctness classification for candidate duplicate groups.

A group of venues sharing an address is not always one venue: large venues
host several independent machines, and crawlers list them separately. The
classifier is an ordered policy of named rules. Each rule either decides the
verdict or stays silent; the first rule that speaks wins, and a group no
rule speaks for is treated as duplicates.

Rule order:

1. missing_street_detail        -> duplicate
2. enumerated_names             -> distinct
3. divergent_machine_attributes -> distinct
4. divergent_descriptions       -> distinct

Same-named venues whose addresses lack street-level detail (just a city,
or no house number) are settled by rule 1 before any distinctness signal is
looked at. Differently named venues without street detail go through the
remaining rules like any other group.
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Optional, Sequence

from venue_catalog.models import VenueRecord
from venue_catalog.normalizers import has_enumeration_suffix, has_street_detail, normalize_venue_name


class Verdict(str, Enum):
    DUPLICATE = "duplicate"
    DISTINCT = "distinct"


@dataclass(frozen=True)
class DistinctnessRule:
    """A named predicate and the verdict it issues when it holds."""
    name: str
    verdict: Verdict
    predicate: Callable[[Sequence[VenueRecord]], bool]


@dataclass(frozen=True)
class Classification:
    verdict: Verdict
    rule: Optional[str] = None  # None when no rule fired

    @property
    def is_distinct(self) -> bool:
        return self.verdict is Verdict.DISTINCT


# =============================================================================
# Predicates
# =============================================================================

def missing_street_detail(members: Sequence[VenueRecord], min_length: int = 10) -> bool:
    """Same-named venues, one of which has an address without street detail.

    Groups whose names differ (typically proximity groups at a city
    centroid) are left to the distinctness rules.
    """
    names = {normalize_venue_name(m.name) for m in members}
    if len(names) != 1 or "" in names:
        return False
    return any(not has_street_detail(m.address, m.city, min_length) for m in members)


def enumerated_names(members: Sequence[VenueRecord]) -> bool:
    """Any member is named like one of several machines ("Arcade II", "Booth #2")."""
    return any(has_enumeration_suffix(m.name) for m in members)


def _distinct_values(values) -> set[str]:
    return {v.strip().casefold() for v in values if v and v.strip()}


def divergent_machine_attributes(members: Sequence[VenueRecord]) -> bool:
    """Members report different machine types or different machine models."""
    types = _distinct_values(m.machine_type for m in members)
    models = _distinct_values(m.machine_model for m in members)
    return len(types) > 1 or len(models) > 1


def divergent_descriptions(members: Sequence[VenueRecord], ratio: float = 0.5) -> bool:
    """Some description differs in length from the first by more than ``ratio`` of the shorter."""
    descriptions = [m.description for m in members if m.description and m.description.strip()]
    if len(descriptions) < 2:
        return False

    first = descriptions[0]
    for other in descriptions[1:]:
        shorter = min(len(first), len(other))
        longer = max(len(first), len(other))
        if longer - shorter > shorter * ratio:
            return True
    return False


def default_rules(
    min_street_address_length: int = 10,
    description_divergence_ratio: float = 0.5,
) -> list[DistinctnessRule]:
    """The standard policy, in priority order."""
    return [
        DistinctnessRule(
            "missing_street_detail",
            Verdict.DUPLICATE,
            partial(missing_street_detail, min_length=min_street_address_length),
        ),
        DistinctnessRule("enumerated_names", Verdict.DISTINCT, enumerated_names),
        DistinctnessRule("divergent_machine_attributes", Verdict.DISTINCT, divergent_machine_attributes),
        DistinctnessRule(
            "divergent_descriptions",
            Verdict.DISTINCT,
            partial(divergent_descriptions, ratio=description_divergence_ratio),
        ),
    ]


class DistinctnessClassifier:
    """
    Decides whether a candidate group is true duplicates or distinct venues.

    Args:
        rules: Ordered rules (defaults to ``default_rules()``)
    """

    def __init__(self, rules: Optional[list[DistinctnessRule]] = None):
        self.rules = rules if rules is not None else default_rules()

    @classmethod
    def from_settings(cls, dedup_settings) -> "DistinctnessClassifier":
        return cls(default_rules(
            min_street_address_length=dedup_settings.min_street_address_length,
            description_divergence_ratio=dedup_settings.description_divergence_ratio,
        ))

    def classify(self, members: Sequence[VenueRecord]) -> Classification:
        for rule in self.rules:
            if rule.predicate(members):
                return Classification(rule.verdict, rule.name)
        return Classification(Verdict.DUPLICATE)

    __call__ = classify
