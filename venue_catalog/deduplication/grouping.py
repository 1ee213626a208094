"""
Candidate grouping for venue deduplication.

Each strategy partitions the full record set by one normalized key and emits
only the keys shared by two or more venues. All strategies feed a single
``GroupRegistry``, which suppresses repeated groups, protects members of
groups classified as distinct, and unions partially overlapping groups so
that no venue ends up in two plan entries.
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger

from venue_catalog.models import VenueRecord
from venue_catalog.normalizers import (
    compact_name,
    has_street_detail,
    normalize_address,
    normalize_locality,
    normalize_venue_name,
)
from venue_catalog.utils.geo import distance_meters, is_valid_coordinates

METERS_PER_DEGREE_LAT = 111_320


@dataclass
class DuplicateGroup:
    """Venues provisionally believed to describe the same location."""
    key: str
    locality: str
    members: list[VenueRecord]
    strategies: list[str] = field(default_factory=list)

    @property
    def member_ids(self) -> tuple[str, ...]:
        return tuple(sorted(m.id for m in self.members))

    def __len__(self) -> int:
        return len(self.members)


class _UnionFind:
    """Disjoint sets over string identifiers."""

    def __init__(self):
        self.parent: dict[str, str] = {}

    def find(self, item: str) -> str:
        self.parent.setdefault(item, item)
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        root_a, root_b = self.find(a), self.find(b)
        if root_a != root_b:
            # Smaller id wins so the result does not depend on call order
            if root_b < root_a:
                root_a, root_b = root_b, root_a
            self.parent[root_b] = root_a


# =============================================================================
# Strategies
# =============================================================================

class GroupingStrategy(ABC):
    """A named rule that proposes duplicate groups."""

    name: Optional[str] = None

    @abstractmethod
    def group(self, records: Sequence[VenueRecord]) -> list[DuplicateGroup]:
        """Return groups of two or more records, in first-seen order."""


class KeyedStrategy(GroupingStrategy):
    """Strategy that groups records sharing a computed key."""

    @abstractmethod
    def key(self, record: VenueRecord) -> str | None:
        """Grouping key, or None when the record must not be grouped."""

    def accept(self, members: list[VenueRecord]) -> bool:
        """Final check on a candidate group (all groups pass by default)."""
        return True

    def group(self, records: Sequence[VenueRecord]) -> list[DuplicateGroup]:
        buckets: dict[str, list[VenueRecord]] = defaultdict(list)
        for record in records:
            key = self.key(record)
            if key:
                buckets[key].append(record)

        groups = []
        for key, members in buckets.items():
            if len(members) < 2 or not self.accept(members):
                continue
            groups.append(DuplicateGroup(
                key=key,
                locality=normalize_locality(members[0].city),
                members=members,
                strategies=[self.name],
            ))
        return groups


class AddressStrategy(KeyedStrategy):
    """Same normalized street address in the same locality.

    Venues whose address has no street-level detail (empty, just the city
    name, too short, or without a house number) are excluded entirely;
    they are the city-only strategy's business.
    """

    name = "address"

    def __init__(self, min_street_address_length: int = 10):
        self.min_length = min_street_address_length

    def key(self, record: VenueRecord) -> str | None:
        if not has_street_detail(record.address, record.city, self.min_length):
            return None
        return f"{normalize_address(record.address)}|{normalize_locality(record.city)}"


class CityOnlyStrategy(KeyedStrategy):
    """Same venue name within a locality, for venues without a street address."""

    name = "city_only"

    def __init__(self, min_street_address_length: int = 10):
        self.min_length = min_street_address_length

    def key(self, record: VenueRecord) -> str | None:
        if has_street_detail(record.address, record.city, self.min_length):
            return None
        name = normalize_venue_name(record.name)
        locality = normalize_locality(record.city)
        if not name or not locality:
            return None
        return f"{name}|{locality}"


def _street_text(address: str | None) -> str:
    text = "".join(c if c.isalnum() or c.isspace() else "" for c in (address or "").lower())
    return " ".join(text.split())


class NameStrategy(KeyedStrategy):
    """Same venue name within a locality, on the same street.

    Catches "The Knockout" vs "Knockout" at "3223 Mission St" and
    "3223 Mission Street, San Francisco".
    """

    name = "name"

    def key(self, record: VenueRecord) -> str | None:
        name = normalize_venue_name(record.name)
        locality = normalize_locality(record.city)
        if not name or not locality:
            return None
        return f"{name}|{locality}"

    def accept(self, members: list[VenueRecord]) -> bool:
        # First three words of the first address, e.g. "3223 mission st"
        prefix = " ".join(_street_text(members[0].address).split()[:3])
        if len(prefix) <= 5:
            return False
        return all(prefix in _street_text(m.address) for m in members)


class ProximityStrategy(GroupingStrategy):
    """Venues in one locality a few meters apart whose names look alike.

    Venues without street detail in their address are skipped, their
    coordinates are usually a city centroid. Pairs are linked transitively,
    so the result does not depend on the order records are read in.
    """

    name = "proximity"

    def __init__(
        self,
        threshold_meters: float = 10.0,
        name_length_slack: int = 3,
        min_street_address_length: int = 10,
    ):
        self.threshold_meters = threshold_meters
        self.name_length_slack = name_length_slack
        self.min_length = min_street_address_length

    def similar_names(self, a: VenueRecord, b: VenueRecord) -> bool:
        name_a, name_b = compact_name(a.name), compact_name(b.name)
        if not name_a or not name_b:
            return False
        return (
            name_a in name_b
            or name_b in name_a
            or abs(len(name_a) - len(name_b)) <= self.name_length_slack
        )

    def group(self, records: Sequence[VenueRecord]) -> list[DuplicateGroup]:
        located = [
            r for r in records
            if is_valid_coordinates(r.latitude, r.longitude)
            and has_street_detail(r.address, r.city, self.min_length)
        ]
        located.sort(key=lambda r: r.latitude)
        max_lat_delta = self.threshold_meters / METERS_PER_DEGREE_LAT

        links = _UnionFind()
        for i, a in enumerate(located):
            for b in located[i + 1:]:
                if b.latitude - a.latitude > max_lat_delta:
                    break
                if normalize_locality(a.city) != normalize_locality(b.city):
                    continue
                distance = distance_meters(a.latitude, a.longitude, b.latitude, b.longitude)
                if distance <= self.threshold_meters and self.similar_names(a, b):
                    links.union(a.id, b.id)

        components: dict[str, list[VenueRecord]] = defaultdict(list)
        for record in records:
            if record.id in links.parent:
                components[links.find(record.id)].append(record)

        groups = []
        for members in components.values():
            if len(members) < 2:
                continue
            first = members[0]
            groups.append(DuplicateGroup(
                key=f"{first.latitude:.5f},{first.longitude:.5f}",
                locality=normalize_locality(first.city),
                members=members,
                strategies=[self.name],
            ))
        return groups


def build_strategies(names: Iterable[str], dedup_settings=None) -> list[GroupingStrategy]:
    """Instantiate grouping strategies by name, in the given order."""
    if dedup_settings is None:
        from venue_catalog.config import settings
        dedup_settings = settings.dedup

    factories: dict[str, Callable[[], GroupingStrategy]] = {
        "address": lambda: AddressStrategy(dedup_settings.min_street_address_length),
        "city_only": lambda: CityOnlyStrategy(dedup_settings.min_street_address_length),
        "name": NameStrategy,
        "proximity": lambda: ProximityStrategy(
            dedup_settings.proximity_threshold_meters,
            dedup_settings.proximity_name_length_slack,
            dedup_settings.min_street_address_length,
        ),
    }
    strategies = []
    for name in names:
        if name not in factories:
            raise ValueError(f"Unknown grouping strategy: {name}")
        strategies.append(factories[name]())
    return strategies


# =============================================================================
# Registry
# =============================================================================

@dataclass
class GroupResolution:
    """Outcome of resolving every candidate group of a run."""
    resolved: list[DuplicateGroup] = field(default_factory=list)
    distinct: list[tuple[DuplicateGroup, object]] = field(default_factory=list)
    considered: int = 0
    suppressed: int = 0
    dropped: int = 0


class GroupRegistry:
    """
    The single "seen" registry for all grouping strategies of a run.

    Args:
        records: The full record set, in store order (used to keep member
                 order stable after groups are unioned)
    """

    def __init__(self, records: Sequence[VenueRecord]):
        self._position = {r.id: i for i, r in enumerate(records)}
        self._groups: dict[tuple[str, ...], DuplicateGroup] = {}
        self.suppressed = 0

    def register(self, group: DuplicateGroup) -> bool:
        """Add a group. Returns False if the same member set was already seen."""
        key = group.member_ids
        existing = self._groups.get(key)
        if existing is not None:
            for strategy in group.strategies:
                if strategy not in existing.strategies:
                    existing.strategies.append(strategy)
            self.suppressed += 1
            return False
        self._groups[key] = group
        return True

    @property
    def groups(self) -> list[DuplicateGroup]:
        return list(self._groups.values())

    def _ordered(self, members: Iterable[VenueRecord]) -> list[VenueRecord]:
        return sorted(members, key=lambda m: self._position.get(m.id, len(self._position)))

    def resolve(self, classify: Callable[[Sequence[VenueRecord]], object]) -> GroupResolution:
        """
        Classify and reconcile all registered groups.

        ``classify`` returns an object with an ``is_distinct`` attribute.
        Members of distinct groups are protected; the remaining duplicate
        groups lose protected members and are unioned where they overlap.
        Groups that changed shape are classified again as a whole.
        """
        result = GroupResolution(considered=len(self._groups), suppressed=self.suppressed)

        protected: set[str] = set()
        candidates: list[DuplicateGroup] = []
        for group in self._groups.values():
            verdict = classify(group.members)
            if verdict.is_distinct:
                protected.update(m.id for m in group.members)
                result.distinct.append((group, verdict))
                logger.debug(
                    f"Distinct group kept apart ({verdict.rule}): "
                    f"{', '.join(m.name for m in group.members)}"
                )
            else:
                candidates.append(group)

        trimmed: list[tuple[DuplicateGroup, bool]] = []
        for group in candidates:
            members = [m for m in group.members if m.id not in protected]
            if len(members) < 2:
                result.dropped += 1
                continue
            changed = len(members) != len(group.members)
            if changed:
                group = DuplicateGroup(group.key, group.locality, members, list(group.strategies))
            trimmed.append((group, changed))

        links = _UnionFind()
        for group, _ in trimmed:
            first = group.members[0].id
            for member in group.members[1:]:
                links.union(first, member.id)

        components: dict[str, list[tuple[DuplicateGroup, bool]]] = defaultdict(list)
        for group, changed in trimmed:
            components[links.find(group.members[0].id)].append((group, changed))

        for parts in components.values():
            first_group = parts[0][0]
            if len(parts) == 1 and not parts[0][1]:
                result.resolved.append(first_group)
                continue

            members = {m.id: m for group, _ in parts for m in group.members}
            strategies = []
            for group, _ in parts:
                strategies.extend(s for s in group.strategies if s not in strategies)
            merged = DuplicateGroup(
                key=first_group.key,
                locality=first_group.locality,
                members=self._ordered(members.values()),
                strategies=strategies,
            )

            verdict = classify(merged.members)
            if verdict.is_distinct:
                result.distinct.append((merged, verdict))
            else:
                result.resolved.append(merged)

        result.resolved.sort(key=lambda g: self._position.get(g.members[0].id, 0))
        return result


def find_candidate_groups(
    records: Sequence[VenueRecord],
    strategies: Sequence[GroupingStrategy],
) -> GroupRegistry:
    """Run every strategy over the records and register their groups."""
    registry = GroupRegistry(records)
    for strategy in strategies:
        groups = strategy.group(records)
        added = sum(1 for g in groups if registry.register(g))
        logger.info(f"Strategy '{strategy.name}': {len(groups)} candidate groups ({added} new)")
    return registry
