"""Cross-source duplicate detection.

Drafts are clustered with a union-find over their positions in the stable
input order. Three matching passes run in priority order:

1. identical source-native identifier (same kind and value);
2. identical normalised name;
3. normalised-name similarity at or above the configured threshold, for
   pairs that share a type or a region/postcode.

Every union also requires the two clusters' types to be compatible, so no
pass can merge e.g. a court into a police force.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

from rapidfuzz import process
from rapidfuzz.distance import Levenshtein

from orgs_aggregator.common.config_loader import PipelineConfig
from orgs_aggregator.common.constants import SCORE_TOLERANCE
from orgs_aggregator.common.models import OrganisationDraft, OrganisationType

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Cluster:
    members: tuple[OrganisationDraft, ...]
    match_reasons: tuple[str, ...] = ()

    @property
    def size(self) -> int:
        return len(self.members)


def similarity(left: str, right: str) -> float:
    """Normalised Levenshtein similarity in [0, 1]."""
    return Levenshtein.normalized_similarity(left, right)


def types_compatible(
    left: OrganisationType,
    right: OrganisationType,
    families: Sequence[frozenset[OrganisationType]],
) -> bool:
    if left == right or OrganisationType.OTHER in (left, right):
        return True
    return any(left in family and right in family for family in families)


class _ClusterForest:
    """Union-find whose root is always the earliest member."""

    def __init__(self, drafts: Sequence[OrganisationDraft], families: Sequence[frozenset[OrganisationType]]):
        self.parent = list(range(len(drafts)))
        self.types: dict[int, set[OrganisationType]] = {idx: {draft.type} for idx, draft in enumerate(drafts)}
        self.reasons: dict[int, list[str]] = {idx: [] for idx in range(len(drafts))}
        self.families = families

    def find(self, idx: int) -> int:
        root = idx
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[idx] != root:
            self.parent[idx], idx = root, self.parent[idx]
        return root

    def compatible(self, left_root: int, right_root: int) -> bool:
        return all(
            types_compatible(left, right, self.families)
            for left in self.types[left_root]
            for right in self.types[right_root]
        )

    def union(self, left: int, right: int, reason: str) -> bool:
        left_root, right_root = self.find(left), self.find(right)
        if left_root == right_root or not self.compatible(left_root, right_root):
            return False
        keep, drop = sorted((left_root, right_root))
        self.parent[drop] = keep
        self.types[keep] |= self.types.pop(drop)
        self.reasons[keep].extend(self.reasons.pop(drop))
        self.reasons[keep].append(reason)
        return True


def _join_groups(forest: _ClusterForest, groups: dict, reason_for) -> None:
    for key, indices in groups.items():
        for position, idx in enumerate(indices[1:], start=1):
            # Join the earliest compatible cluster already holding this key.
            for earlier in indices[:position]:
                if forest.find(earlier) == forest.find(idx):
                    break
                if forest.union(earlier, idx, reason_for(key)):
                    break


def _same_place(left: OrganisationDraft, right: OrganisationDraft) -> bool:
    if left.location is None or right.location is None:
        return False
    for attr in ("region", "postcode"):
        left_value = getattr(left.location, attr)
        right_value = getattr(right.location, attr)
        if left_value and right_value and left_value.casefold() == right_value.casefold():
            return True
    return False


def _fuzzy_eligible(left: OrganisationDraft, right: OrganisationDraft) -> bool:
    return left.type == right.type or _same_place(left, right)


def _fuzzy_pass(forest: _ClusterForest, drafts: Sequence[OrganisationDraft], threshold: float) -> None:
    names = [draft.normalised_name for draft in drafts]
    cutoff = max(threshold - SCORE_TOLERANCE, 0.0)
    for idx in range(1, len(drafts)):
        matches = process.extract(
            names[idx],
            names[:idx],
            scorer=Levenshtein.normalized_similarity,
            score_cutoff=cutoff,
            limit=None,
        )
        own_root = forest.find(idx)
        best: dict[int, float] = {}
        for _name, score, other in matches:
            if not _fuzzy_eligible(drafts[idx], drafts[other]):
                continue
            root = forest.find(other)
            if root != own_root and score > best.get(root, -1.0):
                best[root] = score
        # Highest score first; the cluster seen first wins a tie.
        for root, score in sorted(best.items(), key=lambda item: (-item[1], item[0])):
            if forest.union(root, idx, f"name:fuzzy:{round(score, 4)}"):
                break


def cluster_drafts(drafts: Sequence[OrganisationDraft], config: PipelineConfig) -> list[Cluster]:
    """Group drafts (already in stable order) into clusters.

    Every draft ends up in exactly one cluster. Clusters are returned in the
    order of their earliest member, members in input order.
    """
    forest = _ClusterForest(drafts, config.type_families)

    by_identifier: dict[tuple[str, str], list[int]] = defaultdict(list)
    by_name: dict[str, list[int]] = defaultdict(list)
    for idx, draft in enumerate(drafts):
        for kind, value in draft.identifiers:
            by_identifier[(kind, value.casefold())].append(idx)
        by_name[draft.normalised_name].append(idx)

    _join_groups(forest, by_identifier, lambda key: f"identifier:{key[0]}")
    _join_groups(forest, by_name, lambda _key: "name:exact")
    _fuzzy_pass(forest, drafts, config.thresholds.duplicate_similarity)

    members: dict[int, list[OrganisationDraft]] = defaultdict(list)
    for idx, draft in enumerate(drafts):
        members[forest.find(idx)].append(draft)

    clusters = [
        Cluster(members=tuple(members[root]), match_reasons=tuple(forest.reasons[root]))
        for root in sorted(members)
    ]
    LOGGER.debug("clustered %d drafts into %d clusters", len(drafts), len(clusters))
    return clusters
