"""
Aggregation of the flat target lists into what the service discovery page
shows:

    - a summary line per scrape pool with the number of active targets and
      the total number of targets (active plus dropped)
    - the labels of every target, grouped by scrape pool

Everything here is a pure function of its arguments.  Results are rebuilt
from scratch after every query or reload, never updated in place.
"""
import logging
from typing import Dict, Iterable, List, Mapping

import attr

from .targets import ActiveTarget, DroppedTarget, PoolSummary, TargetLabels

LOGGER = logging.getLogger(__name__)


def summarize(
    active_targets: Iterable[ActiveTarget], dropped_target_counts: Mapping[str, int]
) -> Dict[str, PoolSummary]:
    """Count the active and total targets of every scrape pool that has at
    least one active target

    Pools are reported in the order their first active target appears.  A
    pool without an entry in dropped_target_counts is counted as having no
    dropped targets.  A pool that only appears in dropped_target_counts is
    not reported.
    """
    active_counts: Dict[str, int] = {}
    for target in active_targets:
        active_counts[target.scrape_pool] = active_counts.get(target.scrape_pool, 0) + 1

    summary = {}
    for pool, active in active_counts.items():
        dropped = dropped_target_counts.get(pool)
        if dropped is None:
            LOGGER.debug(f"No dropped target count for {pool}, counting it as 0")
            dropped = 0

        summary[pool] = PoolSummary(active=active, total=active + dropped)

    return summary


def group_labels(
    active_targets: Iterable[ActiveTarget], dropped_targets: Iterable[DroppedTarget]
) -> Dict[str, List[TargetLabels]]:
    """Group the labels of all targets by scrape pool

    All active targets are listed before the dropped targets of the same pool,
    each in input order.
    """
    labels: Dict[str, List[TargetLabels]] = {}

    for target in active_targets:
        labels.setdefault(target.scrape_pool, []).append(TargetLabels.from_active_target(target))

    for dropped_target in dropped_targets:
        labels.setdefault(dropped_target.scrape_pool, []).append(
            TargetLabels.from_dropped_target(dropped_target)
        )

    return labels


@attr.s(frozen=True, slots=True, kw_only=True)
class ServiceDiscoveryView:
    """Everything the service discovery page renders for one set of targets"""

    summary: Dict[str, PoolSummary] = attr.ib(factory=dict)
    labels: Dict[str, List[TargetLabels]] = attr.ib(factory=dict)

    def to_dict(self) -> Dict[str, dict]:
        """Convert into a dict suitable for sending as JSON"""
        return {
            "summary": {pool: counts.to_dict() for pool, counts in self.summary.items()},
            "labels": {
                pool: [target_labels.to_dict() for target_labels in pool_labels]
                for pool, pool_labels in self.labels.items()
            },
        }


def derive_view(
    active_targets: List[ActiveTarget],
    dropped_targets: List[DroppedTarget],
    dropped_target_counts: Mapping[str, int],
) -> ServiceDiscoveryView:
    """Build the summary and the grouped labels for the given targets"""
    return ServiceDiscoveryView(
        summary=summarize(active_targets, dropped_target_counts),
        labels=group_labels(active_targets, dropped_targets),
    )
