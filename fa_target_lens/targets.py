"""
Target-lens works on the scrape-target inventory returned by Prometheus'
targets API:

{
  "status": "success",
  "data": {
    "activeTargets": [
      {
        "scrapePool": "<pool>",
        "discoveredLabels": { "<labelname>": "<labelvalue>", ... },
        "labels": { "<labelname>": "<labelvalue>", ... },
        ...
      },
      ...
    ],
    "droppedTargets": [
      { "discoveredLabels": { "job": "<pool>", ... } },
      ...
    ],
    "droppedTargetCounts": { "<pool>": <count>, ... }
  }
}

Active targets carry both the labels found by service discovery and the final
labels after relabeling.  Dropped targets were discarded by relabeling, so
they only carry discovered labels, and the scrape pool they belong to is
identified by their job label.

The classes here are immutable snapshots of that payload.  They are rebuilt
from scratch whenever the payload is reloaded.
"""
from typing import Any, Dict, List, Mapping, Optional

import attr
import jsonschema

from .targets_schema import SERVICE_MAP_SCHEMA, TARGETS_RESPONSE_SCHEMA

POOL_LABEL = "job"


def validate_label(label_name: str, label_value: str) -> bool:
    """Whether a label name and value are valid

    Label names are whatever service discovery and relabeling produced, which
    includes UTF-8 names such as service.name, so only their type is checked
    """
    if not isinstance(label_name, str):
        raise ValueError(f"Label name must be a string: {label_name!r}")

    if not isinstance(label_value, str):
        raise ValueError(f"For label {label_name}, label value must be a string")

    try:
        label_value.encode("utf-8")
    except UnicodeEncodeError:
        raise ValueError(f"For label {label_name}, invalid label value {label_value}")

    return True


def validate_labels(_: Any, attribute: attr.Attribute, labels: Dict[str, str]) -> None:
    """attrs validator for a dict of labels"""
    if not isinstance(labels, dict):
        raise ValueError(f"{attribute.name} must be a dict of labels")

    for label_name, label_value in labels.items():
        validate_label(label_name, label_value)


@attr.s(frozen=True, slots=True, kw_only=True)
class ActiveTarget:
    """A target in a scrape pool that Prometheus is currently scraping"""

    scrape_pool: str = attr.ib()
    discovered_labels: Dict[str, str] = attr.ib(factory=dict, validator=validate_labels)
    labels: Dict[str, str] = attr.ib(factory=dict, validator=validate_labels)

    @scrape_pool.validator
    def _validate_scrape_pool(self, _: attr.Attribute, scrape_pool: str) -> None:
        if not isinstance(scrape_pool, str) or not scrape_pool.strip():
            raise ValueError("Scrape pool must be a non-empty string")

    @classmethod
    def from_dict(cls, target: Mapping[str, Any]) -> "ActiveTarget":
        """Create an instance from an element of activeTargets"""
        return cls(
            scrape_pool=target["scrapePool"],
            discovered_labels=dict(target["discoveredLabels"]),
            labels=dict(target["labels"]),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert back into the camelCase shape of the targets API"""
        return {
            "scrapePool": self.scrape_pool,
            "discoveredLabels": dict(self.discovered_labels),
            "labels": dict(self.labels),
        }


@attr.s(frozen=True, slots=True, kw_only=True)
class DroppedTarget:
    """A discovered target that relabeling dropped before it was scraped

    Its scrape pool is the value of its job label, so a dropped target without
    one is rejected with a ValueError.
    """

    discovered_labels: Dict[str, str] = attr.ib(validator=validate_labels)

    @discovered_labels.validator
    def _validate_pool_label(self, _: attr.Attribute, discovered_labels: Dict[str, str]) -> None:
        if not discovered_labels.get(POOL_LABEL):
            raise ValueError(f"Dropped target has no {POOL_LABEL} label: {discovered_labels}")

    @property
    def scrape_pool(self) -> str:
        """Scrape pool the target was dropped from"""
        return self.discovered_labels[POOL_LABEL]

    @classmethod
    def from_dict(cls, target: Mapping[str, Any]) -> "DroppedTarget":
        """Create an instance from an element of droppedTargets"""
        return cls(discovered_labels=dict(target["discoveredLabels"]))

    def to_dict(self) -> Dict[str, Any]:
        """Convert back into the camelCase shape of the targets API"""
        return {"discoveredLabels": dict(self.discovered_labels)}


@attr.s(frozen=True, slots=True)
class PoolSummary:
    """Number of active targets and of all targets in a scrape pool"""

    active: int = attr.ib(default=0)
    total: int = attr.ib(default=0)

    @total.validator
    def _validate_counts(self, _: attr.Attribute, total: int) -> None:
        if self.active < 0 or total < self.active:
            raise ValueError(f"Invalid pool counts active={self.active} total={total}")

    @property
    def dropped(self) -> int:
        """Number of dropped targets in the pool"""
        return self.total - self.active

    def to_dict(self) -> Dict[str, int]:
        """Convert into a dict suitable for sending as JSON"""
        return {"active": self.active, "total": self.total}


@attr.s(frozen=True, slots=True, kw_only=True)
class TargetLabels:
    """The labels of a single target as listed under its scrape pool"""

    discovered_labels: Dict[str, str] = attr.ib()
    labels: Dict[str, str] = attr.ib(factory=dict)
    is_dropped: bool = attr.ib(default=False)

    @classmethod
    def from_active_target(cls, target: ActiveTarget) -> "TargetLabels":
        """Label record of an active target"""
        return cls(
            discovered_labels=target.discovered_labels, labels=target.labels, is_dropped=False
        )

    @classmethod
    def from_dropped_target(cls, target: DroppedTarget) -> "TargetLabels":
        """Label record of a dropped target, which never has final labels"""
        return cls(discovered_labels=target.discovered_labels, labels={}, is_dropped=True)

    def to_dict(self) -> Dict[str, Any]:
        """Convert into a dict suitable for sending as JSON"""
        return {
            "discoveredLabels": dict(self.discovered_labels),
            "labels": dict(self.labels),
            "isDropped": self.is_dropped,
        }


@attr.s(frozen=True, slots=True, kw_only=True)
class ServiceMap:
    """One snapshot of the targets API: the two target lists and the number of
    dropped targets per scrape pool"""

    active_targets: List[ActiveTarget] = attr.ib(factory=list)
    dropped_targets: List[DroppedTarget] = attr.ib(factory=list)
    dropped_target_counts: Dict[str, int] = attr.ib(factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServiceMap":
        """Create an instance from the data object of the targets API

        Raises a jsonschema.ValidationError if the data does not have the
        expected shape and a ValueError if a label is invalid
        """
        jsonschema.validate(data, SERVICE_MAP_SCHEMA)

        return cls(
            active_targets=[ActiveTarget.from_dict(target) for target in data["activeTargets"]],
            dropped_targets=[DroppedTarget.from_dict(target) for target in data["droppedTargets"]],
            # older Prometheus servers do not send droppedTargetCounts
            dropped_target_counts=dict(data.get("droppedTargetCounts") or {}),
        )

    @classmethod
    def from_api_response(cls, response: Mapping[str, Any]) -> "ServiceMap":
        """Create an instance from the whole targets API response

        Raises a ValueError if Prometheus reported an error
        """
        jsonschema.validate(response, TARGETS_RESPONSE_SCHEMA)

        if response["status"] != "success":
            raise ValueError(f"Targets API returned an error: {response.get('error', 'unknown')}")

        data: Optional[Mapping[str, Any]] = response.get("data")
        if data is None:
            raise ValueError("Targets API response has no data")

        return cls.from_dict(data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert back into the data object of the targets API"""
        return {
            "activeTargets": [target.to_dict() for target in self.active_targets],
            "droppedTargets": [target.to_dict() for target in self.dropped_targets],
            "droppedTargetCounts": dict(self.dropped_target_counts),
        }
