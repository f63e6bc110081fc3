"""
State of the service discovery page for one snapshot of targets.

The page holds a search query.  Every change of the query is written through
to the page location, searched against the original target lists (never
against a previous result) and turned into a freshly derived view.
"""
import logging
from typing import Callable, Dict, List, MutableMapping, Optional
from urllib.parse import urlencode

import attr

from .aggregate import ServiceDiscoveryView, derive_view
from .kvsearch import ACTIVE_TARGET_SEARCH, DROPPED_TARGET_SEARCH
from .targets import ActiveTarget, DroppedTarget, ServiceMap

LOGGER = logging.getLogger(__name__)

SEARCH_PARAM = "search"


@attr.s(slots=True)
class SearchParamStore:
    """The query parameters of the page location, holding the search query
    under the search parameter"""

    params: MutableMapping[str, str] = attr.ib(factory=dict)

    def read(self) -> str:
        """Current search query, empty if there is none"""
        return self.params.get(SEARCH_PARAM, "")

    def write(self, query: str) -> None:
        """Replace the search query, dropping the parameter when it is empty"""
        if query:
            self.params[SEARCH_PARAM] = query
        else:
            self.params.pop(SEARCH_PARAM, None)

    @property
    def query_string(self) -> str:
        """Query string of the page location, including the leading ?"""
        if not self.params:
            return ""
        return f"?{urlencode(self.params)}"


class ServiceDiscoveryFilter:
    """Filters a snapshot of targets by a search query and keeps the derived
    view up to date

    read_query and write_query give access to wherever the query is persisted,
    usually a SearchParamStore.
    """

    def __init__(
        self,
        service_map: ServiceMap,
        read_query: Callable[[], str],
        write_query: Callable[[str], None],
    ) -> None:
        self._service_map = service_map
        self._write_query = write_query

        self.query: str = read_query()
        self.active_targets: List[ActiveTarget] = list(service_map.active_targets)
        self.dropped_targets: List[DroppedTarget] = list(service_map.dropped_targets)
        self.view: Optional[ServiceDiscoveryView] = None

        self._apply(self.query)

    @classmethod
    def from_store(
        cls, service_map: ServiceMap, store: SearchParamStore
    ) -> "ServiceDiscoveryFilter":
        """Create a filter persisting its query into the given store"""
        return cls(service_map, store.read, store.write)

    def set_query(self, query: str) -> ServiceDiscoveryView:
        """Persist the new query, filter the targets with it and return the
        new view

        An empty or whitespace-only query shows all targets again
        """
        self._write_query(query)
        self.query = query
        return self._apply(query)

    def _apply(self, query: str) -> ServiceDiscoveryView:
        pattern = query.strip()

        if pattern:
            self.active_targets = [
                result.original
                for result in ACTIVE_TARGET_SEARCH.filter(pattern, self._service_map.active_targets)
            ]
            self.dropped_targets = [
                result.original
                for result in DROPPED_TARGET_SEARCH.filter(
                    pattern, self._service_map.dropped_targets
                )
            ]
            LOGGER.debug(
                f"Query {pattern!r} matched {len(self.active_targets)} active and "
                f"{len(self.dropped_targets)} dropped targets"
            )
        else:
            self.active_targets = list(self._service_map.active_targets)
            self.dropped_targets = list(self._service_map.dropped_targets)

        self.view = derive_view(
            self.active_targets, self.dropped_targets, self._service_map.dropped_target_counts
        )
        return self.view

    def to_dict(self) -> Dict[str, object]:
        """Current query and view as a dict suitable for sending as JSON"""
        result: Dict[str, object] = {SEARCH_PARAM: self.query}
        if self.view is not None:
            result.update(self.view.to_dict())
        return result
