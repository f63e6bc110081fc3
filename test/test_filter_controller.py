"""
pytest and hypothesis test cases for fa_target_lens.filter_controller which
keeps the view of the service discovery page in line with its search query.
"""
from hypothesis import given
import hypothesis.strategies as st

from fa_target_lens.filter_controller import SearchParamStore, ServiceDiscoveryFilter
from fa_target_lens.targets import ActiveTarget, DroppedTarget, PoolSummary, ServiceMap

JOB1_TARGET = ActiveTarget(
    scrape_pool="job1",
    labels={"instance": "a:9090"},
    discovered_labels={"instance": "a:9090", "__address__": "a:9090"},
)

NODE_TARGET = ActiveTarget(
    scrape_pool="node",
    labels={"instance": "node-exporter:9100"},
    discovered_labels={"__address__": "node-exporter:9100"},
)

JOB2_DROPPED_TARGET = DroppedTarget(discovered_labels={"job": "job2", "instance": "b:9090"})

NODE_DROPPED_TARGET = DroppedTarget(discovered_labels={"job": "node", "instance": "c:9100"})

SERVICE_MAP = ServiceMap(
    active_targets=[JOB1_TARGET, NODE_TARGET],
    dropped_targets=[JOB2_DROPPED_TARGET, NODE_DROPPED_TARGET],
    dropped_target_counts={"job1": 2, "job2": 1, "node": 1},
)

QUERIES = st.lists(
    st.one_of(st.sampled_from(["9090", "9100", "node", "zzz", "", "  "]), st.text(max_size=5)),
    max_size=10,
)


class RecordingStore:
    """Query persistence that remembers every write"""

    def __init__(self, query=""):
        self.query = query
        self.writes = []

    def read(self):
        return self.query

    def write(self, query):
        self.writes.append(query)
        self.query = query


def make_filter(query=""):
    """Filter over SERVICE_MAP with a recording store"""
    store = RecordingStore(query)
    return ServiceDiscoveryFilter(SERVICE_MAP, store.read, store.write), store


def test_initial_view_has_all_targets():
    """Without a persisted query every target is shown"""
    service_discovery_filter, store = make_filter()

    assert service_discovery_filter.active_targets == SERVICE_MAP.active_targets
    assert service_discovery_filter.dropped_targets == SERVICE_MAP.dropped_targets
    assert service_discovery_filter.view.summary == {
        "job1": PoolSummary(active=1, total=3),
        "node": PoolSummary(active=1, total=2),
    }
    assert list(service_discovery_filter.view.labels) == ["job1", "node", "job2"]
    assert store.writes == []


def test_persisted_query_filters_initial_view():
    """A query read from the page location is applied without writing it back"""
    service_discovery_filter, store = make_filter("9100")

    assert service_discovery_filter.query == "9100"
    assert service_discovery_filter.active_targets == [NODE_TARGET]
    assert service_discovery_filter.dropped_targets == [NODE_DROPPED_TARGET]
    assert store.writes == []


def test_query_matching_active_and_dropped_targets():
    """A nested label value matches both kinds of targets"""
    service_discovery_filter, store = make_filter()

    view = service_discovery_filter.set_query("9090")

    assert store.writes == ["9090"]
    assert service_discovery_filter.active_targets == [JOB1_TARGET]
    assert service_discovery_filter.dropped_targets == [JOB2_DROPPED_TARGET]
    assert view.summary == {"job1": PoolSummary(active=1, total=3)}
    assert [target_labels.is_dropped for target_labels in view.labels["job1"]] == [False]
    assert [target_labels.is_dropped for target_labels in view.labels["job2"]] == [True]


def test_query_matching_nothing():
    """A query that matches nothing empties the view"""
    service_discovery_filter, _ = make_filter()

    view = service_discovery_filter.set_query("zzzz")

    assert view.summary == {}
    assert view.labels == {}


def test_filtering_is_not_cumulative():
    """Every query searches all targets, not the previous result"""
    service_discovery_filter, _ = make_filter()

    service_discovery_filter.set_query("9090")
    service_discovery_filter.set_query("9100")

    assert service_discovery_filter.active_targets == [NODE_TARGET]
    assert service_discovery_filter.dropped_targets == [NODE_DROPPED_TARGET]


def test_empty_query_resets_both_lists():
    """Clearing the query shows every active and dropped target again"""
    service_discovery_filter, store = make_filter()

    service_discovery_filter.set_query("9090")
    service_discovery_filter.set_query("")

    assert service_discovery_filter.active_targets == SERVICE_MAP.active_targets
    assert service_discovery_filter.dropped_targets == SERVICE_MAP.dropped_targets
    assert store.writes == ["9090", ""]


def test_whitespace_query_is_a_reset():
    """A query of only whitespace is persisted as typed and resets the view"""
    service_discovery_filter, store = make_filter("9090")

    service_discovery_filter.set_query("   ")

    assert store.writes == ["   "]
    assert service_discovery_filter.active_targets == SERVICE_MAP.active_targets
    assert service_discovery_filter.dropped_targets == SERVICE_MAP.dropped_targets


@given(QUERIES)
def test_empty_query_restores_targets_after_any_history(queries):
    """Whatever was searched before, the empty query restores all targets"""
    service_discovery_filter, _ = make_filter()

    for query in queries:
        service_discovery_filter.set_query(query)
    view = service_discovery_filter.set_query("")

    assert service_discovery_filter.active_targets == SERVICE_MAP.active_targets
    assert service_discovery_filter.dropped_targets == SERVICE_MAP.dropped_targets
    assert sum(len(pool_labels) for pool_labels in view.labels.values()) == 4


def test_filter_to_dict():
    """The query is included with the view for rendering"""
    service_discovery_filter, _ = make_filter("9090")
    result = service_discovery_filter.to_dict()

    assert result["search"] == "9090"
    assert result["summary"] == {"job1": {"active": 1, "total": 3}}
    assert list(result["labels"]) == ["job1", "job2"]


def test_search_param_store():
    """The search query lives in the search parameter of the page location"""
    store = SearchParamStore(params={"page": "2"})
    assert store.read() == ""

    store.write("a b")
    assert store.read() == "a b"
    assert store.query_string == "?page=2&search=a+b"

    store.write("")
    assert store.query_string == "?page=2"
    assert SearchParamStore().query_string == ""


def test_filter_from_store_writes_through():
    """Changing the query updates the page location"""
    store = SearchParamStore(params={"search": "9100"})
    service_discovery_filter = ServiceDiscoveryFilter.from_store(SERVICE_MAP, store)
    assert service_discovery_filter.active_targets == [NODE_TARGET]

    service_discovery_filter.set_query("9090")
    assert store.params == {"search": "9090"}
