"""
Tests for the REST API provided by Target-lens.

The tests here exercise the service discovery view over a saved targets API
response using pytest and the quart test client.
"""
import json
from unittest.mock import patch

import pytest

from fa_target_lens.rest_api import REST_APP
from fa_target_lens.targets_source import TargetsSource

API_RESPONSE = {
    "status": "success",
    "data": {
        "activeTargets": [
            {
                "scrapePool": "job1",
                "discoveredLabels": {"__address__": "a:9090", "instance": "a:9090"},
                "labels": {"instance": "a:9090", "job": "job1"},
            },
            {
                "scrapePool": "node",
                "discoveredLabels": {"__address__": "node-exporter:9100"},
                "labels": {"instance": "node-exporter:9100", "job": "node"},
            },
        ],
        "droppedTargets": [{"discoveredLabels": {"job": "job2", "instance": "b:9090"}}],
        "droppedTargetCounts": {"job1": 2, "job2": 1},
    },
}


@pytest.fixture(name="targets_file")
def _targets_file(tmp_path):
    """A saved targets API response"""
    targets_file = tmp_path / "targets.json"
    targets_file.write_text(json.dumps(API_RESPONSE))
    return targets_file


@pytest.fixture(name="test_app")
def _test_app(targets_file):
    """Setup for testing the REST API quart app with a source of targets that
    has not been loaded yet"""
    REST_APP.config["targets_source"] = TargetsSource(location=str(targets_file))
    return REST_APP


@pytest.mark.asyncio
async def test_service_discovery_while_loading(test_app):
    """Before the targets are loaded the view is unavailable"""
    test_client = test_app.test_client()
    response = await test_client.get("/service-discovery")
    body = await response.get_json()

    assert response.status_code == 503
    assert body["status"] == "loading"


@pytest.mark.asyncio
async def test_service_discovery_after_load_error(test_app, targets_file):
    """A failed load is reported as a bad gateway with the reason"""
    targets_file.write_text(json.dumps({"status": "error", "error": "boom"}))
    await test_app.config["targets_source"].load()

    test_client = test_app.test_client()
    response = await test_client.get("/service-discovery")
    body = await response.get_json()

    assert response.status_code == 502
    assert body["status"] == "error"
    assert "boom" in body["message"]


@pytest.mark.asyncio
async def test_service_discovery_without_query(test_app):
    """Without a query every target is summarized and listed"""
    await test_app.config["targets_source"].load()

    test_client = test_app.test_client()
    response = await test_client.get("/service-discovery")
    body = await response.get_json()

    assert response.status_code == 200
    assert body["search"] == ""
    assert body["location"] == ""
    assert body["summary"] == {
        "job1": {"active": 1, "total": 3},
        "node": {"active": 1, "total": 1},
    }
    assert list(body["labels"]) == ["job1", "node", "job2"]
    assert body["labels"]["job2"] == [
        {
            "discoveredLabels": {"job": "job2", "instance": "b:9090"},
            "labels": {},
            "isDropped": True,
        }
    ]


@pytest.mark.asyncio
async def test_service_discovery_with_query(test_app):
    """The search parameter filters active and dropped targets"""
    await test_app.config["targets_source"].load()

    test_client = test_app.test_client()
    response = await test_client.get("/service-discovery?search=9090")
    body = await response.get_json()

    assert response.status_code == 200
    assert body["search"] == "9090"
    assert body["location"] == "?search=9090"
    assert body["summary"] == {"job1": {"active": 1, "total": 3}}
    assert list(body["labels"]) == ["job1", "job2"]


@pytest.mark.asyncio
async def test_service_discovery_query_matching_nothing(test_app):
    """A query matching nothing is an empty view, not an error"""
    await test_app.config["targets_source"].load()

    test_client = test_app.test_client()
    response = await test_client.get("/service-discovery?search=zzzz")
    body = await response.get_json()

    assert response.status_code == 200
    assert body["summary"] == {}
    assert body["labels"] == {}


@pytest.mark.asyncio
async def test_service_discovery_with_repeated_query(test_app):
    """Only one search query can be given"""
    await test_app.config["targets_source"].load()

    test_client = test_app.test_client()
    response = await test_client.get("/service-discovery?search=a&search=b")
    body = await response.get_json()

    assert response.status_code == 400
    assert body["message"]


@pytest.mark.asyncio
@patch(
    "fa_target_lens.rest_api.ServiceDiscoveryFilter.from_store",
    side_effect=ValueError("Cannot search with an empty pattern"),
)
async def test_service_discovery_invalid_query(_, test_app):
    """Errors applying the search query are reported as a bad request"""
    await test_app.config["targets_source"].load()

    test_client = test_app.test_client()
    response = await test_client.get("/service-discovery?search=a")
    body = await response.get_json()

    assert response.status_code == 400
    assert body == {"message": "Cannot search with an empty pattern"}


@pytest.mark.asyncio
async def test_reload(test_app, targets_file):
    """A reload makes changes to the source visible"""
    await test_app.config["targets_source"].load()
    test_client = test_app.test_client()

    changed = json.loads(json.dumps(API_RESPONSE))
    changed["data"]["activeTargets"] = changed["data"]["activeTargets"][1:]
    targets_file.write_text(json.dumps(changed))

    reload_response = await test_client.post("/reload")
    assert reload_response.status_code == 200
    assert (await reload_response.get_json())["status"] == "ready"

    response = await test_client.get("/service-discovery")
    body = await response.get_json()
    assert body["summary"] == {"node": {"active": 1, "total": 1}}


@pytest.mark.asyncio
async def test_failed_reload(test_app, targets_file):
    """A failed reload is reported and leaves the view unavailable"""
    await test_app.config["targets_source"].load()
    test_client = test_app.test_client()

    targets_file.unlink()
    reload_response = await test_client.post("/reload")
    assert reload_response.status_code == 502

    response = await test_client.get("/service-discovery")
    assert response.status_code == 502
