"""
REST API for Target-lens provides a searchable view of the scrape targets of
a Prometheus server:

    - a summary per scrape pool, with its number of active targets and its
      total number of targets
    - the discovered and final labels of every target, grouped by scrape pool

The REST API provides the following URLs:

    GET  /service-discovery?search=<query>
        The view of all targets whose labels fuzzy-match the query, best
        match first.  Without a query every target is included.

    POST /reload
        Load a fresh snapshot of the targets from the configured source.

The snapshot of targets is loaded once when the API starts serving and only
changes on reload.  While it loads, /service-discovery answers with 503 and if
loading failed with 502.
"""

import asyncio
import json
import logging
import os
import signal
import sys
from typing import Any, Awaitable, MutableMapping, Optional

import attr
from hypercorn.asyncio import serve
from hypercorn.config import Config
import jsonschema
import toml
import quart

from .filter_controller import SEARCH_PARAM, SearchParamStore, ServiceDiscoveryFilter
from .targets_source import FetchState, TargetsSource

REST_APP = quart.Quart(__name__)
LOGGER = logging.getLogger(__name__)
SHUTDOWN_EVENT = asyncio.Event()

DEFAULT_FETCH_TIMEOUT = 10.0


def run_rest_api(config_file: str, source: Optional[str] = None) -> None:
    """Setup and run the quart web-app that provides the REST API based on the
    config file passed in.

    If config_file is not a valid file-path it is expected that all the
    arguments will come from environment variables.

    source, the Prometheus URL or snapshot file to load targets from, wins
    over the TARGETS_SOURCE environment variable and the config file.
    """

    def get_targets_source() -> str:
        """Use the source argument, environment variables or the config dict to
        find the Prometheus URL or snapshot file to load targets from"""
        targets_location = source or os.getenv("TARGETS_SOURCE")
        if targets_location is None:
            targets_location = config_dict["target-lens"].get("targets_source")
            if not targets_location:
                LOGGER.error("No targets_source defined in config or env")
                sys.exit(1)

        return targets_location

    def get_fetch_timeout() -> float:
        """Use environment variables or the config dict to find the timeout
        for fetching targets"""
        timeout = os.getenv("FETCH_TIMEOUT")
        if timeout is None:
            timeout = config_dict["target-lens"].get("fetch_timeout", DEFAULT_FETCH_TIMEOUT)

        return float(timeout)

    def tls_configured() -> bool:
        """Whether enough config attributes have been set for TLS"""
        return all((hypercorn_config.certfile, hypercorn_config.keyfile))

    config_dict: MutableMapping[str, Any] = {"hypercorn": {}, "target-lens": {}}
    if os.path.isfile(config_file):
        LOGGER.info(f"Loading config from {config_file}")
        config_dict = toml.load(config_file)
        config_dict.setdefault("hypercorn", {})
        config_dict.setdefault("target-lens", {})

    if config_dict["hypercorn"]:
        hypercorn_config = Config.from_mapping(config_dict["hypercorn"])
    else:
        LOGGER.info("Loading configuration from environment variables")
        hypercorn_config = hypercorn_config_from_env()

    setup_logging(hypercorn_config.loglevel)

    try:
        target_source = TargetsSource(location=get_targets_source(), timeout=get_fetch_timeout())
    except ValueError as err:
        LOGGER.error("Invalid targets source configuration")
        LOGGER.error(f"{err}")
        sys.exit(1)

    REST_APP.config["targets_source"] = target_source
    LOGGER.info(f"Targets source: {target_source.location}")

    if tls_configured():
        LOGGER.info(f"Exposing HTTPS REST API with TLS on {hypercorn_config.bind}")
    else:
        LOGGER.info(f"Exposing HTTP REST API without TLS on {hypercorn_config.bind}")

    # If an exception occurs during serving requests, we log it and exit
    # rather than moving on to further processing, so it's not bad in this
    # case to catch all exceptions broadly: it's what we want
    # pylint: disable=broad-except
    try:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)

        loop.add_signal_handler(signal.SIGTERM, _signal_handler)
        loop.add_signal_handler(signal.SIGINT, _signal_handler)

        loop.run_until_complete(
            serve(REST_APP, hypercorn_config, shutdown_trigger=_shutdown_trigger)
        )
    except Exception as err:
        LOGGER.error(f"When trying to serve Target-lens: {err}")
        sys.exit(1)


def _shutdown_trigger(*_: Any) -> Awaitable[None]:
    """Called to allow for a graceful shutdown"""
    return asyncio.create_task(SHUTDOWN_EVENT.wait())


def _signal_handler(*_: Any) -> None:
    """Shutdown the app ASAP"""
    LOGGER.info("Shutting down Target-lens")
    SHUTDOWN_EVENT.set()


def hypercorn_config_from_env() -> Config:
    """Fill in a hypercorn Config object with environment variables"""

    # this grabs all the attributes of the Config class used for configuration
    # skipping over methods and other unusable attributes
    config_attrs = [
        config_attr
        for config_attr in dir(Config)
        if not config_attr.startswith("_") and not callable(getattr(Config, config_attr))
    ]

    hypercorn_config = Config()
    for config_attr in config_attrs:
        if (config_value := os.getenv(config_attr.upper())) is not None:
            setattr(hypercorn_config, config_attr, config_value)

    return hypercorn_config


def setup_logging(log_level: str) -> None:
    """Setup logging format and level"""
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s %(levelname)8s: (%(funcName)s) %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    LOGGER.setLevel(getattr(logging, log_level.upper()))


@REST_APP.before_serving
async def start_loading_targets() -> None:
    """Start loading the snapshot of targets without holding up serving, so
    requests made meanwhile see the loading state"""
    REST_APP.config["targets_load"] = asyncio.create_task(targets_source().load())


def targets_source() -> TargetsSource:
    """Returns the REST API's source of targets"""
    return REST_APP.config["targets_source"]


def json_mimetype() -> str:
    """Returns the mimetype for a JSON response"""
    return "application/json"


@REST_APP.route("/service-discovery", methods=["GET"])
async def service_discovery() -> quart.Response:
    """Summary and labels of the targets matching the search query

    The query parameters of the request are the page location: the search
    query is read from them and the location after applying the query is
    returned along with the view
    """
    source = targets_source()

    if source.state is FetchState.LOADING:
        return status_response(source, 503)

    if source.state is FetchState.ERROR or source.service_map is None:
        return status_response(source, 502)

    store = SearchParamStore(params=request_params())
    try:
        service_discovery_filter = ServiceDiscoveryFilter.from_store(source.service_map, store)
    except (ValueError, TypeError, jsonschema.ValidationError) as err:
        raise InvalidUsage(f"{err}")

    body = service_discovery_filter.to_dict()
    body["location"] = store.query_string

    # json.dumps keeps the order of the scrape pools, quart.jsonify would sort them
    return quart.Response(json.dumps(body), status=200, mimetype=json_mimetype())


@REST_APP.route("/reload", methods=["POST"])
async def reload_targets() -> quart.Response:
    """Load a fresh snapshot of the targets and report the resulting state"""
    source = targets_source()
    state = await source.reload()

    return status_response(source, 200 if state is FetchState.READY else 502)


def request_params() -> MutableMapping[str, str]:
    """Query parameters of the current request, one value per name

    Raises InvalidUsage if the search query is given more than once
    """
    if len(quart.request.args.getlist(SEARCH_PARAM)) > 1:
        raise InvalidUsage("Only one search query can be provided")

    return {name: value for name, value in quart.request.args.items()}


def status_response(source: TargetsSource, status_code: int) -> quart.Response:
    """JSON response describing the state of the targets source"""
    response = quart.jsonify(source.status())
    response.status_code = status_code
    return response


@attr.s
class InvalidUsage(Exception):
    """General exception for the REST API to use when a request does not match
    expectations

    It always returns a JSON response and can optionally be provided a dict of
    information as the payload keyword argument
    """

    message: str = attr.ib()
    status_code: int = attr.ib(default=400)
    payload: Optional[dict] = attr.ib(default=None)

    def to_dict(self):
        """Convert into a dict suitable for sending as JSON"""
        result = dict(self.payload or ())
        result["message"] = self.message
        return result


@REST_APP.errorhandler(InvalidUsage)
def invalid_usage_response(error: InvalidUsage) -> quart.Response:
    """Format an InvalidUsage error as a JSON response"""
    response = quart.jsonify(error.to_dict())
    response.status_code = error.status_code
    return response
