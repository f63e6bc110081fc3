"""
Where Target-lens gets its snapshot of targets from.

A source is either the base URL of a Prometheus server, in which case the
targets API at api/v1/targets is queried, or the path of a JSON or YAML file
holding a saved targets API response.

A source is always in one of three states: loading, error or ready.  Loading
never raises, failures are kept as the error state until the next reload, and
no retries are made.
"""
import asyncio
import enum
import json
import logging
import os
import re
from typing import Any, Mapping, Optional
from urllib.parse import urlparse

import aiofiles
import attr
import jsonschema
import requests
import validators
import yaml

from .targets import ServiceMap

LOGGER = logging.getLogger(__name__)

TARGETS_API_PATH = "api/v1/targets"


class FetchState(enum.Enum):
    """State of a TargetsSource"""

    LOADING = "loading"
    ERROR = "error"
    READY = "ready"


def is_url(location: str) -> bool:
    """Whether the location of a source is a URL rather than a file path"""
    return location.startswith(("http://", "https://"))


def targets_api_url(base_url: str) -> str:
    """URL of the targets API for a Prometheus base URL"""
    return f"{base_url.rstrip('/')}/{TARGETS_API_PATH}"


HOSTNAME_RE = re.compile(r"(?!-)[a-z0-9-]{1,63}(?<!-)$", re.IGNORECASE)


@validators.validator
def valid_hostname(hostname: str) -> bool:
    """Validator for hostnames without a top-level domain, e.g. localhost or
    the name of a container

    Taken from https://stackoverflow.com/questions/2532053/validate-a-hostname-string
    """
    if not hostname.strip():
        return False

    if hostname[-1] == ".":
        # strip exactly one dot from the right, if present
        hostname = hostname[:-1]

    if len(hostname) > 253:
        return False

    labels = hostname.split(".")

    # the TLD must be not all-numeric
    if re.match(r"[0-9]+$", labels[-1]):
        return False

    return all(HOSTNAME_RE.match(label) for label in labels)


def validate_base_url(base_url: str) -> bool:
    """Whether base_url is an http(s) URL with a valid hostname / IP and port"""
    parsed = urlparse(base_url)

    try:
        host = parsed.hostname
        port = parsed.port
    except ValueError:
        raise ValueError(f"Invalid port in {base_url}")

    if not host:
        raise ValueError(f"No host in {base_url}")

    if not (
        valid_hostname(host)
        or validators.domain(host)
        or validators.ipv4(host)
        or validators.ipv6(host)
    ):
        raise ValueError(f"Invalid host {host}")

    if port is not None and port not in range(1, 2 ** 16):
        raise ValueError(f"Invalid port number {port}")

    return True


@attr.s(slots=True, kw_only=True)
class TargetsSource:
    """Loads and holds one snapshot of the targets of a Prometheus server"""

    location: str = attr.ib()
    timeout: float = attr.ib(default=10.0, converter=float)
    state: FetchState = attr.ib(init=False, default=FetchState.LOADING)
    service_map: Optional[ServiceMap] = attr.ib(init=False, default=None)
    error: Optional[str] = attr.ib(init=False, default=None)
    _load_lock: asyncio.Lock = attr.ib(init=False, factory=asyncio.Lock)

    @location.validator
    def _validate_location(self, _: attr.Attribute, location: str) -> None:
        if not location or not location.strip():
            raise ValueError("Empty targets source")

        if is_url(location):
            validate_base_url(location)

    async def load(self) -> FetchState:
        """Load the snapshot, replacing the current one on success

        Returns the resulting state
        """
        async with self._load_lock:
            self.state = FetchState.LOADING
            self.error = None

            try:
                response = await self.read_response()
                service_map = ServiceMap.from_api_response(response)
            except (
                OSError,
                requests.RequestException,
                ValueError,
                TypeError,
                yaml.YAMLError,
                jsonschema.ValidationError,
            ) as err:
                LOGGER.error(f"Failed to load targets from {self.location}")
                LOGGER.error(f"{err}")
                self.state = FetchState.ERROR
                self.error = f"{err}"
                self.service_map = None
            else:
                LOGGER.info(
                    f"Loaded {len(service_map.active_targets)} active and "
                    f"{len(service_map.dropped_targets)} dropped targets from {self.location}"
                )
                self.state = FetchState.READY
                self.service_map = service_map

        return self.state

    async def reload(self) -> FetchState:
        """Load a fresh snapshot from the same location"""
        LOGGER.info(f"Reloading targets from {self.location}")
        return await self.load()

    async def read_response(self) -> Mapping[str, Any]:
        """Read the raw targets API response from the location"""
        if is_url(self.location):
            return await asyncio.to_thread(self.fetch_response)

        return await self.read_file_response()

    def fetch_response(self) -> Mapping[str, Any]:
        """Query the targets API of the Prometheus server

        Raises a requests.HTTPError for an unsuccessful status code
        """
        url = targets_api_url(self.location)
        LOGGER.debug(f"Fetching {url}")

        response = requests.get(url, timeout=self.timeout, headers={"Accept": "application/json"})
        response.raise_for_status()
        return response.json()

    async def read_file_response(self) -> Mapping[str, Any]:
        """Read a saved targets API response from a JSON or YAML file

        If the file does not exist raises a FileNotFoundError
        """
        if not os.path.isfile(self.location):
            raise FileNotFoundError(f"No such targets file {self.location}")

        async with aiofiles.open(self.location, encoding="utf-8") as file_obj:
            contents = await file_obj.read()

        if self.location.endswith((".yaml", ".yml")):
            response = yaml.safe_load(contents)
        else:
            response = json.loads(contents)

        if not isinstance(response, dict):
            raise TypeError(f"Targets file {self.location} does not contain an object")

        return response

    def status(self) -> Mapping[str, Any]:
        """State of the source as a dict suitable for sending as JSON"""
        status = {"status": self.state.value, "source": self.location}
        if self.error is not None:
            status["message"] = self.error
        return status
