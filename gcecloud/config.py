"""Adapter configuration.

Every recognized option is a field of the immutable GCEConfig with its
default. Values are resolved once, before any other component is built.
A config file is TOML with a single ``[global]`` table using dashed keys::

    [global]
    project-id = "my-project"
    network-name = "default"
    node-tags = ["k8s-node"]
    multizone = true
"""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from gcecloud.core.exceptions import ConfigError

type RawConfig = dict[str, Any]

DEFAULT_API_ENDPOINT = "https://www.googleapis.com/compute/v1/"


@dataclass(frozen=True, slots=True)
class GCEConfig:
    """Resolved adapter configuration.

    Empty strings mean "not set": the value is then derived from instance
    metadata during topology resolution.

    Args:
        token_url: Alternate token exchange endpoint. Empty uses ADC.
        token_body: Request body POSTed to ``token_url``.
        project_id: Project owning the instances (numeric or symbolic).
        network_project_id: Project owning the network (shared VPC host).
        network_name: Network name, or a full network URL.
        subnetwork_name: Subnetwork name, or a full subnetwork URL.
        node_tags: Tags applied to firewall rules for load balancers.
        node_instance_prefix: Advisory name prefix for all cluster nodes.
        multizone: Manage every zone in the region instead of the local one.
        api_endpoint: Compute API endpoint override. Empty uses the vendor default.
        operation_timeout: Polling deadline for ordinary operations, seconds.
        long_operation_timeout: Polling deadline for long operations such as
            route creation in large clusters, seconds.
        poll_interval: Delay between operation status checks, seconds.
        poll_qps: Token bucket refill rate for status checks.
        poll_burst: Token bucket capacity.
        thread_pool_size: Workers dispatching blocking vendor SDK calls.
    """

    token_url: str = ""
    token_body: str = ""
    project_id: str = ""
    network_project_id: str = ""
    network_name: str = ""
    subnetwork_name: str = ""
    node_tags: tuple[str, ...] = ()
    node_instance_prefix: str = ""
    multizone: bool = False
    api_endpoint: str = ""
    operation_timeout: float = 15 * 60.0
    long_operation_timeout: float = 60 * 60.0
    poll_interval: float = 3.0
    poll_qps: float = 10.0
    poll_burst: int = 100
    thread_pool_size: int = 8

    @classmethod
    def from_mapping(cls, raw: RawConfig) -> GCEConfig:
        """Build a config from a ``[global]`` table, accepting dashed or underscored keys."""
        known = {f.name: f for f in fields(cls)}
        values: dict[str, Any] = {}

        for key, value in raw.items():
            name = key.replace("-", "_")
            if name not in known:
                raise ConfigError(
                    f"Unknown config option '{key}'. Valid: {', '.join(sorted(known))}"
                )
            values[name] = _coerce(key, known[name].default, value)

        return cls(**values)


def _coerce(key: str, default: object, value: object) -> object:
    match default:
        case bool():
            if not isinstance(value, bool):
                raise ConfigError(f"Option '{key}' must be a boolean, got {value!r}")
            return value
        case tuple():
            if isinstance(value, str):
                return tuple(t for t in (s.strip() for s in value.split(",")) if t)
            if isinstance(value, list) and all(isinstance(v, str) for v in value):
                return tuple(value)
            raise ConfigError(f"Option '{key}' must be a list of strings, got {value!r}")
        case int() if not isinstance(default, bool):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(f"Option '{key}' must be a positive integer, got {value!r}")
            return value
        case float():
            if isinstance(value, bool) or not isinstance(value, int | float) or value <= 0:
                raise ConfigError(f"Option '{key}' must be a positive number, got {value!r}")
            return float(value)
        case _:
            if not isinstance(value, str):
                raise ConfigError(f"Option '{key}' must be a string, got {value!r}")
            return value


def load_config(path: Path | str) -> GCEConfig:
    """Read a TOML config file. A missing file yields the defaults."""
    path = Path(path)
    if not path.is_file():
        return GCEConfig()

    try:
        with path.open("rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Couldn't read config {path}: {e}") from e

    section = raw.get("global", {})
    if not isinstance(section, dict):
        raise ConfigError(f"[global] in {path} must be a table")

    return GCEConfig.from_mapping(section)
