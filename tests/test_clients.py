from __future__ import annotations

import pytest
from google.api_core.client_options import ClientOptions
from google.auth.credentials import AnonymousCredentials
from google.cloud import compute_v1

from gcecloud.clients import build_clients, compute_api_host
from gcecloud.core.exceptions import ConfigError


class TestComputeApiHost:
    @pytest.mark.parametrize(
        ("endpoint", "expected"),
        [
            ("https://www.googleapis.com/compute/v1/", "https://www.googleapis.com"),
            ("https://compute.example/compute/v1", "https://compute.example"),
            ("http://localhost:8080/compute/v1/", "http://localhost:8080"),
        ],
    )
    def test_keeps_scheme_and_host(self, endpoint, expected):
        assert compute_api_host(endpoint) == expected

    @pytest.mark.parametrize(
        "endpoint",
        [
            "https://compute.example/compute/staging_v1/",
            "https://compute.example/v1/",
            "https://compute.example/",
            "https://compute.example/prefix/compute/v1/",
        ],
    )
    def test_other_paths_rejected(self, endpoint):
        with pytest.raises(ConfigError, match="api-endpoint path"):
            compute_api_host(endpoint)

    def test_relative_rejected(self):
        with pytest.raises(ConfigError, match="absolute URL"):
            compute_api_host("compute.example/compute/v1/")

    def test_generated_client_uses_host(self):
        host = compute_api_host("https://compute.example/compute/v1/")
        client = compute_v1.DisksClient(
            credentials=AnonymousCredentials(),
            client_options=ClientOptions(api_endpoint=host),
        )
        assert client._transport._host == "https://compute.example"


class TestBuildClients:
    def test_endpoint_path_is_not_dropped_silently(self):
        with pytest.raises(ConfigError, match="staging_v1"):
            build_clients(AnonymousCredentials(), "https://compute.example/compute/staging_v1/")
