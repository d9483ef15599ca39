from pathlib import Path

import pytest

from gcecloud.config import GCEConfig, load_config
from gcecloud.core.exceptions import ConfigError


class TestFromMapping:
    def test_defaults(self):
        config = GCEConfig.from_mapping({})
        assert config == GCEConfig()
        assert config.poll_interval == 3.0
        assert config.poll_qps == 10.0
        assert config.poll_burst == 100
        assert config.long_operation_timeout == 3600.0

    def test_dashed_keys(self):
        config = GCEConfig.from_mapping({
            "project-id": "p",
            "network-project-id": "host",
            "node-instance-prefix": "gke-",
            "multizone": True,
        })
        assert config.project_id == "p"
        assert config.network_project_id == "host"
        assert config.node_instance_prefix == "gke-"
        assert config.multizone is True

    def test_node_tags_list(self):
        config = GCEConfig.from_mapping({"node-tags": ["a", "b"]})
        assert config.node_tags == ("a", "b")

    def test_node_tags_comma_string(self):
        config = GCEConfig.from_mapping({"node-tags": "a, b,,c"})
        assert config.node_tags == ("a", "b", "c")

    def test_int_accepted_for_float(self):
        assert GCEConfig.from_mapping({"poll-interval": 1}).poll_interval == 1.0

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="Unknown config option 'bogus'"):
            GCEConfig.from_mapping({"bogus": 1})

    @pytest.mark.parametrize(
        ("key", "value"),
        [
            ("multizone", "yes"),
            ("project-id", 5),
            ("poll-burst", 0),
            ("poll-burst", True),
            ("poll-qps", -1),
            ("node-tags", [1, 2]),
        ],
    )
    def test_bad_types(self, key, value):
        with pytest.raises(ConfigError):
            GCEConfig.from_mapping({key: value})


class TestLoadConfig:
    def test_reads_global_table(self, tmp_path: Path):
        path = tmp_path / "gce.conf"
        path.write_text(
            '[global]\n'
            'project-id = "my-project"\n'
            'network-name = "default"\n'
            'node-tags = ["k8s-node"]\n'
            'multizone = true\n'
        )
        config = load_config(path)
        assert config.project_id == "my-project"
        assert config.network_name == "default"
        assert config.node_tags == ("k8s-node",)
        assert config.multizone is True

    def test_missing_file_gives_defaults(self, tmp_path: Path):
        assert load_config(tmp_path / "nope.conf") == GCEConfig()

    def test_unparsable(self, tmp_path: Path):
        path = tmp_path / "gce.conf"
        path.write_text("[global\nproject-id = ")
        with pytest.raises(ConfigError, match="Couldn't read config"):
            load_config(path)

    def test_global_not_a_table(self, tmp_path: Path):
        path = tmp_path / "gce.conf"
        path.write_text('global = "x"\n')
        with pytest.raises(ConfigError, match="must be a table"):
            load_config(path)
