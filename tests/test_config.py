from pathlib import Path

import pytest

from zkvoting import VotingConfig, load_config
from zkvoting.exceptions import ConfigurationError

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_missing_pyproject_gives_defaults(tmp_path):
    assert load_config(tmp_path) == VotingConfig()


def test_project_configuration():
    config = load_config(REPO_ROOT)

    assert config.vote_limit == 2
    assert config.circuit_path == "circuits/vote.zok"
    assert config.reuse_provisioning is True
    assert config.contract_address is None


def test_table_values_override_defaults(tmp_path):
    (tmp_path / "pyproject.toml").write_text(
        '[tool.zkvoting.config]\nvote_limit = 4\nworking_dir = "/var/zk"\nstage_timeout = 30.0\n',
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.vote_limit == 4
    assert config.working_dir == "/var/zk"
    assert config.stage_timeout == 30.0
    assert config.node_url == VotingConfig().node_url


@pytest.mark.parametrize(
    "table",
    [
        "vote_limt = 3\n",
        "vote_limit = 0\n",
        "vote_limit = true\n",
        "stage_timeout = -1\n",
    ],
)
def test_invalid_configuration(tmp_path, table):
    (tmp_path / "pyproject.toml").write_text(f"[tool.zkvoting.config]\n{table}", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(tmp_path)


def test_unparsable_pyproject(tmp_path):
    (tmp_path / "pyproject.toml").write_text("[tool.zkvoting.config\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        load_config(tmp_path)


def test_update_ignores_unset_flags():
    config = VotingConfig().update(vote_limit=3, node_url=None)

    assert config.vote_limit == 3
    assert config.node_url == VotingConfig().node_url
