"""Tests for the CLI."""

import json
import re
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from tagwatch.adapters.base import BaseAdapter, ContentIdentity
from tagwatch.cli import main
from tagwatch.models import ImageState, MonitoredImage, RegistryKind
from tagwatch.store import StateStore


class StaticAdapter(BaseAdapter):
    name = "static"

    def fetch_content_id(self, ref, tag):
        if ref.repository == "library/broken":
            return self._fallback(ref, tag, "connection refused")
        return ContentIdentity("sha256:" + ref.image)

    def fetch_all_tags(self, ref):
        return ["1.0.0", "2.0.0"]


@pytest.fixture
def data_dir(tmp_path):
    StateStore(tmp_path).save_images(
        [
            MonitoredImage("Web", "nginx"),
            MonitoredImage("Pinned", "redis", "1.0.0"),
        ]
    )
    return tmp_path


@pytest.fixture
def fake_registry():
    with patch("tagwatch.checker.build_adapters") as mock_build:
        mock_build.return_value = {RegistryKind.HUB: StaticAdapter()}
        yield mock_build


class TestCliBasics:
    """Test basic CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "tagwatch" in result.output

    def test_version_command(self):
        runner = CliRunner()
        result = runner.invoke(main, ["version"])
        assert result.exit_code == 0
        assert "tagwatch version" in result.output
        assert re.search(r"\d+\.\d+\.\d+", result.output)

    def test_classify(self):
        runner = CliRunner()
        result = runner.invoke(main, ["classify", "lscr.io/linuxserver/sonarr:latest"])
        assert result.exit_code == 0
        assert "mirror" in result.output
        assert "linuxserver/sonarr" in result.output


class TestCheckCommand:
    def test_check_all(self, data_dir, fake_registry):
        runner = CliRunner()
        result = runner.invoke(main, ["--data-dir", str(data_dir), "check", "--pacing", "0"])

        assert result.exit_code == 0, result.output
        assert "Checked 2 image(s)" in result.output
        assert "Pinned: update available, newer version 2.0.0" in result.output

        states = StateStore(data_dir).load_states()
        assert states[("nginx", "latest")].current_content_id == "sha256:nginx"
        assert states[("redis", "1.0.0")].has_update is True

    def test_check_index(self, data_dir, fake_registry):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(data_dir), "check", "--index", "0"])

        assert result.exit_code == 0
        assert list(StateStore(data_dir).load_states()) == [("nginx", "latest")]

    def test_check_index_out_of_range(self, data_dir, fake_registry):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(data_dir), "check", "--index", "7"])

        assert result.exit_code != 0
        assert "No monitored image at index 7" in result.output

    def test_degraded_check(self, tmp_path, fake_registry):
        StateStore(tmp_path).save_images([MonitoredImage("Broken", "broken")])
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(tmp_path), "check"])

        assert result.exit_code == 0
        assert "registry unreachable" in result.output
        assert StateStore(tmp_path).load_states()[("broken", "latest")].error is True

    def test_auth_and_env(self, data_dir, fake_registry):
        runner = CliRunner()
        result = runner.invoke(
            main,
            ["check", "--pacing", "0", "--auth", "ghcr.io=u:p"],
            env={"TAGWATCH_DATA_DIR": str(data_dir), "TAGWATCH_REQUEST_TIMEOUT": "3"},
        )

        assert result.exit_code == 0
        _, kwargs = fake_registry.call_args
        assert kwargs["cli_auths"] == ["ghcr.io=u:p"]
        assert kwargs["timeout"] == 3.0


class TestStateCommands:
    @pytest.fixture
    def checked(self, data_dir):
        store = StateStore(data_dir)
        rows = [
            ImageState("nginx", "latest", current_content_id="sha256:b", has_update=True, platform="linux/amd64"),
            ImageState("redis", "1.0.0", current_content_id="sha256:r"),
        ]
        store.save_states({row.key: row for row in rows})
        return data_dir

    def test_status(self, checked):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(checked), "status"])

        assert result.exit_code == 0
        assert "nginx:latest  update available" in result.output
        assert "linux/amd64" in result.output
        assert "redis:1.0.0  up to date" in result.output

    def test_status_json(self, checked):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(checked), "status", "--json"])

        assert result.exit_code == 0
        rows = json.loads(result.output)
        assert rows[0]["hasUpdate"] is True

    def test_status_empty(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(tmp_path), "status"])

        assert result.exit_code == 0
        assert "No state recorded yet." in result.output

    def test_dismiss(self, checked):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(checked), "dismiss", "nginx", "latest"])

        assert result.exit_code == 0
        state = StateStore(checked).load_states()[("nginx", "latest")]
        assert state.dismissed is True
        assert state.dismissed_content_id == "sha256:b"

    def test_reset(self, checked):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(checked), "reset", "nginx", "latest"])

        assert result.exit_code == 0
        state = StateStore(checked).load_states()[("nginx", "latest")]
        assert state.has_update is False
        assert state.dismissed is False

    def test_unknown_pair(self, checked):
        runner = CliRunner()
        result = runner.invoke(main, ["-d", str(checked), "dismiss", "mysql", "8.0.0"])

        assert result.exit_code == 1
        assert "No state for mysql:8.0.0" in result.output
