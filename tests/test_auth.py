import base64
import json
import os
from unittest.mock import MagicMock, patch

from tagwatch.registry.auth import resolve_credentials
from tagwatch.registry.client import RegistryClient


def _write_docker_config(home, auths):
    docker_dir = home / ".docker"
    docker_dir.mkdir()
    (docker_dir / "config.json").write_text(json.dumps({"auths": auths}))


def _basic(user, pwd):
    return base64.b64encode(f"{user}:{pwd}".encode()).decode()


class TestResolveCredentials:
    """Test registry credential resolution."""

    @patch("tagwatch.registry.auth.Path.home")
    def test_precedence(self, mock_home, tmp_path):
        """CLI > domain env > global env > config.json."""
        mock_home.return_value = tmp_path
        _write_docker_config(tmp_path, {"registry.example.com": {"auth": _basic("docker_user", "docker_pass")}})

        env = {
            "TAGWATCH_AUTH_REGISTRY_EXAMPLE_COM_USERNAME": "domain_user",
            "TAGWATCH_AUTH_REGISTRY_EXAMPLE_COM_PASSWORD": "domain_pass",
            "TAGWATCH_USERNAME": "global_user",
            "TAGWATCH_PASSWORD": "global_pass",
        }
        with patch.dict(os.environ, env, clear=True):
            assert resolve_credentials(
                "registry.example.com", cli_auths=["registry.example.com=cli_user:cli_pass"]
            ) == ("cli_user", "cli_pass")
            assert resolve_credentials("registry.example.com") == ("domain_user", "domain_pass")

        with patch.dict(os.environ, {"TAGWATCH_USERNAME": "global_user", "TAGWATCH_PASSWORD": "global_pass"}, clear=True):
            assert resolve_credentials("registry.example.com") == ("global_user", "global_pass")

        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("registry.example.com") == ("docker_user", "docker_pass")

    @patch("tagwatch.registry.auth.Path.home")
    def test_hub_aliases(self, mock_home, tmp_path):
        """Docker Hub hostnames share credentials."""
        mock_home.return_value = tmp_path

        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials(
                "registry-1.docker.io", cli_auths=["docker.io=alias_user:alias_pass"]
            ) == ("alias_user", "alias_pass")

        env = {
            "TAGWATCH_AUTH_DOCKER_IO_USERNAME": "env_alias_user",
            "TAGWATCH_AUTH_DOCKER_IO_PASSWORD": "env_alias_pass",
        }
        with patch.dict(os.environ, env, clear=True):
            assert resolve_credentials("registry-1.docker.io") == ("env_alias_user", "env_alias_pass")

    @patch("tagwatch.registry.auth.Path.home")
    def test_hub_legacy_config_key(self, mock_home, tmp_path):
        mock_home.return_value = tmp_path
        _write_docker_config(tmp_path, {"https://index.docker.io/v1/": {"auth": _basic("hub_user", "hub_pass")}})

        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("registry-1.docker.io") == ("hub_user", "hub_pass")

    @patch("tagwatch.registry.auth.Path.home")
    def test_nothing_configured(self, mock_home, tmp_path):
        mock_home.return_value = tmp_path

        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("ghcr.io", cli_auths=["malformed", "other.io=u:p"]) == (None, None)

    @patch("tagwatch.registry.auth.Path.home")
    def test_unreadable_config(self, mock_home, tmp_path):
        mock_home.return_value = tmp_path
        (tmp_path / ".docker").mkdir()
        (tmp_path / ".docker" / "config.json").write_text("{not json")

        with patch.dict(os.environ, {}, clear=True):
            assert resolve_credentials("ghcr.io") == (None, None)


class TestClientAuthentication:
    @patch("tagwatch.registry.client.requests.Session")
    def test_token_request_sends_credentials(self, mock_session_cls):
        """Credentials are sent to the token realm after a 401."""
        mock_session = mock_session_cls.return_value

        resp_401 = MagicMock()
        resp_401.status_code = 401
        resp_401.headers = {
            "WWW-Authenticate": 'Bearer realm="https://ghcr.io/token",service="ghcr.io",scope="repository:org/app:pull"'
        }

        token_resp = MagicMock()
        token_resp.status_code = 200
        token_resp.json.return_value = {"token": "fake-token"}

        resp_200 = MagicMock()
        resp_200.status_code = 200
        resp_200.json.return_value = {"tags": ["1.0.0"]}
        resp_200.links = {}

        mock_session.get.side_effect = [resp_401, token_resp, resp_200]

        client = RegistryClient("ghcr.io", "org/app", username="myuser", password="mypassword")
        assert client.list_tags() == ["1.0.0"]

        assert mock_session.get.call_count == 3
        args, kwargs = mock_session.get.call_args_list[1]
        assert args[0] == "https://ghcr.io/token"
        assert kwargs["auth"] == ("myuser", "mypassword")
        assert kwargs["params"] == {"service": "ghcr.io", "scope": "repository:org/app:pull"}

        _, retry_kwargs = mock_session.get.call_args_list[2]
        assert retry_kwargs["headers"]["Authorization"] == "Bearer fake-token"
