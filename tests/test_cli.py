"""Tests for the CLI.

These tests drive the commands through Typer's test runner. Pushes go to
a recording pusher instead of a registry.
"""

import json
import os
import subprocess
import sys
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from typer.testing import CliRunner

from ksail_oci import __version__
from ksail_oci.builds import service
from ksail_oci.cli import app

runner = CliRunner()


@pytest.fixture
def patched_pusher(monkeypatch, fake_pusher):
    """Route pushes made by the CLI to the recording pusher."""
    monkeypatch.setattr(
        service.RemoteImagePusher, "from_settings", lambda settings: fake_pusher
    )
    return fake_pusher


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "KSail OCI" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_no_args_shows_help(self) -> None:
        """CLI with no args should show help."""
        result = runner.invoke(app, [])
        assert "Usage:" in result.stdout

    @pytest.mark.parametrize("command", ["config", "validate", "push"])
    def test_subcommand_help(self, command) -> None:
        """Each subcommand should have help."""
        result = runner.invoke(app, [command, "--help"])
        assert result.exit_code == 0
        assert "Usage:" in result.stdout


class TestCLIConfig:
    """Test CLI config command."""

    def test_config_command_shows_all_settings(self) -> None:
        """CLI config should show all configuration fields."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Registry:" in result.stdout
        assert "Operational:" in result.stdout
        assert "Insecure registry" in result.stdout
        assert "Username" in result.stdout
        assert "Password" in result.stdout
        assert "User agent" in result.stdout
        assert "Log level" in result.stdout
        assert "Push timeout" in result.stdout

    def test_config_hides_password(self) -> None:
        """CLI config should not print the password."""
        with patch.dict(os.environ, {"KSAIL_OCI_REGISTRY_PASSWORD": "s3cret"}):
            result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "s3cret" not in result.stdout
        assert "(set)" in result.stdout

    @pytest.mark.parametrize(
        ("variable", "value"),
        [
            ("KSAIL_OCI_LOG_LEVEL", "LOUD"),
            ("KSAIL_OCI_PUSH_TIMEOUT", "soon"),
        ],
    )
    def test_invalid_environment_fails_cleanly(self, variable, value) -> None:
        """Bad settings should print an error and exit 1, not a traceback."""
        with patch.dict(os.environ, {variable: value}):
            result = runner.invoke(app, ["config"])
        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout
        assert not isinstance(result.exception, ValidationError)

    def test_invalid_environment_with_log_level_flag(self, manifest_dir) -> None:
        """--log-level should not bypass settings validation."""
        with patch.dict(os.environ, {"KSAIL_OCI_PUSH_TIMEOUT": "0"}):
            result = runner.invoke(
                app,
                [
                    "--log-level",
                    "DEBUG",
                    "validate",
                    str(manifest_dir),
                    "-r",
                    "localhost:5000",
                    "-v",
                    "1.0.0",
                ],
            )
        assert result.exit_code == 1
        assert "Invalid configuration" in result.stdout

    def test_config_json_contains_all_fields(self) -> None:
        """CLI config --json should contain all config fields."""
        result = runner.invoke(app, ["config", "--json"])
        assert result.exit_code == 0
        config_data = json.loads(result.stdout)
        expected_keys = [
            "log_level",
            "insecure_registry",
            "registry_username",
            "registry_password",
            "user_agent",
            "push_timeout",
        ]
        for key in expected_keys:
            assert key in config_data, f"Missing key: {key}"


class TestCLIValidate:
    """Test CLI validate command."""

    def test_validate_json(self, manifest_dir) -> None:
        """validate --json should print the normalized request and files."""
        result = runner.invoke(
            app,
            [
                "validate",
                str(manifest_dir),
                "--registry",
                "https://localhost:5000/extra",
                "--version",
                "v1.2.3",
                "--repository",
                "Sample/App",
                "--json",
            ],
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["name"] == "app"
        assert data["registryEndpoint"] == "localhost:5000"
        assert data["repository"] == "sample/app"
        assert data["version"] == "1.2.3"
        assert data["reference"] == "localhost:5000/sample/app:1.2.3"
        assert data["files"] == [str(manifest_dir / "deployment.yaml")]

    def test_validate_text(self, manifest_dir) -> None:
        """validate should print a summary."""
        result = runner.invoke(
            app, ["validate", str(manifest_dir), "-r", "localhost:5000", "-v", "latest"]
        )
        assert result.exit_code == 0
        assert "Valid build request" in result.stdout
        assert "localhost:5000/app:latest" in result.stdout

    def test_validate_missing_source_json(self, tmp_path) -> None:
        """validate --json should report errors with a stable code."""
        result = runner.invoke(
            app,
            [
                "validate",
                str(tmp_path / "missing"),
                "-r",
                "localhost:5000",
                "-v",
                "1.0.0",
                "--json",
            ],
        )
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error"]["code"] == "source_path_not_found"

    def test_validate_invalid_version_json(self, manifest_dir) -> None:
        """Invalid versions should include the parse failure as cause."""
        result = runner.invoke(
            app,
            [
                "validate",
                str(manifest_dir),
                "-r",
                "localhost:5000",
                "-v",
                "invalid",
                "--json",
            ],
        )
        assert result.exit_code == 1
        error = json.loads(result.stdout)["error"]
        assert error["code"] == "version_invalid"
        assert "cause" in error

    def test_validate_empty_manifest(self, manifest_dir) -> None:
        """validate should fail on empty manifest files."""
        (manifest_dir / "empty.yml").write_text("")
        result = runner.invoke(
            app, ["validate", str(manifest_dir), "-r", "localhost:5000", "-v", "1.0.0"]
        )
        assert result.exit_code == 1
        assert "Validation failed" in result.stdout

    def test_validate_no_manifests_json(self, tmp_path) -> None:
        """validate should fail when there is nothing to package."""
        result = runner.invoke(
            app,
            ["validate", str(tmp_path), "-r", "localhost:5000", "-v", "1.0.0", "--json"],
        )
        assert result.exit_code == 1
        assert json.loads(result.stdout)["error"]["code"] == "no_manifest_files"

    def test_validate_request_file(self, manifest_dir) -> None:
        """Flags should override values from a request file."""
        request_file = manifest_dir.parent / "request.yaml"
        request_file.write_text(
            "sourcePath: app\n"
            "registryEndpoint: ghcr.io\n"
            "version: 0.1.0\n"
            "repository: team/app\n"
        )
        result = runner.invoke(
            app,
            ["validate", "--file", str(request_file), "-v", "2.0.0", "--json"],
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["reference"] == "ghcr.io/team/app:2.0.0"
        assert os.path.samefile(data["sourcePath"], manifest_dir)


class TestCLIPush:
    """Test CLI push command."""

    def test_push_json(self, manifest_dir, patched_pusher) -> None:
        """push --json should print artifact metadata."""
        result = runner.invoke(
            app,
            [
                "push",
                str(manifest_dir),
                "--registry",
                "localhost:5000",
                "--version",
                "1.2.3",
                "--repository",
                "sample/app",
                "--json",
            ],
        )
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["name"] == "app"
        assert data["version"] == "1.2.3"
        assert data["tag"] == "1.2.3"
        assert data["registryEndpoint"] == "localhost:5000"
        assert data["repository"] == "sample/app"
        assert data["sourcePath"] == str(manifest_dir)
        assert "createdAt" in data
        assert data["reference"] == "localhost:5000/sample/app:1.2.3"
        assert data["digest"] == patched_pusher.digest
        assert len(patched_pusher.calls) == 1

    def test_push_uses_configured_timeout(self, manifest_dir, patched_pusher) -> None:
        """push should default the deadline to the configured timeout."""
        with patch.dict(os.environ, {"KSAIL_OCI_PUSH_TIMEOUT": "42"}):
            result = runner.invoke(
                app, ["push", str(manifest_dir), "-r", "localhost:5000", "-v", "1.0.0"]
            )
        assert result.exit_code == 0
        assert "Pushed localhost:5000/app:1.0.0" in result.stdout
        assert patched_pusher.calls[0].timeout == 42

    def test_push_timeout_flag(self, manifest_dir, patched_pusher) -> None:
        """--timeout should override the configured timeout."""
        result = runner.invoke(
            app,
            [
                "push",
                str(manifest_dir),
                "-r",
                "localhost:5000",
                "-v",
                "1.0.0",
                "--timeout",
                "5",
            ],
        )
        assert result.exit_code == 0
        assert patched_pusher.calls[0].timeout == 5

    def test_push_failure_json(self, manifest_dir, patched_pusher) -> None:
        """Push failures should be reported with the publish error code."""
        patched_pusher.error = ConnectionError("registry unavailable")
        result = runner.invoke(
            app,
            ["push", str(manifest_dir), "-r", "localhost:5000", "-v", "1.0.0", "--json"],
        )
        assert result.exit_code == 1
        error = json.loads(result.stdout)["error"]
        assert error["code"] == "publish_failed"
        assert error["cause"] == "registry unavailable"

    def test_push_invalid_request_not_pushed(self, tmp_path, patched_pusher) -> None:
        """Validation failures should not reach the registry."""
        result = runner.invoke(app, ["push", str(tmp_path), "-v", "1.0.0"])
        assert result.exit_code == 1
        assert "Push failed" in result.stdout
        assert patched_pusher.calls == []


class TestModuleEntryPoint:
    """Test python -m ksail_oci entry point."""

    def test_module_help(self) -> None:
        """python -m ksail_oci --help should work."""
        result = subprocess.run(
            [sys.executable, "-m", "ksail_oci", "--help"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert "KSail OCI" in result.stdout

    def test_module_version(self) -> None:
        """python -m ksail_oci --version should work."""
        result = subprocess.run(
            [sys.executable, "-m", "ksail_oci", "--version"],
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0
        assert __version__ in result.stdout
