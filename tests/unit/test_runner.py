"""
Tests for the docker/git command wrapper.
"""

import subprocess
from unittest.mock import patch

import pytest

from cloudship.core.exceptions import BuildError
from cloudship.runner import (
    CommandError,
    build_image,
    build_image_tag,
    docker_login,
    push_image,
    run_command,
)


def completed(args, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(args, returncode, stdout=stdout, stderr=stderr)


class TestRunCommand:

    @patch("cloudship.runner.subprocess.run")
    def test_returns_completed_process(self, mock_run):
        mock_run.return_value = completed(["echo"], stdout="hi\n")

        result = run_command(["echo", "hi"])

        assert result.stdout == "hi\n"
        assert mock_run.call_args.kwargs["capture_output"] is True

    @patch("cloudship.runner.subprocess.run")
    def test_failure_combines_output(self, mock_run):
        mock_run.return_value = completed(["docker"], returncode=1, stdout="step 3/5", stderr="no space left")

        with pytest.raises(CommandError) as exc_info:
            run_command(["docker", "build", "."])

        assert exc_info.value.return_code == 1
        assert "step 3/5" in exc_info.value.stderr
        assert "no space left" in exc_info.value.stderr

    @patch("cloudship.runner.subprocess.run")
    def test_check_false_returns_failure(self, mock_run):
        mock_run.return_value = completed(["false"], returncode=1)

        assert run_command(["false"], check=False).returncode == 1

    @patch("cloudship.runner.subprocess.run", side_effect=FileNotFoundError)
    def test_missing_executable(self, mock_run):
        with pytest.raises(CommandError) as exc_info:
            run_command(["docker", "version"])

        assert exc_info.value.return_code == 127


class TestBuildImageTag:

    @patch("cloudship.runner.subprocess.run")
    def test_git_hash_and_timestamp(self, mock_run):
        mock_run.return_value = completed(["git"], stdout="abc1234\n")

        assert build_image_tag(now=1700000000) == "abc1234-1700000000"

    @patch("cloudship.runner.subprocess.run")
    def test_falls_back_outside_git(self, mock_run):
        mock_run.return_value = completed(["git"], returncode=128, stderr="not a git repository")

        assert build_image_tag(now=1700000000) == "build-1700000000"

    @patch("cloudship.runner.subprocess.run", side_effect=FileNotFoundError)
    def test_falls_back_without_git(self, mock_run):
        assert build_image_tag(now=1700000000) == "build-1700000000"


class TestDocker:

    @patch("cloudship.runner.subprocess.run")
    def test_login_passes_password_on_stdin(self, mock_run):
        mock_run.return_value = completed(["docker"])

        docker_login("registry.example", "AWS", "s3cret")

        args = mock_run.call_args.args[0]
        assert "--password-stdin" in args
        assert "s3cret" not in args
        assert mock_run.call_args.kwargs["input"] == "s3cret"

    @patch("cloudship.runner.subprocess.run")
    def test_login_failure_is_build_error(self, mock_run):
        mock_run.return_value = completed(["docker"], returncode=1, stderr="unauthorized")

        with pytest.raises(BuildError, match="unauthorized"):
            docker_login("registry.example", "AWS", "bad")

    def test_build_requires_dockerfile(self, tmp_path):
        with pytest.raises(BuildError, match="Dockerfile not found"):
            build_image("registry.example/app:1", tmp_path / "Dockerfile", tmp_path)

    @patch("cloudship.runner.subprocess.run")
    def test_build_uses_buildx_for_amd64(self, mock_run, config_dir):
        mock_run.return_value = completed(["docker"])

        build_image("registry.example/app:1", config_dir / "Dockerfile", config_dir)

        args = mock_run.call_args.args[0]
        assert args[:3] == ["docker", "buildx", "build"]
        assert "linux/amd64" in args
        assert "--provenance=false" in args
        assert mock_run.call_count == 1

    @patch("cloudship.runner.subprocess.run")
    def test_build_falls_back_to_plain_build(self, mock_run, config_dir):
        mock_run.side_effect = [
            completed(["docker"], returncode=1, stderr="buildx: not a docker command"),
            completed(["docker"]),
        ]

        build_image("registry.example/app:1", config_dir / "Dockerfile", config_dir)

        assert mock_run.call_args.args[0][:2] == ["docker", "build"]

    @patch("cloudship.runner.subprocess.run")
    def test_build_fails_when_both_builders_fail(self, mock_run, config_dir):
        mock_run.return_value = completed(["docker"], returncode=1, stderr="syntax error")

        with pytest.raises(BuildError, match="syntax error"):
            build_image("registry.example/app:1", config_dir / "Dockerfile", config_dir)

    @patch("cloudship.runner.subprocess.run")
    def test_push_failure_is_build_error(self, mock_run):
        mock_run.return_value = completed(["docker"], returncode=1, stderr="denied")

        with pytest.raises(BuildError, match="denied"):
            push_image("registry.example/app:1")
