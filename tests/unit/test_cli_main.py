"""
Tests for the CLI entry point (main.py).
"""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from cloudship import main
from cloudship.core.exceptions import (
    ConfigurationError,
    OperationInterruptedError,
    ProvisioningError,
)


@pytest.fixture
def deployer():
    """Patch Deployer so init() returns a mock without touching any cloud."""
    instance = MagicMock()
    with patch("cloudship.main.Deployer") as deployer_class:
        deployer_class.return_value.init.return_value = instance
        yield instance


class TestArgumentParsing:

    def test_backend_choices_are_registered_providers(self):
        parser = main.build_parser()

        args = parser.parse_args(["gcp-cloudrun", "deploy", "deploy.yaml"])

        assert args.backend == "gcp-cloudrun"
        assert args.action == "deploy"
        assert args.config_path == Path("deploy.yaml")
        assert args.verbose is False

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["heroku", "deploy", "deploy.yaml"])

    def test_unknown_action_is_rejected(self):
        with pytest.raises(SystemExit):
            main.build_parser().parse_args(["aws-fargate", "scale", "deploy.yaml"])


class TestExitCodes:

    @pytest.mark.parametrize("action", ["setup", "deploy", "destroy", "logs"])
    def test_success_exits_zero(self, deployer, action):
        assert main.main(["aws-fargate", action, "deploy.yaml"]) == 0
        getattr(deployer, action).assert_called_once()

    def test_config_path_is_resolved(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch("cloudship.main.Deployer") as deployer_class:
            main.main(["aws-fargate", "setup", "deploy.yaml"])

        deployer_class.return_value.init.assert_called_once_with(
            (tmp_path / "deploy.yaml").resolve(), backend="aws-fargate"
        )

    def test_deployment_error_exits_one(self, deployer):
        deployer.setup.side_effect = ProvisioningError("Cluster", "orders-api-cluster")

        assert main.main(["aws-fargate", "setup", "deploy.yaml"]) == 1

    def test_configuration_error_during_init_exits_one(self):
        with patch("cloudship.main.Deployer") as deployer_class:
            deployer_class.return_value.init.side_effect = ConfigurationError("Config file not found")

            assert main.main(["aws-fargate", "deploy", "missing.yaml"]) == 1

    def test_interrupt_exits_130(self, deployer):
        deployer.deploy.side_effect = OperationInterruptedError("Interrupted while waiting 60s")

        assert main.main(["aws-fargate", "deploy", "deploy.yaml"]) == 130

    def test_keyboard_interrupt_exits_130(self, deployer):
        deployer.logs.side_effect = KeyboardInterrupt

        assert main.main(["aws-fargate", "logs", "deploy.yaml"]) == 130

    def test_destroy_always_exits_zero(self, deployer):
        deployer.destroy.side_effect = RuntimeError("unexpected")

        assert main.main(["aws-fargate", "destroy", "deploy.yaml"]) == 0

    def test_destroy_exits_zero_on_bad_config(self):
        with patch("cloudship.main.Deployer") as deployer_class:
            deployer_class.return_value.init.side_effect = ConfigurationError("Config file not found")

            assert main.main(["aws-fargate", "destroy", "missing.yaml"]) == 0

    def test_unexpected_error_propagates_outside_destroy(self, deployer):
        deployer.deploy.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            main.main(["aws-fargate", "deploy", "deploy.yaml"])

    def test_verbose_switches_logger_to_debug(self, deployer):
        with patch("cloudship.main.setup_logger") as setup_logger:
            main.main(["-v", "aws-fargate", "setup", "deploy.yaml"])

        setup_logger.assert_called_once_with(debug_mode=True)
