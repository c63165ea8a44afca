"""Tests for HealthChecker."""

from unittest.mock import MagicMock, patch

from acr_task_runner.core.config import TaskRunnerConfig
from acr_task_runner.health.checker import CheckStatus, HealthChecker


def _checker(config, config_path, docker_ok=True):
    docker_builder = MagicMock()
    docker_builder.health_check.return_value = docker_ok
    return HealthChecker(config, config_path, docker_builder=docker_builder)


def test_all_checks_pass(runner_config, tmp_path):
    config_path = tmp_path / "acr-task.yaml"
    config_path.write_text("log_level: INFO\n")

    results = _checker(runner_config, config_path).run_all_checks()

    assert [r.name for r in results] == ["Config File", "Registry Settings", "Credentials", "Docker Daemon"]
    assert all(r.status == CheckStatus.PASSED for r in results)


def test_missing_config_file_is_warning(runner_config, tmp_path):
    result = _checker(runner_config, tmp_path / "acr-task.yaml").check_config_file()

    assert result.status == CheckStatus.WARNING
    assert result.fix_action


def test_incomplete_registry_fails(tmp_path):
    result = _checker(TaskRunnerConfig(registry={"name": "r"}), tmp_path / "x.yaml").check_registry_settings()

    assert result.status == CheckStatus.FAILED
    assert "registry.subscription_id" in result.message


def test_cli_credential_needs_az(tmp_path):
    config = TaskRunnerConfig(auth={"use_azure_cli": True})

    with patch("acr_task_runner.health.checker.check_command_exists", return_value=False):
        result = _checker(config, tmp_path / "x.yaml").check_credentials()

    assert result.status == CheckStatus.FAILED
    assert "az" in result.message


def test_cli_credential_available(tmp_path):
    config = TaskRunnerConfig(auth={"use_azure_cli": True})

    with patch("acr_task_runner.health.checker.check_command_exists", return_value=True):
        result = _checker(config, tmp_path / "x.yaml").check_credentials()

    assert result.status == CheckStatus.PASSED


def test_no_credential_source_fails(tmp_path):
    config = TaskRunnerConfig(auth={"use_azure_cli": False})

    result = _checker(config, tmp_path / "x.yaml").check_credentials()

    assert result.status == CheckStatus.FAILED


def test_docker_unreachable_is_warning(runner_config, tmp_path):
    result = _checker(runner_config, tmp_path / "x.yaml", docker_ok=False).check_docker()

    assert result.status == CheckStatus.WARNING
