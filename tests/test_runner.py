"""Tests for the deployment runner."""

import asyncio
import time
from unittest.mock import AsyncMock, patch

import pytest
import structlog

from relhook.config import DeployConfig
from relhook.deploy.runner import DeploymentRecord, DeployRunner, DeployStatus
from relhook.deploy.shell import ShellResult
from relhook.utils.audit import AuditLog


def echo_config(**overrides) -> DeployConfig:
    """Harmless stand-ins for the git/npm stages."""
    values = dict(
        reset_command="true",
        fetch_command="true",
        checkout_base_command="true",
        checkout_tag_command="echo checkout tags/{tag}",
        install_command="",
        deploy_command="echo deployed",
    )
    values.update(overrides)
    return DeployConfig(**values)


@pytest.fixture
def audit(tmp_path):
    return AuditLog(tmp_path / "output.log")


def entries(audit: AuditLog) -> str:
    return audit.path.read_text() if audit.path.exists() else ""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

class TestDeploymentRecord:
    def test_defaults(self):
        record = DeploymentRecord(tag="v1")
        assert record.status == DeployStatus.RUNNING
        assert record.id
        assert record.finished_at is None
        assert record.results == []

    def test_to_dict(self):
        record = DeploymentRecord(tag="v1")
        record.results.append(ShellResult(command="true", exit_code=0))
        data = record.to_dict()
        assert data["tag"] == "v1"
        assert data["status"] == "running"
        assert data["finished_at"] is None
        assert data["invocations"] == [{"command": "true", "exit_code": 0, "error": ""}]


# ---------------------------------------------------------------------------
# Execution
# ---------------------------------------------------------------------------

class TestDeployRunner:
    async def test_successful_deploy(self, audit):
        runner = DeployRunner(echo_config(), audit)
        record = runner.submit("v1.2.0")
        assert record.status == DeployStatus.RUNNING
        assert runner.busy

        await runner.wait_idle()

        assert record.status == DeployStatus.SUCCEEDED
        assert record.finished_at is not None
        assert not runner.busy
        log_text = entries(audit)
        assert "checkout tags/v1.2.0" in log_text
        assert "deployed" in log_text
        assert "Deployment of v1.2.0 succeeded" in log_text

    async def test_joined_failure_stops_later_stages(self, audit, tmp_path):
        marker = tmp_path / "deployed"
        config = echo_config(
            checkout_tag_command="ls /nonexistent-relhook-{tag}",
            deploy_command=f"touch {marker}",
            mode="joined",
        )
        runner = DeployRunner(config, audit)
        record = runner.submit("v1")
        await runner.wait_idle()

        assert record.status == DeployStatus.FAILED
        assert len(record.results) == 1
        assert not marker.exists()
        log_text = entries(audit)
        assert "/nonexistent-relhook-v1" in log_text  # captured stderr
        assert "Command failed with exit code" in log_text
        assert "Deployment of v1 failed" in log_text

    async def test_split_failure_still_runs_deploy(self, audit, tmp_path):
        marker = tmp_path / "deployed"
        config = echo_config(
            checkout_tag_command="ls /nonexistent-relhook-{tag}",
            deploy_command=f"touch {marker}",
            mode="split",
        )
        runner = DeployRunner(config, audit)
        record = runner.submit("v1")
        await runner.wait_idle()

        assert record.status == DeployStatus.FAILED
        assert len(record.results) == 2
        assert not record.results[0].success
        assert record.results[1].success
        assert marker.exists()

    async def test_base_dir(self, audit, tmp_path):
        target = tmp_path / "checkout"
        target.mkdir()
        runner = DeployRunner(
            echo_config(base_dir=str(target), deploy_command="touch deployed.txt"),
            audit,
        )
        runner.submit("v1")
        await runner.wait_idle()
        assert (target / "deployed.txt").exists()

    async def test_log_order_error_stderr_stdout(self, audit):
        config = echo_config(deploy_command="echo out; echo err >&2; exit 1")
        runner = DeployRunner(config, audit)
        runner.submit("v1")
        await runner.wait_idle()

        lines = audit.read_entries()
        failed = next(i for i, l in enumerate(lines) if "Command failed" in l)
        err = next(i for i, l in enumerate(lines) if l.endswith("]: err"))
        out = next(i for i, l in enumerate(lines) if "]: checkout tags/v1" in l)
        assert failed < err < out

    async def test_timeout_releases_exclusive_guard(self, audit):
        config = echo_config(deploy_command="sleep 5 && echo late", timeout=1)
        runner = DeployRunner(config, audit)
        started = time.monotonic()
        record = runner.submit("v1")
        await runner.wait_idle()

        assert time.monotonic() - started < 4
        assert record.status == DeployStatus.FAILED
        assert not runner.busy
        assert "timed out" in entries(audit)
        assert runner.submit("v2").status == DeployStatus.RUNNING
        await runner.wait_idle()

    async def test_rejected_tag_runs_nothing(self, audit):
        with patch("relhook.deploy.runner.run_shell", new_callable=AsyncMock) as mock_shell:
            runner = DeployRunner(echo_config(), audit)
            record = runner.submit("v1; rm -rf /")
            await runner.wait_idle()
        mock_shell.assert_not_called()
        assert record.status == DeployStatus.FAILED
        assert "Rejected release tag" in entries(audit)

    async def test_dry_run_logs_commands(self, audit):
        with patch("relhook.deploy.runner.run_shell", new_callable=AsyncMock) as mock_shell:
            runner = DeployRunner(echo_config(), audit, dry_run=True)
            record = runner.submit("v3")
            await runner.wait_idle()
        mock_shell.assert_not_called()
        assert record.status == DeployStatus.SUCCEEDED
        assert "[dry-run] true && true && true && echo checkout tags/v3" in entries(audit)

    async def test_logs_bound_to_deployment(self, audit):
        seen = []

        async def fake_shell(command, **kwargs):
            seen.append(structlog.contextvars.get_contextvars())
            return ShellResult(command=command, exit_code=0)

        with patch("relhook.deploy.runner.run_shell", side_effect=fake_shell):
            runner = DeployRunner(echo_config(exclusive=False), audit)
            first = runner.submit("v1")
            second = runner.submit("v2")
            await runner.wait_idle()

        assert {"deployment": first.id, "tag": "v1"} in seen
        assert {"deployment": second.id, "tag": "v2"} in seen
        assert "deployment" not in structlog.contextvars.get_contextvars()

    async def test_redelivery_runs_again(self, audit):
        runner = DeployRunner(echo_config(), audit)
        runner.submit("v1")
        await runner.wait_idle()
        runner.submit("v1")
        await runner.wait_idle()
        assert entries(audit).count("Deployment of v1 succeeded") == 2


# ---------------------------------------------------------------------------
# Exclusivity
# ---------------------------------------------------------------------------

class TestExclusivity:
    async def test_overlapping_deploy_is_skipped(self, audit):
        release = asyncio.Event()

        async def slow_shell(command, **kwargs):
            await release.wait()
            return ShellResult(command=command, exit_code=0)

        with patch("relhook.deploy.runner.run_shell", side_effect=slow_shell):
            runner = DeployRunner(echo_config(), audit)
            first = runner.submit("v1")
            await asyncio.sleep(0)
            second = runner.submit("v2")

            assert second.status == DeployStatus.SKIPPED
            assert "v1 in progress" in second.detail

            release.set()
            await runner.wait_idle()

        assert first.status == DeployStatus.SUCCEEDED
        assert "Deployment of v2 skipped" in entries(audit)

    async def test_non_exclusive_runs_concurrently(self, audit):
        release = asyncio.Event()
        started = []

        async def slow_shell(command, **kwargs):
            started.append(command)
            await release.wait()
            return ShellResult(command=command, exit_code=0)

        with patch("relhook.deploy.runner.run_shell", side_effect=slow_shell):
            runner = DeployRunner(echo_config(exclusive=False), audit)
            first = runner.submit("v1")
            second = runner.submit("v2")
            await asyncio.sleep(0.05)
            assert len(started) == 2

            release.set()
            await runner.wait_idle()

        assert first.status == DeployStatus.SUCCEEDED
        assert second.status == DeployStatus.SUCCEEDED

    async def test_history_newest_first_and_bounded(self, audit):
        runner = DeployRunner(echo_config(history_size=2), audit, dry_run=True)
        for tag in ("v1", "v2", "v3"):
            runner.submit(tag)
            await runner.wait_idle()
        assert [r.tag for r in runner.history()] == ["v3", "v2"]
