"""Deployment trigger: runs release pipelines in the background."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from relhook.config import DeployConfig
from relhook.deploy.pipeline import Pipeline, build_pipeline, validate_release_tag
from relhook.deploy.shell import ShellResult, run_shell
from relhook.utils.audit import AuditLog
from relhook.utils.logging import deployment_context, get_logger

log = get_logger(__name__)


class DeployStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class DeploymentRecord:
    tag: str
    status: DeployStatus = DeployStatus.RUNNING
    id: str = field(default_factory=lambda: uuid4().hex[:12])
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    results: list[ShellResult] = field(default_factory=list)
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tag": self.tag,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "detail": self.detail,
            "invocations": [
                {"command": r.command, "exit_code": r.exit_code, "error": r.error}
                for r in self.results
            ],
        }


class DeployRunner:
    """Executes release pipelines and records how each one ended.

    Pipelines run as detached tasks so the webhook response never waits on
    them. With ``config.exclusive`` only one deployment may be in flight;
    overlapping requests are skipped rather than queued.
    """

    def __init__(
        self, config: DeployConfig, audit: AuditLog, dry_run: bool = False
    ) -> None:
        self._config = config
        self._audit = audit
        self._dry_run = dry_run
        self._history: deque[DeploymentRecord] = deque(maxlen=config.history_size)
        self._active: dict[str, DeploymentRecord] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def busy(self) -> bool:
        return bool(self._active)

    def history(self) -> list[DeploymentRecord]:
        """Known deployments, newest first."""
        return list(reversed(self._history))

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def submit(self, tag: str) -> DeploymentRecord:
        """Start deploying ``tag`` in the background and return its record.

        The returned record is already final when the tag is rejected or the
        deployment is skipped.
        """
        record = DeploymentRecord(tag=tag)
        self._history.append(record)

        if not validate_release_tag(tag):
            self._finish(record, DeployStatus.FAILED, f"Rejected release tag {tag!r}")
            self._audit.write(f"Rejected release tag {tag!r}")
            log.warning("deploy_tag_rejected", tag=tag)
            return record

        if self._config.exclusive and self._active:
            running = ", ".join(r.tag for r in self._active.values())
            detail = f"Deployment of {tag} skipped: deployment of {running} in progress"
            self._finish(record, DeployStatus.SKIPPED, detail)
            self._audit.write(detail)
            log.warning("deploy_skipped", tag=tag, running=running)
            return record

        self._active[record.id] = record
        task = asyncio.create_task(self._run(record), name=f"deploy-{tag}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return record

    async def wait_idle(self) -> None:
        """Wait for every in-flight deployment to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _run(self, record: DeploymentRecord) -> None:
        try:
            with deployment_context(record.id, record.tag):
                pipeline = build_pipeline(record.tag, self._config)
                await self._execute(record, pipeline)
        except Exception as e:
            log.exception("deploy_error", deployment=record.id, tag=record.tag)
            self._audit.write(str(e))
            self._finish(record, DeployStatus.FAILED, str(e))
        finally:
            self._active.pop(record.id, None)

    async def _execute(self, record: DeploymentRecord, pipeline: Pipeline) -> None:
        invocations = pipeline.invocations(self._config.mode)
        log.info(
            "deploy_started",
            mode=self._config.mode,
            invocations=len(invocations),
            dry_run=self._dry_run,
        )

        if self._dry_run:
            for command in invocations:
                self._audit.write(f"[dry-run] {command}")
            self._finish(record, DeployStatus.SUCCEEDED, "dry run")
            return

        # In split mode a failed checkout does not stop the deploy invocation.
        for command in invocations:
            result = await run_shell(command, timeout=self._config.timeout)
            record.results.append(result)
            self._log_result(result)

        failed = [r for r in record.results if not r.success]
        if failed:
            self._finish(record, DeployStatus.FAILED, failed[0].error)
            self._audit.write(f"Deployment of {record.tag} failed")
        else:
            self._finish(record, DeployStatus.SUCCEEDED)
            self._audit.write(f"Deployment of {record.tag} succeeded")
        log.info(
            "deploy_finished",
            status=record.status.value,
            failed_invocations=len(failed),
        )

    def _log_result(self, result: ShellResult) -> None:
        if result.error:
            self._audit.write(result.error)
        if result.stderr:
            self._audit.write(result.stderr)
        if result.stdout:
            self._audit.write(result.stdout)

    @staticmethod
    def _finish(record: DeploymentRecord, status: DeployStatus, detail: str = "") -> None:
        record.status = status
        record.detail = detail
        record.finished_at = datetime.now(timezone.utc)
