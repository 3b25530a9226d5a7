"""Release tag validation and command pipeline construction."""

from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from relhook.config import DeployConfig
from relhook.utils.platform import normalize_path

_TAG_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9._+/-]{0,127}")


def validate_release_tag(tag: str) -> bool:
    """Allow-list check applied before a tag is ever put into a command."""
    return bool(_TAG_RE.fullmatch(tag)) and ".." not in tag


class StageGroup(str, Enum):
    CHECKOUT = "checkout"
    DEPLOY = "deploy"


@dataclass(frozen=True)
class Stage:
    name: str
    command: str
    group: StageGroup


@dataclass(frozen=True)
class Pipeline:
    tag: str
    stages: list[Stage] = field(default_factory=list)
    base_dir: Path | None = None

    def render(self, stage: Stage) -> str:
        if self.base_dir is None:
            return stage.command
        return f"cd {shlex.quote(str(self.base_dir))} && {stage.command}"

    def invocations(self, mode: str = "joined") -> list[str]:
        """Render the stages as shell command strings.

        ``joined`` yields one invocation where the first failing stage stops
        the rest. ``split`` yields one invocation per group, each run
        regardless of how the previous one ended.
        """
        if mode == "joined":
            groups = [self.stages]
        elif mode == "split":
            groups = [
                [s for s in self.stages if s.group == group]
                for group in StageGroup
            ]
        else:
            raise ValueError(f"Unknown pipeline mode: {mode}")
        return [
            " && ".join(self.render(s) for s in stages)
            for stages in groups
            if stages
        ]


def build_pipeline(tag: str, config: DeployConfig) -> Pipeline:
    """Build the ordered stage list for deploying ``tag``.

    Raises ValueError for a tag that fails :func:`validate_release_tag`;
    callers are expected to have checked it already.
    """
    if not validate_release_tag(tag):
        raise ValueError(f"Invalid release tag: {tag!r}")

    # The allow-list only admits characters shlex leaves unquoted, so the
    # tag appears verbatim in the rendered command.
    quoted = shlex.quote(tag)
    templates = [
        ("reset", config.reset_command, StageGroup.CHECKOUT),
        ("fetch", config.fetch_command, StageGroup.CHECKOUT),
        ("checkout_base", config.checkout_base_command, StageGroup.CHECKOUT),
        ("checkout_tag", config.checkout_tag_command, StageGroup.CHECKOUT),
        ("install", config.install_command, StageGroup.DEPLOY),
        ("deploy", config.deploy_command, StageGroup.DEPLOY),
    ]
    stages = [
        Stage(name=name, command=template.replace("{tag}", quoted), group=group)
        for name, template, group in templates
        if template.strip()
    ]

    base_dir = normalize_path(config.base_dir) if config.base_dir else None
    return Pipeline(tag=tag, stages=stages, base_dir=base_dir)
