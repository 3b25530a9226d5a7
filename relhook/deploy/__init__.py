"""Release deployment pipeline."""

from relhook.deploy.pipeline import Pipeline, Stage, StageGroup, build_pipeline, validate_release_tag
from relhook.deploy.runner import DeploymentRecord, DeployRunner, DeployStatus
from relhook.deploy.shell import ShellResult, run_shell

__all__ = [
    "DeployRunner",
    "DeployStatus",
    "DeploymentRecord",
    "Pipeline",
    "ShellResult",
    "Stage",
    "StageGroup",
    "build_pipeline",
    "run_shell",
    "validate_release_tag",
]
