"""Application layer package."""

from lyracopy.application.progress import ProgressTracker, RunProgress
from lyracopy.application.steps import BaseStep, StepContext, build_steps
from lyracopy.application.pipeline import PipelineResult, StepPipeline
from lyracopy.application.job_manager import JobManager, find_resume_point
from lyracopy.application.factories import JobManagerFactory

__all__ = [
    "ProgressTracker",
    "RunProgress",
    "BaseStep",
    "StepContext",
    "build_steps",
    "PipelineResult",
    "StepPipeline",
    "JobManager",
    "find_resume_point",
    "JobManagerFactory",
]
