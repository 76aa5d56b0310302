from .dsl import build, configuration, ConfigurationBuilder, features, on, pipeline, sh
from .errors import ConfigurationError, StepEnvironmentError, StepExecutionError
from .loader import load_pipeline
from .model import Configuration, EventKind, Pipeline, PipelineResult, RunStatus, Step, StepStatus, Trigger
from .runner import execute

__all__ = [
    "build", "configuration", "ConfigurationBuilder", "features", "on", "pipeline", "sh",
    "ConfigurationError", "StepEnvironmentError", "StepExecutionError",
    "load_pipeline",
    "Configuration", "EventKind", "Pipeline", "PipelineResult", "RunStatus", "Step", "StepStatus", "Trigger",
    "execute",
]
