"""Record outputs (destinations beyond the durable store)."""

from .base import BaseOutput, TelemetryOutput
from .file import FileOutput
from .memory import InMemoryOutput
from .otlp import OtlpOutput

__all__ = [
    "BaseOutput",
    "FileOutput",
    "InMemoryOutput",
    "OtlpOutput",
    "TelemetryOutput",
]
