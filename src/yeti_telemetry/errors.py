"""Telemetry-specific exceptions.

These are raised while setting up an output, never while writing records:
write paths log their failures instead.
"""


class TelemetryExporterError(Exception):
    """Raised when an output cannot build its export machinery."""

    def __init__(self, exporter_name: str, message: str) -> None:
        self.exporter_name = exporter_name
        self.message = message
        super().__init__(f"Exporter '{exporter_name}' failed: {message}")
