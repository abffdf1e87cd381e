"""
BatteryLens exceptions module.

Contains exception classes used across multiple modules to avoid circular dependencies.
"""


class BatteryLensError(Exception):
    """Base class for BatteryLens errors."""

    pass


class ExtractionError(BatteryLensError):
    """Exception raised when a single image extraction fails."""

    pass


class DataParseError(ExtractionError):
    """Exception raised when an extraction succeeded but its data is not valid JSON."""

    def __init__(self, message: str, battery_id: str | None = None, file_name: str | None = None) -> None:
        self.battery_id = battery_id
        self.file_name = file_name
        parts = []
        if battery_id:
            parts.append(f"battery {battery_id}")
        if file_name:
            parts.append(f"file {file_name}")
        where = f" ({', '.join(parts)})" if parts else ""
        super().__init__(f"Could not parse extracted data{where}: {message}")


class SessionImportError(BatteryLensError):
    """Exception raised when a session file cannot be imported."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"Failed to import {source}: {reason}")


class BatchDispatchError(BatteryLensError):
    """Exception raised when the batch dispatch machinery itself fails."""

    pass


class BatchAlreadyRunningError(BatteryLensError):
    """Exception raised when a batch is started while another is in flight."""

    pass


class BatteryNotFoundError(BatteryLensError):
    """Exception raised when a battery is not found."""

    pass


class JobNotFoundError(BatteryLensError):
    """Exception raised when an image job is not found."""

    pass


class InvalidJobStateError(BatteryLensError):
    """Exception raised for a job transition that its current status does not allow."""

    pass


class ArchiveError(BatteryLensError):
    """Exception raised when an uploaded archive cannot be expanded."""

    pass
