class ReportError(Exception):
    """Base class for report domain failures."""


class ReportValidationError(ReportError):
    """A submission is missing a required field or carries malformed values."""


class ReportNotFoundError(ReportError):
    def __init__(self, report_id: int):
        super().__init__(f"Report {report_id} not found")
        self.report_id = report_id


class PersistenceError(ReportError):
    """The report file could not be read, parsed or written."""
