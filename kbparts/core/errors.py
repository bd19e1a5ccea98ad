class PartSubmissionError(Exception):
    """A single part could not be stored or registered."""

    def __init__(self, part_name: str, reason: str):
        self.part_name = part_name
        self.reason = reason
        super().__init__(f"Part '{part_name}' failed: {reason}")

class ConfigurationError(ValueError):
    pass

class InvalidDocumentError(ValueError):
    pass

class DocumentTooLargeError(ValueError):
    pass

class StorageLimitExceededError(Exception):
    pass

class RecordNotFoundError(KeyError):
    pass

class ProcessingTriggerError(Exception):
    """The processing service refused or never answered a trigger request."""

    def __init__(self, document_id: str, message: str, status_code: int | None = None):
        self.document_id = document_id
        self.status_code = status_code
        super().__init__(message)
