"""Error types raised by the ingestion pipeline."""


class PipelineError(Exception):
    """Base class for ingestion pipeline errors."""


class InvalidRecord(PipelineError):
    """Record is missing a required field or is not an event."""


class DuplicateRecord(PipelineError):
    """Record matched an identity key that is already known."""


class ExtractionCallError(PipelineError):
    """The extraction collaborator failed to return a response."""


class ExtractionParseError(PipelineError):
    """No event records could be recovered from an extraction response."""


class PersistenceBatchError(PipelineError):
    """The event store rejected a bulk insert."""
