class CensusMappingError(Exception):
    """Base class for every error raised by the census mapping utilities."""


class RemoteFetchError(CensusMappingError):
    """A Census service call failed, returned nothing, or rejected a code."""

    def __init__(self, stage, message):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage
        self.message = message


class ProjectionMismatchError(CensusMappingError):
    pass


class ExportFormatError(CensusMappingError):
    pass


class InvalidRequestError(CensusMappingError, ValueError):
    """Raised for option combinations the Census services cannot answer."""
