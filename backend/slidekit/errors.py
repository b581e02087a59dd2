"""
Error taxonomy for slide rendering and export runs.

Internal steps raise these; the route layer maps them to status codes and
the export pipeline marks its record failed before re-raising.
"""


class SlideKitError(Exception):
    """Base class for every expected failure."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigurationError(SlideKitError):
    """Template missing or invalid."""


class TemplateResolutionError(ConfigurationError):
    def __init__(self, slide_number: int, reason: str = "has no template"):
        super().__init__(f"Slide {slide_number} {reason}")
        self.slide_number = slide_number


class ResourceError(SlideKitError):
    """A background image or other external resource could not be used."""


class BackgroundUnavailable(ResourceError):
    pass


class RasterizationError(SlideKitError):
    """Content load, selector wait or screenshot failed."""


class StorageError(SlideKitError):
    """Upload or signed URL generation failed."""


class InvalidRequestError(SlideKitError):
    status_code = 400


class NotFoundError(InvalidRequestError):
    status_code = 404


class ExportAlreadyProcessed(InvalidRequestError):
    status_code = 409

    def __init__(self, export_id: str, status: str):
        super().__init__(f"Export {export_id} is already {status}")
        self.export_id = export_id
        self.status = status
