#export exceptions shared by filters, renderers and the export service

# ================================================================
# Custom Exceptions
# ================================================================

class ExportError(Exception):
    """Base exception for export operations"""
    pass


class ExportValidationError(ExportError):
    """Raised when export parameters are invalid"""
    pass


class UnsupportedFormatError(ExportError):
    """Raised when the requested output format is not csv, xlsx, pdf or json"""

    def __init__(self, requested: str, supported=("csv", "xlsx", "pdf", "json")):
        self.requested = requested
        self.supported = tuple(supported)
        super().__init__(
            f"Unsupported export format: '{requested}'. "
            f"Valid options: {', '.join(self.supported)}"
        )


class InvalidPeriodError(ExportError, ValueError):
    """Raised when a period key is not one of day, week, month, year, all"""
    pass


class ExportDeliveryError(ExportError):
    """Raised when a finished artifact cannot be written to its destination"""
    pass
