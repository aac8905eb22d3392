"""Error taxonomy for the document scanning workflow."""


class DocScanError(Exception):
    """Base class for all workflow errors."""
    pass


class ValidationError(DocScanError):
    """Raised when a selected file is rejected before an item is created."""
    pass


class AuthError(DocScanError):
    """Raised when a collaborator is called without a valid session."""
    pass


class DetectionError(DocScanError):
    """Raised when the detector fails or reports an unsuccessful detection."""
    pass


class FinalizeError(DocScanError):
    """Raised when the finalize call fails or cannot be started."""
    pass


class UploadError(DocScanError):
    """Raised when the durable store rejects an upload or metadata write."""
    pass


class InvalidTransitionError(DocScanError):
    """Raised on an illegal item status transition."""
    pass


class OperationInProgressError(DocScanError):
    """Raised when a save or clear pass is refused because work is in flight."""
    pass
