from typing import List, Optional


class BlimpError(Exception):
    """Base class for every error raised by blimp"""


class ConfigError(BlimpError):
    pass


# App Store Connect API


class APIError(BlimpError):
    """Typed error response from App Store Connect"""

    kind = "undocumented"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"[{self.kind} {self.status_code}] {self.message}"
        return f"[{self.kind}] {self.message}"


class BadRequestError(APIError):
    kind = "bad_request"


class AuthError(APIError):
    """401/403 responses, carrying the server supplied detail text"""

    kind = "forbidden"


class UnauthorizedError(AuthError):
    kind = "unauthorized"


class NotFoundError(APIError):
    kind = "not_found"


class ConflictError(APIError):
    kind = "conflict"


class UnprocessableError(APIError):
    kind = "unprocessable"


class TooManyRequestsError(APIError):
    kind = "too_many_requests"


class UndocumentedError(APIError):
    kind = "undocumented"


class BadResponseError(APIError):
    """The server answered with a payload we could not interpret"""

    kind = "bad_response"


class AppNotFoundError(NotFoundError):
    def __init__(self, bundle_id: str):
        super().__init__(f"No App Store Connect app found for bundle id {bundle_id}")
        self.bundle_id = bundle_id


# Upload engine


class TransporterError(BlimpError):
    """Wraps any failure of the upload tool so orchestrators can decide to ignore it"""

    def __init__(self, error: BaseException):
        super().__init__(str(error))
        self.error = error


class UploadError(BlimpError):
    pass


class InvalidFileError(UploadError):
    pass


class ChunkUploadError(UploadError):
    def __init__(self, offset: int, reason: str, status_code: Optional[int] = None):
        super().__init__(f"Chunk upload failed at offset {offset}: {reason}")
        self.offset = offset
        self.reason = reason
        self.status_code = status_code


class UploadFailedError(UploadError):
    def __init__(self, errors: List[str]):
        super().__init__(" | ".join(errors) if errors else "Upload failed")
        self.errors = list(errors)


class UploadTimedOutError(UploadError):
    def __init__(self, phase: Optional[str] = None):
        message = "Timed out waiting for App Store Connect to finish processing the uploaded build"
        if phase:
            message += f" (last state: {phase})"
        super().__init__(message)
        self.phase = phase


class CancelledError(BlimpError):
    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message)


# Build processing


class ProcessingError(BlimpError):
    message = "Build processing failed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)


class NoBuildIdError(ProcessingError):
    message = "Build id could not be resolved for the uploaded build"


class FailedProcessingError(ProcessingError):
    message = (
        "App Store Connect failed to process the build. "
        "Check the build status in App Store Connect and try uploading again."
    )


class InvalidBinaryError(ProcessingError):
    message = (
        "App Store Connect marked the binary as invalid. "
        "Check the Info.plist keys (CFBundleShortVersionString, CFBundleVersion, "
        "CFBundleIdentifier), the app icons and the signing entitlements, then upload a new build."
    )


class ProcessingExceptionError(ProcessingError):
    message = (
        "App Store Connect hit an internal exception while processing the build. "
        "Wait a few minutes and upload the build again with a new build number."
    )


class MissingExportComplianceError(ProcessingError):
    message = (
        "The build is missing export compliance information. "
        "Answer the export compliance questions in App Store Connect or set "
        "ITSAppUsesNonExemptEncryption in Info.plist."
    )


class BetaRejectedError(ProcessingError):
    message = (
        "The build was rejected by TestFlight beta review. "
        "See the rejection notes in App Store Connect before submitting again."
    )


class ProcessingTimedOutError(ProcessingError):
    message = "Timed out waiting for the build to finish processing in App Store Connect"


class FailedToGetAppSizesError(ProcessingError):
    message = "Could not get build sizes from App Store Connect"


# Provisioning


class MissingDataError(BlimpError):
    """The API reported success but omitted fields we rely on"""


class BundleIdNotFoundError(NotFoundError):
    def __init__(self, identifier: str):
        super().__init__(
            f"Could not find Bundle ID resource for {identifier}. "
            "Register the identifier in App Store Connect first."
        )
        self.identifier = identifier


class InvalidProfileError(BlimpError):
    pass


class CertificateGenerationError(BlimpError):
    pass


class StorageError(BlimpError):
    pass


# Encryption


class EncryptionError(BlimpError):
    pass


class InvalidEncryptedDataError(EncryptionError):
    def __init__(self, message: str = "Invalid encrypted data format"):
        super().__init__(message)


class DecryptionFailedError(EncryptionError):
    def __init__(self, message: str = "Decryption failed: wrong password"):
        super().__init__(message)
