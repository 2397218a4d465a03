"""Error taxonomy shared by admission, the pipeline and the HTTP layer."""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Runtime error with a stable machine-readable code."""

    code = "PIPELINE_FAILED"

    def __init__(self, message: str, *, code: str | None = None) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code


class RequestValidationError(PipelineError):
    code = "INVALID_REQUEST"


class InsufficientCreditsError(PipelineError):
    code = "NO_VIDEO_CREDITS"


class DuplicateJobError(PipelineError):
    code = "DUPLICATE_JOB"


class AuthenticationError(PipelineError):
    code = "UNAUTHORIZED"


class ProviderError(PipelineError):
    """A remote capability failed or answered outside its protocol."""

    code = "PROVIDER_FAILED"


class ProviderTimeoutError(ProviderError):
    code = "PROVIDER_TIMEOUT"


class SchemaError(ProviderError):
    """Provider output parsed but violates its contract."""

    code = "PROVIDER_SCHEMA"


class MaterializationError(ProviderError):
    code = "MATERIALIZATION_FAILED"


class MaterializationTimeoutError(MaterializationError, ProviderTimeoutError):
    code = "MATERIALIZATION_TIMEOUT"


class CaptionError(PipelineError):
    code = "CAPTIONS_FAILED"


class MusicUploadError(PipelineError):
    code = "INVALID_MUSIC"


class JobClosedError(PipelineError):
    """The job left processing while its run was still going."""

    code = "JOB_CLOSED"


class MediaTooLargeError(RequestValidationError):
    code = "MEDIA_TOO_LARGE"
