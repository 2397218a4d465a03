from .errors import PipelineError, ProviderError
from .gcs import PhotoStorage, generate_signed_url, get_bucket_name

__all__ = ["PipelineError", "PhotoStorage", "ProviderError", "generate_signed_url", "get_bucket_name"]
