from .base import Batch, ProviderError, QuotaExceeded, RequestConfig, SourceAdapter

__all__ = ["Batch", "ProviderError", "QuotaExceeded", "RequestConfig", "SourceAdapter"]
