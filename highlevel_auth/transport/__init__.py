# highlevel_auth/transport/__init__.py
from .client import HighLevelClient
from .interceptors import AttemptContext, RequestInterceptor, ResponseInterceptor, clone_request

__all__ = [
    "HighLevelClient",
    "AttemptContext",
    "RequestInterceptor",
    "ResponseInterceptor",
    "clone_request",
]
