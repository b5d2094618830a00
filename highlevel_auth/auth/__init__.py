# highlevel_auth/auth/__init__.py
from .models import (
    PrincipalKind,
    ResolvedCredential,
    SecurityRequirement,
    SessionRecord,
    StaticCredentials,
    TokenGrant,
)
from .extractor import ResourceIdExtractor
from .oauth_client import AbstractOAuthEndpoint, HighLevelOAuthClient
from .refresh import TokenRefreshEngine
from .resolver import TokenResolver

__all__ = [
    "PrincipalKind",
    "ResolvedCredential",
    "SecurityRequirement",
    "SessionRecord",
    "StaticCredentials",
    "TokenGrant",
    "ResourceIdExtractor",
    "AbstractOAuthEndpoint",
    "HighLevelOAuthClient",
    "TokenRefreshEngine",
    "TokenResolver",
]
