# highlevel_auth/auth/extractor.py
import json
import logging
from typing import Any, Dict, Mapping, Optional, Tuple, Union
from urllib.parse import parse_qsl

from ..settings import settings
from .models import PrincipalKind, SecurityRequirement

logger = logging.getLogger(__name__)

COMPANY_ID_ALIASES: Tuple[str, ...] = ("x-company-id", "companyId", "company-id", "company_id")
LOCATION_ID_ALIASES: Tuple[str, ...] = ("x-location-id", "locationId", "location-id", "location_id")

ALIASES_BY_KIND: Dict[PrincipalKind, Tuple[str, ...]] = {
    PrincipalKind.COMPANY: COMPANY_ID_ALIASES,
    PrincipalKind.LOCATION: LOCATION_ID_ALIASES,
}


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def _body_as_mapping(body: Any) -> Optional[Mapping[str, Any]]:
    """Dict bodies are used as-is; string and bytes bodies are parsed as JSON objects or form data."""
    if body is None:
        return None
    if isinstance(body, Mapping):
        return body
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    if not isinstance(body, str) or not body.strip():
        return None
    if body.lstrip().startswith("{"):
        try:
            parsed = json.loads(body)
        except ValueError:
            return None
        return parsed if isinstance(parsed, dict) else None
    return dict(parse_qsl(body, keep_blank_values=False))


class ResourceIdExtractor:
    """
    Finds the company or location id a call is about.

    Headers are matched case-insensitively, query and body keys exactly.
    Headers win over query parameters; the body is only consulted when
    neither produced an id of any kind.
    """

    def __init__(self, default_preference: Union[PrincipalKind, str, None] = None):
        self.default_preference = (
            PrincipalKind.parse(default_preference or settings.default_principal_preference)
        )

    def find_candidates(
        self,
        headers: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None
    ) -> Dict[PrincipalKind, str]:
        lowered_headers = {str(k).lower(): v for k, v in (headers or {}).items()}
        candidates: Dict[PrincipalKind, str] = {}

        for kind, aliases in ALIASES_BY_KIND.items():
            found = None
            for alias in aliases:
                found = _non_empty(lowered_headers.get(alias.lower()))
                if found:
                    break
            if not found and query:
                for alias in aliases:
                    found = _non_empty(query.get(alias))
                    if found:
                        break
            if found:
                candidates[kind] = found

        if candidates:
            return candidates

        body_mapping = _body_as_mapping(body)
        if body_mapping:
            for kind, aliases in ALIASES_BY_KIND.items():
                for alias in aliases:
                    found = _non_empty(body_mapping.get(alias))
                    if found:
                        candidates[kind] = found
                        break
        return candidates

    def choose(
        self,
        requirement: Optional[SecurityRequirement],
        candidates: Mapping[PrincipalKind, str],
        preferred: Union[PrincipalKind, str, None] = None
    ) -> Optional[str]:
        if requirement is SecurityRequirement.COMPANY_ONLY:
            return candidates.get(PrincipalKind.COMPANY)
        if requirement is SecurityRequirement.LOCATION_ONLY:
            return candidates.get(PrincipalKind.LOCATION)

        if len(candidates) > 1:
            kind = PrincipalKind.parse(preferred) or self.default_preference
            return candidates[kind]
        return next(iter(candidates.values()), None)

    def extract(
        self,
        requirement: Optional[SecurityRequirement],
        headers: Optional[Mapping[str, Any]] = None,
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
        preferred: Union[PrincipalKind, str, None] = None
    ) -> Optional[str]:
        """Resource id satisfying the requirement, or None when the call carries none."""
        resource_id = self.choose(requirement, self.find_candidates(headers, query, body), preferred)
        logger.debug(f"EXTRACTOR: requirement={requirement}, resource_id={resource_id}")
        return resource_id
