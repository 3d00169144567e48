"""
Request Enrichment Heuristics

Derives Silver attributes from a raw request:
- Third-party detection from hostname markers
- Transport security from the URL scheme
- Error flag from error text or HTTP status
- Performance score (0-100) from duration
- Quality score (0-100) from errors, status and payload size
"""

import math
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlsplit

import structlog

from netpulse.config.settings import PipelineSettings
from netpulse.errors import MalformedInputError

logger = structlog.get_logger(__name__)

SECURE_SCHEMES = ("https", "wss")


@dataclass
class Enrichment:
    """Derived attributes of one request"""
    hostname: str
    is_third_party: bool
    is_secure: bool
    has_error: bool
    performance_score: int  # 0-100, 0 = no measurement or >= max duration
    quality_score: int  # 0-100


class RequestEnricher:
    """
    Computes Silver enrichments for raw requests.

    Example:
        enricher = RequestEnricher(settings.pipeline)
        result = enricher.enrich(url="https://cdn.example.com/a.js", status=200, duration=120.0)
    """

    def __init__(self, settings: Optional[PipelineSettings] = None):
        settings = settings or PipelineSettings()
        self.third_party_markers: List[str] = [m.lower() for m in settings.third_party_markers]
        self.max_duration_ms = settings.performance_max_duration_ms
        self.large_response_bytes = settings.large_response_bytes

    def is_third_party(self, hostname: str) -> bool:
        host = hostname.lower()
        return any(marker in host for marker in self.third_party_markers)

    def performance_score(self, duration: Optional[float]) -> int:
        """
        Linear score falling from 100 to 0 at the configured max duration.

        A missing or zero duration means no measurement and scores 0.
        """
        if not duration:
            return 0
        score = 100 - (duration / self.max_duration_ms * 100)
        # half-up rounding
        return int(math.floor(max(0.0, min(100.0, score)) + 0.5))

    def quality_score(
        self,
        error: Optional[str],
        status: Optional[int],
        from_cache: bool,
        size_bytes: int,
    ) -> int:
        score = 100
        if error:
            score -= 50
        if status is not None and status >= 400:
            score -= 30
        if not from_cache and size_bytes > self.large_response_bytes:
            score -= 10
        return max(0, score)

    def enrich(
        self,
        url: Optional[str],
        status: Optional[int] = None,
        duration: Optional[float] = None,
        error: Optional[str] = None,
        from_cache: bool = False,
        size_bytes: int = 0,
    ) -> Enrichment:
        """
        Enrich one request.

        Raises:
            MalformedInputError: If the URL is missing or unparseable, or the
                duration is not a non-negative number
        """
        if not url:
            raise MalformedInputError("Request has no URL")

        try:
            parts = urlsplit(url)
            hostname = parts.hostname
        except ValueError as e:
            raise MalformedInputError("Request URL does not parse", {"url": url}) from e
        if not hostname:
            raise MalformedInputError("Request URL has no host", {"url": url})

        if duration is not None:
            if isinstance(duration, bool) or not isinstance(duration, (int, float)):
                raise MalformedInputError("Duration is not numeric", {"duration": repr(duration)})
            if duration < 0:
                raise MalformedInputError("Duration is negative", {"duration": duration})

        return Enrichment(
            hostname=hostname,
            is_third_party=self.is_third_party(hostname),
            is_secure=parts.scheme.lower() in SECURE_SCHEMES,
            has_error=bool(error) or (status is not None and status >= 400),
            performance_score=self.performance_score(duration),
            quality_score=self.quality_score(error, status, from_cache, size_bytes or 0),
        )
