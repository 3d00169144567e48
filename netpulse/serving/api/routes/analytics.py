"""
Analytics API Endpoints

Read-only dashboard API over the Silver aggregates, the star-schema
derivations and the Gold rollups.
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, ConfigDict
import structlog

from netpulse.config.settings import PERIOD_TYPES
from netpulse.pipeline import MedallionPipeline
from netpulse.serving.api.dependencies import get_pipeline

router = APIRouter()
logger = structlog.get_logger(__name__)


class OHLCCandleResponse(BaseModel):
    """Latency candle"""
    model_config = ConfigDict(from_attributes=True)

    period_type: str
    period_start: int
    period_end: int
    domain: Optional[str]
    resource_type: Optional[str]
    open_time: float
    high_time: float
    low_time: float
    close_time: float
    request_count: int
    total_bytes: int
    avg_response_time: float
    median_response_time: float
    p95_response_time: float
    p99_response_time: float
    success_count: int
    error_count: int
    error_rate: float
    avg_performance_score: float
    avg_quality_score: float


class QualityResponse(BaseModel):
    """Quality metrics of one slice"""
    model_config = ConfigDict(from_attributes=True)

    period_type: str
    period_start: int
    period_end: int
    domain: Optional[str]
    availability_rate: float
    performance_index: float
    reliability_score: float
    security_score: float
    total_requests: int
    successful_requests: int
    failed_requests: int
    requests_under_100ms: int
    requests_under_500ms: int
    requests_under_1s: int
    requests_under_3s: int
    requests_over_3s: int
    total_data_transferred: int
    cached_data_bytes: int
    cache_hit_rate: float


class DomainPerformanceResponse(BaseModel):
    """Per-domain daily performance"""
    model_config = ConfigDict(from_attributes=True)

    domain: str
    request_count: int
    total_bytes: int
    avg_response_time: float
    p95_response_time: float
    error_rate: float
    performance_grade: str


class DailyAnalyticsResponse(BaseModel):
    """Daily rollup with per-domain breakdown"""
    model_config = ConfigDict(from_attributes=True)

    date: str
    total_requests: int
    total_bytes: int
    avg_response_time: float
    median_response_time: float
    p95_response_time: float
    p99_response_time: float
    error_rate: float
    unique_domains: int
    top_domains: Optional[list] = None
    domains: List[DomainPerformanceResponse] = []


class DomainStatsResponse(BaseModel):
    """Rolling statistics of one domain"""
    model_config = ConfigDict(from_attributes=True)

    domain: str
    total_requests: int
    total_bytes: int
    avg_duration: float
    min_duration: float
    max_duration: float
    success_count: int
    error_count: int
    first_request_at: Optional[int]
    last_request_at: Optional[int]


class ResourceStatsResponse(BaseModel):
    """Rolling statistics of one resource type"""
    model_config = ConfigDict(from_attributes=True)

    resource_type: str
    total_requests: int
    total_bytes: int
    avg_duration: float
    min_duration: float
    max_duration: float
    avg_size: float
    success_count: int
    error_count: int
    first_request_at: Optional[int]
    last_request_at: Optional[int]


@router.get("/ohlc", response_model=List[OHLCCandleResponse])
async def get_ohlc(
    start_ms: int = Query(..., ge=0, description="Range start, epoch ms"),
    end_ms: int = Query(..., ge=0, description="Range end, epoch ms"),
    period_type: str = Query("1h", description="Candle granularity"),
    domain: Optional[str] = None,
    resource_type: Optional[str] = None,
    refresh: bool = False,
    pipeline: MedallionPipeline = Depends(get_pipeline),
) -> List[OHLCCandleResponse]:
    """Latency candles for a time range, optionally scoped to a domain or resource type."""
    if period_type not in PERIOD_TYPES:
        raise HTTPException(status_code=422, detail=f"period_type must be one of {PERIOD_TYPES}")
    if end_ms < start_ms:
        raise HTTPException(status_code=422, detail="end_ms must not precede start_ms")

    candles = await pipeline.get_ohlc(period_type, start_ms, end_ms, domain, resource_type, refresh)
    return [OHLCCandleResponse.model_validate(c) for c in candles]


@router.get("/quality/{time_key}", response_model=QualityResponse)
async def get_quality(
    time_key: int,
    domain_key: Optional[int] = None,
    pipeline: MedallionPipeline = Depends(get_pipeline),
) -> QualityResponse:
    """Quality metrics of the slice containing a time key."""
    report = await pipeline.get_quality_metrics(time_key, domain_key)
    return QualityResponse.model_validate(report)


@router.get("/daily/{day}", response_model=DailyAnalyticsResponse)
async def get_daily(
    day: date,
    pipeline: MedallionPipeline = Depends(get_pipeline),
) -> DailyAnalyticsResponse:
    """Gold daily rollup for a UTC day (YYYY-MM-DD)."""
    row = await pipeline.get_daily_analytics(day.isoformat())
    if row is None:
        raise HTTPException(status_code=404, detail=f"No daily analytics for {day.isoformat()}")

    response = DailyAnalyticsResponse.model_validate(row)
    response.domains = [
        DomainPerformanceResponse.model_validate(d)
        for d in await pipeline.get_domain_performance(day.isoformat())
    ]
    return response


@router.get("/domains/{domain}/stats", response_model=DomainStatsResponse)
async def get_domain_stats(
    domain: str,
    pipeline: MedallionPipeline = Depends(get_pipeline),
) -> DomainStatsResponse:
    """Rolling Silver statistics of one domain."""
    stats = await pipeline.get_domain_stats(domain)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"No statistics for domain {domain}")
    return DomainStatsResponse.model_validate(stats)


@router.get("/resources/{resource_type}/stats", response_model=ResourceStatsResponse)
async def get_resource_stats(
    resource_type: str,
    pipeline: MedallionPipeline = Depends(get_pipeline),
) -> ResourceStatsResponse:
    """Rolling Silver statistics of one resource type."""
    stats = await pipeline.get_resource_stats(resource_type)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"No statistics for resource type {resource_type}")
    return ResourceStatsResponse.model_validate(stats)
