"""
Database Models - Medallion Layers and Star Schema

This module defines the data models of the request analytics pipeline:

Bronze (raw capture, append/replace only):
- BronzeRequest: Captured network requests
- BronzeRequestHeader: Request/response headers
- BronzeRequestTiming: Connection timing breakdown

Silver (validated and enriched):
- SilverRequest: One enriched record per raw request
- SilverRequestMetrics: Timing breakdown derived from Bronze timings
- SilverDomainStats / SilverResourceStats: Per-key aggregates over Bronze

Star Schema:
- DimTime, DimDomain (SCD Type 2), DimResourceType, DimStatusCode
- FactRequest, FactOHLCPerformance, FactQualityMetrics

Gold (reporting):
- GoldDailyAnalytics, GoldDomainPerformance

Pipeline:
- PipelineReadyEvent: Outbox of facts awaiting downstream aggregation

All timestamps are integer epoch milliseconds (UTC).
"""

from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# BRONZE LAYER
# =============================================================================

class BronzeRequest(Base):
    """
    Raw Request Table

    Immutable capture record. Re-ingesting the same identifier replaces the
    row; nothing else mutates it.
    """
    __tablename__ = "bronze_requests"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    url: Mapped[Optional[str]] = mapped_column(Text)
    method: Mapped[str] = mapped_column(String(16), default="GET")
    type: Mapped[str] = mapped_column(String(32), default="other")
    status: Mapped[Optional[int]] = mapped_column(Integer)
    status_text: Mapped[Optional[str]] = mapped_column(String(200))

    # URL parts
    domain: Mapped[Optional[str]] = mapped_column(String(255))
    path: Mapped[Optional[str]] = mapped_column(Text)
    query_string: Mapped[Optional[str]] = mapped_column(Text)
    protocol: Mapped[Optional[str]] = mapped_column(String(32))

    # Timing and size
    start_time: Mapped[Optional[float]] = mapped_column(Float)
    end_time: Mapped[Optional[float]] = mapped_column(Float)
    duration: Mapped[Optional[float]] = mapped_column(Float)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Browser context
    tab_id: Mapped[Optional[int]] = mapped_column(Integer)
    frame_id: Mapped[Optional[int]] = mapped_column(Integer)
    page_url: Mapped[Optional[str]] = mapped_column(Text)
    initiator: Mapped[Optional[str]] = mapped_column(Text)

    error: Mapped[Optional[str]] = mapped_column(Text)
    from_cache: Mapped[bool] = mapped_column(Boolean, default=False)

    # Audit
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_bronze_requests_domain", "domain"),
        Index("ix_bronze_requests_type", "type"),
        Index("ix_bronze_requests_timestamp", "timestamp"),
    )


class BronzeRequestHeader(Base):
    """Raw header rows, append-only"""
    __tablename__ = "bronze_request_headers"

    header_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(128), nullable=False)
    header_type: Mapped[str] = mapped_column(String(16), default="request")  # request | response
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_bronze_headers_request", "request_id"),
    )


class BronzeRequestTiming(Base):
    """
    Raw timing breakdown.

    Grain: one row per request id; absent measurements are stored as 0.
    """
    __tablename__ = "bronze_request_timings"

    request_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    dns_start: Mapped[float] = mapped_column(Float, default=0)
    dns_end: Mapped[float] = mapped_column(Float, default=0)
    dns_duration: Mapped[float] = mapped_column(Float, default=0)
    tcp_start: Mapped[float] = mapped_column(Float, default=0)
    tcp_end: Mapped[float] = mapped_column(Float, default=0)
    tcp_duration: Mapped[float] = mapped_column(Float, default=0)
    ssl_start: Mapped[float] = mapped_column(Float, default=0)
    ssl_end: Mapped[float] = mapped_column(Float, default=0)
    ssl_duration: Mapped[float] = mapped_column(Float, default=0)
    request_start: Mapped[float] = mapped_column(Float, default=0)
    request_end: Mapped[float] = mapped_column(Float, default=0)
    request_duration: Mapped[float] = mapped_column(Float, default=0)
    response_start: Mapped[float] = mapped_column(Float, default=0)
    response_end: Mapped[float] = mapped_column(Float, default=0)
    response_duration: Mapped[float] = mapped_column(Float, default=0)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


# =============================================================================
# SILVER LAYER
# =============================================================================

class SilverRequest(Base):
    """
    Enriched Request Table

    Exactly one row per Bronze identifier, written only by the enrichment engine.
    """
    __tablename__ = "silver_requests"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    method: Mapped[str] = mapped_column(String(16), nullable=False)
    type: Mapped[str] = mapped_column(String(32), default="other")
    status: Mapped[int] = mapped_column(Integer, default=0)
    status_text: Mapped[str] = mapped_column(String(200), default="")
    domain: Mapped[Optional[str]] = mapped_column(String(255))
    path: Mapped[Optional[str]] = mapped_column(Text)
    protocol: Mapped[Optional[str]] = mapped_column(String(32))
    duration: Mapped[float] = mapped_column(Float, default=0)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    tab_id: Mapped[Optional[int]] = mapped_column(Integer)
    page_url: Mapped[Optional[str]] = mapped_column(Text)
    from_cache: Mapped[bool] = mapped_column(Boolean, default=False)

    # Enrichments
    is_third_party: Mapped[bool] = mapped_column(Boolean, default=False)
    is_secure: Mapped[bool] = mapped_column(Boolean, default=False)
    has_error: Mapped[bool] = mapped_column(Boolean, default=False)
    performance_score: Mapped[float] = mapped_column(Float, default=0)
    quality_score: Mapped[float] = mapped_column(Float, default=0)

    # Audit
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_silver_requests_timestamp", "timestamp"),
        Index("ix_silver_requests_domain", "domain"),
        Index("ix_silver_requests_type", "type"),
    )


class SilverRequestMetrics(Base):
    """Timing breakdown per enriched request"""
    __tablename__ = "silver_request_metrics"

    request_id: Mapped[str] = mapped_column(
        String(128), ForeignKey("silver_requests.id", ondelete="CASCADE"), primary_key=True
    )
    total_time: Mapped[float] = mapped_column(Float, default=0)
    dns_time: Mapped[float] = mapped_column(Float, default=0)
    tcp_time: Mapped[float] = mapped_column(Float, default=0)
    ssl_time: Mapped[float] = mapped_column(Float, default=0)
    wait_time: Mapped[float] = mapped_column(Float, default=0)
    download_time: Mapped[float] = mapped_column(Float, default=0)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class SilverDomainStats(Base):
    """
    Domain Statistics

    Full aggregate over Bronze rows of one domain, recomputed on every enrichment.
    """
    __tablename__ = "silver_domain_stats"

    domain: Mapped[str] = mapped_column(String(255), primary_key=True)
    total_requests: Mapped[int] = mapped_column(Integer, default=0)
    total_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    avg_duration: Mapped[float] = mapped_column(Float, default=0)
    min_duration: Mapped[float] = mapped_column(Float, default=0)
    max_duration: Mapped[float] = mapped_column(Float, default=0)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    first_request_at: Mapped[Optional[int]] = mapped_column(BigInteger)
    last_request_at: Mapped[Optional[int]] = mapped_column(BigInteger)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class SilverResourceStats(Base):
    """Resource Type Statistics, full aggregate over Bronze rows of one type"""
    __tablename__ = "silver_resource_stats"

    resource_type: Mapped[str] = mapped_column(String(32), primary_key=True)
    total_requests: Mapped[int] = mapped_column(Integer, default=0)
    total_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    avg_duration: Mapped[float] = mapped_column(Float, default=0)
    min_duration: Mapped[float] = mapped_column(Float, default=0)
    max_duration: Mapped[float] = mapped_column(Float, default=0)
    avg_size: Mapped[float] = mapped_column(Float, default=0)
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    first_request_at: Mapped[Optional[int]] = mapped_column(BigInteger)
    last_request_at: Mapped[Optional[int]] = mapped_column(BigInteger)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


# =============================================================================
# DIMENSION TABLES
# =============================================================================

class DimTime(Base):
    """
    Time Dimension Table

    One row per distinct timestamp, created lazily. Bucket indices are
    floor(timestamp / width) and never change once written.
    """
    __tablename__ = "dim_time"

    time_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[int] = mapped_column(BigInteger, unique=True, nullable=False)

    # Calendar (UTC)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    quarter: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    week: Mapped[int] = mapped_column(Integer, nullable=False)  # ISO week
    day: Mapped[int] = mapped_column(Integer, nullable=False)
    hour: Mapped[int] = mapped_column(Integer, nullable=False)
    minute: Mapped[int] = mapped_column(Integer, nullable=False)
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0=Monday
    day_of_year: Mapped[int] = mapped_column(Integer, nullable=False)
    is_weekend: Mapped[bool] = mapped_column(Boolean, default=False)
    is_business_hour: Mapped[bool] = mapped_column(Boolean, default=False)

    # Bucket indices
    period_1min: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_5min: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_15min: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_30min: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_1h: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_4h: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_1d: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_dim_time_period_1min", "period_1min"),
        Index("ix_dim_time_period_5min", "period_5min"),
        Index("ix_dim_time_period_15min", "period_15min"),
        Index("ix_dim_time_period_30min", "period_30min"),
        Index("ix_dim_time_period_1h", "period_1h"),
        Index("ix_dim_time_period_4h", "period_4h"),
        Index("ix_dim_time_period_1d", "period_1d"),
    )


class DimDomain(Base):
    """
    Domain Dimension Table

    Implements SCD Type 2: exactly one current row per domain, versions
    increase monotonically and [valid_from, valid_to) never overlap.
    """
    __tablename__ = "dim_domain"

    domain_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False)

    # Monitored attributes
    is_third_party: Mapped[bool] = mapped_column(Boolean, default=False)
    is_cdn: Mapped[bool] = mapped_column(Boolean, default=False)
    category: Mapped[str] = mapped_column(String(50), default="unknown")
    risk_level: Mapped[str] = mapped_column(String(20), default="low")  # low|medium|high|critical

    # SCD Type 2 fields
    valid_from: Mapped[int] = mapped_column(BigInteger, nullable=False)
    valid_to: Mapped[Optional[int]] = mapped_column(BigInteger)
    is_current: Mapped[bool] = mapped_column(Boolean, default=True)
    version: Mapped[int] = mapped_column(Integer, default=1)

    # Audit
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    facts: Mapped[List["FactRequest"]] = relationship(back_populates="domain_dim")

    __table_args__ = (
        UniqueConstraint("domain", "version", name="uq_dim_domain_version"),
        Index("ix_dim_domain_domain", "domain"),
        Index("ix_dim_domain_current", "domain", "is_current"),
        Index("ix_dim_domain_valid", "valid_from", "valid_to"),
    )


class DimResourceType(Base):
    """Resource Type Dimension, pre-seeded reference table"""
    __tablename__ = "dim_resource_type"

    resource_type_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    resource_type: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    is_cacheable: Mapped[bool] = mapped_column(Boolean, default=False)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    description: Mapped[Optional[str]] = mapped_column(String(200))


class DimStatusCode(Base):
    """HTTP Status Code Dimension, pre-seeded reference table"""
    __tablename__ = "dim_status_code"

    status_code_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    status_code: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    status_category: Mapped[str] = mapped_column(String(8), nullable=False)  # 2xx, 4xx, ...
    status_text: Mapped[Optional[str]] = mapped_column(String(100))
    is_success: Mapped[bool] = mapped_column(Boolean, default=False)
    is_error: Mapped[bool] = mapped_column(Boolean, default=False)
    is_redirect: Mapped[bool] = mapped_column(Boolean, default=False)
    description: Mapped[Optional[str]] = mapped_column(String(300))


# =============================================================================
# FACT TABLES
# =============================================================================

class FactRequest(Base):
    """
    Request Fact Table

    Grain: one live row per raw request. Rows are inserted, or deleted when a
    raw request is re-ingested or purged; never updated in place.
    """
    __tablename__ = "fact_requests"

    request_fact_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(128), nullable=False)

    # Dimension keys
    time_key: Mapped[int] = mapped_column(Integer, ForeignKey("dim_time.time_key"), nullable=False)
    domain_key: Mapped[int] = mapped_column(Integer, ForeignKey("dim_domain.domain_key"), nullable=False)
    resource_type_key: Mapped[int] = mapped_column(
        Integer, ForeignKey("dim_resource_type.resource_type_key"), nullable=False
    )
    status_code_key: Mapped[Optional[int]] = mapped_column(
        Integer, ForeignKey("dim_status_code.status_code_key")
    )

    # Measures
    duration_ms: Mapped[float] = mapped_column(Float, default=0)
    dns_time_ms: Mapped[float] = mapped_column(Float, default=0)
    tcp_time_ms: Mapped[float] = mapped_column(Float, default=0)
    ssl_time_ms: Mapped[float] = mapped_column(Float, default=0)
    wait_time_ms: Mapped[float] = mapped_column(Float, default=0)
    download_time_ms: Mapped[float] = mapped_column(Float, default=0)
    size_bytes: Mapped[int] = mapped_column(BigInteger, default=0)

    # Performance indicators
    is_cached: Mapped[bool] = mapped_column(Boolean, default=False)
    is_compressed: Mapped[bool] = mapped_column(Boolean, default=False)
    performance_score: Mapped[float] = mapped_column(Float, default=0)
    quality_score: Mapped[float] = mapped_column(Float, default=0)

    # Flags
    has_error: Mapped[bool] = mapped_column(Boolean, default=False)
    is_secure: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    domain_dim: Mapped["DimDomain"] = relationship(back_populates="facts")

    __table_args__ = (
        Index("ix_fact_requests_request", "request_id"),
        Index("ix_fact_requests_time", "time_key"),
        Index("ix_fact_requests_domain", "domain_key"),
        Index("ix_fact_requests_resource", "resource_type_key"),
        Index("ix_fact_requests_status", "status_code_key"),
    )


class FactOHLCPerformance(Base):
    """
    OHLC Latency Candle Table

    Grain: one row per (period_type, period_start, domain, resource_type);
    domain and resource_type are NULL for the unfiltered scope.
    """
    __tablename__ = "fact_ohlc_performance"

    ohlc_fact_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_type: Mapped[str] = mapped_column(String(8), nullable=False)
    bucket: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Scope
    domain: Mapped[Optional[str]] = mapped_column(String(255))
    resource_type: Mapped[Optional[str]] = mapped_column(String(32))

    # Candle
    open_time: Mapped[float] = mapped_column(Float, default=0)
    high_time: Mapped[float] = mapped_column(Float, default=0)
    low_time: Mapped[float] = mapped_column(Float, default=0)
    close_time: Mapped[float] = mapped_column(Float, default=0)

    # Volume
    request_count: Mapped[int] = mapped_column(Integer, default=0)
    total_bytes: Mapped[int] = mapped_column(BigInteger, default=0)

    # Distribution
    avg_response_time: Mapped[float] = mapped_column(Float, default=0)
    median_response_time: Mapped[float] = mapped_column(Float, default=0)
    p95_response_time: Mapped[float] = mapped_column(Float, default=0)
    p99_response_time: Mapped[float] = mapped_column(Float, default=0)

    # Quality
    success_count: Mapped[int] = mapped_column(Integer, default=0)
    error_count: Mapped[int] = mapped_column(Integer, default=0)
    error_rate: Mapped[float] = mapped_column(Float, default=0)
    avg_performance_score: Mapped[float] = mapped_column(Float, default=0)
    avg_quality_score: Mapped[float] = mapped_column(Float, default=0)

    period_start: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_end: Mapped[int] = mapped_column(BigInteger, nullable=False)
    computed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_fact_ohlc_period", "period_type", "period_start"),
        Index("ix_fact_ohlc_domain_period", "domain", "period_type"),
    )


class FactQualityMetrics(Base):
    """
    Quality Metrics Table

    Grain: one row per (period_type, period_start, domain); domain is NULL for
    the unfiltered scope.
    """
    __tablename__ = "fact_quality_metrics"

    quality_fact_key: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    period_type: Mapped[str] = mapped_column(String(8), nullable=False)
    bucket: Mapped[int] = mapped_column(BigInteger, nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(String(255))

    # Indices
    availability_rate: Mapped[float] = mapped_column(Float, default=0)
    performance_index: Mapped[float] = mapped_column(Float, default=0)
    reliability_score: Mapped[float] = mapped_column(Float, default=0)
    security_score: Mapped[float] = mapped_column(Float, default=0)

    # Counts
    total_requests: Mapped[int] = mapped_column(Integer, default=0)
    successful_requests: Mapped[int] = mapped_column(Integer, default=0)
    failed_requests: Mapped[int] = mapped_column(Integer, default=0)

    # Latency histogram
    requests_under_100ms: Mapped[int] = mapped_column(Integer, default=0)
    requests_under_500ms: Mapped[int] = mapped_column(Integer, default=0)
    requests_under_1s: Mapped[int] = mapped_column(Integer, default=0)
    requests_under_3s: Mapped[int] = mapped_column(Integer, default=0)
    requests_over_3s: Mapped[int] = mapped_column(Integer, default=0)

    # Transfer
    total_data_transferred: Mapped[int] = mapped_column(BigInteger, default=0)
    cached_data_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    cache_hit_rate: Mapped[float] = mapped_column(Float, default=0)

    period_start: Mapped[int] = mapped_column(BigInteger, nullable=False)
    period_end: Mapped[int] = mapped_column(BigInteger, nullable=False)
    computed_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_fact_quality_period", "period_type", "period_start"),
        Index("ix_fact_quality_domain", "domain"),
    )


# SQLite treats NULLs as distinct in plain unique constraints
Index(
    "uq_fact_ohlc_scope",
    FactOHLCPerformance.period_type,
    FactOHLCPerformance.period_start,
    func.coalesce(FactOHLCPerformance.domain, ""),
    func.coalesce(FactOHLCPerformance.resource_type, ""),
    unique=True,
)

Index(
    "uq_fact_quality_scope",
    FactQualityMetrics.period_type,
    FactQualityMetrics.period_start,
    func.coalesce(FactQualityMetrics.domain, ""),
    unique=True,
)


# =============================================================================
# GOLD LAYER
# =============================================================================

class GoldDailyAnalytics(Base):
    """
    Daily Analytics Summary

    Pre-computed daily request metrics for fast dashboard queries.
    Updated by the Gold summarizer.
    """
    __tablename__ = "gold_daily_analytics"

    date: Mapped[str] = mapped_column(String(10), primary_key=True)  # YYYY-MM-DD (UTC)
    total_requests: Mapped[int] = mapped_column(Integer, default=0)
    total_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    avg_response_time: Mapped[float] = mapped_column(Float, default=0)
    median_response_time: Mapped[float] = mapped_column(Float, default=0)
    p95_response_time: Mapped[float] = mapped_column(Float, default=0)
    p99_response_time: Mapped[float] = mapped_column(Float, default=0)
    error_rate: Mapped[float] = mapped_column(Float, default=0)  # percent
    unique_domains: Mapped[int] = mapped_column(Integer, default=0)
    top_domains: Mapped[Optional[list]] = mapped_column(JSON)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)


class GoldDomainPerformance(Base):
    """Per-domain daily performance report with letter grade"""
    __tablename__ = "gold_domain_performance"

    domain: Mapped[str] = mapped_column(String(255), primary_key=True)
    date: Mapped[str] = mapped_column(String(10), primary_key=True)
    request_count: Mapped[int] = mapped_column(Integer, default=0)
    total_bytes: Mapped[int] = mapped_column(BigInteger, default=0)
    avg_response_time: Mapped[float] = mapped_column(Float, default=0)
    p95_response_time: Mapped[float] = mapped_column(Float, default=0)
    error_rate: Mapped[float] = mapped_column(Float, default=0)  # percent
    performance_grade: Mapped[str] = mapped_column(String(1), nullable=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        Index("ix_gold_domain_perf_date", "date"),
    )


# =============================================================================
# PIPELINE
# =============================================================================

class PipelineReadyEvent(Base):
    """
    Downstream Work Queue

    Written in the same transaction as the fact it announces; the aggregation
    scheduler claims unprocessed rows and recomputes the buckets they touch.
    """
    __tablename__ = "pipeline_ready_events"

    event_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(128), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    domain: Mapped[Optional[str]] = mapped_column(String(255))
    resource_type: Mapped[Optional[str]] = mapped_column(String(32))
    is_retraction: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processed_at: Mapped[Optional[int]] = mapped_column(BigInteger)

    __table_args__ = (
        Index("ix_pipeline_ready_pending", "processed_at", "event_id"),
    )
