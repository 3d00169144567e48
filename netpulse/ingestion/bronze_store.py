"""
Bronze Raw Event Store

Append/replace-only capture of raw request telemetry. Input arrives from the
capture collaborator as loosely typed dictionaries (camelCase or snake_case);
pydantic models coerce them, degrading unusable values to defaults rather
than rejecting the record.

Every write is best-effort: failures are logged and reported through the
return value, never raised to the caller.
"""

from typing import Any, Callable, Iterable, List, Mapping, Optional, Union
from urllib.parse import urlsplit

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from netpulse.database.connection import Database
from netpulse.database.models import BronzeRequest, BronzeRequestHeader, BronzeRequestTiming
from netpulse.errors import StorageError
from netpulse.warehouse.time_buckets import now_ms

logger = structlog.get_logger(__name__)


def _lenient_float(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _lenient_int(v: Any) -> Optional[int]:
    number = _lenient_float(v)
    return int(number) if number is not None else None


def _lenient_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    text = str(v)
    return text if text else None


# =============================================================================
# INPUT MODELS
# =============================================================================

class RawRequestEvent(BaseModel):
    """
    One captured network request.

    Only ``id`` is mandatory. URL parts missing from the payload are derived
    from the URL when it parses.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    url: Optional[str] = None
    method: str = "GET"
    type: str = "other"
    status: Optional[int] = None
    status_text: Optional[str] = Field(default=None, alias="statusText")
    domain: Optional[str] = None
    path: Optional[str] = None
    query_string: Optional[str] = Field(default=None, alias="queryString")
    protocol: Optional[str] = None
    start_time: Optional[float] = Field(default=None, alias="startTime")
    end_time: Optional[float] = Field(default=None, alias="endTime")
    duration: Optional[float] = None
    size_bytes: int = Field(default=0, alias="sizeBytes")
    timestamp: Optional[int] = None
    tab_id: Optional[int] = Field(default=None, alias="tabId")
    frame_id: Optional[int] = Field(default=None, alias="frameId")
    page_url: Optional[str] = Field(default=None, alias="pageUrl")
    initiator: Optional[str] = None
    error: Optional[str] = None
    from_cache: bool = Field(default=False, alias="fromCache")

    @field_validator("id", mode="before")
    @classmethod
    def validate_id(cls, v: Any) -> str:
        text = _lenient_str(v)
        if text is None:
            raise ValueError("request id is required")
        return text

    @field_validator("start_time", "end_time", "duration", mode="before")
    @classmethod
    def coerce_float(cls, v: Any) -> Optional[float]:
        return _lenient_float(v)

    @field_validator("status", "timestamp", "tab_id", "frame_id", mode="before")
    @classmethod
    def coerce_int(cls, v: Any) -> Optional[int]:
        return _lenient_int(v)

    @field_validator("size_bytes", mode="before")
    @classmethod
    def coerce_size(cls, v: Any) -> int:
        size = _lenient_int(v)
        return size if size is not None and size > 0 else 0

    @field_validator("url", "status_text", "domain", "path", "query_string", "protocol",
                     "page_url", "initiator", "error", mode="before")
    @classmethod
    def coerce_str(cls, v: Any) -> Optional[str]:
        return _lenient_str(v)

    @field_validator("method", mode="before")
    @classmethod
    def coerce_method(cls, v: Any) -> str:
        return (_lenient_str(v) or "GET").upper()

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type(cls, v: Any) -> str:
        return (_lenient_str(v) or "other").lower()

    @field_validator("from_cache", mode="before")
    @classmethod
    def coerce_bool(cls, v: Any) -> bool:
        if isinstance(v, str):
            return v.strip().lower() in ("1", "true", "yes")
        return bool(v)

    @model_validator(mode="after")
    def derive_url_parts(self) -> "RawRequestEvent":
        if self.url and not (self.domain and self.protocol):
            try:
                parts = urlsplit(self.url)
            except ValueError:
                return self
            self.domain = self.domain or parts.hostname
            self.path = self.path or parts.path or None
            self.query_string = self.query_string or parts.query or None
            self.protocol = self.protocol or (f"{parts.scheme}:" if parts.scheme else None)
        return self


class RawTimings(BaseModel):
    """Connection timing breakdown; absent or unusable values become 0."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    dns_start: float = Field(default=0, alias="dnsStart")
    dns_end: float = Field(default=0, alias="dnsEnd")
    dns_duration: float = Field(default=0, alias="dnsDuration")
    tcp_start: float = Field(default=0, alias="tcpStart")
    tcp_end: float = Field(default=0, alias="tcpEnd")
    tcp_duration: float = Field(default=0, alias="tcpDuration")
    ssl_start: float = Field(default=0, alias="sslStart")
    ssl_end: float = Field(default=0, alias="sslEnd")
    ssl_duration: float = Field(default=0, alias="sslDuration")
    request_start: float = Field(default=0, alias="requestStart")
    request_end: float = Field(default=0, alias="requestEnd")
    request_duration: float = Field(default=0, alias="requestDuration")
    response_start: float = Field(default=0, alias="responseStart")
    response_end: float = Field(default=0, alias="responseEnd")
    response_duration: float = Field(default=0, alias="responseDuration")

    @field_validator("*", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> float:
        number = _lenient_float(v)
        return number if number is not None else 0.0


HeadersInput = Union[Mapping[str, Any], Iterable[Mapping[str, Any]]]


# =============================================================================
# STORE
# =============================================================================

class BronzeStore:
    """
    Writes raw capture records into the Bronze tables.

    Example:
        store = BronzeStore(database)
        request_id = await store.insert_raw_request({"id": "r1", "url": "https://example.com/"})
    """

    def __init__(self, database: Database, clock: Callable[[], int] = now_ms):
        self.database = database
        self.clock = clock

    async def insert_raw_request(self, event: Union[RawRequestEvent, Mapping[str, Any]]) -> Optional[str]:
        """
        Insert or replace one raw request.

        Args:
            event: RawRequestEvent or a raw capture dictionary

        Returns:
            The request id, or None when the record could not be stored
        """
        try:
            raw = event if isinstance(event, RawRequestEvent) else RawRequestEvent.model_validate(event)
        except ValidationError as e:
            logger.warning("Raw request rejected", error=str(e))
            return None

        now = self.clock()
        values = raw.model_dump()
        values["timestamp"] = raw.timestamp if raw.timestamp is not None else now
        values["created_at"] = now

        stmt = sqlite_insert(BronzeRequest).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[BronzeRequest.id],
            set_={k: stmt.excluded[k] for k in values if k != "id"},
        )

        try:
            async with self.database.session() as session:
                await session.execute(stmt)
        except StorageError as e:
            logger.error("Failed to insert bronze request", request_id=raw.id, error=str(e))
            return None

        logger.debug("Bronze request stored", request_id=raw.id)
        return raw.id

    async def insert_headers(
        self,
        request_id: str,
        headers: HeadersInput,
        header_type: str = "request",
    ) -> int:
        """
        Append header rows for a request.

        Args:
            request_id: Raw request id
            headers: Mapping of name to value, or a list of {"name", "value"} items
            header_type: "request" or "response"

        Returns:
            Number of rows written (0 on failure)
        """
        now = self.clock()
        rows: List[BronzeRequestHeader] = []
        for name, value in _header_pairs(headers):
            rows.append(BronzeRequestHeader(
                request_id=request_id,
                header_type=header_type,
                name=name,
                value=value,
                created_at=now,
            ))
        if not rows:
            return 0

        try:
            async with self.database.session() as session:
                session.add_all(rows)
        except StorageError as e:
            logger.error("Failed to insert bronze headers", request_id=request_id, error=str(e))
            return 0
        return len(rows)

    async def insert_timings(self, request_id: str, timings: Union[RawTimings, Mapping[str, Any]]) -> bool:
        """
        Insert or replace the timing breakdown of a request.

        Returns:
            True when stored
        """
        try:
            parsed = timings if isinstance(timings, RawTimings) else RawTimings.model_validate(timings or {})
        except ValidationError as e:
            logger.warning("Raw timings rejected", request_id=request_id, error=str(e))
            return False

        values = parsed.model_dump()
        values["request_id"] = request_id
        values["created_at"] = self.clock()

        stmt = sqlite_insert(BronzeRequestTiming).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[BronzeRequestTiming.request_id],
            set_={k: stmt.excluded[k] for k in values if k != "request_id"},
        )

        try:
            async with self.database.session() as session:
                await session.execute(stmt)
        except StorageError as e:
            logger.error("Failed to insert bronze timings", request_id=request_id, error=str(e))
            return False
        return True


def _header_pairs(headers: Optional[HeadersInput]) -> List[tuple]:
    if not headers:
        return []
    if isinstance(headers, Mapping):
        return [(str(k), _lenient_str(v)) for k, v in headers.items()]

    pairs = []
    for item in headers:
        name = _lenient_str(item.get("name")) if isinstance(item, Mapping) else None
        if name:
            pairs.append((name, _lenient_str(item.get("value"))))
    return pairs
