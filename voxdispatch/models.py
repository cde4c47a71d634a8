"""SQLAlchemy ORM models for registered services and dispatch logs."""
import datetime
from sqlalchemy import Column, String, DateTime, Float, Text, JSON
from .database import Base

STATUS_HEALTHY = "healthy"
STATUS_UNHEALTHY = "unhealthy"

RESULT_SUCCESS = "success"
RESULT_ERROR = "error"


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _iso(value):
    if not value:
        return None
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value.isoformat()


class Service(Base):
    __tablename__ = "services"

    id = Column(String(36), primary_key=True)
    name = Column(String(128), unique=True, nullable=False, index=True)
    description = Column(Text, default="")
    base_url = Column(String(512), nullable=False)
    api_key = Column(Text, nullable=False)
    endpoints = Column(JSON, nullable=False, default=list)  # as fetched from the service's docs
    registered_at = Column(DateTime(timezone=True), default=utcnow)
    last_health_check = Column(DateTime(timezone=True), nullable=True)
    status = Column(String(16), default=STATUS_HEALTHY, index=True)  # healthy / unhealthy

    @property
    def is_healthy(self) -> bool:
        return self.status == STATUS_HEALTHY

    def summary(self) -> dict:
        return {"id": self.id, "name": self.name, "description": self.description}

    def to_dict(self) -> dict:
        """API representation. The stored credential is never included."""
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "baseUrl": self.base_url,
            "endpoints": self.endpoints,
            "registeredAt": _iso(self.registered_at),
            "lastHealthCheck": _iso(self.last_health_check),
            "status": self.status,
        }


class RequestLog(Base):
    __tablename__ = "requests"

    id = Column(String(36), primary_key=True)
    transcript = Column(Text, default="")
    selected_service = Column(String(128), nullable=False)
    endpoint = Column(JSON, nullable=False)
    arguments = Column(JSON, default=dict)
    confidence = Column(Float, default=1.0)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)
    result = Column(String(16), nullable=False)  # success / error
    callback_url = Column(String(1024), nullable=True)
    response = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transcript": self.transcript,
            "selectedService": self.selected_service,
            "endpoint": self.endpoint,
            "arguments": self.arguments,
            "confidence": self.confidence,
            "timestamp": _iso(self.timestamp),
            "result": self.result,
            "callbackUrl": self.callback_url,
            "response": self.response,
            "error": self.error,
        }
