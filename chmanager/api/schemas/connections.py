"""
Pydantic schemas for ClickHouse connections API.

Defines request and response models for managing connections.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def normalize_protocol(v: str) -> str:
    v_lower = v.lower()
    if v_lower not in ("http", "https"):
        raise ValueError("protocol must be one of: http, https")
    return v_lower


class ConnectionCreateRequest(BaseModel):
    """Request schema for registering a ClickHouse connection."""
    name: str = Field(..., min_length=1, max_length=255, description="Connection name")
    host: str = Field(..., min_length=1, max_length=255, description="ClickHouse host")
    port: int = Field(default=8123, ge=1, le=65535, description="HTTP interface port (1-65535)")
    protocol: str = Field(default="http", description="http or https")
    database: str = Field(default="default", min_length=1, max_length=255, description="Default database")
    username: str = Field(default="default", min_length=1, max_length=255)
    password: str = Field(default="", description="Password (never returned)")

    @field_validator('protocol')
    @classmethod
    def validate_protocol(cls, v: str) -> str:
        """Validate protocol."""
        return normalize_protocol(v)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "name": "Analytics cluster",
                "host": "clickhouse.example.com",
                "port": 8443,
                "protocol": "https",
                "database": "analytics",
                "username": "console",
                "password": "secure_password"
            }
        }
    )


class ConnectionUpdateRequest(BaseModel):
    """Request schema for updating a connection; only provided fields change."""
    name: Optional[str] = Field(None, min_length=1, max_length=255, description="Connection name")
    host: Optional[str] = Field(None, min_length=1, max_length=255, description="ClickHouse host")
    port: Optional[int] = Field(None, ge=1, le=65535, description="HTTP interface port")
    protocol: Optional[str] = Field(None, description="http or https")
    database: Optional[str] = Field(None, min_length=1, max_length=255, description="Default database")
    username: Optional[str] = Field(None, min_length=1, max_length=255)
    password: Optional[str] = Field(None, description="New password")

    @field_validator('protocol')
    @classmethod
    def validate_protocol(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return normalize_protocol(v)


class ConnectionResponse(BaseModel):
    """Response schema for a connection; credentials are left out."""
    id: int
    name: str
    host: str
    port: int
    protocol: str
    database: str
    username: str
    server_info: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TableMetaSchema(BaseModel):
    name: str
    engine: str
    total_rows: int
    total_bytes: int

    model_config = ConfigDict(from_attributes=True)


class MessageResponse(BaseModel):
    """Generic message response."""
    message: str
