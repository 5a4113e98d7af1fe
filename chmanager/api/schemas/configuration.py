"""
Pydantic schemas for the configuration page and the table schema view.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ClusterInfoSchema(BaseModel):
    host: str
    port: int
    protocol: str
    database_default: str
    read_write_mode: bool
    cluster_name: str
    shards: int
    replicas: int
    version: str
    uptime: int = Field(..., description="Server uptime in seconds")
    timezone: str
    display_name: str

    model_config = ConfigDict(from_attributes=True)


class ServerSettingSchema(BaseModel):
    name: str
    value: str
    changed: bool
    description: str
    type: str
    readonly: int

    model_config = ConfigDict(from_attributes=True)


class ServerUserSchema(BaseModel):
    name: str
    id: str
    storage: str
    auth_type: str
    host_ip: str
    default_roles: List[str]
    default_database: str

    model_config = ConfigDict(from_attributes=True)


class ServerRoleSchema(BaseModel):
    name: str
    id: str
    storage: str

    model_config = ConfigDict(from_attributes=True)


class StorageVolumeSchema(BaseModel):
    name: str
    disks: List[str]
    max_data_part_size: int

    model_config = ConfigDict(from_attributes=True)


class StoragePolicySchema(BaseModel):
    name: str
    move_factor: float
    volumes: List[StorageVolumeSchema]

    model_config = ConfigDict(from_attributes=True)


class DiskSchema(BaseModel):
    name: str
    path: str
    free_space: int
    total_space: int
    keep_free_space: int
    type: str

    model_config = ConfigDict(from_attributes=True)


class ProcessStatsSchema(BaseModel):
    memory_tracking: int
    queries_in_progress: int
    background_merges: int
    background_fetches: int

    model_config = ConfigDict(from_attributes=True)


class QueryLogConfigSchema(BaseModel):
    enabled: bool
    flush_interval: int = Field(..., description="log_queries_min_interval_ms")
    size_bytes: int
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ConfigurationResponse(BaseModel):
    """Everything shown on the configuration page; unreadable sections are empty."""
    cluster_info: ClusterInfoSchema
    settings: List[ServerSettingSchema]
    users: List[ServerUserSchema]
    roles: List[ServerRoleSchema]
    storage_policies: List[StoragePolicySchema]
    disks: List[DiskSchema]
    processes: ProcessStatsSchema
    log_config: QueryLogConfigSchema

    model_config = ConfigDict(from_attributes=True)


class ColumnMetaSchema(BaseModel):
    name: str
    type: str
    default_kind: str
    default_expression: str
    comment: str
    is_in_primary_key: bool
    is_in_sorting_key: bool

    model_config = ConfigDict(from_attributes=True)


class TableSchemaResponse(BaseModel):
    """Columns and CREATE statement of a table."""
    database: str
    table: str
    columns: List[ColumnMetaSchema]
    create_sql: str
