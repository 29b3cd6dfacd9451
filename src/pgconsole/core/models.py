"""Data models for pgconsole.

Pydantic models for connection specs, schema descriptors, RLS policies,
DDL requests and normalized query results. Every instance is built per
request and discarded with the response.
"""

from __future__ import annotations

import math
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, SecretStr, model_validator

# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class TunnelSpec(BaseModel):
    """SSH jump host through which database traffic is forwarded."""

    model_config = ConfigDict(frozen=True)

    host: str = ""
    port: int = 22
    username: str = ""
    password: SecretStr | None = None
    private_key: SecretStr | None = None
    passphrase: SecretStr | None = None

    @property
    def uses_key(self) -> bool:
        return bool(self.private_key and self.private_key.get_secret_value())

    def safe_description(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


class ConnectionSpec(BaseModel):
    """Everything needed to reach one database for one request."""

    model_config = ConfigDict(frozen=True)

    host: str = ""
    port: int = 5432
    username: str = ""
    password: SecretStr | None = None
    database: str = ""
    sslmode: str = "prefer"
    tunnel: TunnelSpec | None = None

    def password_value(self) -> str | None:
        return self.password.get_secret_value() if self.password else None

    def safe_description(self) -> str:
        """user@host:port/db, for logs and error messages."""
        desc = f"{self.username}@{self.host}:{self.port}/{self.database}"
        if self.tunnel is not None:
            desc += f" via ssh {self.tunnel.safe_description()}"
        return desc


# ---------------------------------------------------------------------------
# Schema descriptors
# ---------------------------------------------------------------------------


class ColumnDescriptor(BaseModel):
    name: str
    data_type: str
    nullable: bool
    default_expression: str | None = None
    max_length: int | None = None
    is_identity: bool = False

    @property
    def is_auto_generated(self) -> bool:
        """Sequence-backed default or identity column."""
        if self.is_identity:
            return True
        default = (self.default_expression or "").lower()
        return default.startswith("nextval(")


class ForeignKeyDescriptor(BaseModel):
    column: str
    referenced_table: str
    referenced_column: str


class TableDescriptor(BaseModel):
    name: str
    columns: list[ColumnDescriptor]
    primary_keys: list[str] = []
    foreign_keys: list[ForeignKeyDescriptor] = []


class TableDescription(BaseModel):
    """Structure plus a bounded sample of rows and the total row count."""

    table: TableDescriptor
    sample_rows: list[dict[str, Any]]
    total_rows: int


# ---------------------------------------------------------------------------
# Row level security
# ---------------------------------------------------------------------------


class PolicyCommand(StrEnum):
    SELECT = "SELECT"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    ALL = "ALL"


class RLSPolicy(BaseModel):
    schema_name: str
    table: str
    name: str
    permissive: bool = True
    command: PolicyCommand = PolicyCommand.ALL
    using_expression: str | None = None
    with_check_expression: str | None = None
    roles: list[str] = []


class RlsTableState(BaseModel):
    table: str
    rls_enabled: bool
    rls_forced: bool


class PolicyListing(BaseModel):
    policies: list[RLSPolicy]
    tables_with_rls: list[RlsTableState]


class PolicySpec(BaseModel):
    """Desired state of one policy; replaces any policy with the same name."""

    name: str
    command: PolicyCommand = PolicyCommand.ALL
    roles: list[str] = []
    using: str | None = None
    with_check: str | None = None
    permissive: bool = True


# ---------------------------------------------------------------------------
# DDL requests
# ---------------------------------------------------------------------------


class ReferentialAction(StrEnum):
    NO_ACTION = "NO ACTION"
    RESTRICT = "RESTRICT"
    CASCADE = "CASCADE"
    SET_NULL = "SET NULL"
    SET_DEFAULT = "SET DEFAULT"


class ForeignKeyReference(BaseModel):
    table: str
    column: str
    on_delete: ReferentialAction | None = None
    on_update: ReferentialAction | None = None


class ColumnSpec(BaseModel):
    name: str
    type: str
    primary_key: bool = False
    unique: bool = False
    not_null: bool = False
    default: str | None = None
    references: ForeignKeyReference | None = None


class AlterOperation(StrEnum):
    ADD_COLUMN = "addColumn"
    DROP_COLUMN = "dropColumn"
    RENAME_COLUMN = "renameColumn"
    RENAME_TABLE = "renameTable"


class AlterTableSpec(BaseModel):
    operation: AlterOperation
    column: str | None = None
    new_name: str | None = None
    type: str | None = None
    not_null: bool = False
    default: str | None = None


# ---------------------------------------------------------------------------
# Queries and results
# ---------------------------------------------------------------------------


class Statement(NamedTuple):
    """SQL text with psycopg %s placeholders and the values to bind."""

    text: str
    params: list[Any]


class SortDirection(StrEnum):
    ASC = "ASC"
    DESC = "DESC"


class PageRequest(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=10, ge=1)
    order_by: str | None = None
    order_direction: str = "ASC"
    filter: str | None = None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


class Pagination(BaseModel):
    page: int
    page_size: int
    total_rows: int
    total_pages: int

    @classmethod
    def compute(cls, page: int, page_size: int, total_rows: int) -> Pagination:
        return cls(
            page=page,
            page_size=page_size,
            total_rows=total_rows,
            total_pages=math.ceil(total_rows / page_size) if page_size else 0,
        )


class QueryResult(BaseModel):
    """Normalized result of a statement.

    ``rows[i]`` always has exactly the keys in ``columns``. ``row_count`` is
    rows returned for queries and rows affected for DML.
    """

    columns: list[str]
    rows: list[dict[str, Any]]
    row_count: int
    status_message: str = ""

    @model_validator(mode="after")
    def rows_match_columns(self) -> QueryResult:
        expected = list(self.columns)
        for index, row in enumerate(self.rows):
            if list(row.keys()) != expected:
                msg = f"Row {index} keys {list(row.keys())} do not match columns {expected}"
                raise ValueError(msg)
        return self


class RowPage(BaseModel):
    columns: list[str]
    rows: list[dict[str, Any]]
    pagination: Pagination


class OperationResult(BaseModel):
    """Acknowledgement for DDL and policy operations."""

    success: bool = True
    message: str
