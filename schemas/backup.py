"""Backup envelope, import options and import audit schemas."""
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

BACKUP_FORMAT = "ignis-crm-backup"
BACKUP_VERSION = 1

KeyPath = Union[str, List[str]]


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class PrimaryKeyInfo(_WireModel):
    key_path: Optional[KeyPath] = Field(default=None, alias="keyPath")
    auto: bool = False


class IndexInfo(_WireModel):
    name: str
    key_path: KeyPath = Field(alias="keyPath")


class TableDump(_WireModel):
    primary_key: Optional[PrimaryKeyInfo] = Field(default=None, alias="primaryKey")
    indexes: List[IndexInfo] = Field(default_factory=list)
    count: int = 0
    rows: List[Optional[Dict[str, Any]]] = Field(default_factory=list)

    @field_validator("rows", mode="before")
    @classmethod
    def _rows_must_be_list(cls, v: Any) -> Any:
        return v if isinstance(v, list) else []


class AppInfo(_WireModel):
    name: Optional[str] = None
    extension_version: Optional[str] = Field(default=None, alias="extensionVersion")
    db_name: Optional[str] = Field(default=None, alias="dbName")


class BackupEnvelope(_WireModel):
    """Top-level backup document (format "ignis-crm-backup", version 1).

    Only format, backupVersion and the tables mapping are checked strictly;
    per-table dumps are parsed later, and only for tables the store knows.
    """

    format: Literal["ignis-crm-backup"]
    backup_version: Literal[1] = Field(alias="backupVersion")
    exported_at: Optional[str] = Field(default=None, alias="exportedAt")
    app: Optional[AppInfo] = None
    tables: Dict[str, Any]

    @field_validator("backup_version", mode="before")
    @classmethod
    def _exact_version(cls, v: Any) -> Any:
        # True == 1 and 1.0 == 1 in Python; neither is a valid version
        if isinstance(v, bool) or not isinstance(v, int):
            raise ValueError("backupVersion must be the integer 1")
        return v

    @field_validator("app", mode="before")
    @classmethod
    def _ignore_bad_app(cls, v: Any) -> Any:
        return v if isinstance(v, (dict, AppInfo)) else None

    def to_wire(self) -> Dict[str, Any]:
        """JSON-ready dict; unset app fields are omitted."""
        data = self.model_dump(by_alias=True)
        if data.get("app") is not None:
            data["app"] = {k: v for k, v in data["app"].items() if v is not None}
        return data


class ImportOptions(BaseModel):
    mode: Literal["merge", "replace"] = "merge"
    confirm_replace: bool = False
    # Merge never moves an existing lead to another stage unless this is False
    keep_existing_lead_stage: bool = True


class TableImportResult(BaseModel):
    name: str
    incoming: int
    added: int = 0
    updated: int = 0
    skipped: int = 0


class ImportResult(BaseModel):
    tables: List[TableImportResult] = Field(default_factory=list)

    def for_table(self, name: str) -> Optional[TableImportResult]:
        return next((t for t in self.tables if t.name == name), None)
