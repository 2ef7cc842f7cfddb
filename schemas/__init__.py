from .lead import AddLeadResult, Board, LeadPatch, Priority
from .metrics import MetricsRates
from .backup import (
    BACKUP_FORMAT,
    BACKUP_VERSION,
    AppInfo,
    BackupEnvelope,
    ImportOptions,
    ImportResult,
    IndexInfo,
    PrimaryKeyInfo,
    TableDump,
    TableImportResult,
)

__all__ = [
    "AddLeadResult", "Board", "LeadPatch", "Priority",
    "MetricsRates",
    "BACKUP_FORMAT", "BACKUP_VERSION", "AppInfo", "BackupEnvelope",
    "ImportOptions", "ImportResult", "IndexInfo", "PrimaryKeyInfo",
    "TableDump", "TableImportResult",
]
