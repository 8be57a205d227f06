"""Dependency injection singletons for Licensary."""

from licensary.audit.service import AuditService
from licensary.common.config import get_settings
from licensary.common.database import DatabaseManager
from licensary.licensing.service import LicensingService
from licensary.reporting.service import ReportingService
from licensary.sheets.client import ServiceAccountTokenProvider, SheetsClient
from licensary.sheets.engine import PullScheduler, PushQueue, SyncEngine
from licensary.usage.service import UsageService
from licensary.users.service import UserService

_db: DatabaseManager | None = None
_licensing: LicensingService | None = None
_usage: UsageService | None = None
_users: UserService | None = None
_audit: AuditService | None = None
_reporting: ReportingService | None = None
_sheets: SheetsClient | None = None
_sync: SyncEngine | None = None
_push_queue: PushQueue | None = None
_scheduler: PullScheduler | None = None


def get_db() -> DatabaseManager:
    global _db
    if _db is None:
        _db = DatabaseManager(get_settings())
    return _db


def get_usage_service() -> UsageService:
    global _usage
    if _usage is None:
        _usage = UsageService(get_settings())
    return _usage


def get_audit_service() -> AuditService:
    global _audit
    if _audit is None:
        _audit = AuditService(get_settings())
    return _audit


def get_user_service() -> UserService:
    global _users
    if _users is None:
        _users = UserService(get_settings())
    return _users


def get_reporting_service() -> ReportingService:
    global _reporting
    if _reporting is None:
        _reporting = ReportingService(get_settings())
    return _reporting


def get_licensing_service() -> LicensingService:
    global _licensing
    if _licensing is None:
        _licensing = LicensingService(
            get_settings(),
            get_usage_service(),
            audit_service=get_audit_service(),
            push_queue=get_push_queue(),
        )
    return _licensing


# ── Spreadsheet sync (None unless enabled) ──

def get_sheets_client() -> SheetsClient | None:
    global _sheets
    settings = get_settings()
    if not settings.sheets_enabled:
        return None
    if _sheets is None:
        _sheets = SheetsClient(
            settings.sheets_spreadsheet_id,
            settings.sheets_sheet_name,
            ServiceAccountTokenProvider(settings.sheets_credentials_path),
            timeout=settings.sheets_timeout,
        )
    return _sheets


def get_sync_engine() -> SyncEngine | None:
    global _sync
    mirror = get_sheets_client()
    if mirror is None:
        return None
    if _sync is None:
        _sync = SyncEngine(get_settings(), get_db(), mirror)
    return _sync


def get_push_queue() -> PushQueue | None:
    global _push_queue
    engine = get_sync_engine()
    if engine is None:
        return None
    if _push_queue is None:
        _push_queue = PushQueue(engine, maxsize=get_settings().sheets_push_queue_size)
    return _push_queue


def get_pull_scheduler() -> PullScheduler | None:
    global _scheduler
    engine = get_sync_engine()
    if engine is None:
        return None
    if _scheduler is None:
        _scheduler = PullScheduler(engine, get_settings().sheets_pull_interval)
    return _scheduler


def reset_singletons() -> None:
    """Reset all singletons (for testing)."""
    global _db, _licensing, _usage, _users, _audit, _reporting
    global _sheets, _sync, _push_queue, _scheduler
    _db = None
    _licensing = None
    _usage = None
    _users = None
    _audit = None
    _reporting = None
    _sheets = None
    _sync = None
    _push_queue = None
    _scheduler = None
