"""Reporting service: read-only license statistics."""

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from licensary.common.config import LicensarySettings
from licensary.common.exceptions import BadRequestError
from licensary.common.models import as_utc, utcnow
from licensary.licensing.models import LicenseModel
from licensary.licensing.state import LicenseStatus
from licensary.usage.models import LicenseUsageModel
from licensary.users.models import LoginLogModel

DATE_FORMAT = "%Y-%m-%d"


@dataclass
class DailyUsage:
    date: date
    active_users: int = 0
    new_activations: int = 0
    total_checks: int = 0


@dataclass
class LicenseStatistics:
    start_date: date
    end_date: date
    total_licenses: int = 0
    active_licenses: int = 0
    expired_licenses: int = 0
    expiring_licenses: int = 0
    suspended_licenses: int = 0
    revoked_licenses: int = 0
    licenses_by_product: dict[str, int] = field(default_factory=dict)
    daily_usage: list[DailyUsage] = field(default_factory=list)
    average_usage_duration: float = 0.0
    total_activations: int = 0
    failed_activations: int = 0
    success_rate: float = 0.0


def parse_date(value: str | None, field_name: str) -> date | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError as exc:
        raise BadRequestError(
            f"Invalid {field_name}: expected YYYY-MM-DD", code="INVALID_DATE",
        ) from exc


class ReportingService:
    """Aggregates license, usage and login data over a date window."""

    def __init__(self, settings: LicensarySettings):
        self.settings = settings

    def resolve_window(
        self, start: date | None = None, end: date | None = None,
    ) -> tuple[date, date]:
        today = utcnow().date()
        end = end or today
        start = start or today - timedelta(days=self.settings.statistics_default_days)
        if start > end:
            raise BadRequestError("start_date must not be after end_date", code="INVALID_DATE")
        return start, end

    async def license_statistics(
        self, session: AsyncSession, start: date | None = None, end: date | None = None,
    ) -> LicenseStatistics:
        start, end = self.resolve_window(start, end)
        window_start = datetime.combine(start, time.min, tzinfo=timezone.utc)
        window_end = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
        stats = LicenseStatistics(start_date=start, end_date=end)

        # Status and product breakdowns
        by_status = dict((await session.execute(
            select(LicenseModel.status, func.count()).group_by(LicenseModel.status)
        )).all())
        stats.total_licenses = sum(by_status.values())
        stats.active_licenses = by_status.get(LicenseStatus.ACTIVE.value, 0)
        stats.expired_licenses = by_status.get(LicenseStatus.EXPIRED.value, 0)
        stats.suspended_licenses = by_status.get(LicenseStatus.SUSPENDED.value, 0)
        stats.revoked_licenses = by_status.get(LicenseStatus.REVOKED.value, 0)
        stats.failed_activations = by_status.get(LicenseStatus.ACTIVATION_FAILED.value, 0)
        stats.total_activations = stats.total_licenses - by_status.get(
            LicenseStatus.INACTIVE.value, 0,
        )
        if stats.total_activations:
            stats.success_rate = round(
                (stats.total_activations - stats.failed_activations) / stats.total_activations, 4,
            )

        horizon = utcnow() + timedelta(days=self.settings.expiring_window_days)
        stats.expiring_licenses = (await session.execute(
            select(func.count()).select_from(LicenseModel).where(
                LicenseModel.status == LicenseStatus.ACTIVE.value,
                LicenseModel.valid_until <= horizon,
            )
        )).scalar() or 0

        stats.licenses_by_product = {
            product: count
            for product, count in (await session.execute(
                select(LicenseModel.product_id, func.count()).group_by(LicenseModel.product_id)
            )).all()
        }

        # Activation durations and daily activations
        days: dict[date, DailyUsage] = {}

        def bucket(moment: datetime) -> DailyUsage:
            day = as_utc(moment).date()
            if day not in days:
                days[day] = DailyUsage(date=day)
            return days[day]

        durations = []
        activated = await session.execute(
            select(LicenseModel.created_at, LicenseModel.last_activated_at)
            .where(LicenseModel.status != LicenseStatus.INACTIVE.value)
        )
        for created_at, last_activated_at in activated.all():
            activated_at = as_utc(last_activated_at)
            durations.append((activated_at - as_utc(created_at)).total_seconds() / 3600)
            if window_start <= activated_at < window_end:
                bucket(activated_at).new_activations += 1
        if durations:
            stats.average_usage_duration = round(sum(durations) / len(durations), 2)

        # Verification checks per day
        checks = await session.execute(
            select(LicenseUsageModel.timestamp).where(
                LicenseUsageModel.timestamp >= window_start,
                LicenseUsageModel.timestamp < window_end,
            )
        )
        for (stamp,) in checks.all():
            bucket(stamp).total_checks += 1

        # Distinct users logging in per day
        logins = await session.execute(
            select(LoginLogModel.created_at, LoginLogModel.user_id).where(
                LoginLogModel.created_at >= window_start,
                LoginLogModel.created_at < window_end,
            )
        )
        users_per_day: dict[date, set[int]] = defaultdict(set)
        for created_at, user_id in logins.all():
            users_per_day[as_utc(created_at).date()].add(user_id)
        for day, users in users_per_day.items():
            bucket(datetime.combine(day, time.min, tzinfo=timezone.utc)).active_users = len(users)

        stats.daily_usage = [days[day] for day in sorted(days)]
        return stats
