import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import sessionmaker

from config import get_settings
from database import session_scope
from services import (
    MonthlyAggregateService,
    RecurringExpenseService,
    get_current_user_id,
)

logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, session_factory: Optional[sessionmaker] = None) -> None:
        settings = get_settings()
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)
        self.session_factory = session_factory

    def persist_rollup(self, source: str = "manual") -> None:
        owner = get_current_user_id()
        if owner is None:
            logger.info("rollup_job_skipped: source=%s reason=no_owner", source)
            return
        with session_scope(self.session_factory) as session:
            row = MonthlyAggregateService(session, owner).persist_current_month()
            logger.info(
                "rollup_job: source=%s month=%s income=%s expense=%s",
                source,
                row.month,
                row.income_total_cents,
                row.expense_total_cents,
            )

    def scan_due_expenses(self, source: str = "manual") -> int:
        owner = get_current_user_id()
        if owner is None:
            return 0
        with session_scope(self.session_factory) as session:
            reminders = RecurringExpenseService(session, owner).due_status()
        for item in reminders:
            logger.info(
                "recurring_due: urgency=%s expense_id=%s description=%s "
                "due=%s amount_cents=%s",
                item.urgency,
                item.expense_id,
                item.description,
                item.due_date.isoformat(),
                item.amount_cents,
            )
        logger.info("due_scan: source=%s reminders=%s", source, len(reminders))
        return len(reminders)

    def start(self) -> None:
        self.persist_rollup("startup")

        self.scheduler.add_job(
            self.persist_rollup,
            CronTrigger(hour=3, minute=15),
            args=["daily_03:15"],
            id="rollup_daily",
            replace_existing=True,
            misfire_grace_time=3600,
        )
        self.scheduler.add_job(
            self.scan_due_expenses,
            IntervalTrigger(hours=1),
            args=["hourly"],
            id="due_scan_hourly",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info("Scheduler started with daily 03:15 rollup and hourly due scan")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
