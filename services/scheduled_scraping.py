"""
Daily product scraping, meant to be started by cron (02:00) on every node.

Only the node named in SCHEDULER_NODE runs it, a lock row in the shared store
keeps two runs from overlapping, and a run is skipped when the previous one
finished less than SCHEDULER_MIN_HOURS_BETWEEN_RUNS hours ago.
"""
import socket
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Tuple

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from db.models import ScheduledJob
from db.repositories import ProductRepository
from env import (
    SCHEDULER_CATEGORY_DELAY,
    SCHEDULER_LOCK_TTL_MINUTES,
    SCHEDULER_MIN_HOURS_BETWEEN_RUNS,
    SCHEDULER_NODE,
)
from interfaces.productModels import BatchSummary
from logger_manager import log_error, log_info, log_warning
from services.ingestion_pipeline import ProductIngestionPipeline

JOB_NAME = "scheduled-scrape"
SCRAPE_SOURCE = "openfoodfacts"


@dataclass(frozen=True)
class ScrapingStrategy:
    name: str
    batch_size: int
    categories: Tuple[str, ...]


BOOTSTRAP = ScrapingStrategy(
    "Bootstrap", 50,
    ("beverages", "dairy", "snacks", "cereals-and-potatoes", "bakery", "confectionery"),
)
GROWTH = ScrapingStrategy(
    "Growth", 30,
    ("meat", "fish", "fruits-and-vegetables", "frozen-foods", "dairy", "beverages"),
)
MAINTENANCE = ScrapingStrategy("Maintenance", 20, ("snacks", "confectionery", "beverages"))


def get_scraping_strategy(product_count: int) -> ScrapingStrategy:
    if product_count < 1000:
        return BOOTSTRAP
    if product_count < 5000:
        return GROWTH
    return MAINTENANCE


def is_designated_node(hostname: Optional[str] = None, designated: Optional[str] = SCHEDULER_NODE) -> bool:
    if not designated:
        return True
    return (hostname or socket.gethostname()) == designated


def _utcnow() -> datetime:
    # DateTime columns hold naive UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)


class JobLock:
    """Cluster-wide lock on a ScheduledJob row, taken with a conditional UPDATE."""

    def __init__(self, db: Session, name: str = JOB_NAME, owner: Optional[str] = None,
                 ttl_minutes: int = SCHEDULER_LOCK_TTL_MINUTES):
        self.db = db
        self.name = name
        self.owner = owner or socket.gethostname()
        self.ttl = timedelta(minutes=ttl_minutes)

    def _ensure_row(self):
        if self.db.get(ScheduledJob, self.name) is not None:
            return
        try:
            self.db.add(ScheduledJob(name=self.name))
            self.db.commit()
        except IntegrityError:
            # another node inserted it first
            self.db.rollback()

    def acquire(self) -> bool:
        self._ensure_row()
        now = _utcnow()
        stale_before = now - self.ttl
        result = self.db.execute(
            update(ScheduledJob)
            .where(ScheduledJob.name == self.name)
            .where(or_(ScheduledJob.locked_by.is_(None), ScheduledJob.locked_at < stale_before))
            .values(locked_by=self.owner, locked_at=now)
        )
        self.db.commit()
        acquired = result.rowcount == 1
        if acquired:
            log_info(f"Lock '{self.name}' acquired by {self.owner}")
        else:
            log_info(f"Lock '{self.name}' is held by another run")
        return acquired

    def release(self, finished: bool = False):
        values = {"locked_by": None, "locked_at": None}
        if finished:
            values["last_run_at"] = _utcnow()
        self.db.execute(
            update(ScheduledJob)
            .where(ScheduledJob.name == self.name, ScheduledJob.locked_by == self.owner)
            .values(**values)
        )
        self.db.commit()

    def last_run_at(self) -> Optional[datetime]:
        job = self.db.get(ScheduledJob, self.name)
        if job is None:
            return None
        self.db.refresh(job)
        return job.last_run_at


def should_run(last_run_at: Optional[datetime], force: bool = False,
               min_hours: float = SCHEDULER_MIN_HOURS_BETWEEN_RUNS, now: Optional[datetime] = None) -> bool:
    if force or last_run_at is None:
        return True
    return (now or _utcnow()) - last_run_at >= timedelta(hours=min_hours)


@dataclass
class ScheduledRunResult:
    status: str
    strategy: Optional[str] = None
    summary: Optional[BatchSummary] = None
    failed_categories: Tuple[str, ...] = ()


def run_scheduled_scrape(db: Session, pipeline: ProductIngestionPipeline, force: bool = False,
                         category_delay: float = SCHEDULER_CATEGORY_DELAY,
                         sleep: Callable[[float], None] = time.sleep,
                         hostname: Optional[str] = None) -> ScheduledRunResult:
    if not is_designated_node(hostname):
        log_info(f"Scheduled scraping runs on {SCHEDULER_NODE} only, nothing to do here")
        return ScheduledRunResult(status="not-designated-node")

    lock = JobLock(db, owner=hostname)
    if not should_run(lock.last_run_at(), force=force):
        log_info("Scheduled scraping ran recently, skipping (use --force to override)")
        return ScheduledRunResult(status="ran-recently")
    if not lock.acquire():
        log_warning("Scheduled scraping already running elsewhere, skipping")
        return ScheduledRunResult(status="locked")

    finished = False
    try:
        product_count = ProductRepository(db).count_products()
        strategy = get_scraping_strategy(product_count)
        log_info(f"Scheduled scraping with {strategy.name} strategy ({product_count} products stored,"
                 f" {strategy.batch_size} per category)")

        total = BatchSummary()
        failed = []
        for index, category in enumerate(strategy.categories):
            if index > 0:
                sleep(category_delay)
            try:
                summary = pipeline.scrape_and_import(SCRAPE_SOURCE, strategy.batch_size, category)
            except Exception as e:
                log_error(f"Scheduled scraping of category '{category}' failed: {e}", e)
                failed.append(category)
                continue
            log_info(f"Category '{category}': {summary.model_dump()}")
            total.merge(summary)
            if summary.aborted:
                log_error("Product store unavailable, stopping scheduled scraping")
                break

        finished = not total.aborted
        log_info(f"Scheduled scraping finished: {total.model_dump()}")
        return ScheduledRunResult(
            status="completed" if finished else "aborted",
            strategy=strategy.name,
            summary=total,
            failed_categories=tuple(failed),
        )
    finally:
        lock.release(finished=finished)
