"""
UniVibe Campus Platform
Scheduler Service.

Registry and runner for the maintenance jobs (college reconciliation,
reservation expiry, capacity backfill, event reminders).  Jobs are plain
functions taking the Flask app, registered with ``@register_job``; their
schedule, on/off switch and last-run outcome live in the ScheduledJob table.

Triggering is external: cron calls the Flask CLI, or an admin hits
POST /api/v1/admin/jobs/<name>/run.  Every job is idempotent, so
overlapping or repeated triggers are harmless.
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from flask import Flask

from univibe.models import db
from univibe.models.scheduling import RUN_FAILED, RUN_SKIPPED, RUN_SUCCESS, ScheduledJob

logger = logging.getLogger(__name__)

_job_registry: dict[str, Callable] = {}

DEFAULT_SCHEDULES = {
    "reconcile_event_colleges": {"hour": "*", "minute": "15", "description": "Hourly at :15"},
    "expire_stale_reservations": {"hour": "0", "minute": "0", "description": "Daily at 00:00"},
    "backfill_event_capacities": {"hour": "3", "minute": "0", "description": "Daily at 03:00"},
    "send_event_reminders": {"hour": "*", "minute": "*/10", "description": "Every 10 minutes"},
}
_FALLBACK_SCHEDULE = {"hour": "0", "minute": "0", "description": "Daily at midnight"}


def register_job(name: str):
    """Decorator: make ``fn(app) -> dict`` runnable as job ``name``."""
    def decorator(fn: Callable) -> Callable:
        _job_registry[name] = fn
        return fn
    return decorator


def get_registered_jobs() -> dict[str, Callable]:
    return dict(_job_registry)


def _record(job_name: str) -> ScheduledJob | None:
    return ScheduledJob.query.filter_by(job_name=job_name).first()


class SchedulerService:
    """Runs registered jobs inside their own app context and records the outcome."""

    _app: Flask | None = None

    @classmethod
    def init_app(cls, app: Flask) -> None:
        cls._app = app
        app.extensions["scheduler"] = cls
        logger.info("Scheduler ready with %d jobs: %s",
                    len(_job_registry), ", ".join(sorted(_job_registry)))

    @classmethod
    def ensure_jobs_registered(cls) -> list[str]:
        """Create missing ScheduledJob rows; returns the names created."""
        if cls._app is None:
            return []
        with cls._app.app_context():
            missing = [name for name in _job_registry if _record(name) is None]
            for name in missing:
                fn = _job_registry[name]
                db.session.add(ScheduledJob(
                    job_name=name,
                    description=(fn.__doc__ or name).strip(),
                    schedule=dict(DEFAULT_SCHEDULES.get(name, _FALLBACK_SCHEDULE)),
                    is_enabled=True,
                ))
            if missing:
                db.session.commit()
                logger.info("Registered job records: %s", ", ".join(missing))
        return missing

    @classmethod
    def run_job(cls, job_name: str, *, force: bool = False) -> dict:
        """
        Execute ``job_name`` once.  Disabled jobs are skipped unless ``force``.

        Returns:
            {"job_name", "status", "duration_ms", "result", "error"}
        """
        fn = _job_registry.get(job_name)
        if fn is None or cls._app is None:
            reason = f"Unknown job: {job_name}" if fn is None else "Scheduler not initialized"
            return {"job_name": job_name, "status": "error", "duration_ms": 0,
                    "result": None, "error": reason}

        with cls._app.app_context():
            record = _record(job_name)
            if record is not None and not record.is_enabled and not force:
                record.record_run(status=RUN_SKIPPED, result={"skipped": True})
                db.session.commit()
                logger.info("Job %s is disabled, skipped", job_name, extra={"job_name": job_name})
                return {"job_name": job_name, "status": RUN_SKIPPED, "duration_ms": 0,
                        "result": None, "error": None}

        status, result, error = RUN_SUCCESS, None, None
        started = time.monotonic()
        try:
            with cls._app.app_context():
                result = fn(cls._app)
        except Exception as exc:
            status, error = RUN_FAILED, str(exc)
            logger.exception("Job %s failed", job_name, extra={"job_name": job_name})
        duration_ms = int((time.monotonic() - started) * 1000)

        with cls._app.app_context():
            record = _record(job_name)
            if record is not None:
                record.record_run(
                    status=status,
                    duration_ms=duration_ms,
                    result=result if isinstance(result, dict) else {"output": str(result)},
                    error=error,
                )
                db.session.commit()

        logger.info("Job %s %s in %dms", job_name, status, duration_ms,
                    extra={"job_name": job_name, "duration_ms": duration_ms})
        return {"job_name": job_name, "status": status, "duration_ms": duration_ms,
                "result": result, "error": error}

    @classmethod
    def list_jobs(cls) -> list[dict]:
        records = {r.job_name: r for r in ScheduledJob.query.all()}
        return [
            {"job_name": name, "record": records[name].to_dict() if name in records else None}
            for name in sorted(_job_registry)
        ]

    @classmethod
    def toggle_job(cls, job_name: str, enabled: bool) -> dict | None:
        record = _record(job_name)
        if record is None:
            return None
        record.is_enabled = enabled
        db.session.commit()
        logger.info("Job %s %s", job_name, "enabled" if enabled else "paused",
                    extra={"job_name": job_name})
        return record.to_dict()
