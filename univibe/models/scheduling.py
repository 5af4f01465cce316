"""
UniVibe Campus Platform
Maintenance job registry.

One ScheduledJob row per function registered with
``scheduler_service.register_job``: its cron-style schedule, whether it is
enabled, and the outcome of the most recent run.
"""

from datetime import datetime, timezone

from univibe.models import db

RUN_SUCCESS = "success"
RUN_FAILED = "failed"
RUN_SKIPPED = "skipped"


class ScheduledJob(db.Model):
    __tablename__ = "scheduled_jobs"

    id = db.Column(db.Integer, primary_key=True)
    job_name = db.Column(db.String(100), unique=True, nullable=False)
    description = db.Column(db.String(500), default="")
    schedule = db.Column(db.JSON, default=dict,
                         comment='{"hour": "*", "minute": "15", "description": ...}')
    is_enabled = db.Column(db.Boolean, nullable=False, default=True)

    last_run_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_run_status = db.Column(db.String(20), nullable=True,
                                comment="success | failed | skipped")
    last_run_duration_ms = db.Column(db.Integer, nullable=True)
    last_run_result = db.Column(db.JSON, nullable=True,
                                comment="Audit summary returned by the job")
    run_count = db.Column(db.Integer, nullable=False, default=0)
    failure_count = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    @property
    def status(self) -> str:
        return "active" if self.is_enabled else "paused"

    def record_run(self, *, status=RUN_SUCCESS, duration_ms=0, result=None, error=None):
        self.last_run_at = datetime.now(timezone.utc)
        self.last_run_status = status
        self.last_run_duration_ms = duration_ms
        self.last_run_result = result
        self.run_count = (self.run_count or 0) + 1
        if status == RUN_FAILED:
            self.failure_count = (self.failure_count or 0) + 1
            self.last_error = str(error) if error else None

    def to_dict(self):
        return {
            "job_name": self.job_name,
            "description": self.description,
            "schedule": self.schedule,
            "status": self.status,
            "is_enabled": self.is_enabled,
            "last_run": {
                "at": self.last_run_at.isoformat() if self.last_run_at else None,
                "status": self.last_run_status,
                "duration_ms": self.last_run_duration_ms,
                "result": self.last_run_result,
                "error": self.last_error,
            },
            "run_count": self.run_count,
            "failure_count": self.failure_count,
        }

    def __repr__(self):
        return f"<ScheduledJob {self.job_name} [{self.status}]>"
