"""
UniVibe Campus Platform
Flask application factory.

    from univibe import create_app
    app = create_app()            # APP_ENV, else "development"
    app = create_app("testing")
"""

import importlib
import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from univibe.config import config
from univibe.middleware.logging_config import configure_logging
from univibe.middleware.timing import init_request_timing
from univibe.models import db
from univibe.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

migrate = Migrate()
# Limits are declared per route; only reservations carry one.
limiter = Limiter(key_func=get_remote_address, default_limits=[])

_MODEL_MODULES = ("application", "audit", "auth", "event", "notification",
                  "org", "scheduling", "study_space")


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, _record):
    # SQLite ignores ON DELETE rules unless asked per connection
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    configure_logging(app)

    _init_extensions(app)
    init_request_timing(app)

    for module in _MODEL_MODULES:
        importlib.import_module(f"univibe.models.{module}")
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and ":memory:" not in uri:
        os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()

    _register_blueprints(app)
    register_error_handlers(app)
    _register_http_errors(app)
    _register_cli(app)

    # job functions register themselves on import
    importlib.import_module("univibe.services.scheduled_jobs")
    from univibe.services.scheduler_service import SchedulerService
    SchedulerService.init_app(app)
    SchedulerService.ensure_jobs_registered()

    logger.info("UniVibe app created [%s]", config_name)
    return app


def _init_extensions(app):
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins == "*":
        CORS(app)
    elif origins:
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])


def _register_blueprints(app):
    from univibe.blueprints.admin_bp import admin_bp
    from univibe.blueprints.event_bp import event_bp
    from univibe.blueprints.health_bp import health_bp
    from univibe.blueprints.org_bp import org_bp
    from univibe.blueprints.study_space_bp import study_space_bp

    for bp in (org_bp, event_bp, study_space_bp, admin_bp, health_bp):
        app.register_blueprint(bp)


def _register_http_errors(app):
    @app.errorhandler(404)
    def not_found(_e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(_e):
        return {"error": f"{request.method} not allowed here", "code": "ERR_METHOD"}, 405

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "code": "ERR_RATE_LIMITED",
                "retry_after": e.description}, 429


def _register_cli(app):
    @app.cli.command("reconcile-events")
    @click.option("--dry-run", is_flag=True, help="Report mismatches without writing.")
    def reconcile_events_cmd(dry_run):
        """Re-sync event college ids from their communities."""
        from univibe.services.event_lifecycle import reconcile_event_colleges
        result = reconcile_event_colleges(apply=not dry_run)
        for key in ("checked", "corrected", "skipped_unassigned", "conflicts", "affected_ids"):
            click.echo(f"{key}: {result[key]}")

    @app.cli.command("expire-reservations")
    def expire_reservations_cmd():
        """Complete ACTIVE reservations dated before today."""
        from univibe.services.reservation_service import expire_stale
        result = expire_stale()
        click.echo(f"completed: {result['count']}")
        click.echo(f"affected: {[r['id'] for r in result['affected']]}")

    @app.cli.command("approver-coverage")
    def approver_coverage_cmd():
        """Report missing or ambiguous approvers per college."""
        from univibe.services.approval_chain import approver_coverage
        report = approver_coverage()
        for row in report["colleges"]:
            click.echo(f"{row['code']}: faculty_leader={row['faculty_leader']['status']} "
                       f"dean={row['dean']['status']}")
        click.echo(f"deanship={report['deanship']['status']}")
        for c in report["unassigned_communities"]:
            click.echo(f"unassigned community: {c['name']}")
        for c in report["leaderless_communities"]:
            click.echo(f"community without club leader: {c['name']}")
        click.echo("OK" if report["ok"] else "ATTENTION NEEDED")

    @app.cli.command("run-job")
    @click.argument("job_name")
    @click.option("--force", is_flag=True, help="Run even if the job is paused.")
    def run_job_cmd(job_name, force):
        """Run one registered maintenance job now."""
        from univibe.services.scheduler_service import SchedulerService
        result = SchedulerService.run_job(job_name, force=force)
        click.echo(f"{job_name}: {result['status']} in {result['duration_ms']}ms")
        if result["error"]:
            raise click.ClickException(result["error"])
