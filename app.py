import logging
import os
from typing import Optional, Tuple

import click
from alembic import command
from alembic.config import Config as AlembicConfig
from alembic.script import ScriptDirectory
from flask import Flask, jsonify
from sqlalchemy import create_engine, func, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import OperationalError, ProgrammingError, SQLAlchemyError

from config import Config, current_database_url
from document_storage import DocumentStorageError, init_document_storage
from extensions import db, migrate, jwt
from models import GeneralServiceType, Location, RoleEnum, User, WorkScope
from routes import (
    activity_logs,
    auth,
    bastp,
    dashboard,
    files,
    invoices,
    lookups,
    materials,
    vessels,
    work_details,
    work_orders,
    work_progress,
    work_verification,
)


if os.name != "nt":  # pragma: no cover - platform dependent import
    import fcntl  # type: ignore[import-not-found]
else:  # pragma: no cover - Windows fallback
    fcntl = None  # type: ignore[assignment]


DEFAULT_SERVICE_TYPES = (
    ("DOCKING", "Docking / Undocking"),
    ("DOCK_RENT", "Dock Rent"),
    ("SHORE_POWER", "Shore Power Connection"),
    ("FRESH_WATER", "Fresh Water Supply"),
    ("CRANE", "Crane Service"),
    ("SECURITY", "Security Watch"),
    ("GARBAGE", "Garbage Disposal"),
    ("TUG", "Tug Assistance"),
)
DEFAULT_LOCATIONS = ("Engine Room", "Main Deck", "Hull", "Accommodation", "Cargo Hold", "Workshop")
DEFAULT_WORK_SCOPES = ("Hull Repair", "Mechanical", "Electrical", "Piping", "Painting", "Blasting")


def _ensure_database_exists(database_url: str | None) -> None:
    if not database_url:
        return

    url = make_url(database_url)
    backend = (url.get_backend_name() or "").lower()

    if backend.startswith("sqlite"):
        database_path = url.database
        if database_path and database_path not in {":memory:", ""}:
            directory = os.path.dirname(os.path.abspath(database_path))
            if directory:
                os.makedirs(directory, exist_ok=True)
        return

    database_name = url.database
    if not database_name:
        return

    engine = create_engine(url)
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return
    except OperationalError:
        pass
    finally:
        engine.dispose()

    if not backend.startswith("postgresql"):
        return

    admin_url = url.set(database="postgres")
    admin_engine = create_engine(admin_url, isolation_level="AUTOCOMMIT")
    try:
        with admin_engine.connect() as connection:
            exists = connection.execute(
                text("SELECT 1 FROM pg_database WHERE datname = :name"),
                {"name": database_name},
            ).scalar()
            if not exists:
                connection.execute(text(f'CREATE DATABASE "{database_name}"'))
    finally:
        admin_engine.dispose()


def _engine_options(database_uri: str, base: dict, pool_timeout: float) -> dict:
    options = dict(base or {})
    # SQLite uses a static or singleton pool which rejects pool_timeout.
    if not database_uri.startswith("sqlite"):
        options.setdefault("pool_timeout", pool_timeout)
    return options


def _run_database_migrations(app: Flask) -> None:
    """Apply Alembic migrations if the schema is not up-to-date."""

    database_uri = app.config.get("SQLALCHEMY_DATABASE_URI")
    if not database_uri:
        return

    if database_uri.startswith("sqlite") and ":memory:" in database_uri:
        return

    migrations_dir = os.path.join(app.root_path, "migrations")
    alembic_ini = os.path.join(migrations_dir, "alembic.ini")
    if not os.path.exists(alembic_ini):
        return

    config = AlembicConfig(alembic_ini)
    config.set_main_option("script_location", migrations_dir)
    config.set_main_option("sqlalchemy.url", database_uri)

    script = ScriptDirectory.from_config(config)
    head_revision = script.get_current_head()
    if not head_revision:
        return

    def _current_revision() -> str | None:
        try:
            with db.engine.connect() as connection:
                return connection.execute(text("SELECT version_num FROM alembic_version")).scalar()
        except (OperationalError, ProgrammingError):
            return None

    with app.app_context():
        if _current_revision() == head_revision:
            return

        lock_path = os.path.join(app.instance_path, "alembic.lock")
        os.makedirs(app.instance_path, exist_ok=True)
        lock_file = open(lock_path, "w")
        try:
            if fcntl is not None:
                fcntl.flock(lock_file, fcntl.LOCK_EX)

            if _current_revision() == head_revision:
                return

            app.logger.info("Applying database migrations…")
            try:
                command.upgrade(config, "head")
            except Exception:
                if _current_revision() != head_revision:
                    raise
        finally:
            if fcntl is not None:
                fcntl.flock(lock_file, fcntl.LOCK_UN)
            lock_file.close()


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(OperationalError)
    def handle_database_unavailable(exc):
        db.session.rollback()
        app.logger.exception("Database unavailable")
        return jsonify({"msg": "The database is temporarily unavailable. Please retry."}), 503

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(exc):
        db.session.rollback()
        app.logger.exception("Database error")
        return jsonify({"msg": "Failed to save changes."}), 500

    @app.errorhandler(DocumentStorageError)
    def handle_storage_error(exc):
        db.session.rollback()
        app.logger.exception("Document storage error")
        return jsonify({"msg": "Failed to store the document."}), 500

    @app.errorhandler(404)
    def handle_not_found(exc):
        return jsonify({"msg": "Not found."}), 404

    @app.errorhandler(413)
    def handle_too_large(exc):
        msg = "File size must be less than 10MB"
        return jsonify({"msg": msg, "errors": [msg]}), 400


def create_app():
    app = Flask(__name__)
    app.config.from_object(Config)
    database_url = current_database_url()
    _ensure_database_exists(database_url)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _engine_options(
        database_url, app.config.get("SQLALCHEMY_ENGINE_OPTIONS"), app.config["DB_POOL_TIMEOUT"]
    )
    # Allow multipart overhead on top of the largest accepted file.
    app.config["MAX_CONTENT_LENGTH"] = app.config["MAX_UPLOAD_BYTES"] + 1024 * 1024
    app.logger.setLevel(getattr(logging, app.config["LOG_LEVEL"], logging.INFO))

    db.init_app(app)
    migrate.init_app(app, db)
    _run_database_migrations(app)
    jwt.init_app(app)
    init_document_storage(app)

    @jwt.additional_claims_loader
    def add_claims(identity):
        try:
            u = db.session.get(User, int(identity))
        except (TypeError, ValueError):
            u = None
        return {"role": u.role.value if u else None}

    app.register_blueprint(auth.bp)
    app.register_blueprint(vessels.bp)
    app.register_blueprint(work_orders.bp)
    app.register_blueprint(lookups.bp)
    app.register_blueprint(work_details.bp)
    app.register_blueprint(work_progress.bp)
    app.register_blueprint(work_verification.bp)
    app.register_blueprint(bastp.bp)
    app.register_blueprint(invoices.bp)
    app.register_blueprint(materials.bp)
    app.register_blueprint(activity_logs.bp)
    app.register_blueprint(dashboard.bp)
    app.register_blueprint(files.bp)
    _register_error_handlers(app)

    @app.get("/api/health")
    def health(): return jsonify({"ok": True})

    return app


app = create_app()


def _normalize_email(value: str) -> str:
    return (value or "").strip().lower()


def _ensure_master_user(
    flask_app=None,
    *,
    email: Optional[str] = None,
    password: Optional[str] = None,
    name: Optional[str] = None,
    ensure_if_missing: bool = True,
    force_reset: bool = False,
) -> Tuple[str, str]:
    """Ensure a MASTER user exists and optionally reset its password.

    Returns a tuple of (status, normalized_email) where status is one of
    ``{"created", "reset", "updated", "skipped"}``.
    """

    target_app = flask_app or globals().get("app")
    if target_app is None:
        return "skipped", _normalize_email(email)

    normalized_email = _normalize_email(email or os.getenv("MASTER_EMAIL", "master@shipyard.local"))
    password = password or os.getenv("MASTER_PASSWORD", "Master@123")
    provided_name = name if name is not None else os.getenv("MASTER_NAME")
    target_name = (provided_name or "").strip() or None

    with target_app.app_context():
        try:
            master = User.query.filter(func.lower(User.email) == normalized_email).first()
        except (OperationalError, ProgrammingError):
            # Tables might not be ready yet (e.g. before migrations run)
            return "skipped", normalized_email

        if master:
            status = "skipped"
            if master.role != RoleEnum.master:
                master.role = RoleEnum.master
                status = "updated"
            if target_name and master.name != target_name:
                master.name = target_name
                status = "updated"
            if force_reset:
                master.set_password(password)
                master.active = True
                status = "reset"

            if status != "skipped":
                db.session.commit()
            return status, normalized_email

        if not ensure_if_missing:
            return "skipped", normalized_email

        if not force_reset and User.query.filter_by(role=RoleEnum.master).first():
            return "skipped", normalized_email

        master = User(
            name=target_name or "Master",
            email=normalized_email,
            role=RoleEnum.master,
            active=True,
        )
        master.set_password(password)
        db.session.add(master)
        db.session.commit()
        return "created", normalized_email


def _bootstrap_master_user(flask_app=None):
    status, normalized_email = _ensure_master_user(
        flask_app=flask_app,
        force_reset=os.getenv("RUN_SEED_MASTER") == "1",
    )
    if status == "created":
        app.logger.info("Master user created: %s", normalized_email)
    elif status == "reset":
        app.logger.info("Master password reset: %s", normalized_email)
    elif status == "updated":
        app.logger.info("Master role updated: %s", normalized_email)


def seed_lookup_defaults() -> dict[str, int]:
    """Insert default service types, locations and work scopes that are missing."""

    created = {"service_types": 0, "locations": 0, "work_scopes": 0}

    existing_codes = {code for (code,) in db.session.query(GeneralServiceType.service_code).all()}
    for order, (code, label) in enumerate(DEFAULT_SERVICE_TYPES, start=1):
        if code in existing_codes:
            continue
        db.session.add(GeneralServiceType(service_code=code, service_name=label, display_order=order))
        created["service_types"] += 1

    existing_locations = {value.lower() for (value,) in db.session.query(Location.location).all()}
    for value in DEFAULT_LOCATIONS:
        if value.lower() not in existing_locations:
            db.session.add(Location(location=value))
            created["locations"] += 1

    existing_scopes = {value.lower() for (value,) in db.session.query(WorkScope.work_scope).all()}
    for value in DEFAULT_WORK_SCOPES:
        if value.lower() not in existing_scopes:
            db.session.add(WorkScope(work_scope=value))
            created["work_scopes"] += 1

    db.session.commit()
    return created


# Call the hook at startup (idempotent)
_bootstrap_master_user(flask_app=app)


# ---- CLI: seed or reset master ----
@app.cli.command("seed-master")
@click.option("--email", default="master@shipyard.local", help="Master email")
@click.option("--password", default="Master@123", help="Master password")
@click.option("--name", default="Master", help="Master display name")
def seed_master(email, password, name):
    """Create or reset the MASTER user."""
    with app.app_context():
        status, normalized_email = _ensure_master_user(
            flask_app=app,
            email=email,
            password=password,
            name=name,
            ensure_if_missing=True,
            force_reset=True,
        )

        if status == "created":
            click.echo(f"✅ Master created: {normalized_email}")
        elif status == "reset":
            click.echo(f"✅ Master password reset: {normalized_email}")
        elif status == "updated":
            click.echo(f"✅ Master role updated: {normalized_email}")
        else:
            click.echo(f"ℹ️ Master already up-to-date: {normalized_email}")


@app.cli.command("seed-lookups")
def seed_lookups() -> None:
    """Seed general service types, locations and work scopes."""

    with app.app_context():
        created = seed_lookup_defaults()
        click.echo(
            "✅ Lookups seeded: "
            f"{created['service_types']} service types, "
            f"{created['locations']} locations, "
            f"{created['work_scopes']} work scopes."
        )


if __name__ == "__main__":
    app.run(debug=True, port=int(os.getenv("PORT", 5000)))
