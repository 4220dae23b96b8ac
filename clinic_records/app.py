import os
import sqlite3
import sys
import traceback

import click
from flask import Flask, g, jsonify, session
from werkzeug.exceptions import HTTPException

from clinic_records.adapters.sqlite.core import STORE_EXTENSION_KEY, StorageEngine, get_store
from clinic_records.common.errors import (
    NoDataError,
    NotFoundError,
    StoreUnavailableError,
    TransactionFailure,
    ValidationError,
)
from clinic_records.config.settings import Config


def create_app(test_config=None, store: StorageEngine = None):
    """
    Build the Flask application around one process-wide StorageEngine.

    The store is opened here and shared by every request; repositories are
    built from it per request via ``get_store()``.
    """
    app = Flask(__name__)

    # --------- config ---------
    app.config.from_object(Config)
    if isinstance(test_config, type):
        app.config.from_object(test_config)
    elif test_config is not None:
        app.config.from_mapping(test_config)

    if not app.config.get('TESTING', False):
        env_name = os.environ.get('FLASK_ENV') or os.environ.get('APP_ENV') or 'development'
        if str(env_name).lower() == 'production':
            app.config['DEBUG'] = False

    # --------- store ---------
    if store is None:
        store = StorageEngine(
            app.config['DATABASE_PATH'],
            timeout=app.config['DATABASE_TIMEOUT'],
            admin_password=app.config['DEFAULT_ADMIN_PASSWORD'],
            bcrypt_rounds=app.config.get('BCRYPT_ROUNDS', 12),
        )
    store.open()
    app.extensions[STORE_EXTENSION_KEY] = store
    print(f"[startup] Using database: {store.db_path}")

    _register_error_handlers(app)
    _register_cli(app)

    # --------- logged-in user ---------
    from clinic_records.adapters.sqlite.auth_repo import UserRepository

    @app.before_request
    def load_logged_in_user():
        user_id = session.get("user_id")
        g.user = None
        if user_id is not None:
            g.user = UserRepository(get_store()).get_by_id(user_id)

    # --------- blueprints ---------
    from clinic_records.api.auth import bp as auth_bp
    app.register_blueprint(auth_bp)

    from clinic_records.api.dashboard import bp as dashboard_bp
    app.register_blueprint(dashboard_bp)

    from clinic_records.api.patients import bp as patients_bp
    app.register_blueprint(patients_bp)

    from clinic_records.api.visits import bp as visits_bp
    app.register_blueprint(visits_bp)

    from clinic_records.api.payments import bp as payments_bp
    app.register_blueprint(payments_bp)

    from clinic_records.api.backup import bp as backup_bp
    app.register_blueprint(backup_bp)

    # --------- scheduled backups ---------
    if not app.config.get("TESTING", False) and app.config.get("AUTO_BACKUP", False):
        from clinic_records.services.backup_service import BackupService
        from clinic_records.services.scheduler import init_scheduler
        init_scheduler(app, BackupService(store, app.config['BACKUP_FOLDER']))

    return app


def _error(message, status, **extra):
    body = {'success': False, 'error': message}
    body.update(extra)
    return jsonify(body), status


def _register_error_handlers(app):
    @app.errorhandler(ValidationError)
    def handle_validation(e):
        return _error(str(e), 400, field=e.field)

    @app.errorhandler(NotFoundError)
    def handle_not_found(e):
        return _error(str(e), 404)

    @app.errorhandler(NoDataError)
    def handle_no_data(e):
        return _error(str(e), 404)

    @app.errorhandler(StoreUnavailableError)
    def handle_store_unavailable(e):
        print(f"[API] Store unavailable: {e}")
        return _error(str(e), 503)

    @app.errorhandler(sqlite3.Error)
    @app.errorhandler(TransactionFailure)
    def handle_storage_failure(e):
        # Operational failures are logged with full detail; zero-row results are not errors.
        print(f"[API] Storage failure: {e!r}")
        traceback.print_exc(file=sys.stdout)
        return _error(f"Storage error: {e}", 500)

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        if isinstance(e, HTTPException):
            return e
        print(f"[API] Unhandled error: {e!r}")
        traceback.print_exc(file=sys.stdout)
        return _error("Internal server error", 500)


def _register_cli(app):
    from clinic_records.adapters.sqlite.auth_repo import UserRepository
    from clinic_records.services.auth_service import AuthService
    from clinic_records.services.backup_service import BackupService

    @app.cli.command("init-db")
    def init_db():
        """Create the schema and seed the admin user."""
        store = app.extensions[STORE_EXTENSION_KEY]
        print(f"Initialized the database: {store.health_check()}")

    @app.cli.command("create-user")
    @click.argument("username")
    @click.argument("password")
    def create_user(username, password):
        service = AuthService(UserRepository(app.extensions[STORE_EXTENSION_KEY]),
                              app.config.get('BCRYPT_ROUNDS', 12))
        if service.register_user(username, password) > 0:
            print(f"User {username} created successfully.")
        else:
            print(f"User {username} already exists.")

    @app.cli.command("export-all")
    @click.option("--folder", default=None, help="Destination folder (defaults to a new Backups-<timestamp>).")
    def export_all(folder):
        service = BackupService(app.extensions[STORE_EXTENSION_KEY], app.config['BACKUP_FOLDER'])
        result = service.export_all(folder)
        for table, path in result.written.items():
            print(f"{table}: {path}")
        for table, reason in result.failed.items():
            print(f"{table}: skipped ({reason})")

    @app.cli.command("import-csv")
    @click.argument("path", type=click.Path(exists=True, dir_okay=False))
    @click.option("--table", default=None, help="Target table; resolved from the file name when omitted.")
    def import_csv(path, table):
        service = BackupService(app.extensions[STORE_EXTENSION_KEY], app.config['BACKUP_FOLDER'])
        result = service.import_file(path, table)
        print(f"Imported {result.imported} rows, {result.failed} failed.")
        for error in result.errors:
            print(f"  {error}")
