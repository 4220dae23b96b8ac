import os
import sys


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-prod'

    # Determine project root and paths in both source and frozen (PyInstaller) modes.
    if getattr(sys, 'frozen', False):
        # Keep the database and backups next to the executable so they stay writable.
        PROJECT_ROOT = os.path.dirname(sys.executable)
        BASE_DIR = PROJECT_ROOT
    else:
        # Regular source layout: clinic_records/config -> clinic_records -> project root
        BASE_DIR = os.path.abspath(os.path.dirname(__file__))
        PROJECT_ROOT = os.path.dirname(os.path.dirname(BASE_DIR))

    # Database file location
    DATABASE_PATH = os.environ.get('CLINIC_DB_PATH') or os.path.join(PROJECT_ROOT, 'patient_records.db')

    # Seconds sqlite waits on a locked file before raising
    DATABASE_TIMEOUT = float(os.environ.get('CLINIC_DB_TIMEOUT', '5'))

    # Password given to the seeded "admin" user on first open
    DEFAULT_ADMIN_PASSWORD = os.environ.get('CLINIC_ADMIN_PASSWORD') or '1234'
    BCRYPT_ROUNDS = 12

    DEBUG = True
    TESTING = False

    # Folder where CSV backups are written (manual and scheduled)
    BACKUP_FOLDER = os.environ.get('CLINIC_BACKUP_FOLDER') or os.path.join(PROJECT_ROOT, 'backups')

    # Weekly export-all backups run in a background thread when enabled
    AUTO_BACKUP = os.environ.get('AUTO_BACKUP', '1') == '1'
    AUTO_BACKUP_KEEP = 4

    PAGE_SIZE = 20


class TestConfig(Config):
    TESTING = True
    DEBUG = False
    AUTO_BACKUP = False
    BCRYPT_ROUNDS = 4
    DATABASE_PATH = ':memory:'
    DEFAULT_ADMIN_PASSWORD = '1234'
    SECRET_KEY = 'test'
