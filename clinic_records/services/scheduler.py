"""
Automatic Backup Scheduler
Exports every table to CSV once a week (Saturday, 3:00 AM local time)
"""

import sqlite3
import threading
import time
from datetime import datetime

from clinic_records.common.errors import ClinicRecordsError
from clinic_records.common.utils import utc_now
from clinic_records.services.backup_service import BACKUP_FOLDER_PREFIX, BackupService


class BackupScheduler:
    """Background scheduler for automatic CSV backups"""

    def __init__(self, backup_service: BackupService = None, keep_count: int = 4):
        self.backup_service = backup_service
        self.keep_count = keep_count
        self.running = False
        self.thread = None
        self.backup_hour = 3  # 3:00 AM
        self.backup_day = 5  # Saturday (0=Monday, 5=Saturday)

    def init_app(self, app, backup_service: BackupService):
        """Initialize with Flask app"""
        self.backup_service = backup_service
        self.keep_count = app.config.get('AUTO_BACKUP_KEEP', self.keep_count)
        print(f"[BackupScheduler] Backup folder: {backup_service.backup_dir}")

    def start(self):
        """Start the background scheduler"""
        if self.running:
            return

        self.running = True
        self.thread = threading.Thread(target=self._run_scheduler, daemon=True)
        self.thread.start()
        print(f"[BackupScheduler] Started - Weekly backup enabled (Saturdays at {self.backup_hour}:00)")

    def stop(self):
        """Stop the scheduler"""
        self.running = False
        if self.thread:
            self.thread.join(timeout=1)

    def _run_scheduler(self):
        """Main scheduler loop"""
        while self.running:
            try:
                now = datetime.now()

                if now.weekday() == self.backup_day and now.hour == self.backup_hour:
                    if self.should_backup():
                        self.create_backup()
                        # Sleep for 2 hours to avoid duplicate backups
                        time.sleep(7200)
                    else:
                        time.sleep(3600)
                else:
                    time.sleep(30)

            except (ClinicRecordsError, OSError, sqlite3.Error) as e:
                print(f"[BackupScheduler] Error: {e}")
                time.sleep(3600)

    def should_backup(self) -> bool:
        """True when no backup folder was created today (UTC, like the folder names)"""
        today = utc_now().strftime('%Y-%m-%d')
        root = self.backup_service.backup_dir
        if root is None or not root.exists():
            return True
        for folder in root.glob(f'{BACKUP_FOLDER_PREFIX}{today}*'):
            if folder.is_dir():
                return False
        return True

    def create_backup(self):
        """Create an automatic export-all backup and prune old ones"""
        result = self.backup_service.export_all()
        print(
            f"[BackupScheduler] Automatic backup created: {result.folder.name} "
            f"({len(result.written)} tables, {len(result.failed)} skipped)"
        )
        self.backup_service.cleanup_old_backups(self.keep_count)
        return result


# Global scheduler instance
scheduler = BackupScheduler()


def init_scheduler(app, backup_service: BackupService):
    """Initialize and start the backup scheduler"""
    scheduler.init_app(app, backup_service)
    scheduler.start()
    return scheduler
