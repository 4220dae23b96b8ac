from clinic_records.services.backup_service import BackupService
from clinic_records.services.scheduler import BackupScheduler


def _scheduler(store, tmp_path, keep_count=4):
    return BackupScheduler(BackupService(store, str(tmp_path / 'backups')), keep_count=keep_count)


def test_should_backup_without_folder(store, tmp_path):
    assert _scheduler(store, tmp_path).should_backup() is True


def test_create_backup_writes_todays_folder(store, tmp_path, make_patient):
    make_patient()
    scheduler = _scheduler(store, tmp_path)

    result = scheduler.create_backup()

    assert set(result.written) == {'users', 'patients'}
    assert result.folder.name.startswith('Backups-')
    assert scheduler.should_backup() is False


def test_create_backup_prunes_old_folders(store, tmp_path):
    scheduler = _scheduler(store, tmp_path, keep_count=2)
    root = scheduler.backup_service.backup_dir
    for day in (1, 2, 3):
        (root / f'Backups-2020-01-0{day}T03-00-00-000Z').mkdir(parents=True)

    result = scheduler.create_backup()

    remaining = sorted(d.name for d in root.iterdir())
    assert remaining == ['Backups-2020-01-03T03-00-00-000Z', result.folder.name]