from dataclasses import asdict

from flask import Blueprint, current_app, jsonify, make_response, request

from clinic_records.adapters.sqlite.core import get_store
from clinic_records.api.auth import login_required
from clinic_records.common.errors import ImportFormatError
from clinic_records.services.backup_service import (
    BackupService,
    backup_filename,
    table_for_filename,
)

bp = Blueprint('backup', __name__, url_prefix='/backup')


def _service() -> BackupService:
    return BackupService(get_store(), current_app.config['BACKUP_FOLDER'])


@bp.route('/export/<table>', methods=['GET'])
@login_required
def export_table(table):
    """Download one table as CSV."""
    text = _service().export_table(table)
    response = make_response(text)
    response.headers['Content-Type'] = 'text/csv; charset=utf-8'
    response.headers['Content-Disposition'] = f'attachment; filename="{backup_filename(table)}"'
    return response


@bp.route('/export-all', methods=['POST'])
@login_required
def export_all():
    result = _service().export_all()
    return jsonify({
        'success': not result.failed,
        'folder': result.folder.name,
        'written': {table: path.name for table, path in result.written.items()},
        'failed': result.failed,
    })


@bp.route('/import', methods=['POST'])
@login_required
def import_csv():
    """Restore a table from an uploaded ``backup_file`` or from raw ``text``.

    The table comes from the ``table`` field, or from the file name prefix.
    """
    table = request.form.get('table') or request.args.get('table')
    upload = request.files.get('backup_file')

    if upload is not None and upload.filename:
        text = upload.read().decode('utf-8')
        table = table or table_for_filename(upload.filename)
    else:
        data = request.get_json(silent=True) or {}
        text = data.get('text') or request.form.get('text')
        table = table or data.get('table')
        if not table and data.get('filename'):
            table = table_for_filename(data['filename'])
        if not text:
            raise ImportFormatError('No CSV content supplied', field='text')
        if not table:
            raise ImportFormatError('No target table supplied', field='table')

    result = _service().import_table(table, text)
    return jsonify({'success': result.failed == 0, 'table': table, **asdict(result)})


@bp.route('/files', methods=['GET'])
@login_required
def list_files():
    return jsonify(_service().list_backup_files())


@bp.route('/files/<path:name>', methods=['DELETE'])
@login_required
def delete_file(name):
    success = _service().delete_backup_file(name)
    return jsonify({'success': success}), (200 if success else 404)
