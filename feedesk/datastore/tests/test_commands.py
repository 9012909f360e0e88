import pytest
from django.core.management import CommandError, call_command

from ledger.tests.factories import make_student


def test_export_then_import_backup(store, tmp_path):
    store.set_students([make_student('a'), make_student('b')])
    path = tmp_path / 'backup.json'
    call_command('export_backup', str(path))

    store.clear_all_data()
    assert store.get_students() == []

    call_command('import_backup', str(path), '--yes')
    assert [s.id for s in store.get_students()] == ['a', 'b']


def test_import_rejects_invalid_backup(store, tmp_path):
    store.set_students([make_student('a')])
    path = tmp_path / 'bad.json'
    path.write_text('{"payments": []}', encoding='utf-8')

    with pytest.raises(CommandError):
        call_command('import_backup', str(path), '--yes')
    assert len(store.get_students()) == 1


def test_import_missing_file(tmp_path):
    with pytest.raises(CommandError):
        call_command('import_backup', str(tmp_path / 'nope.json'), '--yes')
