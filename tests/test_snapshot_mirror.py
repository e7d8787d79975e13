"""
Tests for snapshots, the cloud mirror and the CLI commands.
"""
import json
from unittest.mock import patch

import pytest
import requests

from app import db
from app.cli_commands import export_snapshot_command, init_db_command, seed_demo_command
from app.models import Admin, Student, StoreItem
from app.utils.constants import ADMIN_PERMISSIONS
from app.utils.cloud_mirror import mirror_collection
from app.utils.snapshot import COLLECTIONS, export_snapshot, serialize_collection


@pytest.fixture
def mirror(app):
    app.config.update(CLOUD_MIRROR_URL='https://mirror.example.test/', CLOUD_MIRROR_TOKEN='secret')
    yield
    app.config.update(CLOUD_MIRROR_URL=None, CLOUD_MIRROR_TOKEN=None)


class TestSnapshot:

    def test_export_has_every_collection(self, client, test_student, test_admin):
        snapshot = export_snapshot()
        assert set(snapshot) == set(COLLECTIONS)
        student = snapshot['students'][0]
        assert student['student_number'] == '1001'
        assert student['attendance_history'] == []
        assert 'login_code' not in student
        assert snapshot['admins'][0]['name'] == 'Ms. Rivera'

    def test_unknown_collection(self, client):
        with pytest.raises(ValueError):
            serialize_collection('grades')


class TestCloudMirror:

    def test_put_document(self, client, mirror):
        with patch('app.utils.cloud_mirror.requests.put') as mock_put:
            assert mirror_collection('store_items', [{'id': 1}]) is True

        args, kwargs = mock_put.call_args
        assert args[0] == 'https://mirror.example.test/school_data/store_items'
        assert kwargs['json'] == {'items': [{'id': 1}]}
        assert kwargs['headers']['Authorization'] == 'Bearer secret'

    def test_failure_is_swallowed(self, client, mirror):
        with patch('app.utils.cloud_mirror.requests.put', side_effect=requests.exceptions.ConnectionError()):
            assert mirror_collection('students', []) is False

    def test_disabled_does_nothing(self, client):
        with patch('app.utils.cloud_mirror.requests.put') as mock_put:
            assert mirror_collection('students', []) is False
        mock_put.assert_not_called()

    def test_route_save_mirrors_touched_collections(self, admin_client, test_student, mirror):
        with patch('app.utils.cloud_mirror.requests.put') as mock_put:
            resp = admin_client.post('/api/admin/award', json={'student_number': '1001', 'amount': 1})
        assert resp.status_code == 200
        urls = sorted(call.args[0] for call in mock_put.call_args_list)
        assert urls == [
            'https://mirror.example.test/school_data/admins',
            'https://mirror.example.test/school_data/students',
        ]

    def test_mirror_outage_does_not_fail_request(self, admin_client, test_student, mirror):
        with patch('app.utils.cloud_mirror.requests.put', side_effect=requests.exceptions.Timeout()):
            resp = admin_client.post('/api/admin/award', json={'student_number': '1001', 'amount': 1})
        assert resp.status_code == 200
        db.session.refresh(test_student)
        assert test_student.total_points == 510


class TestCli:

    def test_init_db(self, app, client):
        result = app.test_cli_runner().invoke(init_db_command)
        assert result.exit_code == 0

    def test_seed_demo_is_idempotent(self, app, client):
        runner = app.test_cli_runner()
        assert runner.invoke(seed_demo_command).exit_code == 0
        assert runner.invoke(seed_demo_command).exit_code == 0

        assert Admin.query.count() == 1
        assert Admin.query.one().permissions == ADMIN_PERMISSIONS
        assert 'event-checkin' in ADMIN_PERMISSIONS
        assert Student.query.count() == 5
        assert StoreItem.query.filter_by(category='Athletic Pass').count() == 1

    def test_export_snapshot_to_file(self, app, client, test_student, tmp_path):
        path = tmp_path / 'snapshot.json'
        result = app.test_cli_runner().invoke(export_snapshot_command, [str(path)])
        assert result.exit_code == 0
        data = json.loads(path.read_text(encoding='utf-8'))
        assert data['students'][0]['name'] == 'Ava Martinez'
