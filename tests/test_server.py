"""Tests for the planning HTTP API."""

import json
from io import BytesIO

import pytest
from openpyxl import load_workbook

import planning_server


SNAPSHOT = {
    'teams': [{
        'id': 'T1',
        'name': 'Core',
        'config': {'wipLimit': 1},
        'members': [
            {'accountId': 'sa-1', 'role': 'SA', 'hoursPerDay': 6},
            {'accountId': 'dev-1', 'role': 'DEV', 'hoursPerDay': 6},
            {'accountId': 'qa-1', 'role': 'QA', 'hoursPerDay': 6},
        ],
    }],
    'epics': [
        {
            'key': 'E1',
            'summary': 'First',
            'status': 'In Progress',
            'teamId': 'T1',
            'autoScore': 80,
            'stories': [
                {'key': 'S-1', 'summary': 'One', 'estimates': {'SA': 14400, 'DEV': 43200, 'QA': 7200}},
            ],
        },
        {
            'key': 'E2',
            'summary': 'Second',
            'status': 'In Progress',
            'teamId': 'T1',
            'autoScore': 20,
            'stories': [{'key': 'S-2', 'summary': 'Two', 'estimates': {'DEV': 21600}}],
        },
    ],
    'holidays': [],
}


@pytest.fixture
def client(tmp_path, monkeypatch):
    path = tmp_path / 'snapshot.json'
    path.write_text(json.dumps(SNAPSHOT))
    monkeypatch.setattr(planning_server, 'SNAPSHOT_FILE', str(path))
    monkeypatch.setattr(planning_server, 'CALENDAR_SOURCE', 'snapshot')
    planning_server.app.config['TESTING'] = True
    with planning_server.app.test_client() as test_client:
        yield test_client


class TestPlanningApi:
    def test_health(self, client):
        response = client.get('/health')
        assert response.status_code == 200
        assert response.get_json()['status'] == 'OK'

    def test_plan(self, client):
        response = client.get('/api/planning/T1?date=2026-01-05')
        assert response.status_code == 200
        assert response.headers['Cache-Control'].startswith('no-cache')

        payload = response.get_json()
        assert payload['teamId'] == 'T1'
        assert payload['planningDate'] == '2026-01-05'
        assert [epic['epicKey'] for epic in payload['epics']] == ['E1', 'E2']
        story = payload['epics'][0]['stories'][0]
        assert story['phases']['sa']['startDate'] == '2026-01-05'
        assert story['phases']['qa']['startDate'] == '2026-01-08'
        assert payload['epics'][1]['queuePosition'] == 1
        assert payload['wip']['queue'] == [
            {'epicKey': 'E2', 'queuePosition': 1, 'queuedUntil': '2026-01-08'},
        ]

    def test_unknown_team(self, client):
        response = client.get('/api/planning/NOPE?date=2026-01-05')
        assert response.status_code == 404
        assert response.get_json()['error'] == 'Team not found'

    def test_bad_date(self, client):
        response = client.get('/api/planning/T1?date=05.01.2026')
        assert response.status_code == 400

    def test_malformed_snapshot(self, client, tmp_path, monkeypatch):
        path = tmp_path / 'broken.json'
        path.write_text('{"teams": [{"name": "no id"}]}')
        monkeypatch.setattr(planning_server, 'SNAPSHOT_FILE', str(path))

        response = client.get('/api/planning/T1?date=2026-01-05')
        assert response.status_code == 500
        assert response.get_json()['error'] == 'Invalid tracker snapshot'

    def test_role_load(self, client):
        response = client.get('/api/planning/T1/role-load?date=2026-01-05')
        assert response.status_code == 200
        payload = response.get_json()
        assert set(payload['roles']) == {'SA', 'DEV', 'QA'}
        assert payload['teamWip'] == {'limit': 1, 'admitted': 1, 'queued': 1}

    def test_export_excel(self, client):
        response = client.get('/api/planning/T1/export-excel?date=2026-01-05')
        assert response.status_code == 200
        assert 'attachment' in response.headers['Content-Disposition']
        wb = load_workbook(BytesIO(response.data))
        assert wb.sheetnames == ['Plan', 'Epics']

    def test_config(self, client):
        assert client.get('/api/config').get_json()['calendarSource'] == 'snapshot'
