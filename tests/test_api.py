"""Tests for the control API endpoints."""

import time

import pytest
from fastapi.testclient import TestClient

from bansync.api import create_app
from bansync.config import Config
from bansync.main import build_app
from bansync.scheduler import SyncScheduler
from tests.conftest import remote_rows


@pytest.fixture
def scheduler(engine):
    return SyncScheduler(engine, push_delay=0.05)


@pytest.fixture
def client(engine, host, scheduler, bridge):
    """Test client without lifespan events, so tests drive the engine directly."""
    return TestClient(create_app(engine, host, scheduler))


def test_root_endpoint(client):
    response = client.get('/')
    assert response.status_code == 200
    assert response.json()['status'] == 'running'
    assert 'X-Request-ID' in response.headers


def test_health_reports_engine_state(client, engine):
    engine.run_cycle()

    response = client.get('/health')

    assert response.status_code == 200
    data = response.json()
    assert data['status'] == 'healthy'
    assert data['state'] == 'scheduled'
    assert data['bootstrapped'] is True
    assert data['backend'] == 'sqlite'
    assert data['cycles_completed'] == 1
    assert data['last_error'] is None


class TestBanEndpoints:
    """Test ban and unban through the API."""

    def test_ban_is_propagated(self, client, engine, store):
        engine.run_cycle()

        response = client.post('/bans', json={'user_id': '0042', 'name': 'mallory', 'reason': 'spam'})

        assert response.status_code == 201
        data = response.json()
        assert data['user_id'] == '42'
        assert data['synchronized'] is True
        assert remote_rows(store) == {('42', 'mallory', 'spam')}

    def test_ban_before_first_cycle_not_synchronized(self, client, store):
        response = client.post('/bans', json={'user_id': '42', 'name': 'mallory'})

        assert response.status_code == 201
        assert response.json()['synchronized'] is False

    def test_invalid_user_id_rejected(self, client, engine):
        engine.run_cycle()

        response = client.post('/bans', json={'user_id': '   ', 'name': 'nobody'})

        assert response.status_code == 422
        assert response.json()['code'] == 'INVALID_IDENTITY'

    def test_unicode_digit_id_accepted_as_text(self, client, engine, store):
        engine.run_cycle()

        response = client.post('/bans', json={'user_id': '²', 'name': 'sq', 'reason': 'r'})

        assert response.status_code == 201
        assert remote_rows(store) == {('²', 'sq', 'r')}

    def test_list_bans_returns_snapshot(self, client, engine):
        engine.run_cycle()
        client.post('/bans', json={'user_id': '1', 'name': 'a', 'reason': 'r1'})
        client.post('/bans', json={'user_id': '2', 'name': 'b', 'reason': 'r2'})

        response = client.get('/bans')

        assert response.status_code == 200
        data = response.json()
        assert data['count'] == 2
        assert {ban['user_id'] for ban in data['bans']} == {'1', '2'}

    def test_unban_is_propagated(self, client, engine, store):
        engine.run_cycle()
        client.post('/bans', json={'user_id': '7', 'name': 'z', 'reason': 'r'})

        response = client.delete('/bans/7')

        assert response.status_code == 200
        assert response.json() == {'user_id': '7', 'synchronized': True}
        assert remote_rows(store) == set()

    def test_unban_unknown_user(self, client):
        response = client.delete('/bans/404')

        assert response.status_code == 404
        assert response.json()['code'] == 'BAN_NOT_FOUND'


class TestSyncEndpoint:
    """Test manual sync triggers."""

    def test_trigger_accepted(self, client):
        response = client.post('/sync')

        assert response.status_code == 202
        assert response.json()['state'] == 'idle'

    def test_halted_engine_rejects_trigger(self, client, engine):
        engine.fail_closed(RuntimeError('table dropped'))

        response = client.post('/sync')
        assert response.status_code == 503
        assert response.json()['code'] == 'ENGINE_HALTED'

        health = client.get('/health').json()
        assert health['status'] == 'halted'
        assert health['last_error'] == 'table dropped'


def test_lifespan_runs_scheduler(engine, host, scheduler, bridge):
    app = create_app(engine, host, scheduler)

    with TestClient(app) as client:
        deadline = time.time() + 2.0
        while engine.cycles_completed < 1 and time.time() < deadline:
            time.sleep(0.01)
        assert client.get('/health').json()['bootstrapped'] is True
        assert scheduler.running is True

    assert scheduler.running is False
    assert engine.has_open_handle is False


def test_build_app_from_config(tmp_path):
    config = Config(tmp_path / 'bansync.json')

    client = TestClient(build_app(config))
    response = client.get('/health')

    assert response.status_code == 200
    assert response.json()['backend'] == 'sqlite'
    assert response.json()['snapshot_size'] == 0


def test_error_schema_documented(client):
    paths = client.get('/openapi.json').json()['paths']

    assert 'ErrorResponse' in paths['/sync']['post']['responses']['503']['content']['application/json']['schema']['$ref']
    assert '404' in paths['/bans/{user_id}']['delete']['responses']
