"""Pytest 配置和共享 fixtures

每個測試都拿到一個全新的 app (in-memory SQLite) 和 test client。
"""

import pytest

from app import create_app
from config import TestingConfig
from models import db, User
from permissions import Actor


@pytest.fixture
def app(tmp_path):
    class Config(TestingConfig):
        UPLOAD_FOLDER = str(tmp_path / 'uploads')

    app = create_app(Config)
    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


class Account:
    """測試用帳號: 註冊後登入,保存 id 與 Authorization header"""

    def __init__(self, client, name, email, role, password='password123'):
        self.app = client.application
        resp = client.post('/auth/register', json={
            'name': name,
            'email': email,
            'password': password,
            'role': role
        })
        assert resp.status_code == 201, resp.get_json()
        self.id = resp.get_json()['user']['id']
        self.name = name
        self.email = email
        self.role = role

        resp = client.post('/auth/login', json={'email': email, 'password': password})
        assert resp.status_code == 200, resp.get_json()
        body = resp.get_json()
        self.token = body['access_token']
        self.refresh_token = body['refresh_token']
        self.headers = {'Authorization': f'Bearer {self.token}'}

    @property
    def actor(self):
        with self.app.app_context():
            return Actor.from_user(db.session.get(User, self.id))


@pytest.fixture
def make_account(client):
    def _make(name, role='member', email=None):
        return Account(client, name, email or f'{name.lower()}@example.com', role)
    return _make


@pytest.fixture
def manager(make_account):
    return make_account('Mia', role='manager')


@pytest.fixture
def other_manager(make_account):
    return make_account('Oscar', role='manager')


@pytest.fixture
def member(make_account):
    return make_account('Max')


@pytest.fixture
def outsider(make_account):
    return make_account('Nora')


@pytest.fixture
def team(client, manager, member):
    """manager 建立的團隊,member 已加入"""
    resp = client.post('/teams', json={'name': 'Platform'}, headers=manager.headers)
    assert resp.status_code == 201
    team_id = resp.get_json()['id']

    resp = client.put(f'/teams/{team_id}/members', json={'email': member.email}, headers=manager.headers)
    assert resp.status_code == 200
    return resp.get_json()


@pytest.fixture
def create_task(client, manager, team):
    def _create(**overrides):
        payload = {'title': 'Write docs', 'team': team['id']}
        payload.update(overrides)
        resp = client.post('/tasks', json=payload, headers=manager.headers)
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()
    return _create
