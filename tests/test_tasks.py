import pytest

from errors import Forbidden
from permissions import TaskUpdate
from models import db, Team
from tasks import update_task, delete_task


def test_create_task_expands_references(client, manager, member, team, create_task):
    task = create_task(
        title='  Fix login  ',
        content='<p>steps</p>',
        images=['http://img/1.png', 'http://img/2.png'],
        priority='high',
        assignedTo=member.id
    )

    assert task['title'] == 'Fix login'
    assert task['status'] == 'todo'
    assert task['priority'] == 'high'
    assert task['images'] == ['http://img/1.png', 'http://img/2.png']
    assert task['assignedTo'] == {'id': member.id, 'name': 'Max', 'email': member.email, 'role': 'member'}
    assert task['createdBy']['id'] == manager.id
    assert task['team'] == {'id': team['id'], 'name': 'Platform'}
    assert task['isBugged'] is False
    assert 'bugReason' not in task


def test_create_task_validation(client, manager, team):
    resp = client.post('/tasks', json={'title': '  ', 'team': team['id']}, headers=manager.headers)
    assert resp.status_code == 400

    resp = client.post('/tasks', json={'title': 'No team'}, headers=manager.headers)
    assert resp.status_code == 400

    resp = client.post('/tasks', json={'title': 'Lost', 'team': 9999}, headers=manager.headers)
    assert resp.status_code == 404

    resp = client.post('/tasks', json={'title': 'Bad', 'team': team['id'], 'status': 'review'},
                       headers=manager.headers)
    assert resp.status_code == 400


def test_create_task_permissions(client, other_manager, member, team):
    resp = client.post('/tasks', json={'title': 'Nope', 'team': team['id']}, headers=other_manager.headers)
    assert resp.status_code == 403

    resp = client.post('/tasks', json={'title': 'Nope', 'team': team['id']}, headers=member.headers)
    assert resp.status_code == 403


def test_create_task_assignee_must_be_team_member(client, manager, outsider, team):
    resp = client.post('/tasks', json={'title': 'Outside', 'team': team['id'], 'assignedTo': outsider.id},
                       headers=manager.headers)

    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Assigned user is not a member of this team'


def test_list_tasks_manager_sees_all_newest_first(client, manager, member, team, create_task):
    first = create_task(title='First', assignedTo=member.id)
    second = create_task(title='Second')

    resp = client.get(f"/tasks?teamId={team['id']}", headers=manager.headers)

    assert resp.status_code == 200
    assert [t['id'] for t in resp.get_json()] == [second['id'], first['id']]


def test_list_tasks_member_sees_only_assigned(client, manager, member, outsider, team, create_task):
    client.put(f"/teams/{team['id']}/members", json={'email': outsider.email}, headers=manager.headers)
    mine = create_task(title='Mine', assignedTo=member.id)
    create_task(title='Theirs', assignedTo=outsider.id)
    create_task(title='Nobody')

    tasks = client.get(f"/tasks?teamId={team['id']}", headers=member.headers).get_json()

    assert [t['id'] for t in tasks] == [mine['id']]
    assert all(t['assignedTo']['id'] == member.id for t in tasks)


def test_list_tasks_errors(client, manager, other_manager, team):
    assert client.get('/tasks', headers=manager.headers).status_code == 400
    assert client.get('/tasks?teamId=9999', headers=manager.headers).status_code == 404
    assert client.get(f"/tasks?teamId={team['id']}", headers=other_manager.headers).status_code == 403


def test_list_tasks_filters(client, manager, team, create_task):
    create_task(title='Low', priority='low')
    high = create_task(title='High', priority='high', status='in-progress')

    tasks = client.get(f"/tasks?teamId={team['id']}&priority=high", headers=manager.headers).get_json()
    assert [t['id'] for t in tasks] == [high['id']]

    tasks = client.get(f"/tasks?teamId={team['id']}&status=done", headers=manager.headers).get_json()
    assert tasks == []


def test_get_task_visibility(client, manager, member, outsider, other_manager, team, create_task):
    task = create_task(assignedTo=member.id)
    url = f"/tasks/{task['id']}"

    assert client.get(url, headers=manager.headers).status_code == 200
    assert client.get(url, headers=member.headers).status_code == 200
    assert client.get(url, headers=outsider.headers).status_code == 403
    assert client.get(url, headers=other_manager.headers).status_code == 403
    assert client.get('/tasks/9999', headers=manager.headers).status_code == 404


def test_manager_partial_update(client, manager, member, team, create_task):
    task = create_task(content='<p>keep me</p>', images=['http://img/a.png'])

    resp = client.put(f"/tasks/{task['id']}", json={'title': 'Renamed', 'assignedTo': member.id},
                      headers=manager.headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['title'] == 'Renamed'
    assert body['assignedTo']['id'] == member.id
    assert body['content'] == '<p>keep me</p>'
    assert body['images'] == ['http://img/a.png']
    assert body['priority'] == 'medium'


def test_manager_reassignment_checks_membership(client, manager, outsider, team, create_task):
    task = create_task()

    resp = client.put(f"/tasks/{task['id']}", json={'assignedTo': outsider.id}, headers=manager.headers)

    assert resp.status_code == 400
    assert client.get(f"/tasks/{task['id']}", headers=manager.headers).get_json()['assignedTo'] is None


def test_update_rejects_unknown_status(client, manager, create_task):
    task = create_task()
    resp = client.put(f"/tasks/{task['id']}", json={'status': 'review'}, headers=manager.headers)
    assert resp.status_code == 400


def test_member_must_be_assignee_to_update(client, manager, member, team, create_task):
    task = create_task()

    resp = client.put(f"/tasks/{task['id']}", json={'status': 'done'}, headers=member.headers)

    assert resp.status_code == 403
    assert client.get(f"/tasks/{task['id']}", headers=manager.headers).get_json()['status'] == 'todo'


def test_update_missing_task(client, manager):
    assert client.put('/tasks/9999', json={'status': 'done'}, headers=manager.headers).status_code == 404


def test_manager_update_accepts_full_form_payload(client, manager, member, team, create_task):
    task = create_task()

    # 編輯表單會把 team 跟其他欄位一起送回來,team 不能被改
    form = {
        'title': 'Edited',
        'content': '<p>body</p>',
        'team': 9999,
        'assignedTo': member.id,
        'priority': 'high',
        'status': 'in-progress',
        'images': ['http://img/b.png'],
        'createdAt': task['createdAt']
    }
    resp = client.put(f"/tasks/{task['id']}", json=form, headers=manager.headers)

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['title'] == 'Edited'
    assert body['status'] == 'in-progress'
    assert body['assignedTo']['id'] == member.id
    assert body['team'] == {'id': team['id'], 'name': 'Platform'}


def test_blank_assignee_is_unassigned(client, manager, member, team, create_task):
    task = create_task(assignedTo='')
    assert task['assignedTo'] is None

    assigned = create_task(assignedTo=member.id)
    resp = client.put(f"/tasks/{assigned['id']}", json={'assignedTo': ''}, headers=manager.headers)

    assert resp.status_code == 200
    assert resp.get_json()['assignedTo'] is None


def test_blank_team_is_rejected(client, manager, team):
    resp = client.post('/tasks', json={'title': 'No team', 'team': ''}, headers=manager.headers)

    assert resp.status_code == 400
    assert resp.get_json()['message'] == 'Team is required'


def test_bug_flag_requires_manager(client, member, create_task):
    task = create_task(assignedTo=member.id)

    resp = client.put(f"/tasks/{task['id']}/bug", json={'isBugged': True}, headers=member.headers)
    assert resp.status_code == 403


def test_bug_flag_defaults_reason_and_clears_all_fields(client, manager, create_task):
    task = create_task()
    url = f"/tasks/{task['id']}/bug"

    body = client.put(url, json={'isBugged': True}, headers=manager.headers).get_json()
    assert body['isBugged'] is True
    assert body['bugReason'] == ''

    body = client.put(url, json={'isBugged': False, 'bugReason': 'ignored'}, headers=manager.headers).get_json()
    assert body['isBugged'] is False
    for key in ('bugReason', 'bugReportedBy', 'bugReportedAt'):
        assert key not in body


def test_bug_flag_errors(client, manager, create_task):
    task = create_task()

    assert client.put('/tasks/9999/bug', json={'isBugged': True}, headers=manager.headers).status_code == 404
    assert client.put(f"/tasks/{task['id']}/bug", json={}, headers=manager.headers).status_code == 400


def test_delete_only_by_creator(client, manager, other_manager, member, team, create_task):
    task = create_task()

    assert client.delete(f"/tasks/{task['id']}", headers=member.headers).status_code == 403
    assert client.delete(f"/tasks/{task['id']}", headers=other_manager.headers).status_code == 403

    resp = client.delete(f"/tasks/{task['id']}", headers=manager.headers)
    assert resp.status_code == 200
    assert resp.get_json() == {'message': 'Task deleted successfully'}

    assert client.get(f"/tasks/{task['id']}", headers=manager.headers).status_code == 404
    assert client.delete(f"/tasks/{task['id']}", headers=manager.headers).status_code == 404


def test_team_manager_who_did_not_create_task_cannot_delete(
        app, client, manager, other_manager, member, team, create_task):
    task = create_task()

    # 轉移團隊 manager 給另一個 manager: 建立者仍然是原本的 manager
    actor = other_manager.actor
    with app.app_context():
        team_row = db.session.get(Team, team['id'])
        team_row.manager_id = other_manager.id
        db.session.commit()

        with pytest.raises(Forbidden):
            delete_task(task['id'], actor)

    assert client.delete(f"/tasks/{task['id']}", headers=other_manager.headers).status_code == 403


def test_member_status_update_end_to_end(client, make_account):
    boss = make_account('Boss', role='manager')
    worker = make_account('Worker')

    team = client.post('/teams', json={'name': 'Core'}, headers=boss.headers).get_json()
    resp = client.put(f"/teams/{team['id']}/members", json={'email': worker.email}, headers=boss.headers)
    assert {m['id'] for m in resp.get_json()['members']} == {boss.id, worker.id}

    task = client.post('/tasks', json={
        'title': 'Ship it', 'team': team['id'], 'assignedTo': worker.id, 'status': 'todo'
    }, headers=boss.headers).get_json()

    resp = client.put(f"/tasks/{task['id']}", json={'status': 'done'}, headers=worker.headers)
    assert resp.status_code == 200

    resp = client.put(f"/tasks/{task['id']}", json={'title': 'Hijacked'}, headers=worker.headers)
    assert resp.status_code == 403

    final = client.get(f"/tasks/{task['id']}", headers=boss.headers).get_json()
    assert final['status'] == 'done'
    assert final['assignedTo']['id'] == worker.id
    assert final['createdBy']['id'] == boss.id
    assert final['title'] == 'Ship it'


def test_bug_report_end_to_end(client, manager, create_task):
    task = create_task()
    url = f"/tasks/{task['id']}"

    client.put(f'{url}/bug', json={'isBugged': True, 'bugReason': 'crashes on save'}, headers=manager.headers)

    body = client.get(url, headers=manager.headers).get_json()
    assert body['isBugged'] is True
    assert body['bugReason'] == 'crashes on save'
    assert body['bugReportedBy']['id'] == manager.id
    assert body['bugReportedAt']

    client.put(f'{url}/bug', json={'isBugged': False}, headers=manager.headers)

    body = client.get(url, headers=manager.headers).get_json()
    assert body['isBugged'] is False
    assert not {'bugReason', 'bugReportedBy', 'bugReportedAt'} & set(body)


def test_update_service_with_explicit_actor(app, member, create_task):
    task = create_task(assignedTo=member.id)
    actor = member.actor

    with app.app_context():
        updated = update_task(task['id'], TaskUpdate(status='in-progress'), actor)
        assert updated.status == 'in-progress'

        with pytest.raises(Forbidden):
            update_task(task['id'], TaskUpdate(priority='low'), actor)
