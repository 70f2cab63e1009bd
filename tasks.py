from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from sqlalchemy.orm import joinedload
from marshmallow import Schema, fields, validate, pre_load, EXCLUDE
from datetime import datetime

from auth import get_current_actor, role_required, user_summary, validate_request_data
from config import ROLE_MANAGER, ROLE_MEMBER, TASK_STATUSES, TASK_PRIORITIES
from errors import Forbidden, InvalidArgument, NotFound
from models import db, Task
from permissions import TaskUpdate, require_role, task_capability_for, can_view_task
from teams import commit, load_team, team_summary
import logging

tasks_bp = Blueprint('tasks', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class TaskFormSchema(Schema):
    """
    任務表單共用設定

    team 建立後不能修改,更新時一起送來也直接忽略;
    下拉選單的 "未選擇" 會送空字串,視為 None
    """
    class Meta:
        unknown = EXCLUDE

    @pre_load
    def blank_references_to_none(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in ('assignedTo', 'team'):
            if data.get(key) == '':
                data[key] = None
        return data

class CreateTaskSchema(TaskFormSchema):
    """建立任務驗證"""
    title = fields.Str(allow_none=True, validate=validate.Length(max=255))
    content = fields.Str(allow_none=True)
    images = fields.List(fields.Str(), allow_none=True)
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES), load_default='todo')
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES), load_default='medium')
    assigned_to = fields.Int(allow_none=True, data_key='assignedTo')
    team_id = fields.Int(allow_none=True, data_key='team')

class UpdateTaskSchema(TaskFormSchema):
    """更新任務驗證 (只會出現 request 有帶的欄位)"""
    title = fields.Str(allow_none=True, validate=validate.Length(max=255))
    content = fields.Str(allow_none=True)
    images = fields.List(fields.Str())
    status = fields.Str(validate=validate.OneOf(TASK_STATUSES))
    priority = fields.Str(validate=validate.OneOf(TASK_PRIORITIES))
    assigned_to = fields.Int(allow_none=True, data_key='assignedTo')

class SetBugSchema(Schema):
    """標記 bug 驗證"""
    is_bugged = fields.Bool(
        required=True,
        data_key='isBugged',
        error_messages={'required': 'isBugged is required'}
    )
    bug_reason = fields.Str(allow_none=True, data_key='bugReason')

# ============================================
# 輔助函數
# ============================================

def serialize_task(task):
    """任務回應格式,關聯欄位展開成摘要"""
    data = {
        'id': task.id,
        'title': task.title,
        'content': task.content,
        'images': list(task.images or []),
        'status': task.status,
        'priority': task.priority,
        'assignedTo': user_summary(task.assignee),
        'createdBy': user_summary(task.creator),
        'team': team_summary(task.team),
        'isBugged': bool(task.is_bugged),
        'createdAt': task.created_at.isoformat() if task.created_at else None,
        'updatedAt': task.updated_at.isoformat() if task.updated_at else None
    }

    # bug 欄位只在 is_bugged 時出現
    if task.is_bugged:
        data['bugReason'] = task.bug_reason
        data['bugReportedBy'] = user_summary(task.bug_reporter)
        data['bugReportedAt'] = task.bug_reported_at.isoformat() if task.bug_reported_at else None

    return data

def load_task(task_id):
    task = Task.query.options(
        joinedload(Task.team),
        joinedload(Task.assignee),
        joinedload(Task.creator)
    ).filter_by(id=task_id).first()

    if not task:
        raise NotFound('Task not found')
    return task

# ============================================
# Task service
# ============================================

def create_task(data, actor):
    require_role(actor, ROLE_MANAGER)

    title = (data.get('title') or '').strip()
    if not title:
        raise InvalidArgument('Task title is required')

    team_id = data.get('team_id')
    if not team_id:
        raise InvalidArgument('Team is required')

    team = load_team(team_id)

    if team.manager_id != actor.id:
        raise Forbidden('Only the team manager can create tasks')

    assigned_to = data.get('assigned_to')
    if assigned_to and not team.has_member(assigned_to):
        raise InvalidArgument('Assigned user is not a member of this team')

    task = Task(
        title=title,
        content=data.get('content'),
        images=data.get('images') or [],
        status=data.get('status', 'todo'),
        priority=data.get('priority', 'medium'),
        assigned_to=assigned_to or None,
        created_by=actor.id,
        team_id=team.id
    )

    db.session.add(task)
    commit('Task creation')

    logger.info(f"Task created: {task.title} in team {team.id} by user {actor.email}")
    return task

def list_tasks(team_id, actor, status=None, priority=None):
    """
    查詢團隊的任務列表

    member 只會看到指派給自己的任務;
    manager 必須是這個團隊的 manager
    """
    if not team_id:
        raise InvalidArgument('teamId query parameter is required')

    team = load_team(team_id)

    query = Task.query.filter_by(team_id=team.id).options(
        joinedload(Task.creator),
        joinedload(Task.assignee),
        joinedload(Task.bug_reporter)
    )

    if actor.role == ROLE_MEMBER:
        query = query.filter_by(assigned_to=actor.id)
    elif actor.role == ROLE_MANAGER:
        if team.manager_id != actor.id:
            raise Forbidden('Access denied')
    else:
        raise Forbidden('Access denied')

    if status:
        query = query.filter_by(status=status)
    if priority:
        query = query.filter_by(priority=priority)

    return query.order_by(Task.created_at.desc(), Task.id.desc()).all()

def get_task(task_id, actor):
    task = load_task(task_id)

    if not can_view_task(actor, task):
        raise Forbidden('Access denied')

    return task

def update_task(task_id, update, actor):
    """依 actor 的角色決定可以更新哪些欄位"""
    task = load_task(task_id)

    capability = task_capability_for(actor)
    changes = capability.apply(task, actor, update)

    if changes:
        commit('Task update')
        logger.info(
            f"Task {task_id} updated by user {actor.email} ({capability.name}): {sorted(changes)}"
        )

    return task

def set_bug(task_id, is_bugged, bug_reason, actor):
    require_role(actor, ROLE_MANAGER)
    task = load_task(task_id)

    # reason / reported_by / reported_at 必須一起設定或一起清除
    task.is_bugged = bool(is_bugged)
    if task.is_bugged:
        task.bug_reason = bug_reason or ''
        task.bug_reported_by = actor.id
        task.bug_reported_at = datetime.utcnow()
    else:
        task.bug_reason = None
        task.bug_reported_by = None
        task.bug_reported_at = None

    commit('Bug update')

    logger.info(f"Task {task_id} bug flag set to {task.is_bugged} by user {actor.email}")
    return task

def delete_task(task_id, actor):
    """只有建立者可以刪除 (團隊 manager 也不行)"""
    require_role(actor, ROLE_MANAGER)
    task = load_task(task_id)

    if task.created_by != actor.id:
        raise Forbidden('Only the task creator can delete this task')

    task_title = task.title
    db.session.delete(task)
    commit('Task deletion')

    logger.info(f"Task deleted: {task_title} by user {actor.email}")

# ============================================
# Routes
# ============================================

@tasks_bp.route('', methods=['POST'])
@jwt_required()
@role_required(ROLE_MANAGER)
def create_task_route():
    result = validate_request_data(CreateTaskSchema, request.get_json(silent=True))
    task = create_task(result, get_current_actor())
    return jsonify(serialize_task(task)), 201

@tasks_bp.route('', methods=['GET'])
@jwt_required()
def list_tasks_route():
    tasks = list_tasks(
        request.args.get('teamId', type=int),
        get_current_actor(),
        status=request.args.get('status'),
        priority=request.args.get('priority')
    )
    return jsonify([serialize_task(task) for task in tasks]), 200

@tasks_bp.route('/<int:task_id>', methods=['GET'])
@jwt_required()
def get_task_route(task_id):
    task = get_task(task_id, get_current_actor())
    return jsonify(serialize_task(task)), 200

@tasks_bp.route('/<int:task_id>', methods=['PUT'])
@jwt_required()
def update_task_route(task_id):
    result = validate_request_data(UpdateTaskSchema, request.get_json(silent=True))
    task = update_task(task_id, TaskUpdate.from_dict(result), get_current_actor())
    return jsonify(serialize_task(task)), 200

@tasks_bp.route('/<int:task_id>/bug', methods=['PUT'])
@jwt_required()
@role_required(ROLE_MANAGER)
def set_bug_route(task_id):
    result = validate_request_data(SetBugSchema, request.get_json(silent=True))
    task = set_bug(task_id, result['is_bugged'], result.get('bug_reason'), get_current_actor())
    return jsonify(serialize_task(task)), 200

@tasks_bp.route('/<int:task_id>', methods=['DELETE'])
@jwt_required()
@role_required(ROLE_MANAGER)
def delete_task_route(task_id):
    delete_task(task_id, get_current_actor())
    return jsonify({'message': 'Task deleted successfully'}), 200
