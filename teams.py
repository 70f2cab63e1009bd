from flask import Blueprint, request, jsonify
from flask_jwt_extended import jwt_required
from marshmallow import Schema, fields, validate

from auth import get_current_actor, role_required, user_summary, validate_request_data
from config import ROLE_MANAGER
from errors import Forbidden, InvalidArgument, NotFound, Internal
from models import db, Team, User
from permissions import require_role
import logging

teams_bp = Blueprint('teams', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas
# ============================================

class CreateTeamSchema(Schema):
    """建立團隊驗證"""
    name = fields.Str(
        required=True,
        validate=validate.Length(max=255),
        error_messages={'required': 'Team name is required'}
    )

class AddMemberSchema(Schema):
    """新增成員驗證"""
    email = fields.Str(allow_none=True)

# ============================================
# 輔助函數
# ============================================

def team_summary(team):
    return {'id': team.id, 'name': team.name}

def serialize_team(team):
    """團隊回應格式,manager 與 members 展開成使用者摘要"""
    return {
        'id': team.id,
        'name': team.name,
        'manager': user_summary(team.manager),
        'members': [user_summary(member) for member in team.members],
        'createdAt': team.created_at.isoformat() if team.created_at else None
    }

def load_team(team_id):
    team = db.session.get(Team, team_id)
    if not team:
        raise NotFound('Team not found')
    return team

def commit(action):
    """commit 失敗時 rollback,錯誤細節只寫進 log"""
    try:
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error(f"{action} error: {str(e)}", exc_info=True)
        raise Internal(f'{action} failed due to server error') from e

# ============================================
# Team service
# ============================================

def create_team(name, actor):
    require_role(actor, ROLE_MANAGER)

    name = (name or '').strip()
    if not name:
        raise InvalidArgument('Team name is required')

    manager = db.session.get(User, actor.id)
    team = Team(name=name, manager_id=actor.id)
    team.members.append(manager)

    db.session.add(team)
    commit('Team creation')

    logger.info(f"Team created: {team.name} by user {actor.email}")
    return team

def list_teams(actor):
    """manager 看自己管理的團隊,member 看自己所屬的團隊"""
    if actor.role == ROLE_MANAGER:
        query = Team.query.filter_by(manager_id=actor.id)
    else:
        query = Team.query.filter(Team.members.any(User.id == actor.id))
    return query.order_by(Team.created_at.desc(), Team.id.desc()).all()

def get_team(team_id, actor):
    team = load_team(team_id)

    if team.manager_id != actor.id and not team.has_member(actor.id):
        raise Forbidden('Access denied')

    return team

def add_member(team_id, email, actor):
    # manager 角色是必要條件,還必須是這個團隊的 manager
    require_role(actor, ROLE_MANAGER)
    team = load_team(team_id)

    if team.manager_id != actor.id:
        raise Forbidden('Only the team manager can add members')

    email = (email or '').strip().lower()
    if not email:
        raise InvalidArgument('Email is required')

    user = User.query.filter_by(email=email).first()
    if not user:
        raise NotFound('User not found with this email')

    if team.has_member(user.id):
        raise InvalidArgument('User is already a team member')

    team.members.append(user)
    commit('Add member')

    logger.info(f"Member added to team {team.id}: user {user.email} by {actor.email}")
    return team

def remove_member(team_id, member_id, actor):
    team = load_team(team_id)

    # manager 永遠不能被移除,不論是誰發出的請求
    if member_id == team.manager_id:
        raise InvalidArgument('Cannot remove the manager from the team')

    if team.manager_id != actor.id:
        raise Forbidden('Only the team manager can remove members')

    member = next((m for m in team.members if m.id == member_id), None)
    if member is None:
        raise NotFound('Member not found in team')

    team.members.remove(member)
    commit('Remove member')

    logger.info(f"Member {member_id} removed from team {team.id} by {actor.email}")
    return team

# ============================================
# Routes
# ============================================

@teams_bp.route('', methods=['POST'])
@jwt_required()
@role_required(ROLE_MANAGER)
def create_team_route():
    result = validate_request_data(CreateTeamSchema, request.get_json(silent=True))
    team = create_team(result['name'], get_current_actor())
    return jsonify(serialize_team(team)), 201

@teams_bp.route('', methods=['GET'])
@jwt_required()
def list_teams_route():
    teams = list_teams(get_current_actor())
    return jsonify([serialize_team(team) for team in teams]), 200

@teams_bp.route('/<int:team_id>', methods=['GET'])
@jwt_required()
def get_team_route(team_id):
    team = get_team(team_id, get_current_actor())
    return jsonify(serialize_team(team)), 200

@teams_bp.route('/<int:team_id>/members', methods=['PUT'])
@jwt_required()
@role_required(ROLE_MANAGER)
def add_member_route(team_id):
    result = validate_request_data(AddMemberSchema, request.get_json(silent=True) or {})
    team = add_member(team_id, result.get('email'), get_current_actor())
    return jsonify(serialize_team(team)), 200

@teams_bp.route('/<int:team_id>/members/<int:member_id>', methods=['DELETE'])
@jwt_required()
def remove_member_route(team_id, member_id):
    team = remove_member(team_id, member_id, get_current_actor())
    return jsonify(serialize_team(team)), 200
