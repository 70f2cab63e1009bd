from functools import wraps

from flask import Blueprint, request, jsonify, current_app
from flask_jwt_extended import (
    create_access_token, create_refresh_token, jwt_required, get_jwt_identity, current_user
)
from marshmallow import Schema, fields, validate, ValidationError

from config import ROLES, ROLE_MEMBER
from errors import InvalidArgument, Unauthenticated, Internal
from extensions import bcrypt, jwt, limiter
from models import db, User
from permissions import Actor, require_role
import logging

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

# ============================================
# Input Validation Schemas (用 marshmallow)
# ============================================

class RegisterSchema(Schema):
    """註冊輸入驗證"""
    email = fields.Email(required=True, error_messages={
        'required': 'Email is required',
        'invalid': 'Invalid email format'
    })
    password = fields.Str(
        required=True,
        validate=validate.Length(min=8, max=128, error='Password must be 8-128 characters'),
        error_messages={'required': 'Password is required'}
    )
    name = fields.Str(
        required=True,
        validate=validate.Length(min=1, max=100, error='Name must be 1-100 characters'),
        error_messages={'required': 'Name is required'}
    )
    role = fields.Str(validate=validate.OneOf(ROLES), load_default=ROLE_MEMBER)

class LoginSchema(Schema):
    """登入輸入驗證"""
    email = fields.Email(required=True)
    password = fields.Str(required=True)

# ============================================
# Helper Functions
# ============================================

def validate_request_data(schema_class, data):
    """
    統一的輸入驗證函數

    驗證失敗直接 raise InvalidArgument
    """
    if data is None:
        raise InvalidArgument('Request body must be JSON')
    schema = schema_class()
    try:
        return schema.load(data)
    except ValidationError as err:
        raise InvalidArgument('Validation failed', details=err.messages)

def user_summary(user):
    """使用者的公開欄位"""
    if user is None:
        return None
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'role': user.role
    }

# ============================================
# Auth guard
# ============================================

@jwt.user_identity_loader
def user_identity_lookup(identity):
    return str(identity)

@jwt.user_lookup_loader
def user_lookup_callback(jwt_header, jwt_data):
    """把 token 的 sub 解析成 User,找不到會觸發 user_lookup_error_loader"""
    identity = jwt_data['sub']
    try:
        return db.session.get(User, int(identity))
    except (TypeError, ValueError):
        return None

def get_current_actor():
    """
    取得當前登入的使用者身分

    必須在 jwt_required() 之後呼叫
    """
    # 使用者不存在時 user_lookup_error_loader 已經回 401
    return Actor.from_user(current_user)

def role_required(*roles):
    """Role guard decorator,放在 jwt_required() 之後"""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            require_role(get_current_actor(), *roles)
            return fn(*args, **kwargs)
        return wrapper
    return decorator

# ============================================
# 註冊 API
# ============================================

@auth_bp.route('/register', methods=['POST'])
@limiter.limit('5 per hour')
def register():
    """使用者註冊"""
    result = validate_request_data(RegisterSchema, request.get_json(silent=True))

    if len(result['password']) < current_app.config['PASSWORD_MIN_LENGTH']:
        raise InvalidArgument(
            f"Password must be at least {current_app.config['PASSWORD_MIN_LENGTH']} characters"
        )

    email = result['email'].strip().lower()
    if User.query.filter_by(email=email).first():
        return jsonify({'error': 'conflict', 'message': 'Email already exists'}), 409

    user = User(
        email=email,
        name=result['name'].strip(),
        role=result['role'],
        password_hash=bcrypt.generate_password_hash(result['password']).decode('utf-8')
    )

    try:
        db.session.add(user)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        # 不要把 exception 細節洩漏給前端
        logger.error(f"Registration error for {email}: {str(e)}", exc_info=True)
        raise Internal('Registration failed due to server error') from e

    logger.info(f"New user registered: {user.email} ({user.role})")

    return jsonify({
        'message': 'User registered successfully',
        'user': user_summary(user)
    }), 201

# ============================================
# 登入 API
# ============================================

@auth_bp.route('/login', methods=['POST'])
@limiter.limit('10 per minute')
def login():
    """
    使用者登入

    不區分 email 錯還是 password 錯,避免帳號枚舉攻擊
    """
    result = validate_request_data(LoginSchema, request.get_json(silent=True))

    user = User.query.filter_by(email=result['email'].strip().lower()).first()

    if not user or not bcrypt.check_password_hash(user.password_hash, result['password']):
        logger.warning(f"Failed login attempt for email: {result['email']}")
        raise Unauthenticated('Invalid credentials', error='invalid_credentials')

    access_token = create_access_token(identity=str(user.id))
    refresh_token = create_refresh_token(identity=str(user.id))

    logger.info(f"User logged in: {user.email}")

    return jsonify({
        'message': 'Login successful',
        'access_token': access_token,
        'refresh_token': refresh_token,
        'user': user_summary(user)
    }), 200

# ============================================
# Token 刷新 API
# ============================================

@auth_bp.route('/refresh', methods=['POST'])
@jwt_required(refresh=True)
def refresh():
    """用 refresh token 換新的 access token"""
    actor = get_current_actor()
    access_token = create_access_token(identity=str(actor.id))

    return jsonify({
        'access_token': access_token
    }), 200

# ============================================
# 取得當前使用者資訊
# ============================================

@auth_bp.route('/me', methods=['GET'])
@jwt_required()
def get_me():
    actor = get_current_actor()
    logger.debug(f"Identity resolved for token subject {get_jwt_identity()}")
    return jsonify(actor._asdict()), 200
