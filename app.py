from flask import Flask, request, jsonify, current_app
from flask_cors import CORS
from werkzeug.exceptions import HTTPException
from sqlalchemy import text
from datetime import datetime
import logging
from logging.handlers import RotatingFileHandler
import os

from config import get_config
from errors import ApiError
from extensions import bcrypt, jwt, limiter
from models import db

# ============================================
# Logging 設定
# ============================================

def setup_logging(app):
    """
    設定 logging

    info 和 error 分開寫入,使用 RotatingFileHandler 避免 log 檔案過大
    """
    log_dir = os.path.dirname(app.config['LOG_FILE'])
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir)

    formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )

    info_handler = RotatingFileHandler(
        app.config['LOG_FILE'],
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    info_handler.setLevel(logging.INFO)
    info_handler.setFormatter(formatter)

    error_handler = RotatingFileHandler(
        app.config['ERROR_LOG_FILE'],
        maxBytes=10240000,  # 10MB
        backupCount=10
    )
    error_handler.setLevel(logging.ERROR)
    error_handler.setFormatter(formatter)

    # 各模組用 logging.getLogger(__name__),掛在 root logger 才收得到
    root_logger = logging.getLogger()
    root_logger.addHandler(info_handler)
    root_logger.addHandler(error_handler)
    root_logger.setLevel(app.config['LOG_LEVEL'])

    app.logger.addHandler(info_handler)
    app.logger.addHandler(error_handler)
    app.logger.setLevel(app.config['LOG_LEVEL'])

    app.logger.info('Application startup')

# ============================================
# JWT 錯誤處理
# ============================================

def register_jwt_handlers():

    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        """token 過期要跟其他錯誤分開,前端才能提示重新登入"""
        current_app.logger.warning(f"Expired token attempt from: {request.remote_addr}")
        return jsonify({
            'error': 'token_expired',
            'message': 'The token has expired. Please login again.'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        current_app.logger.warning(f"Invalid token attempt from: {request.remote_addr}, error: {error}")
        return jsonify({
            'error': 'invalid_token',
            'message': 'Token validation failed. Please provide a valid token.'
        }), 401

    @jwt.unauthorized_loader
    def unauthorized_callback(error):
        """缺少 token 或缺少 Bearer 前綴"""
        current_app.logger.warning(f"Unauthorized access attempt from: {request.remote_addr}, error: {error}")
        return jsonify({
            'error': 'authorization_required',
            'message': 'Access token is required. Please provide an authorization token.'
        }), 401

    @jwt.user_lookup_error_loader
    def user_lookup_error_callback(jwt_header, jwt_payload):
        """token 有效但使用者已不存在"""
        current_app.logger.warning(f"Token valid but user not found: {jwt_payload.get('sub')}")
        return jsonify({
            'error': 'user_not_found',
            'message': 'User not found. Please login again.'
        }), 401

# ============================================
# 全域錯誤處理
# ============================================

def register_error_handlers(app):

    @app.errorhandler(ApiError)
    def handle_api_error(error):
        if error.status_code >= 500:
            db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'error': 'not_found',
            'message': 'The requested resource does not exist'
        }), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({
            'error': 'method_not_allowed',
            'message': 'The HTTP method is not allowed for this endpoint'
        }), 405

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded from: {request.remote_addr}")
        return jsonify({
            'error': 'rate_limit_exceeded',
            'message': 'Too many requests. Please try again later.'
        }), 429

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        """
        處理所有未預期的錯誤

        完整的 stack trace 只寫進 log,前端只看到通用訊息
        """
        if isinstance(error, HTTPException):
            return jsonify({
                'error': error.name.lower().replace(' ', '_'),
                'message': error.description
            }), error.code

        db.session.rollback()
        app.logger.error(f"Unexpected error: {str(error)}", exc_info=True)

        return jsonify({
            'error': 'internal_server_error',
            'message': 'An internal error occurred. Our team has been notified.'
        }), 500

# ============================================
# Application Factory
# ============================================

def create_app(config_class=None):
    config_class = config_class or get_config()
    config_class.validate()

    app = Flask(__name__)
    app.config.from_object(config_class)

    CORS(app,
         supports_credentials=True,
         origins=app.config['CORS_ORIGINS'],
         methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS'],
         allow_headers=['Content-Type', 'Authorization'])

    db.init_app(app)
    jwt.init_app(app)
    bcrypt.init_app(app)
    limiter.init_app(app)

    if not app.debug and not app.testing:
        setup_logging(app)

    # Blueprints (import 時會註冊 JWT user lookup)
    from auth import auth_bp
    app.register_blueprint(auth_bp, url_prefix='/auth')

    from teams import teams_bp
    app.register_blueprint(teams_bp, url_prefix='/teams')

    from tasks import tasks_bp
    app.register_blueprint(tasks_bp, url_prefix='/tasks')

    from upload import upload_bp
    app.register_blueprint(upload_bp)

    register_jwt_handlers()
    register_error_handlers(app)

    with app.app_context():
        db.create_all()
        app.logger.info('Database tables created')

    # ============================================
    # Request/Response Logging
    # ============================================

    @app.before_request
    def log_request():
        if not app.debug:
            app.logger.info(f"Request: {request.method} {request.path} from {request.remote_addr}")

    @app.after_request
    def log_response(response):
        if not app.debug:
            app.logger.info(f"Response: {response.status_code} for {request.method} {request.path}")

        # security headers
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        response.headers['X-XSS-Protection'] = '1; mode=block'

        return response

    # ============================================
    # Health Check
    # ============================================

    @app.route('/health', methods=['GET'])
    @limiter.exempt
    def health_check():
        """給 load balancer 或監控系統檢查服務是否正常"""
        try:
            db.session.execute(text('SELECT 1'))

            return jsonify({
                'status': 'healthy',
                'database': 'connected',
                'timestamp': datetime.utcnow().isoformat()
            }), 200
        except Exception as e:
            app.logger.error(f"Health check failed: {str(e)}")
            return jsonify({
                'status': 'unhealthy',
                'database': 'disconnected',
                'error': 'Database connection failed'
            }), 503

    # ============================================
    # API 首頁
    # ============================================

    @app.route('/')
    @limiter.limit('10 per minute')
    def home():
        return jsonify({
            'message': 'Team Task Tracker API',
            'version': app.config['API_VERSION'],
            'endpoints': {
                'health': {'path': '/health', 'methods': ['GET']},
                'auth': {
                    'register': {'path': '/auth/register', 'methods': ['POST']},
                    'login': {'path': '/auth/login', 'methods': ['POST']},
                    'refresh': {'path': '/auth/refresh', 'methods': ['POST']},
                    'me': {'path': '/auth/me', 'methods': ['GET']}
                },
                'teams': {
                    'list': {'path': '/teams', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/teams/:id', 'methods': ['GET']},
                    'members': {'path': '/teams/:id/members', 'methods': ['PUT']},
                    'member': {'path': '/teams/:id/members/:memberId', 'methods': ['DELETE']}
                },
                'tasks': {
                    'list': {'path': '/tasks?teamId=:id', 'methods': ['GET', 'POST']},
                    'detail': {'path': '/tasks/:id', 'methods': ['GET', 'PUT', 'DELETE']},
                    'bug': {'path': '/tasks/:id/bug', 'methods': ['PUT']}
                },
                'upload': {'path': '/upload', 'methods': ['POST']}
            }
        })

    return app

# ============================================
# 啟動應用
# ============================================

if __name__ == '__main__':
    # production 環境請用 gunicorn: gunicorn "app:create_app()"
    app = create_app()

    port = int(os.getenv('FLASK_PORT', 8888))

    app.run(
        debug=app.config['DEBUG'],
        port=port,
        host='0.0.0.0'
    )
