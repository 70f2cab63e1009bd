import os
from datetime import timedelta
from dotenv import load_dotenv

load_dotenv()

# ============================================
# 角色與任務欄位
# ============================================

ROLE_MANAGER = 'manager'
ROLE_MEMBER = 'member'
ROLES = (ROLE_MANAGER, ROLE_MEMBER)

# 'review' 不是合法狀態,統一使用 'in-review'
TASK_STATUSES = ('todo', 'in-progress', 'in-review', 'done')
TASK_PRIORITIES = ('low', 'medium', 'high')

# 上傳圖片: content type -> 儲存的副檔名
ALLOWED_IMAGE_TYPES = {
    'image/jpeg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/webp': 'webp',
}

DEFAULT_SECRET_KEY = 'dev-secret-key-change-in-production'


class Config:
    """從環境變數 (.env) 讀取的設定"""

    SECRET_KEY = os.getenv('SECRET_KEY', DEFAULT_SECRET_KEY)
    ENV = os.getenv('FLASK_ENV', 'development')
    DEBUG = os.getenv('FLASK_DEBUG', 'False').lower() == 'true'
    API_VERSION = '1.0.0'

    # 資料庫: 預設 SQLite 檔案,production 用 DATABASE_URL
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///team_tasks.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        'pool_size': int(os.getenv('DB_POOL_SIZE', 10)),
        'pool_recycle': int(os.getenv('DB_POOL_RECYCLE', 3600)),
        'pool_pre_ping': True,
        'max_overflow': int(os.getenv('DB_MAX_OVERFLOW', 20))
    }

    # JWT: 只接受 Authorization: Bearer <token>
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', SECRET_KEY)
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_HOURS', 1)))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=int(os.getenv('JWT_REFRESH_TOKEN_EXPIRES_DAYS', 30)))
    JWT_TOKEN_LOCATION = ['headers']
    JWT_HEADER_NAME = 'Authorization'
    JWT_HEADER_TYPE = 'Bearer'
    JWT_ERROR_MESSAGE_KEY = 'message'

    CORS_ORIGINS = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')

    # Flask-Limiter: production 共用 Redis,開發環境放記憶體
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    RATELIMIT_ENABLED = True
    RATELIMIT_STORAGE_URI = REDIS_URL if ENV == 'production' else 'memory://'
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_DEFAULT = '1000 per day;200 per hour'

    # 圖片上傳: MAX_CONTENT_LENGTH 是整個 request,MAX_IMAGE_SIZE 是單張圖片
    MAX_CONTENT_LENGTH = int(os.getenv('MAX_CONTENT_LENGTH', 16 * 1024 * 1024))
    MAX_IMAGE_SIZE = int(os.getenv('MAX_IMAGE_SIZE', 5 * 1024 * 1024))
    UPLOAD_FOLDER = os.getenv('UPLOAD_FOLDER', os.path.abspath('uploads'))

    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FILE = os.getenv('LOG_FILE', 'logs/app.log')
    ERROR_LOG_FILE = os.getenv('ERROR_LOG_FILE', 'logs/error.log')

    PASSWORD_MIN_LENGTH = int(os.getenv('PASSWORD_MIN_LENGTH', 8))

    @staticmethod
    def validate():
        """production 環境缺少 secret 或資料庫設定時拒絕啟動"""
        if Config.ENV != 'production':
            return

        missing = [key for key in ('SECRET_KEY', 'JWT_SECRET_KEY', 'DATABASE_URL')
                   if not os.getenv(key)]
        if missing:
            raise ValueError(
                f"Missing required environment variables in production: {', '.join(missing)}"
            )

        if Config.SECRET_KEY == DEFAULT_SECRET_KEY:
            raise ValueError("You must set a strong SECRET_KEY in production!")


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_ECHO = True


class ProductionConfig(Config):
    DEBUG = False
    TESTING = False


class TestingConfig(Config):
    TESTING = True
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    # in-memory SQLite 使用 StaticPool,不接受 pool_size 等參數
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SQLALCHEMY_ECHO = False
    BCRYPT_LOG_ROUNDS = 4
    RATELIMIT_ENABLED = False
    SECRET_KEY = 'testing-secret-key'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-with-enough-length'


config = {
    'development': DevelopmentConfig,
    'production': ProductionConfig,
    'testing': TestingConfig,
    'default': DevelopmentConfig
}


def get_config():
    env = os.getenv('FLASK_ENV', 'development')
    return config.get(env, config['default'])
