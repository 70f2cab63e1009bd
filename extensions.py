from flask_bcrypt import Bcrypt
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# ============================================
# 擴展實例 (在 create_app 裡 init_app)
# ============================================

jwt = JWTManager()
bcrypt = Bcrypt()

# storage 與 default limits 從 RATELIMIT_* 設定讀取
limiter = Limiter(key_func=get_remote_address)
