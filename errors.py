# ============================================
# 錯誤分類
#
# service 層直接 raise,由 app 統一轉成 JSON 回應
# ============================================


class ApiError(Exception):
    status_code = 500
    error = 'internal_server_error'
    message = 'An internal error occurred'

    def __init__(self, message=None, error=None, details=None):
        super().__init__(message or self.message)
        if message:
            self.message = message
        if error:
            self.error = error
        self.details = details

    def to_dict(self):
        body = {'error': self.error, 'message': self.message}
        if self.details:
            body['details'] = self.details
        return body


class Unauthenticated(ApiError):
    """缺少、無效或過期的 token"""
    status_code = 401
    error = 'unauthenticated'
    message = 'Authentication required'


class Forbidden(ApiError):
    """已登入但沒有權限"""
    status_code = 403
    error = 'forbidden'
    message = 'Permission denied'


class NotFound(ApiError):
    status_code = 404
    error = 'not_found'
    message = 'The requested resource does not exist'


class InvalidArgument(ApiError):
    """缺少或格式錯誤的輸入"""
    status_code = 400
    error = 'invalid_argument'
    message = 'The request is malformed or invalid'


class Internal(ApiError):
    status_code = 500
    error = 'internal_server_error'
    message = 'An internal error occurred. Our team has been notified.'
