from flask import Blueprint, request, jsonify, current_app, send_from_directory, url_for
from flask_jwt_extended import jwt_required
import logging
import os
import uuid

from auth import get_current_actor
from config import ALLOWED_IMAGE_TYPES
from errors import InvalidArgument, Internal

upload_bp = Blueprint('upload', __name__)
logger = logging.getLogger(__name__)

# ============================================
# 圖片上傳
# ============================================

def save_image(file_storage):
    """
    驗證並儲存上傳的圖片,回傳儲存後的檔名

    只接受 jpeg/png/gif/webp,大小不能超過 MAX_IMAGE_SIZE
    """
    if file_storage is None or not file_storage.filename:
        raise InvalidArgument('No image file provided')

    extension = ALLOWED_IMAGE_TYPES.get(file_storage.mimetype)
    if extension is None:
        raise InvalidArgument('Only jpg, png, gif, and webp images are allowed')

    data = file_storage.read()
    max_size = current_app.config['MAX_IMAGE_SIZE']
    if len(data) > max_size:
        raise InvalidArgument(f'Image must be at most {max_size // (1024 * 1024)}MB')

    filename = f'{uuid.uuid4().hex}.{extension}'
    folder = current_app.config['UPLOAD_FOLDER']

    try:
        os.makedirs(folder, exist_ok=True)
        with open(os.path.join(folder, filename), 'wb') as f:
            f.write(data)
    except OSError as e:
        logger.error(f"Image upload error: {str(e)}", exc_info=True)
        raise Internal('Upload failed') from e

    return filename

@upload_bp.errorhandler(413)
def request_too_large(error):
    """超過 MAX_CONTENT_LENGTH 跟單張圖片過大一樣回 400"""
    max_size = current_app.config['MAX_IMAGE_SIZE']
    error = InvalidArgument(f'Image must be at most {max_size // (1024 * 1024)}MB')
    return jsonify(error.to_dict()), error.status_code

@upload_bp.route('/upload', methods=['POST'])
@jwt_required()
def upload_image():
    actor = get_current_actor()
    filename = save_image(request.files.get('image'))

    logger.info(f"Image uploaded: {filename} by user {actor.email}")

    return jsonify({
        'url': url_for('upload.uploaded_file', filename=filename, _external=True)
    }), 200

@upload_bp.route('/uploads/<path:filename>', methods=['GET'])
def uploaded_file(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)
