"""
Photo API endpoints.

- GET    /            Guest upload page
- POST   /upload      Upload a photo (multipart field "photo")
- GET    /photos      List photos: [{url, file, lastModified}, ...]
- DELETE /delete_all  Delete every photo
- GET    /uploads/<f> Serve a locally stored photo
"""

from flask import Blueprint, current_app, jsonify, render_template_string, request, send_from_directory

from photoframe.common.errors import StorageError
from photoframe.common.logger import setup_logger
from photoframe.server.storage import LocalStorage, generate_photo_name

logger = setup_logger(__name__)

photos_bp = Blueprint('photos', __name__)

# Accepted upload types
ALLOWED_MIMETYPES = ('image/jpeg', 'image/png', 'image/webp', 'image/gif')


def _storage():
    return current_app.config['PHOTO_STORAGE']


def _base_url() -> str:
    """Public origin of this server, honouring reverse-proxy headers."""
    proto = request.headers.get('X-Forwarded-Proto', request.scheme)
    return f"{proto}://{request.host}"


@photos_bp.route('/', methods=['GET'])
def upload_page():
    """Guest upload page."""
    return render_template_string(UPLOAD_PAGE_TEMPLATE)


@photos_bp.route('/upload', methods=['POST'])
def upload_photo():
    """
    Store an uploaded photo.

    Returns:
        200: {"ok": true, "url": "..."}
        400: {"ok": false, "error": "..."} for a missing or non-image file
        500: {"ok": false, "error": "..."} if storage fails
    """
    upload = request.files.get('photo')
    if upload is None or not upload.filename:
        return jsonify({'ok': False, 'error': 'No file uploaded'}), 400

    if upload.mimetype not in ALLOWED_MIMETYPES:
        return jsonify({'ok': False, 'error': 'Only images can be uploaded'}), 400

    name = generate_photo_name(upload.filename)
    stored = _storage().save(name, upload.read(), upload.mimetype)

    url = stored.public_url or f"/uploads/{stored.name}"
    return jsonify({'ok': True, 'url': url})


@photos_bp.route('/photos', methods=['GET'])
def list_photos():
    """
    List stored photos with absolute urls.

    Returns:
        200: [{"url": "...", "file": "...", "lastModified": "..."}, ...]
    """
    base_url = _base_url()
    return jsonify([
        {
            'url': photo.public_url or f"{base_url}/uploads/{photo.name}",
            'file': photo.name,
            'lastModified': photo.last_modified.isoformat(),
        }
        for photo in _storage().list()
    ])


@photos_bp.route('/delete_all', methods=['DELETE'])
def delete_all_photos():
    """
    Delete every stored photo.

    Returns:
        200: {"ok": true, "message": "..."}
    """
    removed = _storage().delete_all()
    return jsonify({'ok': True, 'message': f"{removed} photos deleted"})


@photos_bp.route('/uploads/<path:filename>', methods=['GET'])
def serve_upload(filename):
    """Serve a locally stored photo."""
    storage = _storage()
    if not isinstance(storage, LocalStorage):
        return jsonify({'ok': False, 'error': 'Endpoint not found'}), 404
    return send_from_directory(storage.directory.resolve(), filename)


@photos_bp.app_errorhandler(StorageError)
def handle_storage_error(error):
    logger.error("Storage error: %s", error)
    return jsonify({'ok': False, 'error': str(error)}), 500


UPLOAD_PAGE_TEMPLATE = '''
<!DOCTYPE html>
<html>
<head>
    <title>Share a photo</title>
    <meta name="viewport" content="width=device-width, initial-scale=1">
</head>
<body>
    <h1>Share a photo</h1>
    <form id="upload-form" action="/upload" method="post" enctype="multipart/form-data">
        <input type="file" name="photo" accept="image/*" required>
        <button type="submit">Upload</button>
    </form>
    <p id="result"></p>
    <script>
        document.getElementById('upload-form').addEventListener('submit', async (e) => {
            e.preventDefault();
            const response = await fetch('/upload', { method: 'POST', body: new FormData(e.target) });
            const data = await response.json();
            document.getElementById('result').textContent = data.ok ? 'Uploaded!' : data.error;
        });
    </script>
</body>
</html>
'''
