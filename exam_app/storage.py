import os
from flask import current_app

class StorageError(Exception):
    pass

def _root():
    return os.path.abspath(current_app.config['FILE_STORAGE_DIR'])

def resolve_path(rel_path):
    """Absolute path for a storage-relative path; refuses paths escaping the root."""
    root = _root()
    absolute_path = os.path.abspath(os.path.join(root, rel_path.lstrip('/')))
    if absolute_path != root and not absolute_path.startswith(root + os.sep):
        raise StorageError(f"Path escapes storage root: {rel_path}")
    return absolute_path

def write_file(rel_path, data):
    """Writes bytes to blob storage, creating parent directories."""
    absolute_path = resolve_path(rel_path)
    os.makedirs(os.path.dirname(absolute_path), exist_ok=True)
    with open(absolute_path, 'wb') as f:
        f.write(data)
    return absolute_path

def stat_file(rel_path):
    """Returns the absolute path if the file exists, else None."""
    absolute_path = resolve_path(rel_path)
    if os.path.isfile(absolute_path):
        return absolute_path
    return None

def listening_audio_path(exam_period_id):
    return f"listening/ep_{int(exam_period_id)}/listening.mp3"
