import json
import os
import uuid

from env import UPLOADED_IMAGES_DIR
from logger_manager import log_info, log_warning

IMAGE_EXTENSIONS = {"image/jpeg": "jpg", "image/png": "png"}


def save_uploaded_image(data: bytes, mime_type: str, directory: str = UPLOADED_IMAGES_DIR) -> str:
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, f"{uuid.uuid4().hex}.{IMAGE_EXTENSIONS.get(mime_type, 'bin')}")
    with open(path, "wb") as file:
        file.write(data)
    log_info(f"Saved uploaded image {path}")
    return path


def delete_file(path: str):
    if path and os.path.exists(path):
        try:
            os.remove(path)
            log_info(f"Deleted {path}")
        except OSError as e:
            log_warning(f"Could not delete {path}: {e}")


def load_json_file(path: str):
    """Read a JSON document; FileNotFoundError and ValueError propagate to the caller."""
    with open(path, "r", encoding="utf-8") as file:
        return json.load(file)
