# sweetspot/uploads.py
import os
import uuid
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from fastapi import UploadFile

from .errors import ValidationFailed

load_dotenv()

UPLOAD_DIR = Path(os.getenv("UPLOAD_DIR", "uploads"))
MAX_IMAGE_BYTES = 5 * 1024 * 1024
ALLOWED_EXTENSIONS = {".jpeg", ".jpg", ".png", ".gif", ".webp"}

async def save_product_image(image: Optional[UploadFile]) -> Optional[str]:
    """Store an uploaded product image and return its public /uploads/ url."""
    if image is None or not image.filename:
        return None
    ext = Path(image.filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS or not (image.content_type or "").startswith("image/"):
        raise ValidationFailed("Only image files are allowed")
    data = await image.read(MAX_IMAGE_BYTES + 1)
    if len(data) > MAX_IMAGE_BYTES:
        raise ValidationFailed("Image must be 5MB or smaller")

    UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
    name = uuid.uuid4().hex + ext
    (UPLOAD_DIR / name).write_bytes(data)
    return f"/uploads/{name}"
