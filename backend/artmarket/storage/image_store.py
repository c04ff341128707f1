import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from artmarket.core.config import settings
from artmarket.core.errors import InvalidInputError, ExternalServiceError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}


@dataclass(frozen=True)
class StoredImage:
    url: str
    id: str


class LocalImageStore:
    """
    Image store backed by a local directory.

    Images are stored under a generated id; the public URL is that id joined
    onto IMAGE_BASE_URL. Callers never touch the bytes after store().
    """

    def __init__(self, upload_dir: str, base_url: str, max_size: int):
        self.upload_dir = Path(upload_dir)
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        self.base_url = base_url.rstrip("/")
        self.max_size = max_size

    def store(self, file_bytes: bytes, filename: str) -> StoredImage:
        """Save image bytes and return their (url, id)"""
        file_ext = Path(filename or "").suffix.lower()
        if file_ext not in ALLOWED_EXTENSIONS:
            raise InvalidInputError(
                f"Image type not supported. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}")
        if not file_bytes:
            raise InvalidInputError("Image file is empty")
        if len(file_bytes) > self.max_size:
            raise InvalidInputError("Image file is too large")

        image_id = f"{uuid.uuid4().hex}{file_ext}"
        try:
            self.get_path(image_id).write_bytes(file_bytes)
        except OSError as e:
            logger.error(f"Could not store image {image_id}: {str(e)}")
            raise ExternalServiceError("Could not store image")

        return StoredImage(url=f"{self.base_url}/{image_id}", id=image_id)

    def get_path(self, image_id: str) -> Path:
        # Ids are generated by store(); reject anything that could escape the directory
        if Path(image_id).name != image_id:
            raise InvalidInputError("Invalid image id")
        return self.upload_dir / image_id

    def delete(self, image_id: str) -> bool:
        """Delete an image; returns False if it did not exist"""
        file_path = self.get_path(image_id)
        if file_path.exists():
            file_path.unlink()
            return True
        return False


image_store = LocalImageStore(
    settings.IMAGE_DIR, settings.IMAGE_BASE_URL, settings.MAX_IMAGE_SIZE)
