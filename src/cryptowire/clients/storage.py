"""GCS storage client for article images."""

import hashlib
from datetime import datetime

from google.cloud import storage

from cryptowire.utils.logging import get_logger

logger = get_logger(__name__)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/avif": "avif",
    "image/svg+xml": "svg",
}


def extension_for(mime_type: str) -> str:
    """File extension for an image MIME type, jpg when unknown."""
    return EXTENSIONS.get(mime_type.split(";", 1)[0].strip().lower(), "jpg")


class ImageStorage:
    """Client for uploading images to a public GCS bucket."""

    def __init__(self, bucket_name: str) -> None:
        """Initialize the storage client.

        Args:
            bucket_name: Name of the GCS bucket to use.
        """
        self._client = storage.Client()
        self._bucket = self._client.bucket(bucket_name)
        self._bucket_name = bucket_name

    def upload_image(self, image_data: bytes, mime_type: str, slug: str) -> str:
        """Upload an image to GCS and return its public URL.

        Identical bytes for the same article map to the same blob, so a
        re-upload overwrites instead of duplicating.

        Args:
            image_data: The image bytes.
            mime_type: The image MIME type (e.g., 'image/png').
            slug: Slug of the article the image belongs to.

        Returns:
            The public URL of the uploaded image.
        """
        content_hash = hashlib.sha256(image_data).hexdigest()[:12]
        ext = extension_for(mime_type)
        blob_name = f"parsed-images/{datetime.now():%Y/%m}/{slug}-{content_hash}.{ext}"

        blob = self._bucket.blob(blob_name)
        blob.upload_from_string(image_data, content_type=mime_type)

        logger.info(
            "Uploaded image to GCS",
            bucket=self._bucket_name,
            blob=blob_name,
            size=len(image_data),
        )

        return str(blob.public_url)
