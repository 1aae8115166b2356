from label_review.models.schemas import LabelImage
from label_review.utils.exceptions import InvalidImageError

# Allowed image extensions for label uploads kept in local storage.
# Only common raster formats that Pillow handles well.
ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg"}

REMOTE_PREFIXES = ("http://", "https://", "data:image/")


def validate_file_type(filename: str) -> bool:
    """Check that a file name has an allowed image extension.

    Args:
        filename: File name or path (e.g., "uploads/label_front.jpg").

    Returns:
        True if the extension is in ALLOWED_EXTENSIONS, False otherwise.
    """
    # Extract extension and lowercase it so "Label.JPG" is accepted
    ext = "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return ext in ALLOWED_EXTENSIONS


def is_remote_reference(ref: str) -> bool:
    return ref.startswith(REMOTE_PREFIXES)


def validate_image_reference(image: LabelImage) -> str:
    """Return the reference the analyzer should read the image from.

    Download URLs win over storage paths. Remote URLs are passed through
    (signed storage URLs carry query strings, so no extension check);
    local paths must have an allowed extension.

    Raises:
        InvalidImageError: The image has no usable reference.
    """
    ref = (image.download_url or image.storage_path or "").strip()
    if not ref:
        raise InvalidImageError(f"Image {image.id} is missing a download URL")
    if not is_remote_reference(ref) and not validate_file_type(ref):
        raise InvalidImageError(f"Unsupported file type for image {image.id}: '{ref}'")
    return ref
