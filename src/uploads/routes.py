import logging
import os
import uuid
from pathlib import Path

from flask import Blueprint, g, jsonify, request, send_from_directory
from PIL import Image, ImageSequence, UnidentifiedImageError
from werkzeug.utils import secure_filename

from src.auth.tokens import rate_limit, require_session
from src.config import get_config
from src.errors import NotFoundError, PermissionDeniedError, ValidationError

from . import database as db

uploads_bp = Blueprint("uploads", __name__, url_prefix="/api/uploads")

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}
IMAGE_FORMATS = ("JPEG", "PNG", "GIF", "WEBP")

logger = logging.getLogger(__name__)


def upload_dir() -> Path:
    return Path(get_config().get("uploads.directory"))


def thumbnail_dir() -> Path:
    return upload_dir() / "thumbnails"


def allowed_file(filename):
    """Check if the file extension is allowed."""
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def thumbnail_name(filename: str) -> str:
    return filename.rsplit(".", 1)[0] + "_thumb.jpg"


def create_thumbnail(image_path: Path) -> Path:
    """Create a JPEG thumbnail for the uploaded image."""
    config = get_config()
    size = config.get("uploads.thumbnail_size")
    thumbnail_path = thumbnail_dir() / thumbnail_name(image_path.name)

    with Image.open(image_path) as img:
        if img.mode in ["RGBA", "P", "LA"]:
            img = img.convert("RGB")
        img.thumbnail((size, size), Image.Resampling.LANCZOS)
        img.save(
            thumbnail_path,
            "JPEG",
            quality=config.get("uploads.jpeg_quality"),
            optimize=True,
        )

    return thumbnail_path


def optimize_image(image_path: Path):
    """Scale large photos, every frame of an animation, down to the configured longest edge."""
    config = get_config()
    max_edge = config.get("uploads.max_edge")
    quality = config.get("uploads.jpeg_quality")

    with Image.open(image_path) as img:
        if img.format not in IMAGE_FORMATS:
            raise UnidentifiedImageError(f"Unsupported image format: {img.format}")
        image_format = img.format

        if getattr(img, "n_frames", 1) > 1:
            if max(img.size) <= max_edge:
                return
            frames = []
            for frame in ImageSequence.Iterator(img):
                frame = frame.copy()
                frame.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
                frames.append(frame)
            frames[0].save(
                image_path,
                image_format,
                save_all=True,
                append_images=frames[1:],
                loop=img.info.get("loop", 0),
                duration=img.info.get("duration", 100),
            )
            return

        if max(img.size) > max_edge:
            img.thumbnail((max_edge, max_edge), Image.Resampling.LANCZOS)
        img.save(image_path, image_format, quality=quality, optimize=True)


def remove_quietly(path: Path):
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.error(f"Failed to remove {path}: {e}")


@uploads_bp.route("/photos", methods=["POST"])
@require_session
@rate_limit("upload")
def upload_photos():
    """
    Store photos sent as multipart "photos" fields.

    Each accepted file gets a unique name and a thumbnail; files that are
    rejected are reported in "errors" without failing the whole upload.
    """
    logger.info(f"Upload request received from {request.remote_addr}")

    if "photos" not in request.files:
        raise ValidationError("No photos provided")

    files = request.files.getlist("photos")
    if not files or all(f.filename == "" for f in files):
        raise ValidationError("No photos selected")

    max_size = get_config().get("uploads.max_file_size")
    photos_dir = upload_dir()
    photos_dir.mkdir(parents=True, exist_ok=True)
    thumbnail_dir().mkdir(parents=True, exist_ok=True)

    uploaded_files = []
    errors = []

    for file in files:
        if file.filename == "":
            continue

        if not allowed_file(file.filename):
            errors.append(
                f"Invalid file type: {file.filename}. "
                f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
            )
            continue

        file.seek(0, os.SEEK_END)
        file_size = file.tell()
        file.seek(0)

        if file_size > max_size:
            errors.append(
                f"File too large: {file.filename}. Max size: {max_size // (1024 * 1024)}MB"
            )
            continue

        filename = secure_filename(file.filename)
        name, ext = os.path.splitext(filename)
        unique_filename = f"{name or 'photo'}_{uuid.uuid4().hex[:8]}{ext.lower()}"
        filepath = photos_dir / unique_filename

        try:
            file.save(filepath)
            optimize_image(filepath)
            create_thumbnail(filepath)
            db.record_upload(unique_filename, g.user.id)
        except (UnidentifiedImageError, OSError) as e:
            logger.error(f"Failed to process {filename}: {e}")
            errors.append(f"Unable to process {file.filename}")
            remove_quietly(filepath)
            remove_quietly(thumbnail_dir() / thumbnail_name(unique_filename))
            continue

        uploaded_files.append(
            {
                "filename": unique_filename,
                "original_name": file.filename,
                "size": filepath.stat().st_size,
                "url": f"/api/uploads/{unique_filename}",
                "thumbnail_url": f"/api/uploads/thumbnails/{thumbnail_name(unique_filename)}",
            }
        )
        logger.info(f"Saved uploaded file: {unique_filename}")

    return jsonify(
        {
            "success": bool(uploaded_files),
            "uploaded": uploaded_files,
            "errors": errors,
            "count": len(uploaded_files),
        }
    )


@uploads_bp.route("/<filename>", methods=["GET"])
@require_session
def get_photo(filename):
    filename = secure_filename(filename)
    if not (upload_dir() / filename).is_file():
        raise NotFoundError("Photo not found")
    return send_from_directory(upload_dir().resolve(), filename)


@uploads_bp.route("/thumbnails/<filename>", methods=["GET"])
@require_session
def get_thumbnail(filename):
    filename = secure_filename(filename)
    if not (thumbnail_dir() / filename).is_file():
        raise NotFoundError("Thumbnail not found")
    return send_from_directory(thumbnail_dir().resolve(), filename)


@uploads_bp.route("/<filename>", methods=["DELETE"])
@require_session
def delete_photo(filename):
    """Delete a photo together with its thumbnail. Only the uploader may."""
    filename = secure_filename(filename)
    filepath = upload_dir() / filename

    if not filepath.is_file():
        raise NotFoundError("Photo not found")
    if db.get_uploader(filename) != g.user.id:
        logger.warning(f"User {g.user.id} tried to delete {filename} uploaded by someone else")
        raise PermissionDeniedError("You can only delete photos you uploaded")

    filepath.unlink()
    remove_quietly(thumbnail_dir() / thumbnail_name(filename))
    db.forget_upload(filename)

    logger.info(f"Deleted photo: {filename}")
    return jsonify({"success": True, "message": f"Photo {filename} deleted"})
