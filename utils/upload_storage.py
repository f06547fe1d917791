import os
import re
import secrets
import string
import time
from fastapi import HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from utils.logger_factory import new_logger

UPLOADS_DIR = os.getenv("UPLOADS_DIR", "uploads")
MAX_FILE_SIZE = 5 * 1024 * 1024  # 5MB in bytes


def generate_upload_name(original_filename: str | None) -> str:
    """
    Build a collision-resistant filename that keeps the original extension.

    Example:
        generate_upload_name("me.JPG") -> "1718000000000-k3m9x7.jpg"
    """
    ext = os.path.splitext(original_filename or "")[1].lower()
    ext = re.sub(r'[^a-z0-9.]', '', ext)[:10]
    suffix = ''.join(secrets.choice(string.ascii_lowercase + string.digits) for _ in range(6))
    return f"{int(time.time() * 1000)}-{suffix}{ext}"


def _write_file(path: str, content: bytes) -> None:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "wb") as fh:
        fh.write(content)


async def save_upload(upload: UploadFile) -> str:
    """
    Store an uploaded file under UPLOADS_DIR and return the stored filename.
    The file is then served at /uploads/<filename>.
    """
    log = new_logger("save_upload")
    content = await upload.read()
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(
            status_code=413,
            detail=f"File size ({len(content)} bytes) exceeds maximum allowed size ({MAX_FILE_SIZE} bytes)."
        )
    filename = generate_upload_name(upload.filename)
    try:
        await run_in_threadpool(_write_file, os.path.join(UPLOADS_DIR, filename), content)
    except OSError:
        log.exception(f"Failed to store upload {upload.filename}")
        raise HTTPException(status_code=500, detail="Failed to store uploaded file.")
    log.info(f"Stored upload {upload.filename} as {filename} ({len(content)} bytes)")
    return filename


def delete_upload(filename: str | None) -> bool:
    """Best-effort removal of a stored upload. Returns True if a file was deleted."""
    if not filename:
        return False
    # Only bare filenames are ever stored; refuse anything that could escape the folder
    if os.path.basename(filename) != filename:
        return False
    try:
        os.remove(os.path.join(UPLOADS_DIR, filename))
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        new_logger("delete_upload").warning(f"Failed to delete upload {filename}: {e}")
        return False
