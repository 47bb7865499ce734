import base64
import logging

import requests

import config
from errors import UploadFailed

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}


def allowed_image(filename: str) -> bool:
    return "." in (filename or "") and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def upload_image(content: bytes, name: str = "product-image") -> str:
    """Upload raw image bytes to ImgBB and return the hosted display URL."""
    if not config.IMGBB_API_KEY:
        raise UploadFailed("Image upload failed: IMGBB_API_KEY is not configured")
    if not content:
        raise UploadFailed("Image upload failed: empty file")

    payload = {
        "key": config.IMGBB_API_KEY,
        "image": base64.b64encode(content).decode("ascii"),
        "name": name,
    }
    try:
        response = requests.post(config.IMGBB_API_URL, data=payload, timeout=config.IMGBB_TIMEOUT)
    except requests.RequestException as exc:
        logger.error("ImgBB upload error: %s", exc)
        raise UploadFailed("Failed to connect to ImgBB API")

    try:
        body = response.json()
    except ValueError:
        body = {}

    if response.status_code != 200 or not body.get("success"):
        message = (body.get("error") or {}).get("message") or response.reason or "Unknown error"
        logger.error("ImgBB upload failed (%s): %s", response.status_code, message)
        raise UploadFailed(f"ImgBB API error: {message}")

    return body["data"]["display_url"]
