"""
DigitalOcean Spaces storage (S3-compatible)
KYC documents and property images are stored as public-read objects
"""

import logging
import os
import secrets
import time
from datetime import datetime

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import HTTPException
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from ..config import (
    DO_SPACES_BUCKET,
    DO_SPACES_CDN_URL,
    DO_SPACES_ENDPOINT,
    DO_SPACES_KEY,
    DO_SPACES_REGION,
    DO_SPACES_SECRET,
)
from ..models import Property, User
from ..security_utils import sanitize_filename

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB
MAX_PROPERTY_IMAGES = 10

DOCUMENT_TYPES = ["emirates_id", "passport", "utility_bill", "salary_certificate", "trade_license"]
ALLOWED_DOCUMENT_TYPES = ["image/jpeg", "image/png", "image/jpg", "application/pdf"]
ALLOWED_IMAGE_TYPES = ["image/jpeg", "image/png", "image/jpg", "image/webp"]


def get_spaces_client():
    """Create and return a Spaces client."""
    return boto3.client(
        "s3",
        region_name=DO_SPACES_REGION,
        endpoint_url=DO_SPACES_ENDPOINT,
        aws_access_key_id=DO_SPACES_KEY,
        aws_secret_access_key=DO_SPACES_SECRET,
        config=Config(signature_version="s3v4"),
    )


def public_url(key: str) -> str:
    """Public URL for an object, through the CDN when one is configured"""
    if DO_SPACES_CDN_URL:
        return f"{DO_SPACES_CDN_URL.rstrip('/')}/{key}"
    return f"https://{DO_SPACES_BUCKET}.{DO_SPACES_REGION}.digitaloceanspaces.com/{key}"


def generate_filename(original_name: str, prefix: str = "") -> str:
    """{prefix}{name}_{timestamp}_{random}{ext}"""
    name, ext = os.path.splitext(sanitize_filename(original_name))
    return f"{prefix}{name}_{int(time.time() * 1000)}_{secrets.token_hex(3)}{ext.lower()}"


def _put_object(content: bytes, key: str, content_type: str) -> None:
    get_spaces_client().put_object(
        Bucket=DO_SPACES_BUCKET,
        Key=key,
        Body=content,
        ContentType=content_type,
        ACL="public-read",
        CacheControl="max-age=31536000",
        Metadata={"uploaded-at": datetime.utcnow().isoformat()},
    )


async def upload_file(content: bytes, key: str, content_type: str) -> str:
    """Upload bytes to Spaces on a worker thread and return the public URL"""
    try:
        await run_in_threadpool(_put_object, content, key, content_type)
    except (ClientError, BotoCoreError) as e:
        logger.error(f"❌ Spaces upload failed for {key}: {e}")
        raise HTTPException(status_code=502, detail="File upload failed") from e

    logger.info(f"✅ Uploaded {key} ({len(content)} bytes)")
    return public_url(key)


async def upload_document(
    db: Session, user: User, document_type: str, content: bytes, filename: str, mime_type: str
) -> str:
    """
    Store a KYC document under documents/{user_id}/ and mark the user's KYC as pending.

    emirates_id and passport uploads also keep the document URL on the user row.
    """
    if document_type not in DOCUMENT_TYPES:
        raise HTTPException(status_code=400, detail="Invalid document type")
    if mime_type not in ALLOWED_DOCUMENT_TYPES:
        raise HTTPException(
            status_code=400, detail="Invalid file type. Only JPEG, PNG, and PDF files are allowed."
        )
    if len(content) > MAX_FILE_SIZE:
        raise HTTPException(status_code=400, detail="File size too large. Maximum size is 10MB.")

    key = f"documents/{user.id}/{generate_filename(filename, f'{document_type}_')}"
    url = await upload_file(content, key, mime_type)

    user.kyc_status = "pending"
    if document_type == "emirates_id":
        user.emirates_id = url
    elif document_type == "passport":
        user.passport_number = url
    db.commit()

    logger.info(f"📄 Document uploaded: user={user.id}, type={document_type}")
    return url


async def upload_property_images(db: Session, prop: Property, files: list[dict]) -> tuple[list[dict], list[dict]]:
    """
    Upload images for a property and append their URLs.

    Args:
        files: dicts with filename, content and content_type

    Returns:
        (uploaded, failed) lists
    """
    if not files:
        raise HTTPException(status_code=400, detail="No images provided")
    if len(files) > MAX_PROPERTY_IMAGES:
        raise HTTPException(status_code=400, detail=f"Maximum {MAX_PROPERTY_IMAGES} images allowed per upload")

    uploaded = []
    failed = []
    for f in files:
        if f["content_type"] not in ALLOWED_IMAGE_TYPES:
            failed.append({"filename": f["filename"], "error": "Invalid file type"})
            continue
        if len(f["content"]) > MAX_FILE_SIZE:
            failed.append({"filename": f["filename"], "error": "File size too large"})
            continue
        key = f"properties/{prop.id}/{generate_filename(f['filename'], 'property_')}"
        try:
            url = await upload_file(f["content"], key, f["content_type"])
        except HTTPException as e:
            failed.append({"filename": f["filename"], "error": e.detail})
            continue
        uploaded.append({"filename": f["filename"], "url": url})

    if uploaded:
        # Reassign so the JSON column is flagged dirty
        prop.images = list(prop.images or []) + [u["url"] for u in uploaded]
        db.commit()

    return uploaded, failed
