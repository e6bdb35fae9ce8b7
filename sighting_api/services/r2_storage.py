"""
Post photo storage on Cloudflare R2 (S3 API).

Objects live under posts/{post_id}/ with random names; the database keeps the
key in post_images.image_path. Credentials come from the R2_* settings.
"""

import logging
import uuid
from typing import BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from sighting_api.config import get_settings

logger = logging.getLogger(__name__)

POST_IMAGE_PREFIX = "posts"


def get_r2_client():
    """boto3 S3 client pointed at the account's R2 endpoint."""
    settings = get_settings()
    missing = [
        name for name, value in (
            ("R2_ACCOUNT_ID", settings.r2_account_id),
            ("R2_ACCESS_KEY_ID", settings.r2_access_key_id),
            ("R2_SECRET_ACCESS_KEY", settings.r2_secret_access_key),
        )
        if not value
    ]
    if missing:
        raise ValueError(f"Image storage is not configured, missing {', '.join(missing)}")

    return boto3.client(
        "s3",
        endpoint_url=f"https://{settings.r2_account_id}.r2.cloudflarestorage.com",
        aws_access_key_id=settings.r2_access_key_id,
        aws_secret_access_key=settings.r2_secret_access_key,
        config=Config(signature_version="s3v4"),
    )


def post_image_key(post_id: int, extension: str) -> str:
    return f"{POST_IMAGE_PREFIX}/{post_id}/{uuid.uuid4().hex}{extension}"


def upload_post_image(stream: BinaryIO, post_id: int, extension: str, content_type: str) -> str:
    """
    Store one photo of a post.

    Raises ValueError when storage is not configured and botocore/boto3
    errors when the upload fails.

    Returns:
        The object key to save on the PostImage row
    """
    key = post_image_key(post_id, extension)
    get_r2_client().upload_fileobj(
        stream,
        get_settings().r2_bucket_name,
        key,
        ExtraArgs={"ContentType": content_type},
    )
    logger.info(f"Stored {key}")
    return key


def delete_image_file(key: str) -> bool:
    """Remove a stored photo. Failures are logged and reported as False."""
    try:
        get_r2_client().delete_object(Bucket=get_settings().r2_bucket_name, Key=key)
    except (ClientError, ValueError) as e:
        logger.error(f"Could not delete {key} from R2: {e}")
        return False
    return True


def generate_image_presigned_url(key: str, expires_in: int) -> str:
    """Time-limited GET URL for a stored photo."""
    return get_r2_client().generate_presigned_url(
        "get_object",
        Params={"Bucket": get_settings().r2_bucket_name, "Key": key},
        ExpiresIn=expires_in,
    )
