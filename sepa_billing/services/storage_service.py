"""
S3-compatible object storage (Cloudflare R2 or MinIO) for raw uploads and
result files. Uses global config; no per-call reconfiguration.
"""
import asyncio
from io import BytesIO
from typing import Optional
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError

from sepa_billing.config import settings
from sepa_billing.core.exceptions import NotFoundError


def _client():
    if not settings.R2_ACCESS_KEY_ID or not settings.R2_SECRET_ACCESS_KEY:
        raise RuntimeError(
            "Storage not configured: set R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY and R2_ACCOUNT_ID or R2_ENDPOINT_URL"
        )
    endpoint = settings.R2_ENDPOINT_URL or f"https://{settings.R2_ACCOUNT_ID}.r2.cloudflarestorage.com"
    return boto3.client(
        service_name="s3",
        endpoint_url=endpoint,
        aws_access_key_id=settings.R2_ACCESS_KEY_ID,
        aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
        region_name="auto",
        config=boto3.session.Config(
            signature_version="s3v4",
            s3={"addressing_style": "path"},
        ),
    )


def object_key(key_prefix: str, filename: str, *, unique: bool = True) -> str:
    """
    Build an object key under ``key_prefix``.
    With unique=True the name is replaced by a UUID, keeping the extension.
    """
    if not unique:
        return f"{key_prefix}/{filename}"
    ext = filename.rsplit(".", 1)[-1] if "." in filename else ""
    return f"{key_prefix}/{uuid4().hex}.{ext}" if ext else f"{key_prefix}/{uuid4().hex}"


async def upload(
    key_prefix: str,
    filename: str,
    content: bytes,
    content_type: Optional[str] = None,
    *,
    unique: bool = True,
) -> str:
    """
    Upload bytes and return the object key.
    key_prefix: e.g. "batches/{user_id}" or "batches/results"
    """
    key = object_key(key_prefix, filename, unique=unique)
    client = _client()
    extra = {"ContentType": content_type} if content_type else {}

    def _put():
        try:
            client.upload_fileobj(
                BytesIO(content),
                settings.R2_BUCKET_NAME,
                key,
                ExtraArgs=extra,
            )
        except ClientError as e:
            raise RuntimeError(f"Storage upload failed: {e}") from e

    await asyncio.to_thread(_put)
    return key


async def download(key: str) -> bytes:
    """Fetch an object's bytes; a missing key is a NotFoundError."""
    client = _client()

    def _get() -> bytes:
        try:
            response = client.get_object(Bucket=settings.R2_BUCKET_NAME, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise NotFoundError(f"Stored file not found: {key}") from e
            raise RuntimeError(f"Storage download failed: {e}") from e
        return response["Body"].read()

    return await asyncio.to_thread(_get)
