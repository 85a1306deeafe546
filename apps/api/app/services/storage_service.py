"""Blob storage for client uploads (S3-compatible or local filesystem).

The portal never streams file bytes through the API: clients PUT directly to
a presigned URL and staff view through a short-lived presigned GET.
"""

from __future__ import annotations

import logging
import os
import re
from urllib.parse import urlparse

import boto3
from botocore.client import BaseClient
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.core.config import settings
from app.core.errors import TransientInfraError

logger = logging.getLogger(__name__)

DELETE_BATCH_MAX = 1000
_UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]+")


# =============================================================================
# Clients
# =============================================================================

def _is_gcs_compat_endpoint(endpoint_url: str | None) -> bool:
    if not endpoint_url:
        return False
    hostname = (urlparse(endpoint_url).hostname or "").lower()
    return hostname == "storage.googleapis.com" or hostname.endswith(".storage.googleapis.com")


def get_s3_client() -> BaseClient:
    """S3 client for the uploads bucket (supports S3-compatible endpoints)."""
    endpoint_url = settings.S3_ENDPOINT_URL.rstrip("/") or None
    region = settings.S3_REGION or None
    if _is_gcs_compat_endpoint(endpoint_url) and region in (None, "us-east-1"):
        # GCS XML API expects region "auto" for SigV4 signing.
        region = "auto"
    style = (settings.S3_URL_STYLE or "").strip().lower()
    return boto3.client(
        "s3",
        region_name=region,
        aws_access_key_id=settings.AWS_ACCESS_KEY_ID or None,
        aws_secret_access_key=settings.AWS_SECRET_ACCESS_KEY or None,
        endpoint_url=endpoint_url,
        config=Config(s3={"addressing_style": style}) if style in {"path", "virtual"} else None,
    )


def _backend() -> str:
    return (settings.STORAGE_BACKEND or "local").strip().lower()


def _local_path(storage_key: str) -> str:
    root = os.path.abspath(settings.LOCAL_STORAGE_PATH)
    path = os.path.abspath(os.path.join(root, storage_key))
    if not path.startswith(root + os.sep):
        raise TransientInfraError("Invalid storage key")
    return path


# =============================================================================
# Keys
# =============================================================================

def safe_filename(filename: str) -> str:
    """Filesystem/URL-safe version of a client-supplied filename."""
    base = os.path.basename((filename or "").replace("\\", "/")).strip()
    cleaned = _UNSAFE_FILENAME_CHARS.sub("_", base).strip("._")
    return cleaned[:180] or "file"


def build_upload_key(client_id: object, upload_id: object, filename: str) -> str:
    return f"clients/{client_id}/{upload_id}/{safe_filename(filename)}"


# =============================================================================
# Operations
# =============================================================================

def create_upload_url(storage_key: str, content_type: str | None, expires_in: int) -> str:
    """Presigned PUT URL the client uses to upload bytes directly."""
    if _backend() != "s3":
        return f"/local-storage/{storage_key}"
    params: dict[str, str] = {"Bucket": settings.S3_BUCKET, "Key": storage_key}
    if content_type:
        params["ContentType"] = content_type
    try:
        return get_s3_client().generate_presigned_url(
            "put_object", Params=params, ExpiresIn=expires_in
        )
    except (ClientError, BotoCoreError) as exc:
        logger.error("Presign upload failed for %s: %s", storage_key, exc.__class__.__name__)
        raise TransientInfraError("Could not create upload URL") from exc


def create_download_url(storage_key: str, expires_in: int) -> str:
    """Presigned GET URL for staff viewing."""
    if _backend() != "s3":
        return f"/local-storage/{storage_key}"
    try:
        return get_s3_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": settings.S3_BUCKET, "Key": storage_key},
            ExpiresIn=expires_in,
        )
    except (ClientError, BotoCoreError) as exc:
        logger.error("Presign download failed for %s: %s", storage_key, exc.__class__.__name__)
        raise TransientInfraError("Could not create view URL") from exc


def object_exists(storage_key: str) -> bool:
    """
    Whether the object is present. Raises TransientInfraError when the
    store cannot answer (callers that only verify treat that as best-effort).
    """
    if _backend() != "s3":
        return os.path.exists(_local_path(storage_key))
    try:
        get_s3_client().head_object(Bucket=settings.S3_BUCKET, Key=storage_key)
        return True
    except ClientError as exc:
        code = str(exc.response.get("Error", {}).get("Code", ""))
        if code in {"404", "NoSuchKey", "NotFound"}:
            return False
        raise TransientInfraError("Storage check failed") from exc
    except BotoCoreError as exc:
        raise TransientInfraError("Storage check failed") from exc


def delete_objects(storage_keys: list[str]) -> list[str]:
    """
    Delete objects and return the keys that are gone afterwards.

    Keys the store reports errors for are left out so their rows are retried
    on the next cleanup run. A missing object counts as deleted.
    """
    if not storage_keys:
        return []

    if _backend() != "s3":
        removed = []
        for key in storage_keys:
            path = _local_path(key)
            if os.path.exists(path):
                os.remove(path)
            removed.append(key)
        return removed

    s3 = get_s3_client()
    removed: list[str] = []
    for start in range(0, len(storage_keys), DELETE_BATCH_MAX):
        chunk = storage_keys[start : start + DELETE_BATCH_MAX]
        try:
            response = s3.delete_objects(
                Bucket=settings.S3_BUCKET,
                Delete={"Objects": [{"Key": key} for key in chunk], "Quiet": True},
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Batch delete failed (%d keys): %s", len(chunk), exc.__class__.__name__)
            continue
        failed = {err.get("Key") for err in response.get("Errors", [])}
        removed.extend(key for key in chunk if key not in failed)
    return removed
