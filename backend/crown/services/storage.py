from __future__ import annotations
import io
from functools import lru_cache
from minio import Minio
from minio.error import S3Error
from crown.config import settings

def _parse_endpoint(ep: str) -> tuple[str, bool]:
    # Return (host:port, secure)
    secure = ep.startswith("https://")
    host = ep.replace("http://", "").replace("https://", "")
    return host, secure

@lru_cache(maxsize=1)
def get_client() -> Minio:
    host, secure = _parse_endpoint(settings.s3_endpoint)
    return Minio(host, access_key=settings.s3_access_key, secret_key=settings.s3_secret_key, secure=secure)

def ensure_buckets() -> None:
    client = get_client()
    for bucket in (settings.bucket_thumbnails, settings.bucket_videos, settings.bucket_covers):
        try:
            if not client.bucket_exists(bucket):
                client.make_bucket(bucket)
        except S3Error:
            # another worker may have created it first
            pass

def public_url(bucket: str, key: str) -> str:
    return f"{settings.s3_public_base_url.rstrip('/')}/{bucket}/{key}"

def put_bytes(bucket: str, key: str, data: bytes, content_type: str) -> str:
    """Store ``data`` and return its public URL."""
    get_client().put_object(bucket, key, io.BytesIO(data), length=len(data), content_type=content_type)
    return public_url(bucket, key)

def get_bytes(bucket: str, key: str) -> tuple[bytes, str]:
    """
    Retrieve object from storage.
    Returns (data, content_type).
    """
    try:
        response = get_client().get_object(bucket, key)
        try:
            data = response.read()
            content_type = response.headers.get("Content-Type", "application/octet-stream")
        finally:
            response.close()
            response.release_conn()
        return data, content_type
    except S3Error as e:
        if e.code == "NoSuchKey":
            raise FileNotFoundError(f"Object not found: {bucket}/{key}")
        raise

def remove_object(bucket: str, key: str) -> None:
    try:
        get_client().remove_object(bucket, key)
    except S3Error as e:
        if e.code != "NoSuchKey":
            raise
