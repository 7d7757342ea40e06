# Purpose: Publish exported launcher icon sets to S3 and generate pre-signed view URLs.
# Scope: optional export target next to the zip download.
# Dependencies: boto3 (AWS S3).
# Notes: Requires AWS_REGION, S3_BUCKET; S3_PREFIX is optional.
from __future__ import annotations

import logging
import os
import uuid
from dataclasses import dataclass, field

import boto3

from .pipeline import ExportFailure, ExportResult

logger = logging.getLogger(__name__)

ICON_CACHE_CONTROL = "public, max-age=31536000"


@dataclass(frozen=True)
class S3Config:
    region: str
    bucket: str
    prefix: str


def get_s3_config() -> S3Config:
    region = os.environ.get("AWS_REGION", "").strip()
    bucket = os.environ.get("S3_BUCKET", "").strip()
    prefix = os.environ.get("S3_PREFIX", "").strip()

    if not region:
        raise RuntimeError("AWS_REGION is not set")
    if not bucket:
        raise RuntimeError("S3_BUCKET is not set")
    if prefix and not prefix.endswith("/"):
        prefix = prefix + "/"

    return S3Config(region=region, bucket=bucket, prefix=prefix)


def s3_client(*, region: str):
    return boto3.client("s3", region_name=region)


def put_bytes(*, client, bucket: str, key: str, body: bytes, content_type: str, cache_control: str = "") -> None:
    kwargs = {"Bucket": bucket, "Key": key, "Body": body, "ContentType": content_type or "application/octet-stream"}
    if cache_control:
        kwargs["CacheControl"] = cache_control
    client.put_object(**kwargs)


def presign_get(*, client, bucket: str, key: str, expires_in: int = 3600) -> str:
    return client.generate_presigned_url(
        ClientMethod="get_object",
        Params={"Bucket": bucket, "Key": key},
        ExpiresIn=expires_in,
    )


@dataclass
class PublishedIconSet:
    export_id: str
    bucket: str
    keys: dict[str, str] = field(default_factory=dict)
    urls: dict[str, str] = field(default_factory=dict)
    failures: list[ExportFailure] = field(default_factory=list)


def publish_export(result: ExportResult, *, cfg: S3Config | None = None, expires_in: int = 3600) -> PublishedIconSet:
    """Upload each exported file under <prefix>icons/<export_id>/; one failed upload does not stop the rest."""
    cfg = cfg or get_s3_config()
    client = s3_client(region=cfg.region)
    export_id = uuid.uuid4().hex[:12]
    published = PublishedIconSet(export_id=export_id, bucket=cfg.bucket, failures=list(result.failures))

    for f in result.files:
        key = f"{cfg.prefix}icons/{export_id}/{f.path}"
        try:
            put_bytes(
                client=client,
                bucket=cfg.bucket,
                key=key,
                body=f.body,
                content_type=f.content_type,
                cache_control=ICON_CACHE_CONTROL,
            )
            url = presign_get(client=client, bucket=cfg.bucket, key=key, expires_in=expires_in)
        except Exception as e:  # noqa: BLE001
            logger.warning("icon upload failed for %s: %s", key, e)
            published.failures.append(ExportFailure(path=f.path, error=str(e) or type(e).__name__))
            continue
        published.keys[f.path] = key
        published.urls[f.path] = url
    return published
