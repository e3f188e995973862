"""
purge_bucket.py
══════════════════════════════════════════════════════════════════════════════
Deletes every object in an S3-compatible bucket (AWS S3, Cloudflare R2,
MinIO, ...). Run it when a bucket has to start fresh.

Flow per run
────────────
  list up to 1000 keys → delete them all concurrently → advance StartAfter
  to the last key → repeat until a page comes back empty or IsTruncated
  is false → print the total.

  The first failed list or delete aborts the run with exit status 1.
  Objects deleted before the failure stay deleted; a rerun starts over
  from the beginning of the bucket.

Setup
─────
  pip install aioboto3 python-dotenv

  Environment (or a .env file):
    S3_ACCESS_KEY_ID      access key id
    S3_SECRET_ACCESS_KEY  secret access key
    S3_BUCKET             bucket to empty
    S3_REGION             region (e.g. us-east-1, auto for R2)
    S3_ENDPOINT           endpoint URL override (e.g. R2 / MinIO)
══════════════════════════════════════════════════════════════════════════════
"""

import asyncio
import logging
import os
import sys
from dataclasses import dataclass, field

import aioboto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

PAGE_SIZE = 1000  # S3 ListObjectsV2 maximum

LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(message)s"

log = logging.getLogger(__name__)


# ─────────────────────────────── Config ──────────────────────────────────────

@dataclass(frozen=True)
class Settings:
    access_key_id:     str | None
    secret_access_key: str | None = field(repr=False)
    bucket:            str | None
    region:            str | None
    endpoint:          str | None

    @classmethod
    def from_env(cls, environ=None) -> "Settings":
        """Read the five S3_* variables. Missing ones stay None."""
        env = os.environ if environ is None else environ
        return cls(
            access_key_id=env.get("S3_ACCESS_KEY_ID"),
            secret_access_key=env.get("S3_SECRET_ACCESS_KEY"),
            bucket=env.get("S3_BUCKET"),
            region=env.get("S3_REGION"),
            endpoint=env.get("S3_ENDPOINT"),
        )


def configure_logging():
    out = logging.StreamHandler(sys.stdout)
    out.addFilter(lambda record: record.levelno < logging.WARNING)
    err = logging.StreamHandler(sys.stderr)
    err.setLevel(logging.WARNING)
    logging.basicConfig(
        level=logging.INFO,
        format=LOG_FORMAT,
        datefmt="%H:%M:%S",
        handlers=[out, err],
    )


# ─────────────────────────────── Errors ──────────────────────────────────────

class PurgeError(Exception):
    pass


class ListingFailure(PurgeError):
    pass


class DeletionFailure(PurgeError):
    def __init__(self, key: str, message: str):
        super().__init__(message)
        self.key = key


# ─────────────────────────────── S3 client ───────────────────────────────────

def open_client(settings: Settings):
    """Async context manager yielding an S3 client for ``settings``."""
    return aioboto3.Session().client(
        "s3",
        endpoint_url=settings.endpoint,
        aws_access_key_id=settings.access_key_id,
        aws_secret_access_key=settings.secret_access_key,
        config=Config(signature_version="s3v4"),
        region_name=settings.region,
    )


async def list_page(s3, bucket: str, start_after: str | None) -> tuple[list[str], bool]:
    params = {"Bucket": bucket, "MaxKeys": PAGE_SIZE}
    if start_after is not None:
        params["StartAfter"] = start_after
    try:
        resp = await s3.list_objects_v2(**params)
    except (BotoCoreError, ClientError) as exc:
        raise ListingFailure(f"listing {bucket} failed: {exc}") from exc
    keys = [o["Key"] for o in resp.get("Contents", [])]
    return keys, bool(resp.get("IsTruncated"))


async def delete_key(s3, bucket: str, key: str):
    log.info("Deleting: %s", key)
    try:
        await s3.delete_object(Bucket=bucket, Key=key)
    except (BotoCoreError, ClientError) as exc:
        raise DeletionFailure(key, f"deleting {key} failed: {exc}") from exc


# ─────────────────────────────── Purge ───────────────────────────────────────

async def purge_bucket(s3, bucket: str) -> int:
    """
    Delete every object in ``bucket`` one page at a time and return how
    many were deleted.

    Pages are strictly sequential: the next list call is only made once
    every delete of the current page has finished. A page with no
    objects ends the run even if the store still reports IsTruncated.
    """
    log.info("Starting purge for bucket: %s...", bucket)
    total, start_after, page = 0, None, 1

    while True:
        keys, has_more = await list_page(s3, bucket, start_after)
        if not keys:
            break

        await asyncio.gather(*(delete_key(s3, bucket, key) for key in keys))
        total += len(keys)
        log.info("  page %d → -%d (total %d)", page, len(keys), total)

        if not has_more:
            break
        start_after = keys[-1]
        page += 1

    log.info("Successfully purged %d objects.", total)
    return total


async def run(settings: Settings) -> int:
    async with open_client(settings) as s3:
        return await purge_bucket(s3, settings.bucket)


# ─────────────────────────────── Main ────────────────────────────────────────

def main():
    load_dotenv()
    configure_logging()
    settings = Settings.from_env()

    try:
        asyncio.run(run(settings))
    except (PurgeError, BotoCoreError, ClientError) as exc:
        log.error("Error purging bucket: %s", exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
