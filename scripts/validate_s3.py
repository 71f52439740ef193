"""Validate S3-compatible storage credentials against a real bucket.

Runs connectivity, upload, download, exists, signed GET, signed PUT and
cleanup checks using the STORAGE_S3_* settings (environment or .env).

Usage:
    uv run python -m scripts.validate_s3 [--debug]

Exit codes:
    0 - all checks passed
    1 - one or more checks failed
    2 - configuration missing or invalid (skip in CI)
"""

import asyncio
import sys
import time
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path

import httpx
from dotenv import load_dotenv

from blobstore.core.config import S3StorageSettings
from blobstore.infrastructure.exceptions import ConfigurationError, StorageException
from blobstore.infrastructure.storage import (
    SignedUrlOptions,
    StorageFactory,
    UploadParams,
)
from blobstore.infrastructure.storage.s3_storage import S3StorageService
from blobstore.shared.logging import get_logger, setup_logging

logger = get_logger("scripts.validate_s3")

CHECK_TIMEOUT_SECONDS = 30


@dataclass
class CheckResult:
    name: str
    passed: bool
    message: str
    duration: float


def _project_root() -> Path:
    return Path(__file__).resolve().parent.parent


def _load_env() -> None:
    """Load .env from project root so STORAGE_S3_* is seen when run from any directory."""
    load_dotenv(_project_root() / ".env", override=True)


class CheckFailed(Exception):
    """A validation check did not observe the expected behaviour."""


async def _run_check(
    name: str, check: Callable[[], Awaitable[str]]
) -> CheckResult:
    start = time.monotonic()
    try:
        message = await asyncio.wait_for(check(), timeout=CHECK_TIMEOUT_SECONDS)
        passed = True
    except TimeoutError:
        message, passed = f"timed out after {CHECK_TIMEOUT_SECONDS}s", False
    except StorageException as e:
        message, passed = f"{e.error_code}: {e.message}", False
    except (CheckFailed, httpx.HTTPError) as e:
        message, passed = str(e), False
    if not passed:
        logger.debug("Check %s failed: %s", name, message)
    return CheckResult(name, passed, message, time.monotonic() - start)


async def validate(storage: S3StorageService) -> list[CheckResult]:
    """Run every check in order; cleanup always runs."""
    prefix = f"blobstore-validate/{uuid.uuid4().hex[:12]}"
    key = f"{prefix}/hello.txt"
    put_key = f"{prefix}/signed-put.txt"
    body = b"Hello, world!"

    async def connectivity() -> str:
        await storage.exists(f"{prefix}/missing")
        return f"bucket {storage.bucket} reachable"

    async def upload() -> str:
        result = await storage.upload(
            UploadParams(key=key, body=body, content_type="text/plain")
        )
        return f"uploaded {result.key} (etag {result.etag})"

    async def download() -> str:
        async with await storage.download(key) as stream:
            data = await stream.read()
        if data != body:
            raise CheckFailed(f"downloaded {len(data)} bytes, content differs")
        return "content matches"

    async def exists() -> str:
        if not await storage.exists(key):
            raise CheckFailed("uploaded object reported missing")
        return "object exists"

    async def signed_get() -> str:
        signed = await storage.get_signed_url(key)
        async with httpx.AsyncClient() as client:
            resp = await client.get(signed.url)
        if resp.status_code != 200 or resp.content != body:
            raise CheckFailed(f"GET via signed URL returned {resp.status_code}")
        return f"signed GET ok, expires {signed.expires_at}"

    async def signed_put() -> str:
        signed = await storage.get_signed_url(
            put_key, SignedUrlOptions(method="PUT", content_type="text/plain")
        )
        async with httpx.AsyncClient() as client:
            resp = await client.put(
                signed.url, content=b"abc", headers={"Content-Type": "text/plain"}
            )
        if resp.status_code not in (200, 204):
            raise CheckFailed(f"PUT via signed URL returned {resp.status_code}")
        async with await storage.download(put_key) as stream:
            if await stream.read() != b"abc":
                raise CheckFailed("object written via signed PUT differs")
        return "signed PUT ok"

    async def cleanup() -> str:
        await storage.delete(key)
        await storage.delete(put_key)
        if await storage.exists(key):
            raise CheckFailed("object still present after delete")
        return "test objects removed"

    results = []
    for name, check in [
        ("connectivity", connectivity),
        ("upload", upload),
        ("download", download),
        ("exists", exists),
        ("signed GET", signed_get),
        ("signed PUT", signed_put),
    ]:
        results.append(await _run_check(name, check))
    results.append(await _run_check("cleanup", cleanup))
    return results


async def main() -> int:
    setup_logging(debug="--debug" in sys.argv)
    _load_env()
    factory = StorageFactory()
    factory.register_builtins()
    try:
        factory.config.backend_config(S3StorageSettings)
        storage = factory.get_backend("s3")
    except ConfigurationError as e:
        print(f"S3 configuration missing or invalid: {e.message}", file=sys.stderr)
        return 2

    assert isinstance(storage, S3StorageService)
    results = await validate(storage)
    for r in results:
        status = "PASS" if r.passed else "FAIL"
        print(f"[{status}] {r.name:<13} {r.duration * 1000:7.0f}ms  {r.message}")
    failed = [r for r in results if not r.passed]
    print(f"\n{len(results) - len(failed)}/{len(results)} checks passed")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
