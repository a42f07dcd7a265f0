"""Backend for Terraform state stored in S3 compatible object storage."""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from tfout.config import S3FetcherConfig
from tfout.exceptions import BackendUnavailable, InputException
from tfout.manifest import BackendDescriptor, S3Backend
from tfout.metrics import MetricsScope

from .fetcher import BackendFetcher
from .state import Snapshot, parse_state

__all__ = ["S3Fetcher", "normalize_etag"]

_LOGGER = logging.getLogger(__name__)

HEAD_OBJECT = "HeadObject"
GET_OBJECT = "GetObject"

ClientFactory = Callable[[S3Backend], Any]


def normalize_etag(etag: str | None) -> str:
    """Strip the quoting and weak validator prefix from an ETag."""
    if not etag:
        return ""
    value = etag.strip()
    if value.startswith("W/"):
        value = value[2:]
    return value.strip('"')


class S3Fetcher(BackendFetcher):
    """Reads Terraform state files from S3.

    Credentials come from the default boto3 chain. When the backend names a
    role it is assumed through STS first. The blocking boto3 calls run in a
    worker thread.
    """

    def __init__(
        self,
        config: S3FetcherConfig | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        """Initialize the S3Fetcher.

        Args:
            config: Timeouts and retry settings for requests.
            client_factory: Builds the S3 client for a backend, used in tests.
        """
        self._config = config or S3FetcherConfig()
        self._client_factory = client_factory

    def _boto_config(self, s3: S3Backend | None = None) -> BotoConfig:
        return BotoConfig(
            connect_timeout=self._config.connect_timeout,
            read_timeout=self._config.read_timeout,
            retries={"max_attempts": self._config.max_attempts, "mode": "standard"},
            # S3 compatible services often require path style addressing
            s3={"addressing_style": "path"} if s3 is not None and s3.endpoint else None,
        )

    def _client(self, s3: S3Backend) -> Any:
        if self._client_factory is not None:
            return self._client_factory(s3)
        session = boto3.session.Session(region_name=s3.region)
        if s3.role:
            _LOGGER.debug("Assuming role %s for %s", s3.role, s3.location)
            sts = session.client("sts", config=self._boto_config())
            credentials = sts.assume_role(
                RoleArn=s3.role, RoleSessionName=self._config.role_session_name
            )["Credentials"]
            session = boto3.session.Session(
                aws_access_key_id=credentials["AccessKeyId"],
                aws_secret_access_key=credentials["SecretAccessKey"],
                aws_session_token=credentials["SessionToken"],
                region_name=s3.region,
            )
        return session.client(
            "s3", endpoint_url=s3.endpoint, config=self._boto_config(s3)
        )

    def _head_etag(self, s3: S3Backend) -> str:
        result = self._client(s3).head_object(Bucket=s3.bucket, Key=s3.key)
        return normalize_etag(result.get("ETag"))

    def _download(self, s3: S3Backend) -> bytes:
        result = self._client(s3).get_object(Bucket=s3.bucket, Key=s3.key)
        body = result["Body"]
        try:
            return body.read()
        finally:
            body.close()

    async def fingerprint(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> str:
        """Return the ETag of the state file without downloading it."""
        s3 = _s3_backend(backend)
        try:
            etag = await asyncio.to_thread(self._head_etag, s3)
        except (ClientError, BotoCoreError) as err:
            if metrics:
                metrics.object_storage_request(HEAD_OBJECT, success=False)
            raise BackendUnavailable(
                backend_index, f"failed to get S3 object metadata: {err}"
            ) from err
        if metrics:
            metrics.object_storage_request(HEAD_OBJECT, success=True)
        _LOGGER.debug("Backend %d %s has ETag %s", backend_index, s3.location, etag)
        return etag

    async def fetch(
        self,
        backend: BackendDescriptor,
        backend_index: int,
        metrics: MetricsScope | None = None,
    ) -> Snapshot:
        """Download and parse the state file."""
        s3 = _s3_backend(backend)
        _LOGGER.info(
            "Downloading Terraform state for backend %d from %s",
            backend_index,
            s3.location,
        )
        try:
            content = await asyncio.to_thread(self._download, s3)
        except (ClientError, BotoCoreError) as err:
            if metrics:
                metrics.object_storage_request(GET_OBJECT, success=False)
            raise BackendUnavailable(
                backend_index, f"failed to download state file: {err}"
            ) from err
        if metrics:
            metrics.object_storage_request(GET_OBJECT, success=True)
        return parse_state(content, backend_index)


def _s3_backend(backend: BackendDescriptor) -> S3Backend:
    if backend.s3 is None:
        raise InputException(f"Backend {backend.location} is not an s3 backend")
    return backend.s3
