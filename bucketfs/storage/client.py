"""
Object store client: the logical operations the adapter issues.

ObjectStoreClient is the capability the storage layer depends on. The boto3
implementation works with AWS S3 and S3-compatible services (MinIO, Ceph,
SeaweedFS, ...). Provider errors surface as ObjectStoreError carrying the
provider error code and message.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import IO, Dict, Iterator, List, Mapping, Optional, Protocol, Union

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

Body = Union[bytes, IO[bytes]]

# HTTP header name -> boto3 parameter name
HEADER_PARAMS = {
    "Cache-Control": "CacheControl",
    "Content-Disposition": "ContentDisposition",
    "Content-Encoding": "ContentEncoding",
    "Content-Language": "ContentLanguage",
    "Content-Type": "ContentType",
    "Expires": "Expires",
}


class ObjectStoreError(Exception):
    """Error reported by the remote object store."""

    def __init__(self, code: str, message: str = "", status_code: Optional[int] = None):
        super().__init__(message or code)
        self.code = code
        self.message = message
        self.status_code = status_code

    def __repr__(self) -> str:
        return f"ObjectStoreError(code={self.code!r}, message={self.message!r})"


@dataclass
class ObjectHead:
    """Result of a HEAD request on an object."""
    last_modified: datetime
    size: int
    etag: str
    metadata: Dict[str, str] = field(default_factory=dict)


@dataclass
class ListPage:
    """One page of a prefix/delimiter listing."""
    keys: List[str] = field(default_factory=list)
    common_prefixes: List[str] = field(default_factory=list)


class ObjectStoreClient(Protocol):
    """Minimal object store capability used by the storage layer."""

    def bucket_exists(self, bucket: str) -> bool:
        ...

    def create_bucket(self, bucket: str, acl: Optional[str] = None) -> None:
        ...

    def wait_until_bucket_exists(self, bucket: str) -> None:
        ...

    def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        acl: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, Optional[str]]] = None,
        server_side_encryption: Optional[str] = None,
    ) -> None:
        ...

    def head_object(self, bucket: str, key: str) -> ObjectHead:
        ...

    def object_exists(self, bucket: str, key: str) -> bool:
        ...

    def delete_object(self, bucket: str, key: str) -> None:
        ...

    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        dst_bucket: str,
        dst_key: str,
        acl: Optional[str] = None,
        headers: Optional[Mapping[str, Optional[str]]] = None,
        if_match: Optional[str] = None,
        if_modified_since: Optional[Union[str, datetime]] = None,
        server_side_encryption: Optional[str] = None,
        metadata_directive: str = "COPY",
    ) -> None:
        ...

    def iter_list_pages(
        self,
        bucket: str,
        prefix: str,
        delimiter: str = "",
        max_keys: Optional[int] = None,
    ) -> Iterator[ListPage]:
        ...

    def presigned_get_url(self, bucket: str, key: str, expires_in: int) -> str:
        ...


def header_params(headers: Optional[Mapping[str, Optional[str]]]) -> Dict[str, str]:
    """Map known HTTP headers onto boto3 parameters, dropping empty ones."""
    params = {}
    for header, value in (headers or {}).items():
        param = HEADER_PARAMS.get(header)
        if param and value:
            params[param] = value
    return params


def store_error(e: ClientError) -> ObjectStoreError:
    """Convert a botocore ClientError to ObjectStoreError."""
    error = e.response.get("Error", {})
    return ObjectStoreError(
        code=str(error.get("Code", "")),
        message=error.get("Message", "") or "",
        status_code=e.response.get("ResponseMetadata", {}).get("HTTPStatusCode"),
    )


@contextmanager
def translate_errors():
    """Re-raise botocore failures as ObjectStoreError."""
    try:
        yield
    except ClientError as e:
        raise store_error(e) from e
    except BotoCoreError as e:
        raise ObjectStoreError(code=type(e).__name__, message=str(e)) from e


class Boto3ObjectStoreClient:
    """ObjectStoreClient backed by a boto3 S3 client."""

    def __init__(
        self,
        region: Optional[str] = None,
        use_https: bool = True,
        endpoint_url: Optional[str] = None,
        access_key: Optional[str] = None,
        secret_key: Optional[str] = None,
        session_token: Optional[str] = None,
        max_attempts: int = 3,
        connect_timeout: int = 10,
        read_timeout: int = 60,
        client=None,
    ):
        """
        Initialize the client.

        Explicit credentials override the default credential chain
        (environment, shared credentials file, instance profile).

        Args:
            region: AWS region
            use_https: Talk to the endpoint over HTTPS
            endpoint_url: Custom endpoint for S3-compatible services
            access_key: Access key ID
            secret_key: Secret access key
            session_token: Session token for temporary credentials
            client: Pre-built boto3 S3 client (used instead of creating one)
        """
        self.region = region
        if client is not None:
            self.client = client
            return

        client_kwargs = {
            "region_name": region,
            "use_ssl": use_https,
            "config": Config(
                signature_version="s3v4",
                retries={"max_attempts": max_attempts, "mode": "standard"},
                connect_timeout=connect_timeout,
                read_timeout=read_timeout,
            ),
        }
        if endpoint_url:
            client_kwargs["endpoint_url"] = endpoint_url
        if access_key and secret_key:
            client_kwargs["aws_access_key_id"] = access_key
            client_kwargs["aws_secret_access_key"] = secret_key
            if session_token:
                client_kwargs["aws_session_token"] = session_token

        self.client = boto3.client("s3", **client_kwargs)
        logger.info(
            f"S3 client initialized: endpoint={endpoint_url or 'AWS S3'}, "
            f"region={region}, https={use_https}"
        )

    def bucket_exists(self, bucket: str) -> bool:
        try:
            self.client.head_bucket(Bucket=bucket)
            return True
        except ClientError as e:
            status_code = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            if status_code == 403:
                # Exists, but belongs to someone else or we can't list it
                return True
            if status_code == 404:
                return False
            raise store_error(e) from e
        except BotoCoreError as e:
            raise ObjectStoreError(code=type(e).__name__, message=str(e)) from e

    def create_bucket(self, bucket: str, acl: Optional[str] = None) -> None:
        params = {"Bucket": bucket}
        if acl:
            params["ACL"] = acl
        if self.region and self.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        with translate_errors():
            self.client.create_bucket(**params)

    def wait_until_bucket_exists(self, bucket: str) -> None:
        with translate_errors():
            self.client.get_waiter("bucket_exists").wait(Bucket=bucket)

    def put_object(
        self,
        bucket: str,
        key: str,
        body: Body,
        acl: Optional[str] = None,
        metadata: Optional[Mapping[str, str]] = None,
        headers: Optional[Mapping[str, Optional[str]]] = None,
        server_side_encryption: Optional[str] = None,
    ) -> None:
        params = {"Bucket": bucket, "Key": key, "Body": body}
        params.update(header_params(headers))
        if acl:
            params["ACL"] = acl
        if metadata:
            params["Metadata"] = dict(metadata)
        if server_side_encryption:
            params["ServerSideEncryption"] = server_side_encryption
        with translate_errors():
            self.client.put_object(**params)

    def head_object(self, bucket: str, key: str) -> ObjectHead:
        try:
            response = self.client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            # HEAD responses carry no body, so botocore reports "404"
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey"):
                raise ObjectStoreError("NotFound", "Not Found", 404) from e
            raise store_error(e) from e
        except BotoCoreError as e:
            raise ObjectStoreError(code=type(e).__name__, message=str(e)) from e
        return ObjectHead(
            last_modified=response["LastModified"],
            size=int(response.get("ContentLength", 0)),
            etag=response.get("ETag", ""),
            metadata=response.get("Metadata", {}) or {},
        )

    def object_exists(self, bucket: str, key: str) -> bool:
        try:
            self.client.head_object(Bucket=bucket, Key=key)
            return True
        except ClientError as e:
            status_code = e.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
            if 400 <= status_code < 500:
                return False
            raise store_error(e) from e
        except BotoCoreError as e:
            raise ObjectStoreError(code=type(e).__name__, message=str(e)) from e

    def delete_object(self, bucket: str, key: str) -> None:
        with translate_errors():
            self.client.delete_object(Bucket=bucket, Key=key)

    def copy_object(
        self,
        src_bucket: str,
        src_key: str,
        dst_bucket: str,
        dst_key: str,
        acl: Optional[str] = None,
        headers: Optional[Mapping[str, Optional[str]]] = None,
        if_match: Optional[str] = None,
        if_modified_since: Optional[Union[str, datetime]] = None,
        server_side_encryption: Optional[str] = None,
        metadata_directive: str = "COPY",
    ) -> None:
        params = {
            "Bucket": dst_bucket,
            "Key": dst_key,
            "CopySource": {"Bucket": src_bucket, "Key": src_key},
            "MetadataDirective": metadata_directive,
        }
        params.update(header_params(headers))
        if acl:
            params["ACL"] = acl
        if if_match:
            params["CopySourceIfMatch"] = if_match
        if if_modified_since:
            params["CopySourceIfModifiedSince"] = if_modified_since
        if server_side_encryption:
            params["ServerSideEncryption"] = server_side_encryption
        with translate_errors():
            self.client.copy_object(**params)

    def iter_list_pages(
        self,
        bucket: str,
        prefix: str,
        delimiter: str = "",
        max_keys: Optional[int] = None,
    ) -> Iterator[ListPage]:
        params = {"Bucket": bucket, "Prefix": prefix}
        if delimiter:
            params["Delimiter"] = delimiter
        if max_keys:
            # PageSize limits the request itself (MaxKeys), MaxItems the results
            params["PaginationConfig"] = {"MaxItems": max_keys, "PageSize": max_keys}

        paginator = self.client.get_paginator("list_objects_v2")
        with translate_errors():
            for page in paginator.paginate(**params):
                yield ListPage(
                    keys=[obj["Key"] for obj in page.get("Contents", [])],
                    common_prefixes=[p["Prefix"] for p in page.get("CommonPrefixes", [])],
                )

    def presigned_get_url(self, bucket: str, key: str, expires_in: int) -> str:
        with translate_errors():
            return self.client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in,
            )
