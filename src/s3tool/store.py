"""
Object store client: a thin wrapper over a boto3 S3 client.

boto3/botocore own the wire protocol, request signing and response parsing.
This module maps the calls s3tool needs onto them, converts responses into
s3tool's data model, and turns botocore failures into StoreError.
"""
import logging
from typing import Iterable, List, Mapping, Optional

import boto3
from botocore.config import Config as BotoConfig

from .config import DEFAULT_BUCKET_ACL, DEFAULT_REGION, Settings
from .errors import ConfigurationError, StoreError, store_errors
from .models import ACLGrant, BucketSummary, ObjectSummary
from .upload import Upload

logger = logging.getLogger(__name__)


def make_s3_client(
    region: Optional[str],
    profile: Optional[str],
    endpoint_url: Optional[str],
    use_path_style: bool,
    credentials: Optional[dict],
    verify: bool = True,
):
    session_kwargs = {}
    if profile:
        session_kwargs["profile_name"] = profile
    session = boto3.session.Session(**session_kwargs)
    boto_cfg = BotoConfig(s3={"addressing_style": "path" if use_path_style else "virtual"})
    client_kwargs = {"region_name": region, "config": boto_cfg, "endpoint_url": endpoint_url}
    if credentials:
        client_kwargs.update(credentials)
    if not verify:
        client_kwargs["verify"] = False
    return session.client("s3", **{k: v for k, v in client_kwargs.items() if v is not None})


def _owner_name(owner: Optional[Mapping]) -> str:
    if not owner:
        return ""
    return owner.get("DisplayName") or owner.get("ID") or ""


class ObjectStore:
    """Bucket-scoped operations against one S3-compatible endpoint."""

    def __init__(self, s3, bucket: Optional[str] = None, region: str = DEFAULT_REGION) -> None:
        self._s3 = s3
        self.bucket = bucket
        self.region = region

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStore":
        credentials = settings.credentials()
        logger.debug(
            "connecting to %s in region %s%s",
            settings.endpoint_url or "AWS S3",
            settings.region,
            " (path-style)" if settings.use_path_style else "",
        )
        s3 = make_s3_client(
            region=settings.region,
            profile=settings.profile,
            endpoint_url=settings.endpoint_url,
            use_path_style=settings.use_path_style,
            credentials=credentials,
            verify=settings.verify_tls,
        )
        return cls(s3, bucket=settings.bucket, region=settings.region)

    def _bucket(self, bucket: Optional[str] = None) -> str:
        name = bucket or self.bucket
        if not name:
            raise ConfigurationError("missing required --bucket option (or $S3_BUCKET)")
        return name

    # ---- buckets -------------------------------------------------------

    def list_buckets(self) -> List[BucketSummary]:
        with store_errors("list buckets"):
            resp = self._s3.list_buckets()
        owner = _owner_name(resp.get("Owner"))
        return [
            BucketSummary(name=b["Name"], creation_date=b.get("CreationDate"), owner_name=owner)
            for b in resp.get("Buckets", []) or []
        ]

    def create_bucket(self, name: str, region: Optional[str] = None, policy: str = DEFAULT_BUCKET_ACL) -> None:
        region = region or self.region
        kwargs = {"Bucket": name, "ACL": policy}
        # us-east-1 is the default location and must not be named explicitly.
        if region and region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": region}
        logger.debug("creating bucket %s in region %s with acl %s", name, region, policy)
        with store_errors("create bucket", name):
            self._s3.create_bucket(**kwargs)

    def delete_bucket(self, name: str) -> None:
        logger.debug("deleting bucket %s", name)
        with store_errors("delete bucket", name):
            self._s3.delete_bucket(Bucket=name)

    # ---- objects -------------------------------------------------------

    def iter_objects(self, bucket: Optional[str] = None, prefix: str = "") -> Iterable[ObjectSummary]:
        """Yield a summary for every object in the bucket, in listing order."""
        bucket = self._bucket(bucket)
        paginator = self._s3.get_paginator("list_objects_v2")
        kwargs = {"Bucket": bucket, "FetchOwner": True}
        if prefix:
            kwargs["Prefix"] = prefix
        with store_errors("list objects in", bucket):
            for page in paginator.paginate(**kwargs):
                for obj in page.get("Contents", []) or []:
                    yield ObjectSummary(
                        key=obj["Key"],
                        last_modified=obj.get("LastModified"),
                        owner_name=_owner_name(obj.get("Owner")),
                        etag=obj.get("ETag", ""),
                        size=int(obj.get("Size", 0)),
                    )

    def list_objects(self, bucket: Optional[str] = None) -> List[ObjectSummary]:
        return list(self.iter_objects(bucket))

    def get(self, key: str):
        """Return the object's body as a readable stream."""
        bucket = self._bucket()
        with store_errors("get", key):
            resp = self._s3.get_object(Bucket=bucket, Key=key)
        return resp["Body"]

    def delete(self, key: str) -> None:
        bucket = self._bucket()
        with store_errors("delete", key):
            self._s3.delete_object(Bucket=bucket, Key=key)

    def new_upload(self, key: str, headers: Optional[Mapping[str, str]] = None) -> Upload:
        bucket = self._bucket()
        headers = dict(headers or {})
        kwargs = {"Bucket": bucket, "Key": key}
        if headers.get("Content-Type"):
            kwargs["ContentType"] = headers["Content-Type"]
        if headers.get("x-amz-acl"):
            kwargs["ACL"] = headers["x-amz-acl"]
        with store_errors("start upload of", key):
            resp = self._s3.create_multipart_upload(**kwargs)
        upload_id = resp.get("UploadId")
        if not upload_id:
            raise StoreError(f"S3 response missing UploadId for {key}", key=key)
        return Upload(self._s3, bucket, key, str(upload_id))

    # ---- access control ------------------------------------------------

    def change_acl(self, key: str, policy: str) -> None:
        """Apply a canned ACL to an object, or to the bucket when key is empty."""
        bucket = self._bucket()
        if key:
            with store_errors(f"set acl {policy} on", key):
                self._s3.put_object_acl(Bucket=bucket, Key=key, ACL=policy)
        else:
            with store_errors(f"set acl {policy} on bucket", bucket):
                self._s3.put_bucket_acl(Bucket=bucket, ACL=policy)

    def get_acl(self, key: str) -> List[ACLGrant]:
        bucket = self._bucket()
        if key:
            with store_errors("get acl of", key):
                resp = self._s3.get_object_acl(Bucket=bucket, Key=key)
        else:
            with store_errors("get acl of bucket", bucket):
                resp = self._s3.get_bucket_acl(Bucket=bucket)

        grants = []
        for grant in resp.get("Grants", []) or []:
            grantee = grant.get("Grantee", {}) or {}
            grants.append(
                ACLGrant(
                    permission=grant.get("Permission", ""),
                    grantee_name=grantee.get("DisplayName") or grantee.get("ID") or "",
                    group=grantee.get("URI", ""),
                )
            )
        return grants
