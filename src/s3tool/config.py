"""
Centralized configuration for the S3 client.

Module constants are the project defaults. CLI flags and environment
variables override them at runtime, resolved once into an immutable
``Settings`` value that is passed into every operation.
"""
import argparse
import os
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

from .errors import ConfigurationError

# Region used when neither --region nor S3_REGION is given.
DEFAULT_REGION: str = "us-east-1"

# Optional S3-compatible endpoint URL (e.g., MinIO, Cloudflare R2, etc.)
# Example: "http://localhost:9000" or "https://accountid.r2.cloudflarestorage.com"
DEFAULT_ENDPOINT_URL: Optional[str] = None

# Whether to use path-style addressing ("https://endpoint/bucket/key")
# Some S3-compatible services require this.
DEFAULT_USE_PATH_STYLE: bool = False

# Access policy applied to newly created buckets.
DEFAULT_BUCKET_ACL: str = "private"

# Upload tuning: content-type sniff window, multipart part size, worker count.
SNIFF_LEN: int = 512
DEFAULT_PART_SIZE: int = 5 * (1 << 20)
DEFAULT_CONCURRENCY: int = 2

ACL_POLICIES: Dict[str, str] = {
    "private": (
        "The bucket owner will have full read/write control over the bucket and "
        "its constituent files. No one else will have any access, whatsoever. "
        "This is the default ACL."
    ),
    "public-read": (
        "The bucket owner will have full read/write control over everything. "
        "Anonymous users (aka Everyone) will have read access to files within "
        "the bucket."
    ),
    "public-read-write": (
        "Like public-read, except that the Everyone group will also be given "
        "write access to the bucket to upload new files, overwrite existing "
        "files, delete files, etc. Not recommended."
    ),
    "aws-exec-read": (
        "Like private, except that the Amazon EC2 system will be able to read "
        "files to download Amazon Machine Images (AMIs) stored in the bucket."
    ),
    "authenticated-read": (
        "The bucket owner will have full read/write control over everything. "
        "Authenticated users (anyone with an AWS account) will have read access."
    ),
    "bucket-owner-read": (
        "(files only) The account who uploaded the file will have full control "
        "over it, but the bucket owner will be allowed to read it."
    ),
    "bucket-owner-full-control": (
        "(files only) Both the account who uploaded the file, and the bucket "
        "owner, will have full control to the file."
    ),
    "log-delivery-write": (
        "The Log Delivery service will be able to create destination log files "
        "in this bucket and append to them."
    ),
}

_TRUTHY = {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class Settings:
    access_key: Optional[str] = None
    secret_key: Optional[str] = None
    session_token: Optional[str] = None
    endpoint_url: Optional[str] = DEFAULT_ENDPOINT_URL
    region: str = DEFAULT_REGION
    bucket: Optional[str] = None
    use_path_style: bool = DEFAULT_USE_PATH_STYLE
    verify_tls: bool = True
    profile: Optional[str] = None
    bucket_acl: str = DEFAULT_BUCKET_ACL
    concurrency: int = DEFAULT_CONCURRENCY
    debug: bool = False
    trace: bool = False

    def credentials(self) -> Optional[dict]:
        """Return boto3 credential kwargs, or None to use boto3's own chain."""
        if self.access_key and self.secret_key:
            creds = {"aws_access_key_id": self.access_key, "aws_secret_access_key": self.secret_key}
            if self.session_token:
                creds["aws_session_token"] = self.session_token
            return creds
        if self.access_key or self.secret_key:
            raise ConfigurationError("both an access key id (--aki) and a secret key (--key) are required")
        return None

    def require_bucket(self) -> str:
        if not self.bucket:
            raise ConfigurationError("missing required --bucket option (or $S3_BUCKET)")
        return self.bucket


def as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in _TRUTHY


def as_positive_int(value, name: str) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}") from None
    if number < 1:
        raise ConfigurationError(f"{name} must be at least 1, got {number}")
    return number


def resolve_endpoint(args: argparse.Namespace, env: Mapping[str, str]) -> Optional[str]:
    # Priority: --s3-url > env S3_URL > config.DEFAULT_ENDPOINT_URL
    return args.s3_url or env.get("S3_URL") or DEFAULT_ENDPOINT_URL


def resolve_bucket(args: argparse.Namespace, env: Mapping[str, str]) -> Optional[str]:
    # Priority: --bucket flag > env S3_BUCKET
    return args.bucket or env.get("S3_BUCKET") or None


def resolve_concurrency(value: Optional[int], env: Mapping[str, str]) -> int:
    # Priority: --parallel > env S3_THREADS > config.DEFAULT_CONCURRENCY
    if value is not None:
        return as_positive_int(value, "--parallel")
    if env.get("S3_THREADS"):
        return as_positive_int(env["S3_THREADS"], "$S3_THREADS")
    return DEFAULT_CONCURRENCY


def resolve_bucket_acl(value: Optional[str], env: Mapping[str, str]) -> str:
    # Priority: --acl > env S3_ACL > config.DEFAULT_BUCKET_ACL
    return value or env.get("S3_ACL") or DEFAULT_BUCKET_ACL


def resolve_settings(args: argparse.Namespace, env: Optional[Mapping[str, str]] = None) -> Settings:
    """Build the immutable Settings for one invocation from flags and environment."""
    if env is None:
        env = os.environ

    return Settings(
        access_key=args.aki or env.get("S3_AKI") or env.get("AWS_ACCESS_KEY_ID"),
        secret_key=args.secret_key or env.get("S3_KEY") or env.get("AWS_SECRET_ACCESS_KEY"),
        session_token=env.get("AWS_SESSION_TOKEN"),
        endpoint_url=resolve_endpoint(args, env),
        region=args.region or env.get("S3_REGION") or DEFAULT_REGION,
        bucket=resolve_bucket(args, env),
        use_path_style=bool(args.path_buckets or as_bool(env.get("S3_USE_PATH"), DEFAULT_USE_PATH_STYLE)),
        verify_tls=not (args.insecure or as_bool(env.get("S3_INSECURE"))),
        profile=args.profile,
        bucket_acl=resolve_bucket_acl(getattr(args, "acl", None), env),
        concurrency=resolve_concurrency(getattr(args, "parallel", None), env),
        debug=bool(args.debug or as_bool(env.get("S3_DEBUG"))),
        trace=bool(args.trace or as_bool(env.get("S3_TRACE"))),
    )
