import pytest

from s3tool.cli import parse_args
from s3tool.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_REGION,
    as_bool,
    resolve_bucket_acl,
    resolve_concurrency,
    resolve_settings,
)
from s3tool.errors import ConfigurationError


def test_defaults_without_flags_or_env():
    settings = resolve_settings(parse_args(["ls"]), env={})

    assert settings.region == DEFAULT_REGION
    assert settings.bucket is None
    assert settings.endpoint_url is None
    assert settings.verify_tls
    assert not settings.use_path_style
    assert settings.credentials() is None


def test_environment_fills_in_unset_flags():
    env = {
        "S3_AKI": "env-aki",
        "S3_KEY": "env-secret",
        "S3_URL": "http://minio:9000",
        "S3_REGION": "eu-west-1",
        "S3_BUCKET": "env-bucket",
        "S3_USE_PATH": "yes",
        "S3_INSECURE": "1",
        "S3_DEBUG": "true",
    }
    settings = resolve_settings(parse_args(["ls"]), env=env)

    assert settings.credentials() == {"aws_access_key_id": "env-aki", "aws_secret_access_key": "env-secret"}
    assert settings.endpoint_url == "http://minio:9000"
    assert settings.region == "eu-west-1"
    assert settings.bucket == "env-bucket"
    assert settings.use_path_style
    assert not settings.verify_tls
    assert settings.debug
    assert not settings.trace


def test_flags_win_over_environment():
    args = parse_args(["ls", "-b", "flag-bucket", "-r", "ap-south-1", "--aki", "A", "--key", "K"])
    settings = resolve_settings(args, env={"S3_BUCKET": "env-bucket", "S3_REGION": "eu-west-1", "S3_AKI": "X"})

    assert settings.bucket == "flag-bucket"
    assert settings.region == "ap-south-1"
    assert settings.access_key == "A"
    assert settings.secret_key == "K"


def test_aws_variables_are_a_fallback():
    env = {"AWS_ACCESS_KEY_ID": "aws", "AWS_SECRET_ACCESS_KEY": "shh", "AWS_SESSION_TOKEN": "tok"}
    settings = resolve_settings(parse_args(["lsb"]), env=env)

    assert settings.credentials()["aws_session_token"] == "tok"


def test_half_a_credential_pair_is_rejected():
    settings = resolve_settings(parse_args(["ls", "--aki", "only-id"]), env={})
    with pytest.raises(ConfigurationError, match="--key"):
        settings.credentials()


def test_settings_are_immutable():
    settings = resolve_settings(parse_args(["ls"]), env={})
    with pytest.raises(AttributeError):
        settings.bucket = "other"


def test_require_bucket():
    settings = resolve_settings(parse_args(["ls"]), env={})
    with pytest.raises(ConfigurationError, match="S3_BUCKET"):
        settings.require_bucket()


@pytest.mark.parametrize("value, expected", [(None, DEFAULT_CONCURRENCY), (4, 4)])
def test_resolve_concurrency_flag(value, expected):
    assert resolve_concurrency(value, {}) == expected


def test_resolve_concurrency_env():
    assert resolve_concurrency(None, {"S3_THREADS": "8"}) == 8
    assert resolve_concurrency(3, {"S3_THREADS": "8"}) == 3


@pytest.mark.parametrize("value, env", [(0, {}), (None, {"S3_THREADS": "0"}), (None, {"S3_THREADS": "lots"})])
def test_resolve_concurrency_rejects_bad_values(value, env):
    with pytest.raises(ConfigurationError):
        resolve_concurrency(value, env)


def test_resolve_bucket_acl():
    assert resolve_bucket_acl(None, {}) == "private"
    assert resolve_bucket_acl(None, {"S3_ACL": "public-read"}) == "public-read"
    assert resolve_bucket_acl("authenticated-read", {"S3_ACL": "public-read"}) == "authenticated-read"


@pytest.mark.parametrize("raw, expected", [("1", True), ("Yes", True), (" on ", True), ("0", False), ("", False)])
def test_as_bool(raw, expected):
    assert as_bool(raw) is expected


def test_command_options_resolve_into_settings():
    settings = resolve_settings(parse_args(["put", "-n", "5", "file"]), env={"S3_THREADS": "9", "S3_ACL": "public-read"})
    assert settings.concurrency == 5
    assert settings.bucket_acl == "public-read"

    settings = resolve_settings(parse_args(["create-bucket", "b", "--acl", "private"]), env={"S3_THREADS": "9"})
    assert settings.concurrency == 9
    assert settings.bucket_acl == "private"


def test_command_options_default_without_env():
    settings = resolve_settings(parse_args(["lsb"]), env={})
    assert settings.concurrency == DEFAULT_CONCURRENCY
    assert settings.bucket_acl == "private"
