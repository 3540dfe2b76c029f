"""Tests for the boto3-backed object store wrapper."""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import EndpointConnectionError

from s3tool.config import Settings
from s3tool.errors import ConfigurationError, StoreError
from s3tool.models import ACLGrant
from s3tool.store import ObjectStore, make_s3_client
from tests.fake_s3 import client_error


class TestObjectStore:
    """Test ObjectStore against a mocked boto3 client."""

    @pytest.fixture
    def mock_s3(self):
        return MagicMock()

    @pytest.fixture
    def store(self, mock_s3):
        return ObjectStore(mock_s3, bucket="test-bucket", region="eu-west-1")

    def test_create_bucket_outside_us_east_1_sets_location(self, store, mock_s3):
        store.create_bucket("new-bucket", policy="public-read")

        mock_s3.create_bucket.assert_called_once_with(
            Bucket="new-bucket",
            ACL="public-read",
            CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
        )

    def test_create_bucket_in_us_east_1_omits_location(self, store, mock_s3):
        store.create_bucket("new-bucket", region="us-east-1")

        mock_s3.create_bucket.assert_called_once_with(Bucket="new-bucket", ACL="private")

    def test_list_buckets(self, store, mock_s3):
        created = datetime(2023, 5, 1, tzinfo=timezone.utc)
        mock_s3.list_buckets.return_value = {
            "Buckets": [{"Name": "a", "CreationDate": created}, {"Name": "b"}],
            "Owner": {"DisplayName": "jdoe", "ID": "123"},
        }

        buckets = store.list_buckets()

        assert [b.name for b in buckets] == ["a", "b"]
        assert buckets[0].creation_date == created
        assert buckets[1].owner_name == "jdoe"

    def test_iter_objects_walks_every_page(self, store, mock_s3):
        paginator = MagicMock()
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "a", "Size": 1, "ETag": '"e1"', "Owner": {"ID": "id-1"}}]},
            {},
            {"Contents": [{"Key": "b", "Size": 2}]},
        ]
        mock_s3.get_paginator.return_value = paginator

        objects = store.list_objects()

        assert [(o.key, o.size) for o in objects] == [("a", 1), ("b", 2)]
        assert objects[0].owner_name == "id-1"
        assert objects[1].etag == ""
        paginator.paginate.assert_called_once_with(Bucket="test-bucket", FetchOwner=True)

    def test_new_upload_passes_content_type_and_acl(self, store, mock_s3):
        mock_s3.create_multipart_upload.return_value = {"UploadId": "up-1"}

        handle = store.new_upload("k", {"Content-Type": "image/png", "x-amz-acl": "public-read"})

        assert handle.upload_id == "up-1"
        assert handle.key == "k"
        mock_s3.create_multipart_upload.assert_called_once_with(
            Bucket="test-bucket", Key="k", ContentType="image/png", ACL="public-read"
        )

    def test_new_upload_without_upload_id(self, store, mock_s3):
        mock_s3.create_multipart_upload.return_value = {}

        with pytest.raises(StoreError, match="missing UploadId"):
            store.new_upload("k")

    def test_client_error_becomes_store_error(self, store, mock_s3):
        mock_s3.delete_object.side_effect = client_error("AccessDenied", "DeleteObject", "Access Denied")

        with pytest.raises(StoreError) as excinfo:
            store.delete("secret")

        assert excinfo.value.code == "AccessDenied"
        assert excinfo.value.key == "secret"
        assert "Access Denied" in str(excinfo.value)

    def test_connection_error_becomes_store_error(self, store, mock_s3):
        mock_s3.get_object.side_effect = EndpointConnectionError(endpoint_url="http://nowhere")

        with pytest.raises(StoreError, match="failed to get k"):
            store.get("k")

    def test_change_acl_on_object_and_bucket(self, store, mock_s3):
        store.change_acl("k", "public-read")
        store.change_acl("", "private")

        mock_s3.put_object_acl.assert_called_once_with(Bucket="test-bucket", Key="k", ACL="public-read")
        mock_s3.put_bucket_acl.assert_called_once_with(Bucket="test-bucket", ACL="private")

    def test_get_acl_maps_grants(self, store, mock_s3):
        mock_s3.get_bucket_acl.return_value = {
            "Grants": [
                {"Grantee": {"DisplayName": "jdoe", "Type": "CanonicalUser"}, "Permission": "FULL_CONTROL"},
                {"Grantee": {"URI": "http://acs.amazonaws.com/groups/global/AllUsers"}, "Permission": "READ"},
            ]
        }

        grants = store.get_acl("")

        assert grants[0] == ACLGrant(permission="FULL_CONTROL", grantee_name="jdoe")
        assert grants[0].is_user
        assert not grants[1].is_user
        assert grants[1].group.endswith("AllUsers")

    def test_operations_need_a_bucket(self, mock_s3):
        store = ObjectStore(mock_s3)

        with pytest.raises(ConfigurationError, match="--bucket"):
            store.get("k")
        mock_s3.get_object.assert_not_called()


class TestMakeClient:
    def test_from_settings_builds_configured_client(self):
        settings = Settings(
            access_key="AKI",
            secret_key="SECRET",
            endpoint_url="http://localhost:9000",
            region="us-west-2",
            bucket="b",
            use_path_style=True,
            verify_tls=False,
        )
        with patch("s3tool.store.make_s3_client") as make:
            store = ObjectStore.from_settings(settings)

        make.assert_called_once_with(
            region="us-west-2",
            profile=None,
            endpoint_url="http://localhost:9000",
            use_path_style=True,
            credentials={"aws_access_key_id": "AKI", "aws_secret_access_key": "SECRET"},
            verify=False,
        )
        assert store.bucket == "b"
        assert store.region == "us-west-2"

    def test_make_s3_client_passes_addressing_style(self):
        with patch("s3tool.store.boto3.session.Session") as session_cls:
            make_s3_client("eu-central-1", "dev", None, True, None, verify=False)

        session_cls.assert_called_once_with(profile_name="dev")
        _, kwargs = session_cls.return_value.client.call_args
        assert kwargs["region_name"] == "eu-central-1"
        assert kwargs["verify"] is False
        assert "endpoint_url" not in kwargs
        assert kwargs["config"].s3 == {"addressing_style": "path"}
