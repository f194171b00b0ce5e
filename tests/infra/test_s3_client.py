"""Tests for S3 storage client."""

import io
from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError

from release_publisher.infra.storage.client import ObjectNotFoundError, StorageError
from release_publisher.infra.storage.s3_client import MAX_DELETE_BATCH, S3StorageClient


def _client_error(code: str, operation: str = "Operation") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, operation)


class TestBuildClient:
    """Test boto3 client construction."""

    def test_uses_private_session_and_config(self):
        with patch("release_publisher.infra.storage.s3_client.boto3") as mock_boto3:
            S3StorageClient(
                provider_options={
                    "aws_access_key_id": "test-key",
                    "aws_secret_access_key": "test-secret",
                    "signature_version": "s3v4",
                    "addressing_style": "Path",
                    "region_name": "us-east-1",
                }
            )

        session = mock_boto3.session.Session.return_value
        call_args = session.client.call_args
        assert call_args[0] == ("s3",)
        assert call_args[1]["aws_access_key_id"] == "test-key"
        assert call_args[1]["aws_secret_access_key"] == "test-secret"
        assert call_args[1]["region_name"] == "us-east-1"
        assert "signature_version" not in call_args[1]
        assert "addressing_style" not in call_args[1]

        config = call_args[1]["config"]
        assert config.signature_version == "s3v4"
        assert config.s3 == {"addressing_style": "path"}

    def test_does_not_mutate_options(self):
        options = {"aws_access_key_id": "k", "signature_version": "s3v4"}
        with patch("release_publisher.infra.storage.s3_client.boto3"):
            S3StorageClient(provider_options=options)
        assert options == {"aws_access_key_id": "k", "signature_version": "s3v4"}


class TestS3StorageClient:
    """Test S3StorageClient implementation."""

    @pytest.fixture
    def mock_s3(self):
        """Mock boto3 S3 client."""
        mock_client = MagicMock()
        with patch.object(S3StorageClient, "_build_client", return_value=mock_client):
            yield mock_client

    @pytest.fixture
    def client(self, mock_s3):
        """Create S3StorageClient with mocked boto3."""
        return S3StorageClient(provider_options={"aws_access_key_id": "test-key"})

    def test_bucket_exists(self, client, mock_s3):
        assert client.bucket_exists(bucket="test-bucket") is True
        mock_s3.head_bucket.assert_called_once_with(Bucket="test-bucket")

    def test_bucket_exists_false_on_client_error(self, client, mock_s3):
        mock_s3.head_bucket.side_effect = _client_error("404", "HeadBucket")
        assert client.bucket_exists(bucket="test-bucket") is False

    def test_bucket_exists_false_on_forbidden(self, client, mock_s3):
        mock_s3.head_bucket.side_effect = _client_error("403", "HeadBucket")
        assert client.bucket_exists(bucket="test-bucket") is False

    def test_create_bucket_passes_descriptor(self, client, mock_s3):
        client.create_bucket(
            bucket_spec={
                "Bucket": "test-bucket",
                "CreateBucketConfiguration": {"LocationConstraint": "eu-west-1"},
            }
        )

        mock_s3.create_bucket.assert_called_once_with(
            Bucket="test-bucket",
            CreateBucketConfiguration={"LocationConstraint": "eu-west-1"},
        )

    def test_create_bucket_exception(self, client, mock_s3):
        mock_s3.create_bucket.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to create bucket"):
            client.create_bucket(bucket_spec={"Bucket": "test-bucket"})

    def test_upload_fileobj(self, client, mock_s3):
        fileobj = io.BytesIO(b"data")
        callback = MagicMock()

        client.upload_fileobj(
            bucket="test-bucket",
            object_key="test/key",
            fileobj=fileobj,
            acl="public-read",
            callback=callback,
        )

        mock_s3.upload_fileobj.assert_called_once_with(
            fileobj,
            "test-bucket",
            "test/key",
            ExtraArgs={"ACL": "public-read"},
            Callback=callback,
        )

    def test_upload_fileobj_without_extra_args(self, client, mock_s3):
        fileobj = io.BytesIO(b"data")

        client.upload_fileobj(bucket="test-bucket", object_key="test/key", fileobj=fileobj)

        call_args = mock_s3.upload_fileobj.call_args
        assert call_args[1]["ExtraArgs"] is None
        assert call_args[1]["Callback"] is None

    def test_upload_fileobj_exception(self, client, mock_s3):
        mock_s3.upload_fileobj.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to upload object"):
            client.upload_fileobj(
                bucket="test-bucket", object_key="test/key", fileobj=io.BytesIO(b"")
            )

    def test_put_object(self, client, mock_s3):
        client.put_object(
            bucket="test-bucket",
            object_key="updates.json",
            body=b"{}",
            acl="public-read",
            content_type="application/json",
        )

        mock_s3.put_object.assert_called_once_with(
            Bucket="test-bucket",
            Key="updates.json",
            Body=b"{}",
            ACL="public-read",
            ContentType="application/json",
        )

    def test_put_object_exception(self, client, mock_s3):
        mock_s3.put_object.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to put object"):
            client.put_object(bucket="test-bucket", object_key="updates.json", body=b"{}")

    def test_get_object(self, client, mock_s3):
        body = MagicMock()
        body.read.return_value = b'{"a": 1}'
        mock_s3.get_object.return_value = {"Body": body}

        assert client.get_object(bucket="test-bucket", object_key="updates.json") == b'{"a": 1}'
        mock_s3.get_object.assert_called_once_with(Bucket="test-bucket", Key="updates.json")

    def test_get_object_missing(self, client, mock_s3):
        mock_s3.get_object.side_effect = _client_error("NoSuchKey", "GetObject")

        with pytest.raises(ObjectNotFoundError):
            client.get_object(bucket="test-bucket", object_key="updates.json")

    def test_get_object_denied(self, client, mock_s3):
        mock_s3.get_object.side_effect = _client_error("AccessDenied", "GetObject")

        with pytest.raises(StorageError, match="Failed to get object") as exc_info:
            client.get_object(bucket="test-bucket", object_key="updates.json")
        assert not isinstance(exc_info.value, ObjectNotFoundError)

    def test_iter_object_keys_follows_pages(self, client, mock_s3):
        paginator = mock_s3.get_paginator.return_value
        paginator.paginate.return_value = [
            {"Contents": [{"Key": "a/1"}, {"Key": "a/2"}]},
            {},
            {"Contents": [{"Key": "b/1"}]},
        ]

        keys = list(client.iter_object_keys(bucket="test-bucket"))

        assert keys == ["a/1", "a/2", "b/1"]
        mock_s3.get_paginator.assert_called_once_with("list_objects_v2")
        paginator.paginate.assert_called_once_with(Bucket="test-bucket")

    def test_iter_object_keys_with_prefix(self, client, mock_s3):
        paginator = mock_s3.get_paginator.return_value
        paginator.paginate.return_value = []

        assert list(client.iter_object_keys(bucket="test-bucket", prefix="a/")) == []
        paginator.paginate.assert_called_once_with(Bucket="test-bucket", Prefix="a/")

    def test_iter_object_keys_exception(self, client, mock_s3):
        mock_s3.get_paginator.return_value.paginate.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to list objects"):
            list(client.iter_object_keys(bucket="test-bucket"))

    def test_delete_objects(self, client, mock_s3):
        mock_s3.delete_objects.return_value = {
            "Deleted": [{"Key": "a/1"}],
            "Errors": [{"Key": "a/2", "Code": "AccessDenied", "Message": "denied"}],
        }

        outcome = client.delete_objects(bucket="test-bucket", object_keys=["a/1", "a/2"])

        mock_s3.delete_objects.assert_called_once_with(
            Bucket="test-bucket",
            Delete={"Objects": [{"Key": "a/1"}, {"Key": "a/2"}]},
        )
        assert outcome.deleted == ["a/1"]
        assert outcome.errors == [{"Key": "a/2", "Code": "AccessDenied", "Message": "denied"}]
        assert not outcome.ok

    def test_delete_objects_batches(self, client, mock_s3):
        mock_s3.delete_objects.return_value = {}
        keys = [f"build/{i}" for i in range(MAX_DELETE_BATCH + 500)]

        outcome = client.delete_objects(bucket="test-bucket", object_keys=keys)

        assert mock_s3.delete_objects.call_count == 2
        batch_sizes = [
            len(call[1]["Delete"]["Objects"]) for call in mock_s3.delete_objects.call_args_list
        ]
        assert batch_sizes == [MAX_DELETE_BATCH, 500]
        assert outcome.ok

    def test_delete_objects_empty(self, client, mock_s3):
        outcome = client.delete_objects(bucket="test-bucket", object_keys=[])

        mock_s3.delete_objects.assert_not_called()
        assert outcome.deleted == []

    def test_delete_objects_exception(self, client, mock_s3):
        mock_s3.delete_objects.side_effect = Exception("S3 error")

        with pytest.raises(StorageError, match="Failed to delete objects"):
            client.delete_objects(bucket="test-bucket", object_keys=["a/1"])
