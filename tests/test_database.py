"""
Unit tests for database.DocumentStore with mocked boto3 clients.
"""
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from database import DocumentStore, decode_cursor, encode_cursor, split_s3_url
from docscan import DocScanError, SavedDocument, UploadError


@pytest.fixture
def dynamodb():
    resource = MagicMock()
    resource.Table.return_value = MagicMock()
    return resource


@pytest.fixture
def s3():
    return MagicMock()


@pytest.fixture
def store(dynamodb, s3):
    return DocumentStore(table_name="Docs", bucket_name="docs-bucket", dynamodb=dynamodb, s3=s3)


def client_error(code="InternalError"):
    return ClientError({"Error": {"Code": code, "Message": "boom"}}, "Operation")


class TestUpload:
    """Tests for S3 uploads."""

    def test_keys_and_urls(self, store, s3):
        urls = store.upload("user-1", "scan.png", b"orig", [b"p0", b"p1"])

        keys = [call.kwargs["Key"] for call in s3.put_object.call_args_list]
        assert keys[0].startswith("users/user-1/original/")
        assert keys[0].endswith("_scan.png")
        assert keys[1].startswith("users/user-1/processed/")
        assert keys[1].endswith("_0_scan.png")
        assert keys[2].endswith("_1_scan.png")
        assert s3.put_object.call_args_list[0].kwargs["ContentType"] == "image/png"
        assert urls.original_url == f"s3://docs-bucket/{keys[0]}"
        assert len(urls.processed_urls) == 2

    def test_failure_raises_upload_error(self, store, s3):
        s3.put_object.side_effect = client_error()
        with pytest.raises(UploadError):
            store.upload("user-1", "scan.png", b"orig", [b"p0"])


class TestMetadata:
    """Tests for DynamoDB records."""

    def test_save_metadata(self, store):
        document_id = store.save_metadata(
            "user-1", "scan.png", "s3://b/o", ["s3://b/p"], {"confidence": 0.8, "corners": [[1, 2]]}
        )
        item = store.table.put_item.call_args.kwargs["Item"]
        assert item["owner_id"] == "user-1"
        assert item["document_id"] == document_id
        assert item["status"] == "completed"
        assert item["metadata"]["confidence"] == Decimal("0.8")

    def test_save_metadata_failure(self, store):
        store.table.put_item.side_effect = client_error()
        with pytest.raises(UploadError):
            store.save_metadata("user-1", "scan.png", "s3://b/o", [])

    def test_list_documents_pages(self, store):
        store.table.query.return_value = {
            "Items": [
                {
                    "document_id": "2024#b",
                    "filename": "b.png",
                    "original_url": "s3://b/o",
                    "processed_urls": ["s3://b/p"],
                    "status": "completed",
                    "created_at": "2024-01-02",
                    "metadata": {"confidence": Decimal("0.5"), "dimensions": {"width": Decimal("10")}},
                },
                {"document_id": "2024#a", "status": "deleted"},
            ],
            "LastEvaluatedKey": {"owner_id": "user-1", "document_id": "2024#b"},
        }

        page = store.list_documents("user-1", limit=1)

        kwargs = store.table.query.call_args.kwargs
        assert kwargs["ScanIndexForward"] is False
        assert kwargs["Limit"] == 1
        assert "ExclusiveStartKey" not in kwargs
        assert [d.filename for d in page.documents] == ["b.png"]
        assert page.documents[0].metadata == {"confidence": 0.5, "dimensions": {"width": 10}}
        assert page.has_more
        assert decode_cursor(page.next_cursor) == {"owner_id": "user-1", "document_id": "2024#b"}

        store.table.query.return_value = {"Items": []}
        last = store.list_documents("user-1", limit=1, cursor=page.next_cursor)
        assert store.table.query.call_args.kwargs["ExclusiveStartKey"]["document_id"] == "2024#b"
        assert not last.has_more
        assert last.next_cursor is None

    def test_list_failure(self, store):
        store.table.query.side_effect = client_error()
        with pytest.raises(DocScanError):
            store.list_documents("user-1")

    def test_delete_document(self, store, s3):
        document = SavedDocument(
            document_id="d1",
            filename="a.png",
            original_url="s3://docs-bucket/o",
            processed_urls=["s3://docs-bucket/p"],
            status="completed",
            created_at="now",
        )
        assert store.delete_document("user-1", document)
        assert s3.delete_object.call_count == 2
        assert store.table.update_item.call_args.kwargs["Key"] == {"owner_id": "user-1", "document_id": "d1"}


class TestHelpers:
    """Tests for cursor and URL helpers."""

    def test_cursor_round_trip(self):
        key = {"owner_id": "u", "document_id": "x"}
        assert decode_cursor(encode_cursor(key)) == key
        assert encode_cursor(None) is None
        assert decode_cursor(None) is None

    def test_invalid_cursor(self):
        with pytest.raises(DocScanError):
            decode_cursor("not base64 json!")

    def test_split_s3_url(self):
        assert split_s3_url("s3://bucket/users/u/a.png") == ("bucket", "users/u/a.png")
        with pytest.raises(ValueError):
            split_s3_url("https://bucket/a.png")

    def test_presigned_url(self, store, s3):
        s3.generate_presigned_url.return_value = "https://signed"
        assert store.presigned_url("s3://docs-bucket/k") == "https://signed"
        assert store.presigned_url("not-s3") is None

    def test_create_resources_when_missing(self, store, dynamodb, s3):
        store.table.load.side_effect = client_error("ResourceNotFoundException")
        s3.head_bucket.side_effect = client_error("404")
        assert store.create_resources_if_not_exists()
        assert dynamodb.create_table.call_args.kwargs["TableName"] == "Docs"
        s3.create_bucket.assert_called_once_with(Bucket="docs-bucket")
