"""
DynamoDB + S3 durable store for finalized documents.
Original and processed images are stored in S3, metadata in DynamoDB.
"""

import base64
import json
import logging
import mimetypes
import time
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import BotoCoreError, ClientError

from docscan.collaborators import DocumentPage, SavedDocument, StoredUrls
from docscan.errors import DocScanError, UploadError

logger = logging.getLogger(__name__)


def encode_cursor(last_key: Optional[Dict[str, Any]]) -> Optional[str]:
    """Opaque pagination cursor for a DynamoDB ``LastEvaluatedKey``."""
    if not last_key:
        return None
    raw = json.dumps(last_key, sort_keys=True, default=str).encode('utf-8')
    return base64.urlsafe_b64encode(raw).decode('ascii')


def decode_cursor(cursor: Optional[str]) -> Optional[Dict[str, Any]]:
    if not cursor:
        return None
    try:
        return json.loads(base64.urlsafe_b64decode(cursor.encode('ascii')))
    except (ValueError, UnicodeError) as exc:
        raise DocScanError(f"Invalid cursor: {cursor}") from exc


def _to_dynamo(value: Any) -> Any:
    """DynamoDB rejects floats; store them as Decimal."""
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, dict):
        return {k: _to_dynamo(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_dynamo(v) for v in value]
    return value


def _from_dynamo(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    if isinstance(value, dict):
        return {k: _from_dynamo(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_from_dynamo(v) for v in value]
    return value


def split_s3_url(url: str) -> Tuple[str, str]:
    """Split ``s3://bucket/key`` into (bucket, key)."""
    if not url.startswith('s3://'):
        raise ValueError(f"Not an S3 URL: {url}")
    bucket, _, key = url[len('s3://'):].partition('/')
    return bucket, key


class DocumentStore:
    """Handles all DynamoDB + S3 operations for document storage."""

    def __init__(
        self,
        table_name: str = "DocScanDocuments",
        bucket_name: Optional[str] = None,
        region_name: str = "us-east-1",
        aws_access_key_id: Optional[str] = None,
        aws_secret_access_key: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        dynamodb=None,
        s3=None,
    ):
        """
        Initialize DynamoDB and S3 connections.

        Args:
            table_name: Name of the DynamoDB table
            bucket_name: Name of the S3 bucket (defaults to table_name + '-files')
            region_name: AWS region
            aws_access_key_id: AWS access key (optional, uses env vars if not provided)
            aws_secret_access_key: AWS secret key (optional, uses env vars if not provided)
            endpoint_url: Custom endpoint (e.g. a local DynamoDB/S3 emulator)
            dynamodb: Pre-built DynamoDB resource (tests)
            s3: Pre-built S3 client (tests)
        """
        self.table_name = table_name
        self.bucket_name = bucket_name or f"{table_name.lower()}-files"
        self.region_name = region_name

        session_kwargs = {'region_name': region_name}
        if aws_access_key_id and aws_secret_access_key:
            session_kwargs['aws_access_key_id'] = aws_access_key_id
            session_kwargs['aws_secret_access_key'] = aws_secret_access_key
        if endpoint_url:
            session_kwargs['endpoint_url'] = endpoint_url

        self.dynamodb = dynamodb or boto3.resource('dynamodb', **session_kwargs)
        self.s3 = s3 or boto3.client('s3', **session_kwargs)
        self.table = self.dynamodb.Table(table_name)

    def create_resources_if_not_exists(self) -> bool:
        """
        Create the documents table and S3 bucket if they don't exist.

        Returns:
            True if anything was created, False if everything already existed
        """
        created = False

        try:
            self.table.load()
        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceNotFoundException':
                raise
            table = self.dynamodb.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {'AttributeName': 'owner_id', 'KeyType': 'HASH'},
                    {'AttributeName': 'document_id', 'KeyType': 'RANGE'},
                ],
                AttributeDefinitions=[
                    {'AttributeName': 'owner_id', 'AttributeType': 'S'},
                    {'AttributeName': 'document_id', 'AttributeType': 'S'},
                ],
                BillingMode='PAY_PER_REQUEST'
            )
            table.wait_until_exists()
            self.table = table
            created = True
            logger.info("Created DynamoDB table %s", self.table_name)

        try:
            self.s3.head_bucket(Bucket=self.bucket_name)
        except ClientError as e:
            if e.response['Error']['Code'] not in ('404', 'NoSuchBucket'):
                raise
            if self.region_name == 'us-east-1':
                self.s3.create_bucket(Bucket=self.bucket_name)
            else:
                self.s3.create_bucket(
                    Bucket=self.bucket_name,
                    CreateBucketConfiguration={'LocationConstraint': self.region_name}
                )
            created = True
            logger.info("Created S3 bucket %s", self.bucket_name)

        return created

    def _put_object(self, key: str, data: bytes, filename: str) -> str:
        content_type = mimetypes.guess_type(filename)[0] or 'application/octet-stream'
        self.s3.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=data,
            ContentType=content_type
        )
        return f"s3://{self.bucket_name}/{key}"

    def upload(
        self,
        owner_id: str,
        filename: str,
        original: bytes,
        processed: List[bytes],
    ) -> StoredUrls:
        """
        Upload the original file and its processed images.

        Returns:
            S3 locations of the original and each processed image

        Raises:
            UploadError: If any object could not be written
        """
        stamp = int(time.time() * 1000)
        try:
            original_url = self._put_object(
                f"users/{owner_id}/original/{stamp}_{filename}", original, filename
            )
            processed_urls = [
                self._put_object(
                    f"users/{owner_id}/processed/{stamp}_{i}_{filename}", data, filename
                )
                for i, data in enumerate(processed)
            ]
        except (ClientError, BotoCoreError) as e:
            logger.error("Upload of %s failed: %s", filename, e)
            raise UploadError('Failed to upload images') from e

        return StoredUrls(original_url=original_url, processed_urls=processed_urls)

    def save_metadata(
        self,
        owner_id: str,
        filename: str,
        original_url: str,
        processed_urls: List[str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Record a saved document.

        Returns:
            The new document id
        """
        created_at = datetime.now(timezone.utc).isoformat()
        # Sortable ids keep newest-first queries on the range key
        document_id = f"{created_at}#{uuid.uuid4().hex[:8]}"
        item = {
            'owner_id': owner_id,
            'document_id': document_id,
            'filename': filename,
            'original_url': original_url,
            'processed_urls': list(processed_urls),
            'status': 'completed',
            'created_at': created_at,
            'metadata': _to_dynamo(metadata or {}),
        }
        try:
            self.table.put_item(Item=item)
        except (ClientError, BotoCoreError) as e:
            logger.error("Metadata save for %s failed: %s", filename, e)
            raise UploadError('Failed to save document metadata') from e
        return document_id

    def list_documents(
        self, owner_id: str, limit: int = 20, cursor: Optional[str] = None
    ) -> DocumentPage:
        """
        One page of an owner's saved documents, newest first.

        Args:
            owner_id: Owner whose documents to list
            limit: Page size
            cursor: Cursor from a previous page

        Returns:
            The page, whether more exist, and the cursor for the next page
        """
        kwargs = {
            'KeyConditionExpression': Key('owner_id').eq(owner_id),
            'ScanIndexForward': False,
            'Limit': limit,
        }
        start_key = decode_cursor(cursor)
        if start_key:
            kwargs['ExclusiveStartKey'] = start_key

        try:
            response = self.table.query(**kwargs)
        except (ClientError, BotoCoreError) as e:
            raise DocScanError('Failed to fetch documents') from e

        documents = [
            SavedDocument(
                document_id=item['document_id'],
                filename=item.get('filename', ''),
                original_url=item.get('original_url', ''),
                processed_urls=list(item.get('processed_urls', [])),
                status=item.get('status', ''),
                created_at=item.get('created_at', ''),
                metadata=_from_dynamo(item.get('metadata', {})),
            )
            for item in response.get('Items', [])
            if item.get('status') != 'deleted'
        ]
        last_key = response.get('LastEvaluatedKey')
        return DocumentPage(
            documents=documents,
            has_more=last_key is not None,
            next_cursor=encode_cursor(last_key),
        )

    def delete_document(self, owner_id: str, document: SavedDocument) -> bool:
        """
        Delete a document's objects from S3 and mark its record deleted.

        Returns:
            True if successful
        """
        try:
            for url in [document.original_url, *document.processed_urls]:
                if url.startswith('s3://'):
                    bucket, key = split_s3_url(url)
                    self.s3.delete_object(Bucket=bucket, Key=key)

            self.table.update_item(
                Key={'owner_id': owner_id, 'document_id': document.document_id},
                UpdateExpression='SET #status = :status, #deleted_at = :deleted_at',
                ExpressionAttributeNames={'#status': 'status', '#deleted_at': 'deleted_at'},
                ExpressionAttributeValues={
                    ':status': 'deleted',
                    ':deleted_at': datetime.now(timezone.utc).isoformat(),
                }
            )
            return True
        except (ClientError, BotoCoreError) as e:
            logger.warning("Delete of %s failed: %s", document.document_id, e)
            return False

    def presigned_url(self, url: str, expires_in: int = 3600) -> Optional[str]:
        """
        Get a temporary HTTP URL for an ``s3://`` location.

        Returns:
            Pre-signed URL or None
        """
        try:
            bucket, key = split_s3_url(url)
            return self.s3.generate_presigned_url(
                'get_object',
                Params={'Bucket': bucket, 'Key': key},
                ExpiresIn=expires_in
            )
        except (ClientError, ValueError):
            return None
