#!/usr/bin/env python3
"""
Tests for the S3 storage backend.

The boto3 client is replaced with a MagicMock for streaming operations, so no
bucket or network access is needed. Presigning runs against a real offline
boto3 client with dummy credentials.
"""

import os
import sys
import unittest
import uuid
from unittest.mock import MagicMock

from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError
from werkzeug.http import parse_range_header

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fileferry.services.storage import framing
from fileferry.services.storage.exceptions import (
    AccessError,
    CorruptedError,
    NotFoundError,
    StorageIOError,
)
from fileferry.services.storage.s3 import MIN_PART_SIZE, S3StorageBackend, part_size_for


class FakeBody:
    """Stands in for botocore's StreamingBody."""

    def __init__(self, data, chunk_size=5):
        self.data = data
        self.chunk_size = chunk_size
        self.closed = False

    def iter_chunks(self, chunk_size=1024):
        for i in range(0, len(self.data), self.chunk_size):
            yield self.data[i:i + self.chunk_size]

    def close(self):
        self.closed = True


def _client_error(code, status):
    return ClientError({'Error': {'Code': code}, 'ResponseMetadata': {'HTTPStatusCode': status}}, 'GetObject')


def _envelope(name, content):
    return b''.join(framing.encode(name, [content]))


class TestS3Write(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.backend = S3StorageBackend(bucket='ferry-bucket', client=self.client)
        self.uploaded = {}

        def capture(fileobj, bucket, key, ExtraArgs=None, Config=None):
            self.uploaded.update(bucket=bucket, key=key, data=fileobj.read(), config=Config, extra=ExtraArgs)

        self.client.upload_fileobj.side_effect = capture

    def test_streams_envelope_into_new_object(self):
        file_id = self.backend.write('report.pdf', [b'%PDF', b'-1.7'], length=8)

        self.assertEqual(self.uploaded['bucket'], 'ferry-bucket')
        self.assertEqual(self.uploaded['key'], str(file_id))
        self.assertEqual(self.uploaded['data'], _envelope('report.pdf', b'%PDF-1.7'))
        self.assertEqual(self.uploaded['extra'], {'ContentType': 'application/octet-stream'})
        self.assertFalse(self.uploaded['config'].use_threads)

    def test_total_length_sizes_multipart_parts(self):
        huge = 200 * 1024 ** 3
        self.backend.write('big.iso', [b'x'], length=huge)
        expected = -(-(huge + framing.header_length('big.iso')) // 10000)
        self.assertEqual(self.uploaded['config'].multipart_chunksize, expected)

    def test_client_errors_become_storage_errors(self):
        self.client.upload_fileobj.side_effect = _client_error('AccessDenied', 403)
        with self.assertRaises(StorageIOError):
            self.backend.write('a', [b'b'])

    def test_body_errors_propagate_unchanged(self):
        from fileferry.services.storage.exceptions import ContentReadError

        def broken():
            yield b'x'
            raise ContentReadError()

        with self.assertRaises(ContentReadError):
            self.backend.write('a', broken())


class TestS3Read(unittest.TestCase):

    def setUp(self):
        self.client = MagicMock()
        self.backend = S3StorageBackend(bucket='ferry-bucket', client=self.client)
        self.file_id = uuid.uuid4()

    def test_decodes_header_and_forwards_remainder(self):
        data = _envelope('photo.jpg', b'\xff\xd8 jpeg bytes')
        body = FakeBody(data, chunk_size=3)
        self.client.get_object.return_value = {'Body': body, 'ContentLength': len(data)}

        stored = self.backend.read(self.file_id)

        self.client.get_object.assert_called_once_with(Bucket='ferry-bucket', Key=str(self.file_id))
        self.assertEqual(stored.name, 'photo.jpg')
        self.assertEqual(stored.length, len(b'\xff\xd8 jpeg bytes'))
        self.assertEqual(b''.join(stored.stream), b'\xff\xd8 jpeg bytes')
        self.assertTrue(body.closed)

    def test_unknown_length_stays_absent(self):
        data = _envelope('a', b'bc')
        self.client.get_object.return_value = {'Body': FakeBody(data)}
        stored = self.backend.read(self.file_id)
        self.assertIsNone(stored.length)
        self.assertEqual(b''.join(stored.stream), b'bc')

    def test_missing_object_is_not_found(self):
        self.client.get_object.side_effect = _client_error('NoSuchKey', 404)
        with self.assertRaises(NotFoundError):
            self.backend.read(self.file_id)

    def test_other_errors_are_storage_errors(self):
        self.client.get_object.side_effect = _client_error('InternalError', 500)
        with self.assertRaises(StorageIOError):
            self.backend.read(self.file_id)

        self.client.get_object.side_effect = EndpointConnectionError(endpoint_url='https://s3.example')
        with self.assertRaises(StorageIOError):
            self.backend.read(self.file_id)

    def test_bad_header_is_corrupted_and_closes_body(self):
        body = FakeBody(b'\x00\x00\x00\x00\x00\x00\x00\x02\xff\xffrest')
        self.client.get_object.return_value = {'Body': body, 'ContentLength': 14}
        with self.assertRaises(CorruptedError):
            self.backend.read(self.file_id)
        self.assertTrue(body.closed)

    def test_byte_range_uses_second_ranged_request(self):
        data = _envelope('r.txt', b'0123456789')
        header = framing.header_length('r.txt')
        first = FakeBody(data)
        ranged = FakeBody(b'2345')
        self.client.get_object.side_effect = [
            {'Body': first, 'ContentLength': len(data)},
            {'Body': ranged, 'ContentLength': 4},
        ]

        stored = self.backend.read(self.file_id, parse_range_header('bytes=2-5'))

        self.assertTrue(first.closed)
        self.assertEqual(self.client.get_object.call_args.kwargs['Range'], f"bytes={header + 2}-{header + 5}")
        self.assertEqual(b''.join(stored.stream), b'2345')
        self.assertEqual(stored.length, 10)


class TestS3Presign(unittest.TestCase):

    def setUp(self):
        self.backend = S3StorageBackend(
            bucket='ferry-bucket',
            region='us-east-1',
            access_key_id='AKIDEXAMPLE',
            secret_access_key='wJalrXUtnFEMI/K7MDENG+bPxRfiCYEXAMPLEKEY',
        )
        self.file_id = uuid.uuid4()

    def test_download_url_carries_response_overrides(self):
        url = self.backend.presign_download_url(
            self.file_id, 1800,
            response_content_type='text/plain',
            response_content_disposition='attachment; filename="x.txt"',
        )
        self.assertIn(f"ferry-bucket", url)
        self.assertIn(str(self.file_id), url)
        self.assertIn('X-Amz-Expires=1800', url)
        self.assertIn('response-content-type=text%2Fplain', url)
        self.assertIn('response-content-disposition=', url)

    def test_upload_url_is_presigned_put(self):
        url = self.backend.presign_upload_url(self.file_id, 600, content_length=42)
        self.assertIn('X-Amz-Signature=', url)
        self.assertIn('X-Amz-Expires=600', url)

    def test_signing_failure_is_access_error(self):
        client = MagicMock()
        client.generate_presigned_url.side_effect = NoCredentialsError()
        backend = S3StorageBackend(bucket='ferry-bucket', client=client)
        with self.assertRaises(AccessError):
            backend.presign_upload_url(self.file_id, 600)
        with self.assertRaises(AccessError):
            backend.presign_download_url(self.file_id, 600)

    def test_upload_params(self):
        client = MagicMock()
        client.generate_presigned_url.return_value = 'https://signed'
        backend = S3StorageBackend(bucket='ferry-bucket', client=client)
        self.assertEqual(backend.presign_upload_url(self.file_id, 1800, content_length=7), 'https://signed')
        client.generate_presigned_url.assert_called_once_with(
            'put_object',
            Params={'Bucket': 'ferry-bucket', 'Key': str(self.file_id), 'ContentLength': 7},
            ExpiresIn=1800,
        )


def test_part_size_for():
    assert part_size_for(None) == MIN_PART_SIZE
    assert part_size_for(10) == MIN_PART_SIZE
    assert part_size_for(MIN_PART_SIZE * 10000 + 1) == MIN_PART_SIZE + 1


if __name__ == '__main__':
    unittest.main()
