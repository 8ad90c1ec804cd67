#!/usr/bin/env python3
"""
Tests for the envelope framing codec.

Covers header encoding, decoding across arbitrary chunk boundaries, replay of
over-read bytes, and the corruption / truncation failure modes.
"""

import os
import struct
import sys
import unittest
from unittest.mock import MagicMock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fileferry.services.storage import framing
from fileferry.services.storage.exceptions import ContentReadError, CorruptedError


def _rechunk(data, size):
    return [data[i:i + size] for i in range(0, len(data), size)]


class TestEncode(unittest.TestCase):

    def test_header_then_content_chunks_in_order(self):
        chunks = list(framing.encode('notes.txt', [b'abc', b'def']))
        self.assertEqual(chunks[0], struct.pack('>Q', 9) + b'notes.txt')
        self.assertEqual(chunks[1:], [b'abc', b'def'])

    def test_name_length_counts_utf8_bytes(self):
        header = framing.encode_header('päivä.txt')
        (length,) = struct.unpack('>Q', header[:8])
        self.assertEqual(length, len('päivä.txt'.encode('utf-8')))
        self.assertEqual(framing.header_length('päivä.txt'), len(header))

    def test_encode_is_lazy(self):
        def content():
            yield b'first'
            raise AssertionError('content consumed eagerly')

        stream = framing.encode('a', content())
        self.assertEqual(next(stream), framing.encode_header('a'))
        self.assertEqual(next(stream), b'first')

    def test_empty_chunks_are_dropped(self):
        self.assertEqual(list(framing.encode('', [b'', b'x', b''])), [b'\x00' * 8, b'x'])


class TestDecode(unittest.TestCase):

    NAME = 'quarterly report – final.pdf'
    CONTENT = bytes(range(256)) * 5

    def _encoded(self):
        return b''.join(framing.encode(self.NAME, [self.CONTENT]))

    def test_round_trip_across_chunk_sizes(self):
        encoded = self._encoded()
        for size in (1, 2, 3, 7, 8, 9, 13, 40, 64, 1000, len(encoded)):
            with self.subTest(chunk_size=size):
                name, content = framing.decode(_rechunk(encoded, size))
                self.assertEqual(name, self.NAME)
                self.assertEqual(b''.join(content), self.CONTENT)

    def test_round_trip_with_uneven_chunks(self):
        encoded = self._encoded()
        sizes = [3, 1, 17, 5, 2, 200, 9, 1]
        chunks, pos, i = [], 0, 0
        while pos < len(encoded):
            step = sizes[i % len(sizes)]
            chunks.append(encoded[pos:pos + step])
            pos += step
            i += 1
        name, content = framing.decode(chunks)
        self.assertEqual(name, self.NAME)
        self.assertEqual(b''.join(content), self.CONTENT)

    def test_over_read_bytes_are_replayed_first(self):
        header = framing.encode_header('a.bin')
        name, content = framing.decode([header + b'head', b'tail'])
        self.assertEqual(name, 'a.bin')
        self.assertEqual(list(content), [b'head', b'tail'])

    def test_empty_name_and_empty_content(self):
        name, content = framing.decode([framing.encode_header('')])
        self.assertEqual(name, '')
        self.assertEqual(list(content), [])

    def test_content_is_not_consumed_by_decode(self):
        source = iter([framing.encode_header('x'), b'1', b'2'])
        name, content = framing.decode(source)
        self.assertEqual(next(source), b'1')
        self.assertEqual(list(content), [b'2'])

    def test_truncated_prefix_is_content_read_error(self):
        with self.assertRaises(ContentReadError):
            framing.decode([b'\x00\x00\x00'])

    def test_truncated_name_is_content_read_error(self):
        with self.assertRaises(ContentReadError):
            framing.decode([struct.pack('>Q', 10), b'short'])

    def test_invalid_utf8_name_is_corrupted(self):
        with self.assertRaises(CorruptedError):
            framing.decode([struct.pack('>Q', 2), b'\xff\xfe', b'data'])

    def test_name_longer_than_object_is_corrupted(self):
        with self.assertRaises(CorruptedError):
            framing.decode([struct.pack('>Q', 2 ** 40), b'data'], available=12)


class TestChunkReader(unittest.TestCase):

    def test_read_exactly_spans_chunks_and_tracks_consumed(self):
        reader = framing.ChunkReader([b'ab', b'cde', b'f'])
        self.assertEqual(reader.read_exactly(4), b'abcd')
        self.assertEqual(reader.consumed, 4)
        self.assertEqual(list(reader.remainder()), [b'e', b'f'])

    def test_read_zero_bytes(self):
        reader = framing.ChunkReader([])
        self.assertEqual(reader.read_exactly(0), b'')


class TestSkipAndTake(unittest.TestCase):

    def test_window_inside_chunks(self):
        chunks = [b'0123', b'4567', b'89']
        self.assertEqual(b''.join(framing.skip_and_take(chunks, 3, 4)), b'3456')

    def test_skip_only(self):
        self.assertEqual(b''.join(framing.skip_and_take([b'abc', b'def'], 4)), b'ef')

    def test_take_stops_pulling_source(self):
        def source():
            yield b'abcd'
            raise AssertionError('read past the window')

        self.assertEqual(list(framing.skip_and_take(source(), 1, 2)), [b'bc'])


class TestClosingStream(unittest.TestCase):

    def test_closes_on_exhaustion_once(self):
        close = MagicMock()
        stream = framing.ClosingStream(iter([b'a']), close)
        self.assertEqual(list(stream), [b'a'])
        stream.close()
        close.assert_called_once()

    def test_explicit_close(self):
        close = MagicMock()
        stream = framing.ClosingStream(iter([b'a', b'b']), close)
        next(stream)
        stream.close()
        close.assert_called_once()


if __name__ == '__main__':
    unittest.main()
