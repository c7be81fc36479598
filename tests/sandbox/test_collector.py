"""Tests for output demultiplexing."""

from collections.abc import AsyncIterator

from codebox.sandbox.collector import STDERR, STDIN, STDOUT, FrameDemuxer, StreamCollector, encode_frame


async def _chunks(data: bytes, size: int) -> AsyncIterator[bytes]:
    for offset in range(0, len(data), size):
        yield data[offset : offset + size]


class TestFrameDemuxer:
    def test_header_layout(self) -> None:
        frame = encode_frame(STDERR, b"abc")
        assert frame[:8] == bytes([2, 0, 0, 0, 0, 0, 0, 3])
        assert frame[8:] == b"abc"

    def test_packed_frames_in_one_chunk(self) -> None:
        demuxer = FrameDemuxer()
        data = encode_frame(STDOUT, b"one") + encode_frame(STDERR, b"two")
        assert list(demuxer.feed(data)) == [(STDOUT, b"one"), (STDERR, b"two")]
        assert demuxer.pending == 0

    def test_frame_split_across_chunks(self) -> None:
        demuxer = FrameDemuxer()
        data = encode_frame(STDOUT, b"hello world")
        assert list(demuxer.feed(data[:5])) == []
        assert list(demuxer.feed(data[5:12])) == []
        assert list(demuxer.feed(data[12:])) == [(STDOUT, b"hello world")]

    def test_empty_payload(self) -> None:
        assert list(FrameDemuxer().feed(encode_frame(STDOUT, b""))) == [(STDOUT, b"")]


class TestStreamCollector:
    async def test_interleaved_streams_reconstructed_at_any_chunking(self) -> None:
        frames = []
        expected_out = bytearray()
        expected_err = bytearray()
        for i in range(50):
            out = f"out {i}\n".encode()
            err = f"err {i}\n".encode()
            frames.append(encode_frame(STDOUT, out))
            frames.append(encode_frame(STDERR, err))
            expected_out.extend(out)
            expected_err.extend(err)
        data = b"".join(frames)

        for size in (1, 3, 7, 8, 9, 64, len(data)):
            collector = StreamCollector()
            await collector.consume(_chunks(data, size))
            assert bytes(collector.stdout) == bytes(expected_out)
            assert bytes(collector.stderr) == bytes(expected_err)

    async def test_render_decodes_and_strips(self) -> None:
        collector = StreamCollector()
        collector.feed(encode_frame(STDOUT, "  naïve\n\n".encode()))
        collector.feed(encode_frame(STDERR, b"\n warning \n"))
        assert collector.render() == ("naïve", "warning")

    async def test_invalid_utf8_replaced(self) -> None:
        collector = StreamCollector()
        collector.feed(encode_frame(STDOUT, b"ok \xff"))
        stdout, _ = collector.render()
        assert stdout == "ok �"

    async def test_stdin_frames_ignored(self) -> None:
        collector = StreamCollector()
        collector.feed(encode_frame(STDIN, b"echo"))
        assert collector.render() == ("", "")

    async def test_truncated_trailing_frame_dropped(self) -> None:
        data = encode_frame(STDOUT, b"complete") + encode_frame(STDOUT, b"partial")[:-3]
        collector = StreamCollector()
        await collector.consume(_chunks(data, 4))
        assert collector.render() == ("complete", "")
