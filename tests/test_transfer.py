import io

import pytest

from ftpsession import TransferError, TransferListener, TransferType
from ftpsession.core.transfer import (NetASCIIDecoder, NetASCIIEncoder, Transfer,
                                      TransferDirection, TransferStatus, receive_all,
                                      receive_stream, send_stream)


class FakeDataConnection:
    """Stands in for DataConnection: records sends, replays chunks on recv"""

    def __init__(self, chunks=()):
        self.sent = []
        self.chunks = list(chunks)

    def send_data(self, data):
        self.sent.append(data)

    def recv_data(self, buffer_size=8192):
        return self.chunks.pop(0) if self.chunks else b''


class BrokenStream(io.RawIOBase):
    def readable(self):
        return True

    def read(self, size=-1):
        raise OSError("disk gone")


def _encode(chunks):
    encoder = NetASCIIEncoder()
    return b''.join(encoder.convert(c) for c in chunks) + encoder.flush()


def _decode(chunks, sep=b'\n'):
    decoder = NetASCIIDecoder(sep)
    return b''.join(decoder.convert(c) for c in chunks) + decoder.flush()


def test_encoder_converts_bare_lf():
    assert _encode([b'a\nb\n']) == b'a\r\nb\r\n'


def test_encoder_leaves_crlf_alone():
    assert _encode([b'a\r\nb']) == b'a\r\nb'


def test_encoder_crlf_split_across_chunks():
    assert _encode([b'a\r', b'\nb\n']) == b'a\r\nb\r\n'


def test_decoder_converts_crlf():
    assert _decode([b'one\r\ntwo\r\n']) == b'one\ntwo\n'
    assert _decode([b'one\r\n'], sep=b'\r\n') == b'one\r\n'


def test_decoder_crlf_split_across_chunks():
    assert _decode([b'one\r', b'\ntwo']) == b'one\ntwo'


def test_decoder_keeps_lone_cr():
    assert _decode([b'a\rb', b'c\r']) == b'a\rbc\r'


def test_send_stream_counts_source_bytes():
    conn = FakeDataConnection()
    transfer = Transfer(TransferDirection.UPLOAD, 'f', TransferType.ASCII)
    send_stream(io.BytesIO(b'x\ny\n'), conn, transfer, buffer_size=2, codec=NetASCIIEncoder())
    assert b''.join(conn.sent) == b'x\r\ny\r\n'
    assert transfer.bytes_transferred == 4


def test_send_stream_rejects_text_source():
    transfer = Transfer(TransferDirection.UPLOAD, 'f', TransferType.BINARY)
    with pytest.raises(TransferError):
        send_stream(io.StringIO('text'), FakeDataConnection(), transfer)


def test_send_stream_local_read_failure():
    transfer = Transfer(TransferDirection.UPLOAD, 'f', TransferType.BINARY)
    with pytest.raises(TransferError):
        send_stream(BrokenStream(), FakeDataConnection(), transfer)


def test_receive_stream_reads_to_eof_and_notifies():
    events = []

    class Recorder(TransferListener):
        def bytes_transferred(self, event):
            events.append((event.total_bytes_transferred, event.bytes_transferred, event.stream_size))

    conn = FakeDataConnection([b'abc', b'de'])
    sink = io.BytesIO()
    transfer = Transfer(TransferDirection.DOWNLOAD, 'f', TransferType.BINARY)
    receive_stream(conn, sink, transfer, listener=Recorder())

    assert sink.getvalue() == b'abcde'
    assert transfer.bytes_transferred == 5
    assert events == [(3, 3, -1), (5, 2, -1)]


def test_receive_all():
    assert receive_all(FakeDataConnection([b'a', b'b', b'c'])) == b'abc'
    assert receive_all(FakeDataConnection()) == b''


def test_transfer_finish():
    transfer = Transfer(TransferDirection.DOWNLOAD, 'f', TransferType.BINARY)
    assert transfer.status is TransferStatus.RUNNING
    transfer.bytes_transferred = 100
    transfer.finish(True)
    assert transfer.status is TransferStatus.COMPLETED
    assert transfer.elapsed >= 0
    assert transfer.speed >= 0
