"""
Transfer module
Transfer settings, progress reporting and the byte pumps used by the
data connection, including ASCII line-ending translation
"""

import os
import re
import time
from enum import Enum

from .errors import TransferError


class TransferType(Enum):
    """Representation type sent with TYPE"""
    ASCII = "A"
    BINARY = "I"


class ConnectionMode(Enum):
    """Which side opens the data connection"""
    ACTIVE = "active"
    PASSIVE = "passive"


class TransferDirection(Enum):
    """Direction of a file transfer"""
    DOWNLOAD = "download"
    UPLOAD = "upload"
    APPEND = "append"


class TransferStatus(Enum):
    """Status of a transfer"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class Transfer:
    """Represents a single file transfer"""

    def __init__(self, direction, remote_path, transfer_type, offset=0):
        """
        Initialize transfer

        Args:
            direction: TransferDirection enum value
            remote_path: Remote file path
            transfer_type: TransferType in effect when the transfer started
            offset: Starting byte offset (REST marker)
        """
        self.direction = direction
        self.remote_path = remote_path
        self.transfer_type = transfer_type
        self.offset = offset

        self.status = TransferStatus.RUNNING
        self.bytes_transferred = 0
        self.start_time = time.monotonic()
        self.end_time = None
        self.reply = None

    @property
    def elapsed(self):
        end = self.end_time if self.end_time is not None else time.monotonic()
        return end - self.start_time

    @property
    def speed(self):
        """Get transfer speed in bytes/second"""
        elapsed = self.elapsed
        if elapsed > 0:
            return self.bytes_transferred / elapsed
        return 0

    def finish(self, success, reply=None):
        self.status = TransferStatus.COMPLETED if success else TransferStatus.FAILED
        self.reply = reply
        self.end_time = time.monotonic()

    def __repr__(self):
        return (f"Transfer({self.direction.value} {self.remote_path!r}, "
                f"{self.bytes_transferred} bytes, {self.status.value})")


class CopyStreamEvent:
    """Progress notification for one chunk of a data transfer"""

    def __init__(self, total_bytes_transferred, bytes_transferred, stream_size):
        self.total_bytes_transferred = total_bytes_transferred
        self.bytes_transferred = bytes_transferred
        # -1 when the size is not known up front
        self.stream_size = stream_size


class TransferListener:
    """
    Observer notified as bytes move across a data connection

    Subclasses override bytes_transferred(). Listeners only observe; an
    exception raised from a listener aborts the transfer like any I/O error.
    """

    def bytes_transferred(self, event):
        pass


_BARE_LF = re.compile(rb'(?<!\r)\n')


class NetASCIIEncoder:
    """Incrementally convert local line endings to CRLF for ASCII uploads"""

    def __init__(self):
        self._last_cr = False

    def convert(self, data):
        if not data:
            return data
        converted = _BARE_LF.sub(b'\r\n', data)
        if self._last_cr and data[:1] == b'\n':
            # the CR of this CRLF arrived at the end of the previous chunk
            converted = converted[1:]
        self._last_cr = data[-1:] == b'\r'
        return converted

    def flush(self):
        return b''


class NetASCIIDecoder:
    """Incrementally convert CRLF to the local line separator for ASCII downloads"""

    def __init__(self, line_separator=None):
        self.line_separator = line_separator or os.linesep.encode('ascii')
        self._pending = b''

    def convert(self, data):
        data = self._pending + data
        self._pending = b''
        if data.endswith(b'\r'):
            self._pending = b'\r'
            data = data[:-1]
        return data.replace(b'\r\n', self.line_separator)

    def flush(self):
        pending, self._pending = self._pending, b''
        return pending


def _notify(listener, transfer, chunk_len, stream_size):
    if listener is not None:
        listener.bytes_transferred(
            CopyStreamEvent(transfer.bytes_transferred, chunk_len, stream_size))


def send_stream(source, data_conn, transfer, buffer_size=8192, codec=None,
                listener=None, stream_size=-1):
    """
    Pump a local binary stream into the data connection

    Args:
        source: Object with read(size) returning bytes
        data_conn: Open DataConnection
        transfer: Transfer record updated with the byte count
        buffer_size: Chunk size
        codec: NetASCIIEncoder for ASCII mode, None for binary
        listener: Optional TransferListener
        stream_size: Expected size for progress reporting, -1 if unknown
    """
    while True:
        try:
            chunk = source.read(buffer_size)
        except OSError as e:
            raise TransferError(f"Error reading local stream: {e}")
        if not chunk:
            break
        if isinstance(chunk, str):
            raise TransferError("Source stream must be opened in binary mode")
        data = codec.convert(chunk) if codec else chunk
        data_conn.send_data(data)
        transfer.bytes_transferred += len(chunk)
        _notify(listener, transfer, len(chunk), stream_size)

    if codec:
        tail = codec.flush()
        if tail:
            data_conn.send_data(tail)


def receive_stream(data_conn, sink, transfer, buffer_size=8192, codec=None,
                   listener=None, stream_size=-1):
    """
    Drain the data connection into a local binary stream

    Returns only once the server has closed its side, i.e. the data
    channel has been read to EOF.
    """
    while True:
        chunk = data_conn.recv_data(buffer_size)
        if not chunk:
            break
        data = codec.convert(chunk) if codec else chunk
        try:
            sink.write(data)
        except OSError as e:
            raise TransferError(f"Error writing local stream: {e}")
        transfer.bytes_transferred += len(chunk)
        _notify(listener, transfer, len(chunk), stream_size)

    if codec:
        tail = codec.flush()
        if tail:
            sink.write(tail)


def receive_all(data_conn, buffer_size=8192):
    """
    Receive all data until connection closes

    Returns:
        bytes: All received data
    """
    chunks = []
    while True:
        chunk = data_conn.recv_data(buffer_size)
        if not chunk:
            break
        chunks.append(chunk)
    return b''.join(chunks)
