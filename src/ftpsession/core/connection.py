"""
Connection module for handling socket communications
Manages control and data connections
"""

import logging
import socket
import ssl
import threading
from contextlib import contextmanager

from .errors import FTPConnectionError, FTPConnectionClosedError, ProtocolError, TransferError

logger = logging.getLogger(__name__)

CRLF = '\r\n'
MAX_LINE = 8192

_TLS_VERSIONS = {
    'TLSV1': ssl.TLSVersion.TLSv1,
    'TLSV1.1': ssl.TLSVersion.TLSv1_1,
    'TLSV1.2': ssl.TLSVersion.TLSv1_2,
    'TLSV1.3': ssl.TLSVersion.TLSv1_3,
}


def create_ssl_context(protocol='TLS', verify=True):
    """
    Build the client SSL context for FTPS

    Args:
        protocol: "TLS" or "SSL" for the best available version, or a
            specific version such as "TLSv1.2"
        verify: Validate the server certificate and host name

    Returns:
        ssl.SSLContext
    """
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    name = protocol.upper()
    if name in _TLS_VERSIONS:
        context.minimum_version = _TLS_VERSIONS[name]
        context.maximum_version = _TLS_VERSIONS[name]
    elif name not in ('TLS', 'SSL'):
        raise ValueError(f"Unsupported TLS protocol: {protocol}")
    return context


class BaseConnection:
    """Manages a single socket connection"""

    def __init__(self, host=None, port=None, timeout=30):
        """
        Initialize connection

        Args:
            host: Remote host address
            port: Remote port number
            timeout: Socket timeout in seconds
        """
        self.host = host
        self.port = port
        self.timeout = timeout
        self.sock = None
        self.is_connected = False

    def connect(self, host=None, port=None):
        """
        Establish connection to a server

        Args:
            host: Remote host (overrides init value if provided)
            port: Remote port (overrides init value if provided)

        Raises:
            OSError: If the TCP connect fails
        """
        if host:
            self.host = host
        if port:
            self.port = port

        self.sock = socket.create_connection((self.host, self.port), timeout=self.timeout)
        self.is_connected = True

    @property
    def local_address(self):
        return self.sock.getsockname()

    @property
    def remote_address(self):
        return self.sock.getpeername()

    @property
    def family(self):
        return self.sock.family if self.sock else None

    def close(self):
        """Close the connection, safe to call more than once"""
        sock, self.sock = self.sock, None
        self.is_connected = False
        if sock is not None:
            try:
                sock.close()
            except OSError:
                pass


class ControlConnection(BaseConnection):
    """Manages the FTP control connection"""

    def __init__(self, host=None, port=21, timeout=30, encoding='utf-8'):
        """
        Initialize control connection

        Args:
            host: FTP server host
            port: FTP server port (default 21)
            timeout: Connection and read timeout in seconds
            encoding: Character set used for commands and replies
        """
        super().__init__(host, port, timeout)
        self.encoding = encoding
        self.file = None
        # one command/reply round trip at a time; shared with the keep-alive thread
        self.lock = threading.RLock()

    def connect(self, host=None, port=None):
        try:
            logger.info(f"Connecting to {host or self.host}:{port or self.port} (timeout={self.timeout}s)")
            super().connect(host, port)
        except OSError as e:
            logger.error(f"Failed to connect to {self.host}:{self.port} - {e}")
            self.close()
            raise FTPConnectionError(f"Failed to connect to {self.host}:{self.port}: {e}")
        self.file = self.sock.makefile('rb')

    def start_tls(self, context, server_hostname=None):
        """
        Wrap the control socket in TLS

        Args:
            context: ssl.SSLContext to use
            server_hostname: Name checked against the server certificate
        """
        self.file.close()
        try:
            self.sock = context.wrap_socket(self.sock, server_hostname=server_hostname)
        except OSError as e:
            self.close()
            raise FTPConnectionError(f"TLS negotiation failed: {e}")
        self.file = self.sock.makefile('rb')
        logger.info(f"Control connection secured with {self.sock.version()}")

    @property
    def tls_session(self):
        return getattr(self.sock, 'session', None)

    def send(self, line):
        """
        Send one command line

        Args:
            line: Command without trailing CRLF
        """
        if not self.is_connected:
            raise FTPConnectionError("Not connected")

        if any(c in line for c in '\r\n'):
            raise ValueError("Illegal newline character in command")

        try:
            self.sock.sendall((line + CRLF).encode(self.encoding))
        except OSError as e:
            # Connection broken - update state and re-raise
            self.close()
            raise FTPConnectionError(f"Connection lost: {e}")

    def recv_line(self):
        """
        Receive a line of text (until CRLF)

        Returns:
            str: Received line without CRLF
        """
        if not self.is_connected:
            raise FTPConnectionError("Not connected")

        try:
            raw = self.file.readline(MAX_LINE + 1)
        except socket.timeout as e:
            self.close()
            raise FTPConnectionError(f"Timed out waiting for reply: {e}")
        except OSError as e:
            self.close()
            raise FTPConnectionError(f"Connection lost: {e}")

        if not raw:
            self.close()
            raise FTPConnectionClosedError("Connection closed by remote")
        if len(raw) > MAX_LINE:
            raise ProtocolError("Reply line too long")
        return raw.decode(self.encoding, errors='replace').rstrip('\r\n')

    def recv_multiline(self):
        """
        Receive multiline response (RFC 959 section 4.2)

        Returns:
            list: List of response lines
        """
        with self.lock:
            lines = []
            first_line = self.recv_line()
            lines.append(first_line)

            # Check if multiline response '-' follows the code
            if len(first_line) >= 4 and first_line[3] == '-':
                code = first_line[:3]
                while True:
                    line = self.recv_line()
                    lines.append(line)
                    # End of multiline when we see "code<space>"
                    if line.startswith(code + ' '):
                        break

            return lines

    @contextmanager
    def reply_timeout(self, seconds):
        """Temporarily use a different read timeout on the control socket"""
        previous = self.sock.gettimeout()
        self.sock.settimeout(seconds)
        try:
            yield
        finally:
            if self.sock is not None:
                self.sock.settimeout(previous)

    def close(self):
        if self.file is not None:
            try:
                self.file.close()
            except OSError:
                pass
            self.file = None
        super().close()


class DataConnection(BaseConnection):
    """
    Manages one FTP data connection

    Two strategies share this class: passive (we connect to an address the
    server advertised) and active (we listen and the server connects back).
    """

    def __init__(self, timeout=30):
        """Initialize data connection handler"""
        super().__init__(timeout=timeout)
        self.mode = None  # 'passive' or 'active'
        self.server_socket = None  # Only for active mode

    def open_passive(self, host, port):
        """
        Connect to the data port advertised by PASV/EPSV

        Args:
            host: Data connection host
            port: Data connection port
        """
        self.mode = 'passive'
        try:
            self.connect(host, port)
        except OSError as e:
            self.close()
            raise TransferError(f"Cannot open data connection to {host}:{port}: {e}")

    def listen_active(self, listen_host, family=socket.AF_INET):
        """
        Bind a listening socket for PORT/EPRT

        Args:
            listen_host: Local address to listen on
            family: Address family of the control connection

        Returns:
            tuple: (host, port) for PORT/EPRT command
        """
        self.mode = 'active'
        try:
            self.server_socket = socket.create_server((listen_host, 0), family=family, backlog=1)
            self.server_socket.settimeout(self.timeout)
        except OSError as e:
            self.close()
            raise TransferError(f"Cannot listen for data connection: {e}")
        return self.server_socket.getsockname()[:2]

    def accept(self):
        """Wait for the server to connect back in active mode"""
        try:
            self.sock, addr = self.server_socket.accept()
        except OSError as e:
            self.close()
            raise TransferError(f"Server did not open the data connection: {e}")
        finally:
            if self.server_socket is not None:
                self.server_socket.close()
                self.server_socket = None
        self.sock.settimeout(self.timeout)
        self.host, self.port = addr[:2]
        self.is_connected = True

    def wrap_tls(self, context, server_hostname=None, session=None):
        """Protect the data channel (PROT P), resuming the control TLS session"""
        try:
            self.sock = context.wrap_socket(self.sock, server_hostname=server_hostname, session=session)
        except OSError as e:
            self.close()
            raise TransferError(f"TLS negotiation on data connection failed: {e}")

    def send_data(self, data):
        """Send data through data connection"""
        try:
            self.sock.sendall(data)
        except OSError as e:
            self.close()
            raise TransferError(f"Data connection lost: {e}")

    def recv_data(self, buffer_size=8192):
        """
        Receive data through data connection

        Returns:
            bytes: Received data, b'' once the server closed the channel
        """
        try:
            return self.sock.recv(buffer_size)
        except OSError as e:
            self.close()
            raise TransferError(f"Data connection lost: {e}")

    def finish(self):
        """Shut down TLS cleanly (if any) and close"""
        if self.sock is not None and hasattr(self.sock, 'unwrap'):
            try:
                self.sock.unwrap()
            except OSError as e:
                self.close()
                raise TransferError(f"TLS shutdown on data connection failed: {e}")
        self.close()

    def close(self):
        """Close data connection"""
        super().close()
        if self.server_socket is not None:
            try:
                self.server_socket.close()
            except OSError:
                pass
            self.server_socket = None
