"""
Main FTP Client class
One control connection, its session state, and every operation on it
"""

import logging
import queue
import socket
from enum import Enum

from .commands import CommandRegistry
from .connection import ControlConnection, DataConnection, create_ssl_context
from .errors import (AuthenticationError, FTPConnectionClosedError, FTPConnectionError,
                     FTPError, ProtocolError, TransferError)
from .keepalive import ControlKeepAlive
from .listing import parse_list, parse_mlsd, parse_mlsx_line, parse_nlst
from .parser import ResponseParser
from .transfer import (ConnectionMode, NetASCIIDecoder, NetASCIIEncoder, Transfer,
                       TransferDirection, TransferType, receive_all, receive_stream, send_stream)

logger = logging.getLogger(__name__)

DEFAULT_PORT = 21
DEFAULT_IMPLICIT_TLS_PORT = 990
DEFAULT_KEEPALIVE_REPLY_TIMEOUT = 1.0
SERVICE_CLOSING = 421
# NLST replies meaning "nothing matched" rather than failure
NLST_EMPTY_CODES = (450, 550)


class SessionState(Enum):
    """Lifecycle of a session"""
    UNCONNECTED = "unconnected"
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    LOGGED_OUT = "logged_out"
    DISCONNECTED = "disconnected"


class FTPClient:
    """Main FTP client coordinating operations"""

    def __init__(self, timeout=30, encoding='utf-8', tls_protocol=None, implicit_tls=False,
                 ssl_context=None, verify=True, buffer_size=8192, passive_nat_workaround=True):
        """
        Initialize FTP client

        Args:
            timeout: Socket timeout in seconds for connect, reads and writes
            encoding: Character set of the control channel and listings
            tls_protocol: None for plain FTP, otherwise the FTPS protocol
                name ("TLS", "SSL", "TLSv1.2", ...)
            implicit_tls: Negotiate TLS immediately on connect (port 990)
                instead of sending AUTH TLS
            ssl_context: Ready-made ssl.SSLContext, overrides tls_protocol/verify
            verify: Validate the server certificate (FTPS only)
            buffer_size: Chunk size for data transfers
            passive_nat_workaround: Ignore private addresses in PASV replies
                from a server reached on a public address
        """
        self.timeout = timeout
        self.encoding = encoding
        self.buffer_size = buffer_size
        self.passive_nat_workaround = passive_nat_workaround

        self.tls_protocol = tls_protocol
        self.implicit_tls = implicit_tls
        self.is_secure = tls_protocol is not None or ssl_context is not None or implicit_tls
        self.ssl_context = ssl_context
        if self.is_secure and self.ssl_context is None:
            self.ssl_context = create_ssl_context(tls_protocol or 'TLS', verify)

        self.control_conn = ControlConnection(timeout=timeout, encoding=encoding)
        self.command_registry = CommandRegistry(self)
        self.state = SessionState.UNCONNECTED
        self.host = None

        # settings applied to subsequent data connections
        self.transfer_type = TransferType.ASCII
        self.connection_mode = ConnectionMode.PASSIVE
        self.use_epsv_with_ipv4 = False
        self.list_hidden_files = False
        self.keep_alive_timeout = 0
        self.keep_alive_reply_timeout = DEFAULT_KEEPALIVE_REPLY_TIMEOUT
        self.transfer_listener = None

        self.last_reply = None
        self.last_transfer = None
        # at most one per session; closed by disconnect() if still open
        self.data_conn = None
        self.features_map = None
        self._command_listeners = []
        self._server_type = None
        self._data_protection = 'C'

    # ===== Observers =====

    def add_command_listener(self, listener):
        self._command_listeners.append(listener)

    def remove_command_listener(self, listener):
        self._command_listeners.remove(listener)

    def set_transfer_listener(self, listener):
        """Progress observer for store/retrieve, or None to remove it"""
        self.transfer_listener = listener

    # ===== Configuration =====

    def set_transfer_type(self, transfer_type):
        """
        Select ASCII or binary for subsequent transfers

        TYPE is sent lazily, right before the next transfer that needs it.
        """
        self.transfer_type = TransferType(transfer_type)

    def set_connection_mode(self, mode):
        self.connection_mode = ConnectionMode(mode)

    def enter_local_active_mode(self):
        self.set_connection_mode(ConnectionMode.ACTIVE)

    def enter_local_passive_mode(self):
        self.set_connection_mode(ConnectionMode.PASSIVE)

    def set_use_epsv_with_ipv4(self, flag):
        """Try EPSV before PASV on IPv4 control connections"""
        self.use_epsv_with_ipv4 = bool(flag)

    def set_list_hidden_files(self, flag):
        self.list_hidden_files = bool(flag)

    def set_control_keep_alive(self, timeout, reply_timeout=None):
        """
        Send NOOP on the control channel during long transfers

        Args:
            timeout: Seconds of control-channel idleness before a NOOP; 0 disables
            reply_timeout: Seconds to wait for each NOOP reply
        """
        if timeout < 0:
            raise ValueError("Keep-alive timeout must not be negative")
        self.keep_alive_timeout = timeout
        if reply_timeout is not None:
            if reply_timeout <= 0:
                raise ValueError("Keep-alive reply timeout must be positive")
            self.keep_alive_reply_timeout = reply_timeout

    # ===== Last reply =====

    @property
    def reply_code(self):
        return self.last_reply.code if self.last_reply else None

    @property
    def reply_string(self):
        return self.last_reply.text if self.last_reply else None

    @property
    def reply_strings(self):
        return list(self.last_reply.raw_lines) if self.last_reply else []

    @property
    def is_connected(self):
        return self.control_conn.is_connected

    @property
    def is_authenticated(self):
        return self.state is SessionState.AUTHENTICATED and self.is_connected

    @property
    def remote_port(self):
        return self.control_conn.port

    # ===== Control channel =====

    def _send_line(self, line):
        verb = line.split(' ', 1)[0].upper()
        shown = f"{verb} *******" if verb in ('PASS', 'ACCT') else line
        logger.debug(f"→ SEND: {shown}")
        for listener in self._command_listeners:
            listener.command_sent(verb, line)
        try:
            self.control_conn.send(line)
        except FTPConnectionError:
            self._connection_lost()
            raise

    def _read_reply(self):
        try:
            lines = self.control_conn.recv_multiline()
        except FTPConnectionError as e:
            self._connection_lost()
            e.reply = e.reply or self.last_reply
            raise
        reply = ResponseParser.parse(lines)
        self.last_reply = reply
        logger.debug(f"← RECV: {reply}")
        for listener in self._command_listeners:
            listener.reply_received(reply)

        if reply.code == SERVICE_CLOSING:
            self._connection_lost()
            raise FTPConnectionClosedError("Server closed the connection", reply)
        return reply

    def _connection_lost(self):
        self.control_conn.close()
        self.state = SessionState.DISCONNECTED

    def send_command(self, command, argument=None):
        """
        One request/reply round trip on the control channel

        Args:
            command: Command verb
            argument: Optional argument string

        Returns:
            FTPResponse: The server's reply
        """
        line = f"{command} {argument}" if argument else command
        with self.control_conn.lock:
            self._send_line(line)
            return self._read_reply()

    def _require_connected(self):
        if not self.is_connected:
            raise FTPConnectionError("Not connected", self.last_reply)

    def _require_authenticated(self):
        self._require_connected()
        if self.state is not SessionState.AUTHENTICATED:
            raise AuthenticationError("Not logged in", self.last_reply)

    # ===== Session lifecycle =====

    def connect(self, host, port=None):
        """
        Connect to FTP server

        Args:
            host: Server hostname/IP
            port: Server port (default 21, or 990 for implicit FTPS)

        Returns:
            FTPResponse: Welcome response from server

        Raises:
            FTPConnectionError: TCP connect failed or the greeting was not 2xx
        """
        if self.is_connected:
            raise FTPConnectionError(f"Already connected to {self.host}")

        if not port:
            port = DEFAULT_IMPLICIT_TLS_PORT if self.implicit_tls else DEFAULT_PORT

        self.host = host
        self.control_conn = ControlConnection(host, port, timeout=self.timeout, encoding=self.encoding)
        self.features_map = None
        self._server_type = None
        self._data_protection = 'C'

        try:
            self.control_conn.connect()
            if self.implicit_tls:
                self.control_conn.start_tls(self.ssl_context, server_hostname=host)

            greeting = self._read_reply()
            # 120: service ready in nnn minutes, the real greeting follows
            while greeting.is_preliminary:
                greeting = self._read_reply()
            if not greeting.is_success:
                raise FTPConnectionError("FTP server refused connection", greeting)

            self.state = SessionState.CONNECTED
            if self.is_secure and not self.implicit_tls:
                self._auth_tls()
        except FTPError:
            self.disconnect()
            raise

        logger.info(f"Connected to {host}:{port}")
        return greeting

    def _auth_tls(self):
        reply = self.send_command('AUTH', 'TLS')
        if reply.code != 234:
            raise FTPConnectionError("Server does not support AUTH TLS", reply)
        self.control_conn.start_tls(self.ssl_context, server_hostname=self.host)

    def login(self, username='anonymous', password='anonymous@'):
        """
        Login to FTP server

        Args:
            username: Username (default: anonymous)
            password: Password (default: anonymous@)

        Returns:
            bool: True if the server accepted the credentials
        """
        self._require_connected()

        reply = self.send_command('USER', username)
        if reply.is_intermediate:
            reply = self.send_command('PASS', password)

        if not reply.is_success:
            logger.info(f"Login rejected for {username}: {reply}")
            return False

        self.state = SessionState.AUTHENTICATED
        self._server_type = None
        logger.info(f"Logged in as {username}")
        return True

    def logout(self):
        """
        Send QUIT

        Returns:
            bool: True if the server acknowledged with 2xx
        """
        self._require_connected()
        reply = self.send_command('QUIT')
        self.state = SessionState.LOGGED_OUT
        return reply.is_success

    def disconnect(self):
        """Close the control connection; safe to call any number of times"""
        was_connected = self.control_conn.is_connected
        if self.data_conn is not None:
            self.data_conn.close()
            self.data_conn = None
        self.control_conn.close()
        if self.state is not SessionState.UNCONNECTED or was_connected:
            self.state = SessionState.DISCONNECTED
        if was_connected:
            logger.info(f"Disconnected from {self.host}")

    def noop(self):
        """
        Check that the control connection still works

        Raises:
            FTPConnectionError: The connection silently died
        """
        self._require_authenticated()
        return self.send_command('NOOP').is_success

    def system_type(self):
        """
        Return the SYST reply text, e.g. "UNIX Type: L8"
        """
        self._require_connected()
        reply = self.send_command('SYST')
        if not reply.is_success:
            raise ProtocolError("Unable to determine system type", reply)
        return reply.message

    def do_command(self, command, argument=None):
        """
        Send an arbitrary command

        Returns:
            bool: True on a positive completion reply
        """
        self._require_authenticated()
        return self.send_command(command, argument).is_success

    # ===== FEAT =====

    def features(self):
        """
        Query server features

        Returns:
            bool: True if FEAT succeeded; the result is in features_map
        """
        self._require_connected()
        reply = self.send_command('FEAT')
        if not reply.is_success:
            self.features_map = {}
            return False
        self.features_map = ResponseParser.parse_features(reply)
        return True

    def has_feature(self, name, value=None):
        """
        Check a feature advertised by FEAT (queried on first use)

        Args:
            name: Feature name, case-insensitive
            value: Optional parameter string that must also be present
        """
        if self.features_map is None:
            self.features()
        values = self.features_map.get(name.upper())
        if values is None:
            return False
        return value is None or value in values

    def feature_values(self, name):
        if self.features_map is None:
            self.features()
        return list(self.features_map.get(name.upper(), []))

    # ===== FTPS data protection =====

    def exec_pbsz(self, size=0):
        self._require_connected()
        return self.send_command('PBSZ', str(size)).is_success

    def exec_prot(self, level='P'):
        """
        Set data channel protection: 'P' private (TLS), 'C' clear

        Returns:
            bool: True if the server accepted the level
        """
        level = level.upper()
        if level not in ('C', 'P'):
            raise ValueError(f"Unsupported protection level: {level}")
        if level == 'P' and not self.is_secure:
            raise ValueError("PROT P requires an FTPS session")
        self._require_connected()
        reply = self.send_command('PROT', level)
        if reply.is_success:
            self._data_protection = level
        return reply.is_success

    # ===== Data connections =====

    def _apply_transfer_type(self):
        if self._server_type is self.transfer_type:
            return
        reply = self.send_command('TYPE', self.transfer_type.value)
        if not reply.is_success:
            raise TransferError("Server refused transfer type", reply)
        self._server_type = self.transfer_type

    def _enter_passive(self, data_conn):
        ipv6 = self.control_conn.family == socket.AF_INET6
        if ipv6 or self.use_epsv_with_ipv4:
            reply = self.command_registry.execute('EPSV', data_conn)
            if reply.is_success:
                return
            if ipv6:
                raise TransferError("Server refused extended passive mode", reply)
        self.command_registry.execute('PASV', data_conn)

    def _enter_active(self, data_conn):
        if self.control_conn.family == socket.AF_INET6:
            self.command_registry.execute('EPRT', data_conn)
        else:
            self.command_registry.execute('PORT', data_conn)

    def _open_data_connection(self, command, argument=None, offset=0):
        """
        Negotiate a data connection and issue the command that uses it

        Passive: connect to the advertised port, then send the command.
        Active: listen, send PORT/EPRT and the command, then accept.

        Returns:
            DataConnection: Connected data channel
        """
        data_conn = DataConnection(timeout=self.timeout)
        self.data_conn = data_conn
        try:
            if self.connection_mode is ConnectionMode.PASSIVE:
                self._enter_passive(data_conn)
            else:
                self._enter_active(data_conn)

            if offset:
                reply = self.send_command('REST', str(offset))
                if not reply.is_intermediate:
                    raise TransferError("Server refused restart offset", reply)

            reply = self.send_command(command, argument)
            if not reply.is_preliminary:
                raise TransferError(f"{command} refused", reply)

            if data_conn.mode == 'active':
                data_conn.accept()
            if self._data_protection == 'P':
                data_conn.wrap_tls(self.ssl_context, server_hostname=self.host,
                                   session=self.control_conn.tls_session)
        except Exception:
            data_conn.close()
            raise
        return data_conn

    def _start_keepalive(self):
        if self.keep_alive_timeout <= 0:
            return None
        keepalive = ControlKeepAlive(self, self.keep_alive_timeout, self.keep_alive_reply_timeout)
        keepalive.start()
        return keepalive

    def _read_completion(self, keepalive=None):
        """Read the reply that ends a data transfer, after the data channel is closed"""
        if keepalive is None:
            return self._read_reply()

        keepalive.stop()
        if keepalive.error is not None:
            self._connection_lost()
            raise FTPConnectionError("Control connection lost during transfer",
                                     keepalive.error.reply) from keepalive.error
        try:
            reply = keepalive.deferred.get_nowait()
        except queue.Empty:
            reply = self._read_reply()
        if keepalive.outstanding:
            # reply to the NOOP that was answered after the transfer completion
            with self.control_conn.reply_timeout(keepalive.reply_timeout):
                for _ in range(keepalive.outstanding):
                    self._read_reply()
            self.last_reply = reply
        return reply

    def _abandon_transfer(self, error, keepalive=None, transfer=None):
        """
        Resynchronise the control channel after a data-channel failure

        The server still sends a completion (usually 426) once it notices
        the closed data connection; reading it keeps the session usable.
        """
        reply = self._read_completion(keepalive)
        if transfer is not None:
            transfer.finish(False, reply)
        if error.reply is None:
            error.reply = reply
        raise error

    def _list_data(self, command, argument=None):
        self._require_authenticated()
        data_conn = self._open_data_connection(command, argument)
        try:
            data = receive_all(data_conn, self.buffer_size)
            data_conn.finish()
        except TransferError as e:
            data_conn.close()
            self._abandon_transfer(e)

        reply = self._read_completion()
        if not reply.is_success:
            raise TransferError(f"{command} failed", reply)
        return data.decode(self.encoding, errors='replace')

    def _list_arguments(self, path):
        if self.list_hidden_files:
            return f"-a {path}" if path else "-a"
        return path

    def list_files(self, path=None):
        """
        LIST a directory

        Returns:
            list: RemoteFile entries (empty for an empty directory)
        """
        return parse_list(self._list_data('LIST', self._list_arguments(path)))

    def list_names(self, path=None):
        """
        NLST a directory

        Returns:
            list: RemoteFile entries carrying only name and raw line
        """
        try:
            text = self._list_data('NLST', self._list_arguments(path))
        except TransferError as e:
            if e.code in NLST_EMPTY_CODES and self.is_connected:
                logger.debug(f"NLST matched nothing: {e.reply}")
                return []
            raise
        return parse_nlst(text)

    def mlist_dir(self, path=None):
        """
        MLSD a directory (RFC 3659)

        Returns:
            list: RemoteFile entries with facts
        """
        return parse_mlsd(self._list_data('MLSD', path))

    def mlist_file(self, path=None):
        """
        MLST a single path; the entry comes back on the control channel

        Returns:
            RemoteFile or None if the server answered negatively
        """
        self._require_authenticated()
        reply = self.send_command('MLST', path)
        if not reply.is_success:
            return None
        for line in reply.raw_lines[1:-1]:
            if line.startswith(' '):
                entry = parse_mlsx_line(line)
                if entry is None:
                    break
                return entry
        raise ProtocolError("MLST reply carries no entry", reply)

    # ===== File transfers =====

    def _run_transfer(self, direction, command, remote, stream, offset):
        self._require_authenticated()
        self._apply_transfer_type()

        transfer = Transfer(direction, remote, self.transfer_type, offset)
        self.last_transfer = transfer
        ascii_mode = self.transfer_type is TransferType.ASCII
        try:
            data_conn = self._open_data_connection(command, remote, offset)
        except FTPError as e:
            transfer.finish(False, e.reply)
            raise

        keepalive = self._start_keepalive()
        try:
            if direction is TransferDirection.DOWNLOAD:
                receive_stream(data_conn, stream, transfer, self.buffer_size,
                               NetASCIIDecoder() if ascii_mode else None, self.transfer_listener)
            else:
                send_stream(stream, data_conn, transfer, self.buffer_size,
                            NetASCIIEncoder() if ascii_mode else None, self.transfer_listener)
            data_conn.finish()
        except TransferError as e:
            data_conn.close()
            self._abandon_transfer(e, keepalive, transfer)
        except Exception:
            # a failing listener or stream: still consume the server's reply
            data_conn.close()
            transfer.finish(False, self._read_completion(keepalive))
            raise
        except BaseException:
            data_conn.close()
            if keepalive is not None:
                keepalive.stop()
            transfer.finish(False)
            raise

        reply = self._read_completion(keepalive)
        if not reply.is_success:
            transfer.finish(False, reply)
            raise TransferError(f"{command} {remote} failed", reply)

        transfer.finish(True, reply)
        logger.info(f"{command} {remote}: {transfer.bytes_transferred} bytes "
                    f"in {transfer.elapsed:.2f}s ({transfer.speed / 1024:.1f} KiB/s)")
        return reply

    def retrieve_file(self, remote, sink, offset=0):
        """
        Download a remote file

        Returns only after the data connection has been drained to EOF and
        the completion reply has been read.

        Args:
            remote: Remote path
            sink: Binary stream with write()
            offset: Restart offset (REST), 0 for a full download

        Returns:
            FTPResponse: Completion reply (226/250)

        Raises:
            TransferError: Data channel failure or negative reply
        """
        return self._run_transfer(TransferDirection.DOWNLOAD, 'RETR', remote, sink, offset)

    def store_file(self, remote, source, offset=0):
        """
        Upload a local stream to a remote file

        A failure part way through may leave a truncated remote file.

        Args:
            remote: Remote path
            source: Binary stream with read()
            offset: Restart offset (REST), 0 to overwrite

        Returns:
            FTPResponse: Completion reply (226/250)
        """
        return self._run_transfer(TransferDirection.UPLOAD, 'STOR', remote, source, offset)

    def append_file(self, remote, source):
        return self._run_transfer(TransferDirection.APPEND, 'APPE', remote, source, 0)

    # ===== File management =====

    def change_working_directory(self, path):
        self._require_authenticated()
        return self.send_command('CWD', path).is_success

    def print_working_directory(self):
        self._require_authenticated()
        return ResponseParser.parse_pwd_response(self.send_command('PWD'))

    def make_directory(self, path):
        self._require_authenticated()
        return self.send_command('MKD', path).is_success

    def remove_directory(self, path):
        self._require_authenticated()
        return self.send_command('RMD', path).is_success

    def delete_file(self, path):
        self._require_authenticated()
        return self.send_command('DELE', path).is_success

    def rename(self, old_name, new_name):
        """
        Rename file/directory (combines RNFR and RNTO)

        Returns:
            bool: True if the rename completed
        """
        self._require_authenticated()
        if not self.send_command('RNFR', old_name).is_intermediate:
            return False
        return self.send_command('RNTO', new_name).is_success

    def size(self, path):
        """
        Get size of remote file

        Many servers refuse SIZE in ASCII mode, so the pending transfer
        type is sent first.

        Returns:
            int: File size in bytes, or None if failed
        """
        self._require_authenticated()
        self._apply_transfer_type()
        return ResponseParser.parse_size_response(self.send_command('SIZE', path))

    def __enter__(self):
        """Context manager entry"""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit"""
        self.disconnect()
