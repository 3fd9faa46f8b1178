"""
Shared fixtures: a real FTP server (pyftpdlib) running in a thread
"""

import threading

import pytest
from pyftpdlib.authorizers import DummyAuthorizer
from pyftpdlib.handlers import FTPHandler, ThrottledDTPHandler
from pyftpdlib.servers import FTPServer

from ftpsession import FTPClient

FTP_USER = 'tester'
FTP_PASS = 'secret'


class ThreadedServer(threading.Thread):
    """Runs the server poll loop in a background thread until stop()"""

    daemon = True

    def __init__(self, server):
        super().__init__(name='test-ftpd')
        self.server = server
        self.host, self.port = server.address[:2]
        self._stop_flag = False
        self._stopped = threading.Event()

    def run(self):
        try:
            while not self._stop_flag:
                self.server.serve_forever(timeout=0.001, blocking=False)
        finally:
            self._stopped.set()

    def stop(self):
        self._stop_flag = True
        self._stopped.wait()
        self.server.close_all()
        self.join()


def _start_server(root, handler_options=None, server_options=None):
    authorizer = DummyAuthorizer()
    authorizer.add_user(FTP_USER, FTP_PASS, str(root), perm='elradfmwMT')

    # class attributes are global in pyftpdlib, so each server gets its own subclass
    handler = type('TestHandler', (FTPHandler,), {})
    handler.authorizer = authorizer
    handler.auth_failed_timeout = 0.001
    for name, value in (handler_options or {}).items():
        setattr(handler, name, value)

    server = FTPServer(('127.0.0.1', 0), handler)
    for name, value in (server_options or {}).items():
        setattr(server, name, value)

    thread = ThreadedServer(server)
    thread.start()
    return thread


@pytest.fixture
def server_root(tmp_path):
    root = tmp_path / 'ftproot'
    root.mkdir()
    return root


@pytest.fixture
def ftp_server(server_root):
    server = _start_server(server_root)
    yield server
    server.stop()


def _slow_options(**extra):
    """Data connections send at most 32 KiB per second"""
    dtp_handler = type('SlowDTPHandler', (ThrottledDTPHandler,), {'write_limit': 32768})
    return dict(extra, dtp_handler=dtp_handler)


def _refuse_noop(handler, line):
    handler.respond("450 Busy, try again later.")


def _ignore_noop(handler, line):
    pass


@pytest.fixture
def slow_ftp_server(server_root):
    server = _start_server(server_root, handler_options=_slow_options())
    yield server
    server.stop()


@pytest.fixture
def busy_ftp_server(server_root):
    """Slow server that answers every NOOP with 450"""
    server = _start_server(server_root, handler_options=_slow_options(ftp_NOOP=_refuse_noop))
    yield server
    server.stop()


@pytest.fixture
def silent_ftp_server(server_root):
    """Slow server that never answers NOOP"""
    server = _start_server(server_root, handler_options=_slow_options(ftp_NOOP=_ignore_noop))
    yield server
    server.stop()


@pytest.fixture
def single_connection_server(server_root):
    server = _start_server(server_root, server_options={'max_cons_per_ip': 1})
    yield server
    server.stop()


@pytest.fixture
def client():
    ftp = FTPClient(timeout=10)
    yield ftp
    ftp.disconnect()


@pytest.fixture
def session(client, ftp_server):
    """Connected and logged in client"""
    client.connect(ftp_server.host, ftp_server.port)
    assert client.login(FTP_USER, FTP_PASS)
    return client


def pattern(size):
    """Deterministic non-text payload of the given size"""
    return (bytes(range(251)) * (size // 251 + 1))[:size]
