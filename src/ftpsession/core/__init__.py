from .client import FTPClient, SessionState
from .commands import CommandRegistry
from .connection import ControlConnection, DataConnection, create_ssl_context
from .errors import (FTPError, FTPConnectionError, FTPConnectionClosedError,
                     AuthenticationError, TransferError, ProtocolError)
from .listeners import CommandListener, PrintCommandListener
from .listing import RemoteFile, FileType
from .parser import ResponseParser, FTPResponse, ReplyClass, classify_reply
from .transfer import TransferType, ConnectionMode, TransferListener, CopyStreamEvent, Transfer

__all__ = ['FTPClient', 'SessionState',
           'CommandRegistry',
           'ControlConnection', 'DataConnection', 'create_ssl_context',
           'FTPError', 'FTPConnectionError', 'FTPConnectionClosedError',
           'AuthenticationError', 'TransferError', 'ProtocolError',
           'CommandListener', 'PrintCommandListener',
           'RemoteFile', 'FileType',
           'ResponseParser', 'FTPResponse', 'ReplyClass', 'classify_reply',
           'TransferType', 'ConnectionMode', 'TransferListener', 'CopyStreamEvent', 'Transfer']
