"""
Exceptions raised by the FTP session client
Every error keeps the last server reply seen, when there was one
"""


class FTPError(Exception):
    """Base class for FTP client errors"""

    def __init__(self, message, reply=None):
        """
        Args:
            message: Human readable description
            reply: Last FTPResponse received from the server, if any
        """
        super().__init__(message)
        self.message = message
        self.reply = reply

    @property
    def code(self):
        return self.reply.code if self.reply is not None else None

    def __str__(self):
        if self.reply is not None:
            return f"{self.message} (last reply: {self.reply})"
        return self.message


class FTPConnectionError(FTPError, ConnectionError):
    """Control connection could not be established or was lost"""


class FTPConnectionClosedError(FTPConnectionError):
    """Server closed the control connection (421 or EOF)"""


class AuthenticationError(FTPError):
    """Login rejected, or operation attempted without a logged in session"""


class TransferError(FTPError):
    """Data connection or stream failure, or negative reply to a transfer"""


class ProtocolError(FTPError):
    """Malformed or unexpected server reply"""
