"""
Observers for the control channel
A CommandListener sees every command sent and every reply received
"""

import sys

_LOGIN_COMMANDS = ('PASS', 'ACCT')


class CommandListener:
    """Base class; override the hooks you need"""

    def command_sent(self, command, line):
        """
        Args:
            command: Upper-cased command verb
            line: Full command line as sent (without CRLF)
        """

    def reply_received(self, reply):
        """
        Args:
            reply: FTPResponse just read from the server
        """


class PrintCommandListener(CommandListener):
    """Echoes the conversation to a text stream"""

    def __init__(self, stream=None, suppress_login=True, print_replies=True):
        """
        Args:
            stream: Writable text stream (default sys.stdout)
            suppress_login: Replace PASS/ACCT arguments with asterisks
            print_replies: Also print server replies
        """
        self.stream = stream or sys.stdout
        self.suppress_login = suppress_login
        self.print_replies = print_replies

    def command_sent(self, command, line):
        if self.suppress_login and command in _LOGIN_COMMANDS:
            line = f"{command} *******"
        self.stream.write(line + '\n')
        self.stream.flush()

    def reply_received(self, reply):
        if not self.print_replies:
            return
        for line in reply.raw_lines:
            self.stream.write(line + '\n')
        self.stream.flush()
