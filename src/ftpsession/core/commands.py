"""
Command handlers for FTP commands
Registry of verbs that need more than a plain request/reply round trip
"""

import ipaddress
import logging
import socket

from .errors import TransferError
from .parser import ResponseParser

logger = logging.getLogger(__name__)


class CommandHandler:
    """Base class for FTP command handlers"""

    def __init__(self, client):
        """
        Initialize command handler

        Args:
            client: FTPClient instance
        """
        self.client = client

    def execute(self, *args):
        """
        Execute the command

        Returns:
            FTPResponse: Server response
        """
        raise NotImplementedError("Subclasses must implement execute()")


# ===== Data Connection Commands =====
# Each takes a fresh DataConnection and leaves it ready for the transfer
# command: connected (passive) or listening (active).

class PasvCommand(CommandHandler):
    """PASV command handler - enter passive mode"""

    def execute(self, data_conn):
        response = self.client.send_command('PASV')
        if not response.is_success:
            raise TransferError("Server refused passive mode", response)

        host, port = ResponseParser.parse_pasv_response(response)
        host = self._resolve_nat(host)
        data_conn.open_passive(host, port)
        return response

    def _resolve_nat(self, host):
        """Replace a private PASV address with the control peer when the peer is public"""
        if not self.client.passive_nat_workaround:
            return host
        peer = self.client.control_conn.remote_address[0]
        try:
            advertised = ipaddress.ip_address(host)
            control = ipaddress.ip_address(peer)
        except ValueError:
            return host
        if advertised.is_private and not control.is_private:
            logger.debug(f"PASV advertised private address {host}, using {peer} instead")
            return peer
        return host


class EpsvCommand(CommandHandler):
    """EPSV command handler - extended passive mode (RFC 2428)"""

    def execute(self, data_conn):
        response = self.client.send_command('EPSV')
        if not response.is_success:
            return response

        port = ResponseParser.parse_epsv_response(response)
        # EPSV only carries a port; the host is the control peer
        host = self.client.control_conn.remote_address[0]
        data_conn.open_passive(host, port)
        return response


class PortCommand(CommandHandler):
    """PORT command handler - specify data port for active mode"""

    def execute(self, data_conn):
        # Use the same local address as the control connection, let OS pick port
        local_host = self.client.control_conn.local_address[0]
        host, port = data_conn.listen_active(local_host, socket.AF_INET)

        response = self.client.send_command('PORT', ResponseParser.format_port_command(host, port))
        if not response.is_success:
            data_conn.close()
            raise TransferError("Server refused PORT", response)
        return response


class EprtCommand(CommandHandler):
    """EPRT command handler - extended active mode, required for IPv6"""

    def execute(self, data_conn):
        local_host = self.client.control_conn.local_address[0]
        host, port = data_conn.listen_active(local_host, self.client.control_conn.family)

        response = self.client.send_command('EPRT', ResponseParser.format_eprt_command(host, port))
        if not response.is_success:
            data_conn.close()
            raise TransferError("Server refused EPRT", response)
        return response


# ===== Generic Command Handler =====

class GenericCommand(CommandHandler):
    """Generic command handler for any FTP command"""

    def execute(self, command, argument=None):
        """
        Send any FTP command

        Args:
            command: Command name
            argument: Optional argument string
        """
        return self.client.send_command(command, argument)


# ===== Command Registry =====

class CommandRegistry:
    """Registry for FTP commands"""

    def __init__(self, client):
        """
        Initialize command registry

        Args:
            client: FTPClient instance
        """
        self.client = client
        self.commands = {}
        self._register_default_commands()

    def _register_default_commands(self):
        """Register default FTP commands"""
        self.register('PASV', PasvCommand)
        self.register('EPSV', EpsvCommand)
        self.register('PORT', PortCommand)
        self.register('EPRT', EprtCommand)

    def register(self, command_name, handler_class):
        """
        Register a command handler

        Args:
            command_name: Command name (uppercase)
            handler_class: CommandHandler subclass
        """
        self.commands[command_name.upper()] = handler_class

    def get_handler(self, command_name):
        """
        Get handler for command

        Args:
            command_name: Command name

        Returns:
            CommandHandler: Handler instance
        """
        handler_class = self.commands.get(command_name.upper(), GenericCommand)
        return handler_class(self.client)

    def execute(self, command_name, *args):
        """
        Execute a command

        Args:
            command_name: Command name
            *args: Command arguments

        Returns:
            FTPResponse: Server response
        """
        handler = self.get_handler(command_name)

        # For generic commands, pass command name as first argument
        if isinstance(handler, GenericCommand):
            return handler.execute(command_name, *args)

        return handler.execute(*args)
