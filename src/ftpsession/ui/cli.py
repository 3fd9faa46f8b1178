"""
Command-line interface for FTP client
Runs a single operation per invocation and prints the outcome
"""

import logging
import sys

from ..core.client import FTPClient
from ..core.errors import FTPConnectionClosedError, FTPError
from ..core.listeners import PrintCommandListener
from ..core.transfer import ConnectionMode, TransferListener, TransferType

logger = logging.getLogger(__name__)


class HashPrinter(TransferListener):
    """Prints one '#' per megabyte transferred"""

    MEGABYTE = 1000000

    def __init__(self, stream=None):
        self.stream = stream or sys.stderr
        self._megs = 0

    def bytes_transferred(self, event):
        megs = event.total_bytes_transferred // self.MEGABYTE
        if megs > self._megs:
            self.stream.write('#' * (megs - self._megs))
            self.stream.flush()
            self._megs = megs


class CLIInterface:
    """Command-line interface handler"""

    def __init__(self, options, out=None, err=None):
        """
        Initialize CLI

        Args:
            options: Parsed arguments from main.parse_arguments()
            out: Stream for replies and listings (default sys.stdout)
            err: Stream for diagnostics and hash marks (default sys.stderr)
        """
        self.options = options
        self.out = out or sys.stdout
        self.err = err or sys.stderr
        self.client = None

        # first matching mode wins, download is the fallback
        self.modes = [
            ('store', self.cmd_store),
            ('list_files', self.cmd_list),
            ('mlsd', self.cmd_mlsd),
            ('mlst', self.cmd_mlst),
            ('list_names', self.cmd_names),
            ('feat', self.cmd_feat),
            ('command', self.cmd_command),
        ]

    def _print(self, *args):
        print(*args, file=self.out)

    def _error(self, *args):
        print(*args, file=self.err)

    def create_client(self):
        opts = self.options
        client = FTPClient(
            timeout=opts.timeout,
            tls_protocol=opts.protocol,
            implicit_tls=opts.implicit,
            verify=not opts.insecure,
        )
        if opts.print_hash:
            client.set_transfer_listener(HashPrinter(self.err))
        if opts.keep_alive is not None:
            reply_timeout = opts.keep_alive_reply / 1000.0 if opts.keep_alive_reply is not None else None
            client.set_control_keep_alive(opts.keep_alive, reply_timeout)
        client.set_list_hidden_files(opts.hidden)
        # suppress login details
        client.add_command_listener(PrintCommandListener(self.out, suppress_login=True))
        return client

    def run(self):
        """
        Connect, log in, run the selected operation and log out

        Returns:
            int: Process exit code, 0 on success
        """
        opts = self.options
        self.client = self.create_client()

        try:
            self.client.connect(opts.host, opts.port)
            self._print(f"Connected to {opts.host} on {self.client.remote_port}")
        except FTPError as e:
            if e.reply is not None and not e.reply.is_success:
                self._error("FTP server refused connection.")
            else:
                self._error("Could not connect to server.")
            self._error(str(e))
            self.client.disconnect()
            return 1

        error = False
        try:
            error = not self.session()
        except FTPConnectionClosedError as e:
            error = True
            self._error("Server closed connection.")
            self._error(str(e))
        except (FTPError, OSError) as e:
            error = True
            logger.debug("Operation failed", exc_info=True)
            self._error(str(e))
        finally:
            self.client.disconnect()

        return 1 if error else 0

    def session(self):
        """Everything between connect and disconnect; returns False on failure"""
        opts = self.options
        client = self.client

        if not client.login(opts.username, opts.password):
            client.logout()
            return False

        if opts.protect_data:
            if not (client.exec_pbsz(0) and client.exec_prot('P')):
                self._error(f"Failed: {client.reply_string.strip()}")
                client.logout()
                return False

        self._print(f"Remote system is {client.system_type()}")

        if opts.binary:
            client.set_transfer_type(TransferType.BINARY)

        # passive by default, most clients sit behind firewalls
        if opts.local_active:
            client.set_connection_mode(ConnectionMode.ACTIVE)
        else:
            client.set_connection_mode(ConnectionMode.PASSIVE)

        client.set_use_epsv_with_ipv4(opts.epsv)

        for flag, handler in self.modes:
            if getattr(opts, flag):
                ok = handler()
                break
        else:
            ok = self.cmd_retrieve()

        client.noop()  # check that control connection is working OK
        client.logout()
        return ok

    # ===== Operations =====

    def cmd_store(self):
        with open(self.options.local, 'rb') as source:
            self.client.store_file(self.options.remote, source)
        return True

    def cmd_retrieve(self):
        with open(self.options.local, 'wb') as sink:
            self.client.retrieve_file(self.options.remote, sink)
        return True

    def cmd_list(self):
        for entry in self.client.list_files(self.options.remote):
            self._print(entry)
        return True

    def cmd_mlsd(self):
        for entry in self.client.mlist_dir(self.options.remote):
            self._print(entry.raw_listing)
            self._print(entry.to_formatted_string())
        return True

    def cmd_mlst(self):
        entry = self.client.mlist_file(self.options.remote)
        if entry is not None:
            self._print(entry.to_formatted_string())
        return True

    def cmd_names(self):
        for entry in self.client.list_names(self.options.remote):
            self._print(entry.name)
        return True

    def cmd_feat(self):
        client = self.client
        if not client.features():
            self._print(f"Failed: {client.reply_string.strip()}")
            return True

        # the command listener has already printed the reply
        wanted = self.options.remote
        if wanted is not None and client.has_feature(wanted):
            values = client.feature_values(wanted)
            if values:
                for value in values:
                    self._print(f"FEAT supports: {wanted.upper()} {value}")
            else:
                self._print(f"FEAT supports: {wanted.upper()}")
        return True

    def cmd_command(self):
        client = self.client
        if not client.do_command(self.options.command, self.options.remote):
            self._print(f"Failed: {client.reply_string.strip()}")
        return True
