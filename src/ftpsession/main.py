"""
Main entry point for FTP client application
Downloads (default) or uploads one file, lists a directory, queries
features or sends a single command, printing every server reply
"""

import argparse
import logging
import sys

from .ui.cli import CLIInterface

USAGE = ("ftpsession [options] <hostname[:port]> <username> <password> [<remote file> [<local file>]]\n"
         "\nDefault behavior is to download a file and use ASCII transfer mode.")

LISTING_FLAGS = ('command', 'mlsd', 'feat', 'list_files', 'list_names', 'mlst')


def build_parser():
    parser = argparse.ArgumentParser(prog='ftpsession', usage=USAGE, add_help=False)

    # -h means "hidden files", so help is long-form only
    parser.add_argument('--help', action='help', help='Show this message and exit')

    parser.add_argument('-a', dest='local_active', action='store_true',
                        help='Use local active mode (default is local passive)')
    parser.add_argument('-b', dest='binary', action='store_true', help='Use binary transfer mode')
    parser.add_argument('-c', dest='command', metavar='cmd',
                        help='Issue arbitrary command (remote is used as a parameter if provided)')
    parser.add_argument('-d', dest='mlsd', action='store_true',
                        help='List directory details using MLSD (remote is used as the pathname if provided)')
    parser.add_argument('-e', dest='epsv', action='store_true', help='Use EPSV with IPv4 (default false)')
    parser.add_argument('-f', dest='feat', action='store_true',
                        help='Issue FEAT command (remote names a feature to look for)')
    parser.add_argument('-h', dest='hidden', action='store_true',
                        help='List hidden files (applies to -l and -n only)')
    parser.add_argument('-k', dest='keep_alive', type=float, metavar='secs', help='Use keep-alive timer')
    parser.add_argument('-l', dest='list_files', action='store_true',
                        help='List files using LIST (remote is used as the pathname if provided)')
    parser.add_argument('-n', dest='list_names', action='store_true',
                        help='List file names using NLST (remote is used as the pathname if provided)')
    parser.add_argument('-p', dest='protocol', metavar='protocol',
                        help='Use FTPS with the specified protocol (TLS, SSL, TLSv1.2, ...)')
    parser.add_argument('-s', dest='store', action='store_true', help='Store file on server (upload)')
    parser.add_argument('-t', dest='mlst', action='store_true',
                        help='List file details using MLST (remote is used as the pathname if provided)')
    parser.add_argument('-w', dest='keep_alive_reply', type=int, metavar='msec',
                        help='Wait time for keep-alive reply')
    parser.add_argument('-#', dest='print_hash', action='store_true', help='Add hash display during transfers')

    parser.add_argument('--implicit', action='store_true', help='Implicit FTPS (default port 990)')
    parser.add_argument('--prot-p', dest='protect_data', action='store_true',
                        help='Encrypt data connections (PBSZ 0 + PROT P), FTPS only')
    parser.add_argument('--insecure', action='store_true', help='Do not verify the server certificate')
    parser.add_argument('--timeout', type=float, default=30, help='Socket timeout in seconds (default 30)')
    parser.add_argument('-v', '--verbose', action='store_true', help='Log protocol details to stderr')

    parser.add_argument('params', nargs='*', help=argparse.SUPPRESS)
    return parser


def parse_server(server):
    """Split "host[:port]"; a missing or zero port means the protocol default"""
    parts = server.split(':')
    if len(parts) == 2:
        return parts[0], int(parts[1]) or None
    return server, None


def parse_arguments(argv=None):
    """
    Parse command line arguments

    Returns:
        argparse.Namespace or None when the positional parameters are insufficient
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # server, user, pass, remote, local; listings need only the first three
    min_params = 3 if any(getattr(args, flag) for flag in LISTING_FLAGS) else 5
    if len(args.params) < min_params or len(args.params) > 5:
        parser.print_help(sys.stderr)
        return None
    if args.protect_data and not (args.protocol or args.implicit):
        parser.print_usage(sys.stderr)
        print("--prot-p requires -p or --implicit", file=sys.stderr)
        return None

    try:
        args.host, args.port = parse_server(args.params[0])
    except ValueError:
        parser.print_usage(sys.stderr)
        print(f"Invalid port in {args.params[0]!r}", file=sys.stderr)
        return None

    args.username, args.password = args.params[1], args.params[2]
    args.remote = args.params[3] if len(args.params) > 3 else None
    args.local = args.params[4] if len(args.params) > 4 else None
    if args.implicit and not args.protocol:
        args.protocol = 'TLS'
    return args


def main(argv=None):
    """Main function: run the selected operation and return the exit code"""
    args = parse_arguments(argv)
    if args is None:
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    return CLIInterface(args).run()


if __name__ == '__main__':
    sys.exit(main())
