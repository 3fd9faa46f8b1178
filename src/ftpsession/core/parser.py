"""
Response parser for FTP protocol
Handles parsing and classification of server replies
"""

import re
from enum import Enum

from .errors import ProtocolError


class ReplyClass(Enum):
    """Outcome of an FTP reply, derived from the first digit of its code"""
    POSITIVE_PRELIMINARY = 1
    POSITIVE_COMPLETION = 2
    POSITIVE_INTERMEDIATE = 3
    TRANSIENT_NEGATIVE = 4
    PERMANENT_NEGATIVE = 5
    PROTECTED = 6


def classify_reply(code):
    """
    Classify a numeric reply code (RFC 959 section 4.2, RFC 2228 for 6yz)

    Args:
        code: Three-digit reply code

    Returns:
        ReplyClass: Outcome of the reply

    Raises:
        ProtocolError: If the code is outside 100-699
    """
    if not isinstance(code, int) or not 100 <= code <= 699:
        raise ProtocolError(f"Invalid reply code: {code!r}")
    return ReplyClass(code // 100)


class FTPResponse:
    """Represents an FTP server response"""

    def __init__(self, code, message, raw_lines=None):
        """
        Initialize FTP response

        Args:
            code: Response code (e.g., 220, 230)
            message: Response message
            raw_lines: Raw response lines from server
        """
        self.code = code
        self.message = message
        self.raw_lines = raw_lines or []

    @property
    def kind(self):
        return classify_reply(self.code)

    @property
    def is_preliminary(self):
        """Check if response is preliminary (1xx)"""
        return self.kind is ReplyClass.POSITIVE_PRELIMINARY

    @property
    def is_success(self):
        """Check if response indicates success (2xx)"""
        return self.kind is ReplyClass.POSITIVE_COMPLETION

    @property
    def is_intermediate(self):
        """Check if response is intermediate (3xx)"""
        return self.kind is ReplyClass.POSITIVE_INTERMEDIATE

    @property
    def is_error(self):
        """Check if response is error (4xx or 5xx)"""
        return self.is_transient_error or self.is_permanent_error

    @property
    def is_transient_error(self):
        """Check if response is transient error (4xx)"""
        return self.kind is ReplyClass.TRANSIENT_NEGATIVE

    @property
    def is_permanent_error(self):
        """Check if response is permanent error (5xx)"""
        return self.kind is ReplyClass.PERMANENT_NEGATIVE

    @property
    def text(self):
        """Full reply text as received, lines joined with CRLF"""
        return '\r\n'.join(self.raw_lines) + '\r\n'

    def __str__(self):
        """String representation"""
        return f"{self.code} {self.message}"

    def __repr__(self):
        """Debug representation"""
        return f"FTPResponse(code={self.code}, message={self.message!r})"


_REPLY_LINE = re.compile(r'^(\d{3})([ -]|$)')
_PASV_REPLY = re.compile(r'(\d+),(\d+),(\d+),(\d+),(\d+),(\d+)')
_EPSV_REPLY = re.compile(r'\((.)\1\1(\d+)\1\)')


class ResponseParser:
    """Parser for FTP server responses"""

    @staticmethod
    def parse(lines):
        """
        Parse FTP response lines

        Args:
            lines: List of response lines or single line string

        Returns:
            FTPResponse: Parsed response object

        Raises:
            ProtocolError: If the reply is empty or lacks a valid code
        """
        if isinstance(lines, str):
            lines = [lines]

        if not lines:
            raise ProtocolError("Empty reply from server")

        # First line contains the code
        first_line = lines[0]
        code_match = _REPLY_LINE.match(first_line)
        if not code_match:
            raise ProtocolError(f"Truncated or malformed reply: {first_line!r}")

        code = int(code_match.group(1))
        if not 100 <= code <= 699:
            raise ProtocolError(f"Reply code out of range: {first_line!r}")

        # Body lines may or may not repeat the code; strip it where they do
        prefix = code_match.group(1)
        texts = []
        for line in lines:
            if line[:3] == prefix and line[3:4] in ('', ' ', '-'):
                texts.append(line[4:])
            else:
                texts.append(line)
        message = '\n'.join(texts)

        return FTPResponse(code, message.strip(), lines)

    @staticmethod
    def parse_pasv_response(response):
        """
        Parse PASV response to extract host and port

        Args:
            response: FTPResponse object from PASV command

        Returns:
            tuple: (host, port)

        Example:
            "227 Entering Passive Mode (192,168,1,1,234,56)"
            Returns: ("192.168.1.1", 60024)  # 234*256 + 56
        """
        match = _PASV_REPLY.search(response.message)
        if not match:
            raise ProtocolError(f"Invalid PASV response: {response.message}", response)

        numbers = [int(n) for n in match.groups()]
        if any(n > 255 for n in numbers):
            raise ProtocolError(f"Invalid PASV response: {response.message}", response)

        host = '.'.join(str(n) for n in numbers[:4])
        port = numbers[4] * 256 + numbers[5]
        return host, port

    @staticmethod
    def parse_epsv_response(response):
        """
        Parse EPSV response (RFC 2428) to extract the port

        Example:
            "229 Entering Extended Passive Mode (|||6446|)"
            Returns: 6446
        """
        match = _EPSV_REPLY.search(response.message)
        if not match:
            raise ProtocolError(f"Invalid EPSV response: {response.message}", response)
        port = int(match.group(2))
        if not 0 < port < 65536:
            raise ProtocolError(f"Invalid EPSV port: {port}", response)
        return port

    @staticmethod
    def format_port_command(host, port):
        """
        Format PORT command argument

        Args:
            host: IP address string (e.g., "192.168.1.1")
            port: Port number

        Returns:
            str: Formatted argument (e.g., "192,168,1,1,234,56")

        Example:
            format_port_command("192.168.1.1", 60024)
            Returns: "192,168,1,1,234,56"
        """
        octets = host.split('.')
        if len(octets) != 4:
            raise ValueError(f"Invalid IP address: {host}")

        high, low = divmod(port, 256)
        return ','.join(octets + [str(high), str(low)])

    @staticmethod
    def format_eprt_command(host, port):
        """Format EPRT command argument, e.g. "|2|::1|6446|" """
        family = 2 if ':' in host else 1
        return f"|{family}|{host}|{port}|"

    @staticmethod
    def parse_features(response):
        """
        Parse a FEAT reply body (RFC 2389) into a feature map

        Each feature line starts with a single space and holds the feature
        name optionally followed by its parameters.

        Args:
            response: FTPResponse object from FEAT command

        Returns:
            dict: Upper-cased feature name -> list of parameter strings
        """
        features = {}
        for line in response.raw_lines[1:-1]:
            if not line.startswith(' '):
                continue
            entry = line.strip()
            if not entry:
                continue
            name, _, params = entry.partition(' ')
            values = features.setdefault(name.upper(), [])
            if params.strip():
                values.append(params.strip())
        return features

    @staticmethod
    def parse_size_response(response):
        """
        Parse SIZE response to extract file size

        Args:
            response: FTPResponse object from SIZE command

        Returns:
            int: File size in bytes
        """
        if not response.is_success:
            return None

        try:
            return int(response.message.strip())
        except ValueError:
            return None

    @staticmethod
    def parse_pwd_response(response):
        """
        Parse PWD response to extract current directory

        Args:
            response: FTPResponse object from PWD command

        Returns:
            str: Current directory path

        Example:
            '257 "/home/user" is current directory'
            Returns: "/home/user"
        """
        if not response.is_success:
            return None

        # Quoted path, embedded quotes doubled (RFC 959 appendix II)
        match = re.search(r'"((?:[^"]|"")*)"', response.message)
        if match:
            return match.group(1).replace('""', '"')

        return None
