"""
Directory listing records and parsers
Turns LIST, NLST, MLSD and MLST output into RemoteFile records
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class FileType(Enum):
    """Kind of a remote directory entry"""
    FILE = "file"
    DIRECTORY = "directory"
    SYMBOLIC_LINK = "link"
    UNKNOWN = "unknown"


class RemoteFile:
    """A single directory entry as reported by the server (read-only)"""

    def __init__(self, name, raw_listing, file_type=FileType.UNKNOWN, size=-1,
                 timestamp=None, permissions=None, links=None, user=None,
                 group=None, link_target=None, facts=None):
        """
        Args:
            name: Entry name (or path for MLST)
            raw_listing: The unparsed line the entry came from
            file_type: FileType enum value
            size: Size in bytes, -1 when unknown
            timestamp: datetime of last modification, None when unknown
            permissions: Permission string ("rwxr-xr-x" for LIST, perm fact for MLSx)
            links: Hard link count (LIST only)
            user: Owner (LIST / unix.owner)
            group: Group (LIST / unix.group)
            link_target: Target of a symbolic link, if reported
            facts: Raw MLSx facts, lower-cased keys
        """
        self.name = name
        self.raw_listing = raw_listing
        self.type = file_type
        self.size = size
        self.timestamp = timestamp
        self.permissions = permissions
        self.links = links
        self.user = user
        self.group = group
        self.link_target = link_target
        self.facts = dict(facts or {})

    @property
    def is_file(self):
        return self.type is FileType.FILE

    @property
    def is_directory(self):
        return self.type is FileType.DIRECTORY

    @property
    def is_symbolic_link(self):
        return self.type is FileType.SYMBOLIC_LINK

    def to_formatted_string(self):
        """One-line summary in a fixed layout, independent of the server's format"""
        type_char = {
            FileType.FILE: '-',
            FileType.DIRECTORY: 'd',
            FileType.SYMBOLIC_LINK: 'l',
        }.get(self.type, '?')
        stamp = self.timestamp.isoformat() if self.timestamp else '-'
        links = self.links if self.links is not None else '-'
        parts = [
            f"{type_char}{self.permissions or '---------'}",
            f"{links:>4}",
            f"{self.user or '-':<8}",
            f"{self.group or '-':<8}",
            f"{self.size:>8}",
            stamp,
            self.name,
        ]
        line = ' '.join(parts)
        if self.link_target:
            line += f" -> {self.link_target}"
        return line

    def __str__(self):
        return self.raw_listing

    def __repr__(self):
        return f"RemoteFile(name={self.name!r}, type={self.type.value}, size={self.size})"


# ===== LIST parsers =====

_MONTHS = {m: i for i, m in enumerate(
    ['jan', 'feb', 'mar', 'apr', 'may', 'jun', 'jul', 'aug', 'sep', 'oct', 'nov', 'dec'], 1)}

_UNIX_LINE = re.compile(
    r'^(?P<type>[bcdelfmpSs-])'
    r'(?P<perms>[rwxsStTlL-]{9})[+.@]?\s+'
    r'(?P<links>\d+)\s+'
    r'(?P<user>\S+)\s+'
    r'(?:(?P<group>\S+)\s+)?'
    r'(?P<size>\d+)\s+'
    r'(?P<month>[A-Za-z]{3})\s+(?P<day>\d{1,2})\s+(?P<year_or_time>\d{4}|\d{1,2}:\d{2})\s'
    r'(?P<name>.+)$'
)

_DOS_LINE = re.compile(
    r'^(?P<date>\d{2}-\d{2}-\d{2,4})\s+'
    r'(?P<time>\d{1,2}:\d{2}\s*[AaPp][Mm])\s+'
    r'(?:(?P<dir><DIR>)|(?P<size>\d+))\s+'
    r'(?P<name>.+)$'
)

_UNIX_TYPES = {
    'd': FileType.DIRECTORY,
    'l': FileType.SYMBOLIC_LINK,
    '-': FileType.FILE,
    'f': FileType.FILE,
}


def _unix_timestamp(month, day, year_or_time, now=None):
    month_num = _MONTHS.get(month.lower())
    if month_num is None:
        return None
    now = now or datetime.now()
    try:
        if ':' not in year_or_time:
            return datetime(int(year_or_time), month_num, int(day))
        hour, minute = (int(x) for x in year_or_time.split(':'))
        day = int(day)
    except ValueError:
        return None

    # "recent" listings omit the year: take the latest year that gives a
    # valid date not in the future (Feb 29 may reach back several years)
    for year in range(now.year, now.year - 8, -1):
        try:
            stamp = datetime(year, month_num, day, hour, minute)
        except ValueError:
            continue
        if stamp <= now + timedelta(days=1):
            return stamp
    return None


def parse_unix_line(line, now=None):
    """Parse one `ls -l` style line, or return None"""
    match = _UNIX_LINE.match(line)
    if not match:
        return None

    file_type = _UNIX_TYPES.get(match.group('type'), FileType.UNKNOWN)
    name = match.group('name')
    link_target = None
    if file_type is FileType.SYMBOLIC_LINK and ' -> ' in name:
        name, link_target = name.split(' -> ', 1)

    return RemoteFile(
        name=name,
        raw_listing=line,
        file_type=file_type,
        size=int(match.group('size')),
        timestamp=_unix_timestamp(match.group('month'), match.group('day'),
                                  match.group('year_or_time'), now),
        permissions=match.group('perms'),
        links=int(match.group('links')),
        user=match.group('user'),
        group=match.group('group'),
        link_target=link_target,
    )


def parse_dos_line(line):
    """Parse one MS-DOS / IIS style line, or return None"""
    match = _DOS_LINE.match(line)
    if not match:
        return None

    date = match.group('date')
    clock = match.group('time').replace(' ', '').upper()
    year_format = '%Y' if len(date) == 10 else '%y'
    try:
        timestamp = datetime.strptime(f"{date} {clock}", f"%m-%d-{year_format} %I:%M%p")
    except ValueError:
        timestamp = None

    if match.group('dir'):
        file_type, size = FileType.DIRECTORY, -1
    else:
        file_type, size = FileType.FILE, int(match.group('size'))

    return RemoteFile(name=match.group('name'), raw_listing=line, file_type=file_type,
                      size=size, timestamp=timestamp)


def parse_list_line(line, now=None):
    return parse_unix_line(line, now) or parse_dos_line(line)


def parse_list(text, now=None):
    """
    Parse the output of LIST

    Lines that match neither the UNIX nor the DOS layout (such as the
    "total N" header) are skipped.

    Args:
        text: Decoded listing
        now: Reference time for year-less UNIX dates

    Returns:
        list: RemoteFile entries in server order
    """
    entries = []
    for line in text.splitlines():
        if not line.strip():
            continue
        entry = parse_list_line(line, now)
        if entry is None:
            logger.debug(f"Skipping unparsable LIST line: {line!r}")
            continue
        entries.append(entry)
    return entries


def parse_nlst(text):
    """NLST carries one name per line and nothing else"""
    return [RemoteFile(name=line.strip(), raw_listing=line)
            for line in text.splitlines() if line.strip()]


# ===== MLSD / MLST (RFC 3659 section 7) =====

_MLSX_TYPES = {
    'file': FileType.FILE,
    'dir': FileType.DIRECTORY,
    'cdir': FileType.DIRECTORY,
    'pdir': FileType.DIRECTORY,
}


def _mlsx_timestamp(value):
    # YYYYMMDDHHMMSS[.sss], always UTC
    whole, _, fraction = value.partition('.')
    try:
        stamp = datetime.strptime(whole, '%Y%m%d%H%M%S').replace(tzinfo=timezone.utc)
    except ValueError:
        return None
    if fraction.isdigit():
        stamp = stamp.replace(microsecond=int(fraction[:6].ljust(6, '0')))
    return stamp


def parse_mlsx_line(line):
    """
    Parse one machine listing entry: "fact=value;fact=value; name"

    MLST replies carry the entry on the control channel prefixed with a
    single space; that space is not part of the facts.

    Returns:
        RemoteFile or None when the line is malformed
    """
    raw = line
    if line.startswith(' '):
        line = line[1:]
    facts_part, sep, name = line.partition(' ')
    if not sep or not name:
        return None

    facts = {}
    for fact in facts_part.split(';'):
        if not fact:
            continue
        key, eq, value = fact.partition('=')
        if not eq:
            return None
        facts[key.lower()] = value

    type_fact = facts.get('type', '').lower()
    file_type = _MLSX_TYPES.get(type_fact, FileType.UNKNOWN)
    link_target = None
    if type_fact.startswith('os.unix=slink') or type_fact.startswith('os.unix=symlink'):
        file_type = FileType.SYMBOLIC_LINK
        _, _, link_target = facts['type'].partition(':')
        link_target = link_target or None

    size = facts.get('size', facts.get('sizd', '-1'))
    try:
        size = int(size)
    except ValueError:
        size = -1

    modify = facts.get('modify')
    return RemoteFile(
        name=name,
        raw_listing=raw,
        file_type=file_type,
        size=size,
        timestamp=_mlsx_timestamp(modify) if modify else None,
        permissions=facts.get('unix.mode', facts.get('perm')),
        user=facts.get('unix.owner', facts.get('unix.uid')),
        group=facts.get('unix.group', facts.get('unix.gid')),
        link_target=link_target,
        facts=facts,
    )


def parse_mlsd(text):
    entries = []
    for line in text.splitlines():
        if not line.strip():
            continue
        entry = parse_mlsx_line(line)
        if entry is None:
            logger.debug(f"Skipping malformed MLSD line: {line!r}")
            continue
        entries.append(entry)
    return entries
