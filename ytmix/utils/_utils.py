import collections.abc
import functools
import locale
import os
import re
import shlex
import sys
import traceback
import types
import urllib.parse

from . import traversal

__name__ = __name__.rsplit('.', 1)[0]  # noqa: A001: Pretend to be the parent module

REPOSITORY = 'ytmix/ytmix'


class NO_DEFAULT:
    pass


def IDENTITY(x):
    return x


def preferredencoding():
    """Encoding of the locale, or UTF-8 when the locale names one Python cannot use"""
    try:
        encoding = locale.getpreferredencoding()
        ''.encode(encoding)
    except Exception:
        return 'UTF-8'
    return encoding


def write_string(s, out=None, encoding=None):
    assert isinstance(s, str)
    out = out or sys.stderr
    # No console (pythonw, frozen GUI builds)
    if not out:
        return

    if 'b' in (getattr(out, 'mode', None) or ''):
        out.write(s.encode(encoding or preferredencoding(), 'ignore'))
    elif hasattr(out, 'buffer'):
        encoding = encoding or getattr(out, 'encoding', None) or preferredencoding()
        out.buffer.write(s.encode(encoding, 'ignore'))
    else:
        out.write(s)
    out.flush()


def bug_reports_message(before=';'):
    msg = (f'please report this issue on https://github.com/{REPOSITORY}/issues , '
           'including the full output with -v. YouTube may have changed the layout of its mix pages')

    before = before.rstrip()
    if not before or before.endswith(('.', '!', '?')):
        msg = msg[0].upper() + msg[1:]
    return f'{before} {msg}' if before else msg


class MixDLError(Exception):
    """Base exception for ytmix errors."""
    msg = None

    def __init__(self, msg=None):
        if msg is not None:
            self.msg = msg
        elif self.msg is None:
            self.msg = type(self).__name__
        super().__init__(self.msg)


class ExtractorError(MixDLError):
    """Error during info extraction.

    `kind` names the failure for programs that branch on it; `expected`
    errors are the ones a user can cause (a bad URL, the network) and are
    printed without asking for a bug report. The message is rebuilt
    whenever `ie`, `video_id` or `cause` change after construction.
    """
    kind = None

    def __init__(self, msg, tb=None, expected=False, cause=None, video_id=None, ie=None):
        from ..networking.exceptions import network_exceptions

        self.exc_info = sys.exc_info()
        if isinstance(self.exc_info[1], network_exceptions):
            expected = True
        elif isinstance(self.exc_info[1], ExtractorError):
            self.exc_info = self.exc_info[1].exc_info

        self.orig_msg = str(msg)
        self.traceback = tb
        self.expected = expected
        self.cause = cause
        self.video_id = video_id
        self.ie = ie
        super().__init__(self._build_message())

    def _build_message(self):
        return ''.join((
            format_field(self.ie, None, '[%s] '),
            format_field(self.video_id, None, '%s: '),
            self.orig_msg,
            format_field(self.cause, None, ' (caused by %r)'),
            '' if self.expected else bug_reports_message()))

    def format_traceback(self):
        parts = []
        if self.traceback:
            parts.append(''.join(traceback.format_tb(self.traceback)))
        if self.cause:
            parts.append(''.join(traceback.format_exception(type(self.cause), self.cause, self.cause.__traceback__)[1:]))
        return '\n'.join(parts) or None

    def __setattr__(self, name, value):
        super().__setattr__(name, value)
        # `msg` is only set once __init__ has filled in every attribute
        if name not in ('msg', 'args') and getattr(self, 'msg', None):
            self.msg = self._build_message()
            self.args = (self.msg,)


class UnsupportedError(ExtractorError):
    def __init__(self, url):
        super().__init__(f'Unsupported URL: {url}', expected=True)
        self.url = url


class RegexNotFoundError(ExtractorError):
    """Error when a regex didn't match"""
    pass


class MissingFieldError(ExtractorError):
    """A required field is absent from the JSON response"""
    kind = 'MissingField'


class InvalidPageError(ExtractorError):
    """The caller passed a page descriptor that cannot be fetched"""
    kind = 'InvalidArgument'

    def __init__(self, msg='Page url is empty or null', **kwargs):
        kwargs['expected'] = True
        super().__init__(msg, **kwargs)


class ContinuationNotFoundError(ExtractorError):
    """The mix cannot be continued from the returned items"""
    kind = 'ContinuationNotFound'


class ChannelMixError(ExtractorError):
    kind = 'ChannelMix'


class EmptyIdentifierError(ExtractorError):
    kind = 'EmptyIdentifier'


class ThumbnailUnavailableError(ExtractorError):
    kind = 'ThumbnailUnavailable'


class NetworkFailureError(ExtractorError):
    """Transport failure; `cause` holds the original networking exception"""
    kind = 'NetworkFailure'

    def __init__(self, msg, **kwargs):
        kwargs['expected'] = True
        super().__init__(msg, **kwargs)


class DownloadError(MixDLError):
    """Raised by MixDL for an error it was not told to ignore

    `exc_info` is the sys.exc_info() of the error that was reported, if any.
    """

    def __init__(self, msg, exc_info=None):
        super().__init__(msg)
        self.exc_info = exc_info


_COUNT_SUFFIXES = {'k': 1000, 'kk': 1000 ** 2, 'm': 1000 ** 2, 'b': 1000 ** 3}


def parse_count(s):
    """Number in a count text such as '1,100 views', '1.1K' or '10M views'"""
    if s is None:
        return None

    s = re.sub(r'^[^\d]+\s', '', s).strip()
    mobj = re.match(r'(?P<num>\d+(?:[,.]\d+)?)\s*(?P<suffix>kk|[kmb])\b', s, re.IGNORECASE)
    if mobj:
        return round(float(mobj.group('num').replace(',', '.')) * _COUNT_SUFFIXES[mobj.group('suffix').lower()])

    mobj = re.match(r'[\d,.]+', s)
    return str_to_int(mobj.group(0)) if mobj else None


def remove_start(s, start):
    return s[len(start):] if s is not None and s.startswith(start) else s


def truncate_string(s, left, right=0):
    """Shorten `s` to `left + right` characters, keeping `right` characters of its end"""
    assert left > 3 and right >= 0
    if s is None or len(s) <= left + right:
        return s
    return s[:left - 3] + '...' + (s[-right:] if right else '')


def urljoin(base, path):
    """Resolve `path` against an http(s) `base`; None when either cannot be used"""
    if isinstance(path, bytes):
        path = path.decode()
    if not path or not isinstance(path, str):
        return None
    # Already absolute, or only missing its scheme
    if re.match(r'(?:[a-zA-Z][a-zA-Z0-9+.-]*:)?//', path):
        return path
    if isinstance(base, bytes):
        base = base.decode()
    if not isinstance(base, str) or not re.match(r'(?:https?:)?//', base):
        return None
    return urllib.parse.urljoin(base, path)


def sanitize_url(url, *, scheme='http'):
    if url is not None and url.startswith('//'):
        return f'{scheme}:{url}'
    return url


def int_or_none(v, scale=1, default=None):
    try:
        return int(v) // scale
    except (ValueError, TypeError, OverflowError):
        return default


def str_or_none(v, default=None):
    return default if v is None else str(v)


def str_to_int(int_str):
    """int_or_none that also reads '1,234' and '1.234'"""
    if isinstance(int_str, str):
        return int_or_none(re.sub(r'[,.+]', '', int_str))
    if isinstance(int_str, int):
        return int_str
    return None


def url_or_none(url):
    if not isinstance(url, str):
        return None
    url = url.strip()
    return url if re.match(r'(?:https?:)?//', url) else None


def parse_duration(s):
    """Seconds in a duration such as '3:25', '1:02:03.05' or '3 hours, 11 mins'"""
    if not isinstance(s, str) or not s.strip():
        return None
    s = s.strip()

    if re.fullmatch(r'\d+(?::\d+){0,3}(?:\.\d+)?', s):
        parts = s.split(':')
        return sum(float(part) * mult for part, mult in zip(parts, (86400, 3600, 60, 1)[-len(parts):]))

    mobj = re.fullmatch(r'''(?ix)
        (?:(?P<days>\d+)\s*d(?:ays?)?,?\s*)?
        (?:(?P<hours>\d+)\s*h(?:(?:ou)?rs?)?,?\s*)?
        (?:(?P<mins>\d+)\s*m(?:in(?:ute)?s?)?,?\s*)?
        (?:(?P<secs>\d+(?:\.\d+)?)\s*s(?:ec(?:ond)?s?)?)?''', s)
    if not mobj:
        return None
    return sum(float(part or 0) * mult for part, mult in zip(mobj.groups(), (86400, 3600, 60, 1)))


def update_url(url, *, query_update=None, **kwargs):
    """Replace components of `url` (a str or a urlparse result)

    @param query_update  mapping merged into the existing query
    @param kwargs        other components to replace, as in ParseResult._replace
    """
    if isinstance(url, str):
        if not kwargs and not query_update:
            return url
        url = urllib.parse.urlparse(url)
    if query_update:
        assert 'query' not in kwargs, 'query_update and query cannot be given together'
        query = {**urllib.parse.parse_qs(url.query), **query_update}
        kwargs['query'] = urllib.parse.urlencode(query, doseq=True)
    return urllib.parse.urlunparse(url._replace(**kwargs))


def update_url_query(url, query):
    return update_url(url, query_update=query)


def parse_qs(url, **kwargs):
    return urllib.parse.parse_qs(urllib.parse.urlparse(url).query, **kwargs)


def is_iterable_like(x, allowed_types=collections.abc.Iterable, blocked_types=NO_DEFAULT):
    if blocked_types is NO_DEFAULT:
        blocked_types = (str, bytes, collections.abc.Mapping)
    return isinstance(x, allowed_types) and not isinstance(x, blocked_types)


def variadic(x, allowed_types=NO_DEFAULT):
    """`x` itself when it is a list-like, else a 1-tuple of it"""
    return x if is_iterable_like(x, blocked_types=allowed_types) else (x,)


def try_call(*funcs, expected_type=None, args=[], kwargs={}):
    """Result of the first of `funcs` that neither raises a lookup error nor returns a wrong type"""
    for func in funcs:
        try:
            value = func(*args, **kwargs)
        except (AttributeError, KeyError, TypeError, IndexError, ValueError, ZeroDivisionError):
            continue
        if expected_type is None or isinstance(value, expected_type):
            return value
    return None


def try_get(src, getter, expected_type=None):
    return try_call(*variadic(getter), args=(src,), expected_type=expected_type)


def filter_dict(dct, cndn=lambda _, v: v is not None):
    return {k: v for k, v in dct.items() if cndn(k, v)}


def format_field(obj, field=None, template='%s', ignore=NO_DEFAULT, default='', func=IDENTITY):
    value = traversal.traverse_obj(obj, *variadic(field))
    if ignore is NO_DEFAULT:
        skip = not value
    else:
        skip = value in variadic(ignore)
    return default if skip else template % func(value)


def join_nonempty(*values, delim='-'):
    return delim.join(map(str, filter(None, values)))


def error_to_str(err):
    return f'{type(err).__name__}: {err}'


def expand_path(s):
    """Expand shell variables and ~"""
    return os.path.expandvars(os.path.expanduser(s))


_BOMS = (
    (b'\xef\xbb\xbf', 'utf-8'),
    (b'\x00\x00\xfe\xff', 'utf-32-be'),
    (b'\xff\xfe\x00\x00', 'utf-32-le'),
    (b'\xff\xfe', 'utf-16-le'),
    (b'\xfe\xff', 'utf-16-be'),
)


def determine_file_encoding(data):
    """
    Encoding of a config file from its first bytes
    @returns (encoding or None, number of BOM bytes to skip)
    """
    bom, encoding = next(((bom, enc) for bom, enc in _BOMS if data.startswith(bom)), (b'', None))
    if encoding:
        return encoding, len(bom)

    # A "# coding: ..." line; null bytes are dropped so UTF-16/32 files match too
    mobj = re.match(rb'(?m)^#\s*coding\s*:\s*(\S+)\s*$', data.replace(b'\0', b''))
    return (mobj.group(1).decode() if mobj else None), 0


class Config:
    """Arguments of one source: the command line, an override or a config file

    Config files named by `--config-locations` in a source become its
    children. `all_args` puts children and later sources first, so that
    optparse lets the earlier arguments win.
    """
    args = None
    filename = None

    def __init__(self, parser, label=None, _loaded=None):
        self.parser, self.label = parser, label
        self.configs = []
        self._loaded = set() if _loaded is None else _loaded

    def __str__(self):
        lines = []
        if self.args is not None:
            source = join_nonempty(self.label, 'config', self.filename and f'"{self.filename}"', delim=' ')
            lines.append(f'{source[0].upper()}{source[1:]}: {self.args}')
        for config in self.configs:
            lines.extend(f'| {line}' for line in str(config).splitlines())
        return '\n'.join(lines)

    @staticmethod
    def read_file(filename, default=[]):
        """Split a config file into arguments; `default` if it cannot be opened"""
        try:
            with open(filename, 'rb') as f:
                data = f.read()
        except OSError:
            return default
        encoding, skip = determine_file_encoding(data[:512])
        try:
            return shlex.split(data[skip:].decode(encoding or preferredencoding()), comments=True)
        except (LookupError, ValueError) as err:
            raise ValueError(f'Unable to parse "{filename}": {err}')

    def append_config(self, args, filename=None, *, label=None):
        config = type(self)(self.parser, label, self._loaded)
        if config.load(args, filename):
            self.configs.append(config)

    def load(self, args, filename=None):
        """Take `args` and the config files they name; False if `filename` was already loaded"""
        directory = ''
        if filename:
            location = os.path.realpath(filename)
            if location in self._loaded:
                return False
            self._loaded.add(location)
            directory = os.path.dirname(location)

        self.args, self.filename = args, filename
        opts, _ = self.parser.parse_known_args(args)
        for location in opts.config_locations or []:
            location = os.path.join(directory, expand_path(location))
            if os.path.isdir(location):
                location = os.path.join(location, 'ytmix.conf')
            if not os.path.exists(location):
                self.parser.error(f'config location {location} does not exist')
            self.append_config(self.read_file(location), location)
        return True

    @property
    def all_args(self):
        for config in reversed(self.configs):
            yield from config.all_args
        yield from self.args or []

    def parse_known_args(self, **kwargs):
        return self.parser.parse_known_args(list(self.all_args), **kwargs)

    def parse_args(self):
        return self.parser.parse_args(list(self.all_args))


class classproperty:
    """A read-only property computed from the class"""

    def __init__(self, func):
        functools.update_wrapper(self, func)
        self.func = func

    def __get__(self, _, cls):
        return self.func(cls)


class Namespace(types.SimpleNamespace):
    def __iter__(self):
        return iter(self.__dict__.values())


class _MixDLLogger:
    """Logger interface for the networking layer that writes through a MixDL"""

    def __init__(self, ydl=None):
        self._ydl = ydl

    def _call(self, method, *args, **kwargs):
        if self._ydl:
            getattr(self._ydl, method)(*args, **kwargs)

    def debug(self, message):
        self._call('write_debug', message)

    def info(self, message):
        self._call('to_screen', message)

    def warning(self, message, *, once=False):
        self._call('report_warning', message, only_once=once)

    def error(self, message, *, is_error=True):
        self._call('report_error', message, is_error=is_error)

    def stdout(self, message):
        self._call('to_stdout', message)

    def stderr(self, message):
        self._call('to_stderr', message)
