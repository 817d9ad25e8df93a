import contextlib
import http.cookiejar
import io
import os
import re
import time

from .utils import expand_path, str_or_none, write_string

# RFC 6265 cookie-octets, optionally in double quotes
_SET_COOKIE_RE = re.compile(r'''(?x)
    \s*(?P<name>[^=;\s]+)\s*=\s*
    (?P<quote>"?)(?P<value>[\x21\x23-\x2B\x2D-\x3A\x3C-\x5B\x5D-\x7E]*)(?P=quote)
    \s*(?:;|$)''')


def read_cookie(name, response):
    """Return the value the server set for cookie `name` in `response`, or None

    Every Set-Cookie header of the response is considered, the last one wins.
    Headers whose value is not a valid cookie value are skipped.
    """
    value = None
    for header in response.headers.get_all('Set-Cookie') or []:
        mobj = _SET_COOKIE_RE.match(header)
        if mobj and mobj.group('name') == name:
            value = mobj.group('value')
    return value


class MixCookieJar(http.cookiejar.MozillaCookieJar):
    """
    Cookie jar that reads and writes Netscape formatted cookie files
    (https://curl.se/docs/http-cookies.html)

    Session cookies are saved with an expiry of 0 and read back as session
    cookies, so that they survive between runs.
    """
    _HTTPONLY_PREFIX = '#HttpOnly_'
    _FIELD_COUNT = 7
    _HEADER = '''# Netscape HTTP Cookie File
# This file is generated by ytmix.  Do not edit.

'''

    def __init__(self, filename=None, *args, **kwargs):
        super().__init__(None, *args, **kwargs)
        self.filename = os.fspath(filename) if isinstance(filename, os.PathLike) else filename

    @contextlib.contextmanager
    def open(self, file, *, write=False):
        """A path is opened as UTF-8 text; a text stream is used as is"""
        if not isinstance(file, (str, os.PathLike)):
            if write:
                file.truncate(0)
            yield file
            return
        with open(file, 'w' if write else 'r', encoding='utf-8') as f:
            yield f

    def _filename(self, filename):
        if filename is not None:
            return filename
        if self.filename is None:
            raise ValueError(http.cookiejar.MISSING_FILENAME_TEXT)
        return self.filename

    @staticmethod
    def _entry(cookie):
        name, value = cookie.name, cookie.value
        # A cookie without value ("Set-Cookie: foo") is written as a nameless one
        if value is None:
            name, value = '', name
        return '\t'.join((
            cookie.domain,
            'TRUE' if cookie.domain.startswith('.') else 'FALSE',
            cookie.path,
            'TRUE' if cookie.secure else 'FALSE',
            str_or_none(cookie.expires, default=''),
            name, value,
        ))

    def save(self, filename=None, ignore_discard=True, ignore_expires=True):
        filename = self._filename(filename)
        now = time.time()
        with self.open(filename, write=True) as f:
            f.write(self._HEADER)
            for cookie in self:
                if cookie.discard and not ignore_discard:
                    continue
                if cookie.is_expired(now) and not ignore_expires:
                    continue
                if cookie.expires is None:
                    cookie.expires = 0
                f.write(f'{self._entry(cookie)}\n')

    def _check_line(self, line):
        """`line` without the HttpOnly prefix; raises LoadError for a malformed entry"""
        line = line.removeprefix(self._HTTPONLY_PREFIX)
        if line.startswith('#') or not line.strip():
            return line
        fields = line.rstrip('\n').split('\t')
        if len(fields) != self._FIELD_COUNT:
            raise http.cookiejar.LoadError(f'invalid length {len(fields)}')
        expires = fields[4]
        if expires and not expires.isdigit():
            raise http.cookiejar.LoadError(f'invalid expires at {expires}')
        return line

    def load(self, filename=None, ignore_discard=True, ignore_expires=True):
        filename = self._filename(filename)
        checked = io.StringIO()
        with self.open(filename) as f:
            for line in f:
                try:
                    checked.write(self._check_line(line))
                except http.cookiejar.LoadError as e:
                    if line.lstrip()[:1] in ('[', '{', '"'):
                        raise http.cookiejar.LoadError('Cookies file must be Netscape formatted, not JSON')
                    write_string(f'WARNING: skipping cookie file entry due to {e}: {line!r}\n')
        checked.seek(0)
        self._really_load(checked, filename, ignore_discard, ignore_expires)
        # An expiry of 0 marks a session cookie as well
        for cookie in self:
            if cookie.expires == 0:
                cookie.expires = None
                cookie.discard = True


def load_cookies(cookie_file):
    """A MixCookieJar backed by `cookie_file` (a path or a text stream), loaded if it exists"""
    if isinstance(cookie_file, str):
        cookie_file = expand_path(cookie_file)
    jar = MixCookieJar(cookie_file)
    if cookie_file is None:
        return jar
    if not isinstance(cookie_file, str) or os.access(cookie_file, os.R_OK):
        jar.load()
    return jar
