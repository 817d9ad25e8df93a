from __future__ import annotations

import collections.abc
import urllib.parse
import urllib.request

from ._utils import NO_DEFAULT, format_field, remove_start
from .traversal import traverse_obj

# YouTube serves the structured watch JSON only to clients that look like a desktop browser
_USER_AGENT = 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/140.0.0.0 Safari/537.36'


class HTTPHeaderDict(dict):
    """
    Header mapping with case-insensitive, title-cased keys

    Several mappings may be passed, later ones override earlier ones.
    Values are stored as stripped strings. `sensitive()` returns the headers
    under the spelling they were last set with.
    """

    def __init__(self, /, *args, **kwargs):
        super().__init__()
        self._names = {}
        for headers in filter(None, args):
            self.update(headers)
        self.update(kwargs)

    def sensitive(self, /) -> dict[str, str]:
        return {self._names[key]: value for key, value in self.items()}

    def __contains__(self, key, /) -> bool:
        return super().__contains__(key.title())

    def __getitem__(self, key, /) -> str:
        return super().__getitem__(key.title())

    def __setitem__(self, key: str, value, /) -> None:
        if isinstance(value, bytes):
            value = value.decode('latin-1')
        self._names[key.title()] = key
        super().__setitem__(key.title(), str(value).strip())

    def __delitem__(self, key: str, /) -> None:
        del self._names[key.title()]
        super().__delitem__(key.title())

    def __or__(self, other, /) -> HTTPHeaderDict:
        if not isinstance(other, dict):
            return NotImplemented
        return type(self)(self, other)

    def copy(self, /) -> HTTPHeaderDict:
        return type(self)(self)

    def get(self, key, /, default=None):
        return super().get(key.title(), default)

    def pop(self, key, /, default=NO_DEFAULT):
        key = key.title()
        self._names.pop(key, None)
        if default is NO_DEFAULT:
            return super().pop(key)
        return super().pop(key, default)

    def setdefault(self, key, /, default=None) -> str:
        if key not in self:
            self[key] = default
        return self[key]

    def update(self, other=(), /, **kwargs) -> None:
        if isinstance(other, HTTPHeaderDict):
            other = other.sensitive()
        for key, value in (other.items() if isinstance(other, collections.abc.Mapping) else other):
            self[key] = value
        for key, value in kwargs.items():
            self[key] = value


std_headers = HTTPHeaderDict({
    'User-Agent': _USER_AGENT,
    'Accept': '*/*',
    'Accept-Language': 'en-US,en;q=0.9',
    'Sec-Fetch-Mode': 'navigate',
})


def clean_proxies(proxies: dict):
    """Normalize a proxy dict in place

    "__noproxy__" disables the proxy of its key and a proxy url without a
    scheme is taken as http. The "no" entry and invalid urls are left as they are.
    """
    for key, url in proxies.items():
        if url == '__noproxy__':
            proxies[key] = None
        elif key != 'no' and url is not None:
            try:
                scheme = urllib.request._parse_proxy(url)[0]
            except ValueError:
                continue
            if scheme is None:
                proxies[key] = f'http://{remove_start(url, "//")}'


def cookie_header(cookies: dict[str, str]) -> str | None:
    """Build a Cookie header value from a name -> value mapping"""
    return '; '.join(f'{name}={value}' for name, value in cookies.items() if value is not None) or None


def remove_dot_segments(path):
    """Resolve "." and ".." path segments (RFC 3986 section 5.2.4)"""
    segments = path.split('/')
    resolved = []
    for segment in segments:
        if segment == '..':
            if resolved:
                resolved.pop()
        elif segment != '.':
            resolved.append(segment)
    if not segments[0] and (not resolved or resolved[0]):
        resolved.insert(0, '')
    if segments[-1] in ('.', '..'):
        resolved.append('')
    return '/'.join(resolved)


def _quote(s):
    # Reserved characters of RFC 3986 stay as they are
    return urllib.parse.quote(s, b"%/;:@&=+$,!~*'()?#[]")


def normalize_url(url):
    """IDNA-encode the host, resolve dot segments and percent-encode everything else"""
    parts = urllib.parse.urlparse(url)
    return parts._replace(
        netloc=parts.netloc.encode('idna').decode('ascii'),
        path=_quote(remove_dot_segments(parts.path)),
        params=_quote(parts.params),
        query=_quote(parts.query),
        fragment=_quote(parts.fragment),
    ).geturl()


def select_proxy(url, proxies):
    """Proxy for `url`: the entry of its scheme, else "all"; None when "no" or the system bypasses its host"""
    parts = urllib.parse.urlparse(url)
    if 'no' in proxies:
        hostport = parts.hostname + format_field(parts.port, None, ':%s')
        if (urllib.request.proxy_bypass_environment(hostport, {'no': proxies['no']})
                or urllib.request.proxy_bypass(hostport)):
            return None
    return traverse_obj(proxies, parts.scheme or 'http', 'all')
