from __future__ import annotations

import abc
import contextlib
import io
import typing
import urllib.parse
import urllib.request
from collections.abc import Mapping
from email.message import Message
from http import HTTPStatus

from ._helper import make_ssl_context, wrap_request_errors
from .exceptions import (
    NoSupportingHandlers,
    RequestError,
    TransportError,
    UnsupportedRequest,
)
from ..cookies import MixCookieJar
from ..utils import (
    bug_reports_message,
    classproperty,
    error_to_str,
    update_url_query,
)
from ..utils.networking import HTTPHeaderDict, normalize_url

DEFAULT_TIMEOUT = 20

# Request extensions every handler understands, with the types they accept
_COMMON_EXTENSIONS = {
    'cookiejar': (MixCookieJar, type(None)),
    'timeout': (float, int, type(None)),
}


class RequestDirector:
    """Send each request through the first handler, in the order they were added, that accepts it

    @param logger: Logger instance.
    @param verbose: Print debug request information to stdout.
    """

    def __init__(self, logger, verbose=False):
        self.handlers: dict[str, RequestHandler] = {}
        self.logger = logger
        self.verbose = verbose

    def close(self):
        for handler in self.handlers.values():
            handler.close()
        self.handlers.clear()

    def add_handler(self, handler: RequestHandler):
        """Add a handler, replacing any with the same RH_KEY"""
        assert isinstance(handler, RequestHandler), 'handler must be a RequestHandler'
        self.handlers[handler.RH_KEY] = handler

    def _debug(self, msg):
        if self.verbose:
            self.logger.stdout(f'director: {msg}')

    def send(self, request: Request) -> Response:
        if not self.handlers:
            raise RequestError('No request handlers configured')
        assert isinstance(request, Request)

        unsupported, unexpected = [], []
        for handler in list(self.handlers.values()):
            try:
                handler.validate(request)
            except UnsupportedRequest as e:
                self._debug(f'"{handler.RH_NAME}" cannot handle this request (reason: {error_to_str(e)})')
                unsupported.append(e)
                continue

            self._debug(f'Sending request via "{handler.RH_NAME}"')
            try:
                response = handler.send(request)
            except RequestError:
                raise
            except Exception as e:
                # A bug in the handler; the next one may still succeed
                self.logger.error(
                    f'[{handler.RH_NAME}] Unexpected error: {error_to_str(e)}{bug_reports_message()}',
                    is_error=False)
                unexpected.append(e)
                continue

            assert isinstance(response, Response)
            return response

        raise NoSupportingHandlers(unsupported, unexpected)


_REQUEST_HANDLERS = {}


def register_rh(handler):
    """Register a RequestHandler class"""
    assert issubclass(handler, RequestHandler), f'{handler} must be a subclass of RequestHandler'
    assert handler.RH_KEY not in _REQUEST_HANDLERS, f'RequestHandler {handler.RH_KEY} already registered'
    _REQUEST_HANDLERS[handler.RH_KEY] = handler
    return handler


class RequestHandler(abc.ABC):
    """Base of the classes that send a Request and return a Response

    Subclasses implement _send() and are named with an "RH" suffix. Every
    failure they raise must be a RequestError; anything else is reported by
    the director as a bug in the handler.

    validate() rejects with UnsupportedRequest what the handler cannot send:
    a url scheme outside `_SUPPORTED_URL_SCHEMES`, a proxy scheme outside
    `_SUPPORTED_PROXY_SCHEMES` (None accepts any) or an unknown extension.
    Subclasses understanding more extensions add them to `_EXTENSIONS`.

    @param logger: logger instance
    @param headers: Default HTTP headers, merged under the headers of each request.
    @param cookiejar: Cookiejar to use for requests.
    @param timeout: Socket timeout in seconds.
    @param proxies: Proxy dict, overridden by the proxies of a request.
    @param source_address: Client-side IP address to bind to.
    @param verbose: Print HTTP traffic to stdout.
    @param prefer_system_certs: Use the system certificate store instead of certifi.
    @param verify: Verify SSL certificates.

    Request extensions: `cookiejar` and `timeout` override the handler's own for one request.
    """

    _SUPPORTED_URL_SCHEMES = ()
    _SUPPORTED_PROXY_SCHEMES = ()
    _EXTENSIONS = _COMMON_EXTENSIONS

    def __init__(
        self, *,
        logger,
        headers: HTTPHeaderDict = None,
        cookiejar: MixCookieJar = None,
        timeout: float | int | None = None,
        proxies: dict | None = None,
        source_address: str | None = None,
        verbose: bool = False,
        prefer_system_certs: bool = False,
        verify: bool = True,
        **_,
    ):
        self._logger = logger
        self.headers = headers or {}
        self.cookiejar = cookiejar if cookiejar is not None else MixCookieJar()
        self.timeout = float(timeout or DEFAULT_TIMEOUT)
        self.proxies = proxies or {}
        self.source_address = source_address
        self.verbose = verbose
        self.prefer_system_certs = prefer_system_certs
        self.verify = verify
        super().__init__()

    def _make_sslcontext(self):
        return make_ssl_context(verify=self.verify, use_certifi=not self.prefer_system_certs)

    def _merge_headers(self, request_headers):
        return HTTPHeaderDict(self.headers, request_headers)

    def _calculate_timeout(self, request):
        return float(request.extensions.get('timeout') or self.timeout)

    def _get_cookiejar(self, request):
        cookiejar = request.extensions.get('cookiejar')
        return self.cookiejar if cookiejar is None else cookiejar

    def _get_proxies(self, request):
        return dict(request.proxies or self.proxies)

    def _validate_proxy(self, key, proxy_url):
        # "no" lists hosts rather than a proxy; keys of schemes this handler never sends are unused
        if proxy_url is None or key == 'no' or self._SUPPORTED_PROXY_SCHEMES is None:
            return
        if key != 'all' and key not in self._SUPPORTED_URL_SCHEMES:
            return
        try:
            scheme = urllib.request._parse_proxy(proxy_url)[0]
        except ValueError as e:
            raise UnsupportedRequest(f'Invalid proxy url "{proxy_url}": {e}')
        if scheme is None:
            raise UnsupportedRequest(f'Proxy "{proxy_url}" missing scheme')
        if scheme.lower() not in self._SUPPORTED_PROXY_SCHEMES:
            raise UnsupportedRequest(f'Unsupported proxy type: "{scheme.lower()}"')

    def _validate(self, request):
        scheme = urllib.parse.urlparse(request.url).scheme.lower()
        if scheme not in self._SUPPORTED_URL_SCHEMES:
            raise UnsupportedRequest(f'Unsupported url scheme: "{scheme}"')

        for key, proxy_url in (request.proxies or self.proxies).items():
            self._validate_proxy(key, proxy_url)

        unknown = [name for name in request.extensions if name not in self._EXTENSIONS]
        if unknown:
            raise UnsupportedRequest(f'Unsupported extensions: {", ".join(unknown)}')
        for name, value in request.extensions.items():
            assert isinstance(value, self._EXTENSIONS[name]), f'Invalid value for the {name} extension'

    @wrap_request_errors
    def validate(self, request: Request):
        if not isinstance(request, Request):
            raise TypeError('Expected an instance of Request')
        self._validate(request)

    @wrap_request_errors
    def send(self, request: Request) -> Response:
        if not isinstance(request, Request):
            raise TypeError('Expected an instance of Request')
        return self._send(request)

    @abc.abstractmethod
    def _send(self, request: Request):
        """Handle a request from start to finish. Redefine in subclasses."""
        pass

    def close(self):  # noqa: B027
        pass

    @classproperty
    def RH_NAME(cls):
        return cls.__name__[:-2]

    @classproperty
    def RH_KEY(cls):
        assert cls.__name__.endswith('RH'), 'RequestHandler class names must end with "RH"'
        return cls.__name__[:-2]

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class Request:
    """
    A GET request

    @param url: url to send; protocol-relative urls get http: and the url is normalized
    @param headers: headers to send
    @param proxies: proxy dict (scheme, "all" or "no" to proxy url) for this request and its redirects
    @param query: query parameters merged into the url
    @param extensions: handler specific options, see RequestHandler
    """

    method = 'GET'

    def __init__(
            self,
            url: str,
            headers: typing.Mapping | None = None,
            proxies: dict | None = None,
            query: dict | None = None,
            extensions: dict | None = None,
    ):
        self.url = update_url_query(url, query) if query else url
        self.headers = headers or {}
        self.proxies = proxies or {}
        self.extensions = extensions or {}

    @property
    def url(self):
        return self._url

    @url.setter
    def url(self, url):
        if not isinstance(url, str):
            raise TypeError('url must be a string')
        if url.startswith('//'):
            url = f'http:{url}'
        self._url = normalize_url(url)

    @property
    def headers(self) -> HTTPHeaderDict:
        return self._headers

    @headers.setter
    def headers(self, new_headers: Mapping):
        if not isinstance(new_headers, Mapping):
            raise TypeError('headers must be a mapping')
        self._headers = new_headers if isinstance(new_headers, HTTPHeaderDict) else HTTPHeaderDict(new_headers)


class Response(io.IOBase):
    """
    A response of a handler, wrapping the file-like object it reads from

    @param fp: file-like body of the response
    @param url: final url, after any redirects
    @param headers: response headers
    @param status: HTTP status code
    @param reason: HTTP reason phrase; the standard one for `status` if not given

    Repeated headers, such as several Set-Cookie lines, are kept apart:
    pass them as a list of (name, value) tuples and read them with `headers.get_all()`.
    """

    def __init__(
            self,
            fp: io.IOBase,
            url: str,
            headers: Mapping[str, str] | list[tuple[str, str]],
            status: int = 200,
            reason: str | None = None,
    ):
        self.fp = fp
        self.url = url
        self.status = status
        self.headers = Message()
        for name, value in (headers.items() if isinstance(headers, Mapping) else headers):
            self.headers.add_header(name, value)
        if reason is None:
            with contextlib.suppress(ValueError):
                reason = HTTPStatus(status).phrase
        self.reason = reason

    def readable(self):
        return self.fp.readable()

    def read(self, amt: int | None = None) -> bytes:
        try:
            return self.fp.read(amt)
        except Exception as e:
            raise TransportError(cause=e) from e

    def close(self):
        self.fp.close()
        return super().close()
