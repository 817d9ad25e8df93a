from __future__ import annotations

import functools
import http.client
import logging

from ..dependencies import brotli, requests, urllib3
from ..utils import int_or_none, variadic
from ..utils.networking import normalize_url, select_proxy

if requests is None:
    raise ImportError('requests module is not installed')

if urllib3 is None:
    raise ImportError('urllib3 module is not installed')

urllib3_version = tuple(int_or_none(x, default=0) for x in urllib3.__version__.split('.'))

if urllib3_version < (1, 26, 17):
    raise ImportError('Only urllib3 >= 1.26.17 is supported')

if requests.__build__ < 0x023202:
    raise ImportError('Only requests >= 2.32.2 is supported')

import requests.adapters
import requests.utils
import urllib3.connection
import urllib3.exceptions
import urllib3.util

from ._helper import InstanceStoreMixin, add_accept_encoding_header
from .common import (
    RequestHandler,
    Response,
    register_rh,
)
from .exceptions import (
    CertificateVerifyError,
    HTTPError,
    IncompleteRead,
    ProxyError,
    RequestError,
    SSLError,
    TransportError,
)

SUPPORTED_ENCODINGS = ['gzip', 'deflate']
if brotli is not None:
    SUPPORTED_ENCODINGS.append('br')

# requests ignores "no" entries of a proxy dict (psf/requests#5000)
requests.adapters.select_proxy = select_proxy


def _incomplete_read(err):
    return next((
        e for e in (err.__context__, err.__cause__, *variadic(err.args))
        if isinstance(e, http.client.IncompleteRead)), None)


class RequestsResponseAdapter(Response):
    def __init__(self, res: requests.models.Response):
        # The urllib3 header container keeps repeated Set-Cookie headers apart
        super().__init__(
            fp=res.raw, headers=list(res.raw.headers.iteritems()), url=res.url,
            status=res.status_code, reason=res.reason)
        self._requests_response = res

    def read(self, amt: int | None = None):
        try:
            if amt is not None:
                return self.fp.read(amt, decode_content=True)
            read_chunk = functools.partial(self.fp.read, 1 << 20, decode_content=True)
            return b''.join(iter(read_chunk, b''))
        except urllib3.exceptions.SSLError as e:
            raise SSLError(cause=e) from e
        except urllib3.exceptions.ProtocolError as e:
            # A truncated body surfaces as a ProtocolError wrapping http.client.IncompleteRead
            partial_err = _incomplete_read(e)
            if partial_err is None:
                raise TransportError(cause=e) from e
            partial = partial_err.partial
            raise IncompleteRead(
                partial=partial if isinstance(partial, int) else len(partial),
                expected=partial_err.expected) from e
        except urllib3.exceptions.HTTPError as e:
            raise TransportError(cause=e) from e


class RequestsHTTPAdapter(requests.adapters.HTTPAdapter):
    """HTTPAdapter sending through our SSLContext and source address"""

    def __init__(self, ssl_context=None, source_address=None, **kwargs):
        self._pool_kwargs = {}
        if ssl_context:
            self._pool_kwargs['ssl_context'] = ssl_context
        if source_address:
            self._pool_kwargs['source_address'] = (source_address, 0)
        self._proxy_ssl_context = ssl_context
        super().__init__(**kwargs)

    def init_poolmanager(self, *args, **kwargs):
        return super().init_poolmanager(*args, **kwargs, **self._pool_kwargs)

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        if self._proxy_ssl_context:
            proxy_kwargs['proxy_ssl_context'] = self._proxy_ssl_context
        return super().proxy_manager_for(proxy, **proxy_kwargs, **self._pool_kwargs)

    # Certificates are checked by the SSLContext, not by requests
    def cert_verify(*args, **kwargs):
        pass

    def get_connection_with_tls_context(self, request, verify, proxies=None, cert=None):
        url = urllib3.util.parse_url(request.url).url
        proxy = select_proxy(url, proxies)
        manager = self.proxy_manager_for(proxy) if proxy else self.poolmanager
        return manager.connection_from_url(url)


class RequestsSession(requests.sessions.Session):
    def rebuild_method(self, prepared_request, response):
        super().rebuild_method(prepared_request, response)
        # Absolute redirect locations may still hold dot segments
        prepared_request.url = normalize_url(prepared_request.url)


class Urllib3LoggingHandler(logging.Handler):
    """Pass urllib3 log records on to a MixDL logger"""

    # HTTPConnection prints these lines itself when traffic is shown
    _REQUEST_LINE = '%s://%s:%s "%s %s %s" %s %s'

    def __init__(self, logger, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._logger = logger

    def filter(self, record):
        return record.msg != self._REQUEST_LINE and super().filter(record)

    def emit(self, record):
        try:
            msg = self.format(record)
            if record.levelno >= logging.ERROR:
                self._logger.error(msg)
            else:
                self._logger.stdout(msg)
        except Exception:
            self.handleError(record)


@register_rh
class RequestsRH(RequestHandler, InstanceStoreMixin):
    """Send requests with a requests Session per cookie jar"""

    _SUPPORTED_URL_SCHEMES = ('http', 'https')
    _SUPPORTED_PROXY_SCHEMES = ('http', 'https')
    RH_NAME = 'requests'

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)

        urllib3_logger = logging.getLogger('urllib3')
        self._logging_handler = Urllib3LoggingHandler(logger=self._logger)
        self._logging_handler.setFormatter(logging.Formatter('requests: %(message)s'))
        urllib3_logger.addHandler(self._logging_handler)
        urllib3_logger.setLevel(logging.DEBUG if self.verbose else logging.ERROR)
        if self.verbose:
            urllib3.connection.HTTPConnection.debuglevel = 1

        # Raised for every request made with --no-check-certificates
        urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def close(self):
        self._clear_instances()
        logging.getLogger('urllib3').removeHandler(self._logging_handler)

    def _create_instance(self, cookiejar):
        adapter = RequestsHTTPAdapter(
            ssl_context=self._make_sslcontext(),
            source_address=self.source_address,
            max_retries=urllib3.util.retry.Retry(False),
        )
        session = RequestsSession()
        session.adapters.clear()
        session.mount('http://', adapter)
        session.mount('https://', adapter)
        session.headers = requests.models.CaseInsensitiveDict()
        session.cookies = cookiejar
        # Proxies from the environment are already in self.proxies
        session.trust_env = False
        return session

    def _get_headers(self, request):
        headers = self._merge_headers(request.headers)
        add_accept_encoding_header(headers, SUPPORTED_ENCODINGS)
        headers.setdefault('Connection', 'keep-alive')
        return headers

    def _send(self, request):
        session = self._get_instance(cookiejar=self._get_cookiejar(request))
        redirect_loop = False
        try:
            requests_res = session.request(
                method=request.method,
                url=request.url,
                headers=self._get_headers(request).sensitive(),
                timeout=self._calculate_timeout(request),
                proxies=self._get_proxies(request),
                allow_redirects=True,
                stream=True,
            )
        except requests.exceptions.TooManyRedirects as e:
            redirect_loop = True
            requests_res = e.response
        except requests.exceptions.SSLError as e:
            if 'CERTIFICATE_VERIFY_FAILED' in str(e):
                raise CertificateVerifyError(cause=e) from e
            raise SSLError(cause=e) from e
        except requests.exceptions.ProxyError as e:
            raise ProxyError(cause=e) from e
        except (requests.exceptions.ConnectionError, requests.exceptions.Timeout, urllib3.exceptions.HTTPError) as e:
            raise TransportError(cause=e) from e
        except requests.exceptions.RequestException as e:
            # Not necessarily a network problem, e.g. InvalidURL
            raise RequestError(cause=e) from e

        res = RequestsResponseAdapter(requests_res)
        if not 200 <= res.status < 300:
            raise HTTPError(res, redirect_loop=redirect_loop)
        return res
