#!/usr/bin/env python3

# Allow direct execution
import os
import sys

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import gzip
import http.server
import io
import json
import threading

from test.helper import http_server_port, validate_and_send
from ytmix import MixDL
from ytmix.cookies import MixCookieJar, read_cookie
from ytmix.networking import Request, RequestDirector, RequestHandler, Response
from ytmix.networking.common import DEFAULT_TIMEOUT
from ytmix.networking.exceptions import (
    HTTPError,
    NoSupportingHandlers,
    RequestError,
    TransportError,
    UnsupportedRequest,
)
from ytmix.utils._utils import _MixDLLogger as FakeLogger
from ytmix.utils.networking import HTTPHeaderDict

WATCH_PAYLOAD = json.dumps([
    {'page': 'watch'},
    {},
    {},
    {'response': {'contents': {}}},
]).encode()


class HTTPTestRequestHandler(http.server.BaseHTTPRequestHandler):
    protocol_version = 'HTTP/1.1'
    default_request_version = 'HTTP/1.1'

    def log_message(self, format, *args):
        pass

    def _send_payload(self, payload, status=200, content_type='application/json', headers=()):
        self.send_response(status)
        self.send_header('Content-Type', content_type)
        for name, value in headers:
            self.send_header(name, value)
        self.send_header('Content-Length', str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _headers(self):
        payload = json.dumps(dict(self.headers.items())).encode()
        self._send_payload(payload)

    def do_GET(self):
        if self.path.startswith('/watch'):
            self._send_payload(WATCH_PAYLOAD, headers=(
                ('Set-Cookie', 'YSC=ysc_value; Domain=127.0.0.1; Path=/'),
                ('Set-Cookie', 'VISITOR_INFO1_LIVE=abc123; Path=/; HttpOnly'),
            ))
        elif self.path.startswith('/headers'):
            self._headers()
        elif self.path.startswith('/gzip'):
            buf = io.BytesIO()
            with gzip.GzipFile(fileobj=buf, mode='wb') as f:
                f.write(WATCH_PAYLOAD)
            self._send_payload(buf.getvalue(), headers=(('Content-Encoding', 'gzip'),))
        elif self.path.startswith('/redirect_301'):
            self.send_response(301)
            self.send_header('Location', '/headers')
            self.send_header('Content-Length', '0')
            self.end_headers()
        elif self.path.startswith('/gen_'):
            self._send_payload(b'<html></html>', status=int(self.path[len('/gen_'):]), content_type='text/html')
        else:
            self._send_payload(b'<html>404 NOT FOUND</html>', status=404, content_type='text/html')


class TestRequestHandlerBase:
    @classmethod
    def setup_class(cls):
        cls.http_httpd = http.server.ThreadingHTTPServer(
            ('127.0.0.1', 0), HTTPTestRequestHandler)
        cls.http_port = http_server_port(cls.http_httpd)
        cls.http_server_thread = threading.Thread(target=cls.http_httpd.serve_forever)
        cls.http_server_thread.daemon = True
        cls.http_server_thread.start()

    @classmethod
    def teardown_class(cls):
        cls.http_httpd.shutdown()
        cls.http_httpd.server_close()


@pytest.mark.parametrize('handler', ['Requests'], indirect=True)
class TestHTTPRequestHandler(TestRequestHandlerBase):

    def test_json_payload(self, handler):
        with handler() as rh:
            res = validate_and_send(rh, Request(f'http://127.0.0.1:{self.http_port}/watch?v=x&pbj=1'))
            assert res.status == 200
            assert res.headers['Content-Type'] == 'application/json'
            assert json.loads(res.read())[3] == {'response': {'contents': {}}}
            res.close()

    def test_repeated_set_cookie(self, handler):
        with handler() as rh:
            res = validate_and_send(rh, Request(f'http://127.0.0.1:{self.http_port}/watch'))
            assert len(res.headers.get_all('Set-Cookie')) == 2
            assert read_cookie('VISITOR_INFO1_LIVE', res) == 'abc123'
            assert read_cookie('YSC', res) == 'ysc_value'
            res.close()

    def test_request_headers(self, handler):
        with handler(headers=HTTPHeaderDict({'User-Agent': 'ytmix-test'})) as rh:
            res = validate_and_send(rh, Request(
                f'http://127.0.0.1:{self.http_port}/headers',
                headers={'X-YouTube-Client-Name': '1', 'Cookie': 'VISITOR_INFO1_LIVE=abc123'}))
            headers = HTTPHeaderDict(json.loads(res.read()))
            assert headers['User-Agent'] == 'ytmix-test'
            assert headers['X-Youtube-Client-Name'] == '1'
            assert headers['Cookie'] == 'VISITOR_INFO1_LIVE=abc123'
            res.close()

    def test_request_header_overrides_handler_header(self, handler):
        with handler(headers=HTTPHeaderDict({'User-Agent': 'default'})) as rh:
            res = validate_and_send(rh, Request(
                f'http://127.0.0.1:{self.http_port}/headers', headers={'user-agent': 'override'}))
            assert HTTPHeaderDict(json.loads(res.read()))['User-Agent'] == 'override'
            res.close()

    def test_gzip(self, handler):
        with handler() as rh:
            res = validate_and_send(rh, Request(f'http://127.0.0.1:{self.http_port}/gzip'))
            assert res.read() == WATCH_PAYLOAD
            res.close()

    def test_raise_http_error(self, handler):
        with handler() as rh:
            for bad_status in (400, 404, 500, 503):
                with pytest.raises(HTTPError) as exc_info:
                    validate_and_send(rh, Request('http://127.0.0.1:%d/gen_%d' % (self.http_port, bad_status)))
                assert exc_info.value.status == bad_status

            # Should not raise an error
            validate_and_send(rh, Request('http://127.0.0.1:%d/gen_200' % self.http_port)).close()

    def test_response_url(self, handler):
        with handler() as rh:
            res = validate_and_send(rh, Request(f'http://127.0.0.1:{self.http_port}/redirect_301'))
            assert res.url == f'http://127.0.0.1:{self.http_port}/headers'
            res.close()

    def test_connection_error(self, handler):
        with handler() as rh:
            with pytest.raises(TransportError):
                # closed port
                validate_and_send(rh, Request('http://127.0.0.1:1/watch'))

    def test_cookiejar_extension(self, handler):
        with handler() as rh:
            cookiejar = MixCookieJar()
            res = validate_and_send(rh, Request(
                f'http://127.0.0.1:{self.http_port}/watch', extensions={'cookiejar': cookiejar}))
            res.close()
            assert any(cookie.name == 'VISITOR_INFO1_LIVE' for cookie in cookiejar)

    def test_unsupported_scheme(self, handler):
        with handler() as rh:
            with pytest.raises(UnsupportedRequest):
                rh.validate(Request('ftp://127.0.0.1/watch'))

    def test_unsupported_proxy(self, handler):
        with handler() as rh:
            with pytest.raises(UnsupportedRequest):
                rh.validate(Request(f'http://127.0.0.1:{self.http_port}/watch', proxies={'http': 'socks5://127.0.0.1:1080'}))

    def test_unsupported_extension(self, handler):
        with handler() as rh:
            with pytest.raises(UnsupportedRequest):
                rh.validate(Request(f'http://127.0.0.1:{self.http_port}/watch', extensions={'impersonate': 'chrome'}))

    def test_timeout(self, handler):
        with handler() as rh:
            assert rh.timeout == DEFAULT_TIMEOUT
        with handler(timeout=5) as rh:
            assert rh._calculate_timeout(Request('http://127.0.0.1/')) == 5
            assert rh._calculate_timeout(Request('http://127.0.0.1/', extensions={'timeout': 1})) == 1


class FakeResponse(Response):
    def __init__(self, request):
        self.request = request
        super().__init__(fp=io.BytesIO(b''), headers={}, url=request.url)


class FakeRH(RequestHandler):
    _SUPPORTED_URL_SCHEMES = ('http',)
    _SUPPORTED_PROXY_SCHEMES = None

    def _send(self, request: Request):
        if request.url.endswith('/error'):
            raise TransportError('fake transport error')
        elif request.url.endswith('/unexpected'):
            raise ValueError('unexpected')
        return FakeResponse(request)


class FakeRHYDL(MixDL):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, auto_init=False, **kwargs)
        self._request_director = self.build_request_director([FakeRH])


class AllUnsupportedRHYDL(MixDL):
    def __init__(self, *args, **kwargs):

        class UnsupportedRH(RequestHandler):
            def _send(self, request: Request):
                pass

            _SUPPORTED_PROXY_SCHEMES = ()
            _SUPPORTED_URL_SCHEMES = ()

        super().__init__(*args, auto_init=False, **kwargs)
        self._request_director = self.build_request_director([UnsupportedRH])


class HTTPProxyOnlyRHYDL(MixDL):
    def __init__(self, *args, **kwargs):

        class HTTPProxyOnlyRH(FakeRH):
            _SUPPORTED_PROXY_SCHEMES = ('http',)

        super().__init__(*args, auto_init=False, **kwargs)
        self._request_director = self.build_request_director([HTTPProxyOnlyRH])


class TestRequestDirector:

    def test_handler_operations(self):
        director = RequestDirector(logger=FakeLogger())
        handler = FakeRH(logger=FakeLogger())
        director.add_handler(handler)
        assert director.handlers.get(FakeRH.RH_KEY) is handler

        # Handler should overwrite
        handler2 = FakeRH(logger=FakeLogger())
        director.add_handler(handler2)
        assert director.handlers.get(FakeRH.RH_KEY) is not handler
        assert director.handlers.get(FakeRH.RH_KEY) is handler2
        assert len(director.handlers) == 1

        director.close()
        assert len(director.handlers) == 0

    def test_send(self):
        director = RequestDirector(logger=FakeLogger())
        with pytest.raises(RequestError):
            director.send(Request('any://'))
        director.add_handler(FakeRH(logger=FakeLogger()))
        assert isinstance(director.send(Request('http://')), FakeResponse)

    def test_unsupported_handlers(self):
        director = RequestDirector(logger=FakeLogger())
        director.add_handler(FakeRH(logger=FakeLogger()))
        with pytest.raises(NoSupportingHandlers, match=r'Unsupported url scheme'):
            director.send(Request('https://'))

    def test_unexpected_error(self):
        director = RequestDirector(logger=FakeLogger())
        director.add_handler(FakeRH(logger=FakeLogger()))
        with pytest.raises(NoSupportingHandlers, match=r'1 unexpected error'):
            director.send(Request('http://host/unexpected'))

    def test_transport_error_propagates(self):
        director = RequestDirector(logger=FakeLogger())
        director.add_handler(FakeRH(logger=FakeLogger()))
        with pytest.raises(TransportError, match='fake transport error'):
            director.send(Request('http://host/error'))

    def test_handlers_tried_in_order(self):
        director = RequestDirector(logger=FakeLogger())
        director.add_handler(FakeRH(logger=FakeLogger()))

        class SomeRH(RequestHandler):
            _SUPPORTED_URL_SCHEMES = ('http', 'https')

            def _send(self, request: Request):
                return Response(fp=io.BytesIO(b'supported'), headers={}, url=request.url)

        director.add_handler(SomeRH(logger=FakeLogger()))

        assert isinstance(director.send(Request('http://')), FakeResponse)
        assert director.send(Request('https://')).read() == b'supported'


class TestMixDLNetworking:

    @staticmethod
    def build_handler(ydl, handler: RequestHandler = FakeRH):
        return ydl.build_request_director([handler]).handlers.get(handler.RH_KEY)

    def test_compat_opener(self):
        with FakeRHYDL() as ydl:
            res = ydl.urlopen('http://127.0.0.1/watch')
            assert isinstance(res, FakeResponse)
            assert res.request.url == 'http://127.0.0.1/watch'

    def test_protocol_relative_url(self):
        with FakeRHYDL() as ydl:
            assert ydl.urlopen('//127.0.0.1/watch').request.url == 'http://127.0.0.1/watch'

    @pytest.mark.parametrize('proxy,expected', [
        ('http://127.0.0.1:8080', {'all': 'http://127.0.0.1:8080'}),
        ('', {'all': '__noproxy__'}),
        (None, {}),
    ])
    def test_proxy(self, proxy, expected, monkeypatch):
        for key in ('HTTP_PROXY', 'HTTPS_PROXY', 'ALL_PROXY', 'NO_PROXY', 'http_proxy', 'https_proxy', 'all_proxy', 'no_proxy'):
            monkeypatch.delenv(key, raising=False)
        with FakeRHYDL({'proxy': proxy}) as ydl:
            assert ydl.proxies == expected

    def test_clean_proxy(self):
        with FakeRHYDL({'proxy': '127.0.0.1:8080'}) as ydl:
            rh = self.build_handler(ydl)
            assert rh.proxies['all'] == 'http://127.0.0.1:8080'

    def test_unsupported_proxy_hint(self):
        with HTTPProxyOnlyRHYDL({'proxy': 'socks5://127.0.0.1:1080'}) as ydl:
            with pytest.raises(RequestError, match=r'Only http:// and https:// proxies'):
                ydl.urlopen('http://127.0.0.1/watch')

    def test_no_supporting_handlers(self):
        with AllUnsupportedRHYDL() as ydl:
            with pytest.raises(NoSupportingHandlers):
                ydl.urlopen('http://127.0.0.1/watch')

    def test_handler_params(self):
        with FakeRHYDL({
            'socket_timeout': 7,
            'source_address': '127.0.0.1',
            'nocheckcertificate': True,
            'debug_printtraffic': True,
            'http_headers': {'X-Custom': 'value'},
        }) as ydl:
            rh = self.build_handler(ydl)
            assert rh.timeout == 7
            assert rh.source_address == '127.0.0.1'
            assert rh.verify is False
            assert rh.verbose is True
            assert rh.headers['X-Custom'] == 'value'
            assert 'User-Agent' in rh.headers
            assert rh.cookiejar is ydl.cookiejar

    def test_urlopen_local_server(self):
        httpd = http.server.ThreadingHTTPServer(('127.0.0.1', 0), HTTPTestRequestHandler)
        port = http_server_port(httpd)
        server_thread = threading.Thread(target=httpd.serve_forever)
        server_thread.daemon = True
        server_thread.start()
        try:
            with MixDL({'quiet': True, 'proxy': ''}, auto_init=False) as ydl:
                res = ydl.urlopen(Request(f'http://127.0.0.1:{port}/headers', headers={'X-YouTube-Client-Version': '2.0'}))
                headers = HTTPHeaderDict(json.loads(res.read()))
                assert headers['X-Youtube-Client-Version'] == '2.0'
                assert headers['Accept-Language'] == 'en-US,en;q=0.9'
                res.close()
        finally:
            httpd.shutdown()
            httpd.server_close()
