import io
import json
import urllib.parse

from ytmix import MixDL
from ytmix.networking import Response
from ytmix.networking.exceptions import TransportError


def _canonical_url(url):
    parsed = urllib.parse.urlparse(url)
    return parsed.netloc, parsed.path, tuple(sorted(urllib.parse.parse_qsl(parsed.query)))


class FakeYDL(MixDL):
    """MixDL that answers requests from canned responses instead of the network

    Printed entries go to `result`, screen messages to `msgs`, warnings to
    `warnings` and every request made to `requests`.
    """

    def __init__(self, override=None):
        super().__init__({
            'quiet': True,
            'socket_timeout': 20,
            **(override or {}),
        }, auto_init=False)
        self.result = []
        self.msgs = []
        self.warnings = []
        self.requests = []
        self._responses = {}

    def to_screen(self, s, *args, **kwargs):
        self.msgs.append(s)

    def to_stdout(self, s, *args, **kwargs):
        self.result.append(s)

    def report_warning(self, message, *args, **kwargs):
        self.warnings.append(message)

    def trouble(self, s, *args, **kwargs):
        raise Exception(s)

    def serve(self, url, data, headers=None, status=200):
        """Answer `url` (query order does not matter) with `data`
        @param data     a JSON-serializable object, bytes or an exception to raise
        @param headers  list of (name, value) tuples; may repeat names
        """
        self._responses[_canonical_url(url)] = (data, headers or [], status)

    def urlopen(self, req):
        self.requests.append(req)
        try:
            data, headers, status = self._responses[_canonical_url(req.url)]
        except KeyError:
            raise TransportError(f'no canned response for {req.url}')
        if isinstance(data, Exception):
            raise data
        if not isinstance(data, bytes):
            data = json.dumps(data).encode()
            headers = [('Content-Type', 'application/json; charset=utf-8'), *headers]
        return Response(io.BytesIO(data), req.url, headers, status=status)


def expect_dict(self, got_dict, expected_dict):
    """Compare the fields of `expected_dict`; a type as the expected value only checks the type"""
    for field, expected in expected_dict.items():
        got = got_dict.get(field)
        if isinstance(expected, type):
            self.assertIsInstance(got, expected, f'Unexpected type for field {field}: {got!r}')
        else:
            self.assertEqual(expected, got, f'Invalid value for field {field}')


def http_server_port(httpd):
    return httpd.socket.getsockname()[1]


def validate_and_send(rh, req):
    rh.validate(req)
    return rh.send(req)
