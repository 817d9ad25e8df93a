from __future__ import annotations

import typing

from ..utils import MixDLError

if typing.TYPE_CHECKING:
    from .common import RequestHandler, Response


class RequestError(MixDLError):
    """Base of every error raised while sending a request

    `cause` is the underlying exception (or a description of it) and is
    used as the message when no `msg` is given.
    """

    def __init__(
        self,
        msg: str | None = None,
        cause: Exception | str | None = None,
        handler: RequestHandler = None,
    ):
        self.handler = handler
        self.cause = cause
        super().__init__(msg or (str(cause) if cause else None))


class UnsupportedRequest(RequestError):
    """A handler cannot send this request"""


class NoSupportingHandlers(RequestError):
    """No handler could send the request, summarising why each of them refused"""

    def __init__(self, unsupported_errors: list[UnsupportedRequest], unexpected_errors: list[Exception]):
        self.unsupported_errors = unsupported_errors or []
        self.unexpected_errors = unexpected_errors or []

        refusals = {}
        for err in self.unsupported_errors:
            refusals.setdefault(err.msg, []).append(err.handler.RH_NAME)
        reasons = [f'{msg} ({", ".join(names)})' for msg, names in refusals.items()]
        if self.unexpected_errors:
            reasons.append(f'{len(self.unexpected_errors)} unexpected error(s)')

        super().__init__(msg=': '.join(filter(None, ('Unable to handle request', ', '.join(reasons)))))


class TransportError(RequestError):
    """The connection failed or broke off"""


class HTTPError(RequestError):
    """The server answered with a non-2xx status; the response stays readable"""

    def __init__(self, response: Response, redirect_loop=False):
        self.response = response
        self.status = response.status
        self.reason = response.reason
        self.redirect_loop = redirect_loop
        super().__init__(msg='HTTP Error {}: {}{}'.format(
            response.status, response.reason, ' (redirect loop detected)' if redirect_loop else ''))

    def close(self):
        self.response.close()

    def __repr__(self):
        return f'<HTTPError {self.status}: {self.reason}>'


class IncompleteRead(TransportError):
    """The body ended before Content-Length bytes were received"""

    def __init__(self, partial: int, expected: int | None = None, **kwargs):
        self.partial = partial
        self.expected = expected
        msg = f'{partial} bytes read'
        if expected is not None:
            msg = f'{msg}, {expected} more expected'
        super().__init__(msg=msg, **kwargs)

    def __repr__(self):
        return f'<IncompleteRead: {self.msg}>'


class SSLError(TransportError):
    pass


class CertificateVerifyError(SSLError):
    pass


class ProxyError(TransportError):
    pass


# Failures worth retrying later, as opposed to bugs or unsupported requests
network_exceptions = (HTTPError, TransportError)
