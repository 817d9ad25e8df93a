from __future__ import annotations

import contextlib
import functools
import ssl
import typing

from .exceptions import UnsupportedRequest
from ..dependencies import certifi

if typing.TYPE_CHECKING:
    from collections.abc import Iterable

    from ..utils.networking import HTTPHeaderDict

# Ciphers and minimum protocol of the Python 3.10 defaults
_CIPHERS = '@SECLEVEL=2:ECDH+AESGCM:ECDH+CHACHA20:ECDH+AES:DHE+AES:!aNULL:!eNULL:!aDSS:!SHA1:!AESCCM'


def _load_verify_locations(context: ssl.SSLContext, use_certifi=True):
    if certifi and use_certifi:
        context.load_verify_locations(cafile=certifi.where())
        return
    try:
        context.load_default_certs()
    except ssl.SSLError:
        # A single broken certificate in the system store fails the whole load
        context.set_default_verify_paths()


def make_ssl_context(verify=True, use_certifi=True):
    """Client SSLContext, verifying against certifi (or the system store) unless `verify` is off"""
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.check_hostname = verify
    context.verify_mode = ssl.CERT_REQUIRED if verify else ssl.CERT_NONE
    # Some servers refuse connections without ALPN (python/cpython#85140)
    with contextlib.suppress(NotImplementedError):
        context.set_alpn_protocols(['http/1.1'])
    if verify:
        _load_verify_locations(context, use_certifi)
    if ssl.OPENSSL_VERSION_INFO >= (1, 1, 1) and not ssl.OPENSSL_VERSION.startswith('LibreSSL'):
        context.set_ciphers(_CIPHERS)
        context.minimum_version = ssl.TLSVersion.TLSv1_2
    return context


class InstanceStoreMixin:
    """Cache objects built by _create_instance(), one per distinct set of keyword arguments"""

    def __init__(self, **kwargs):
        self.__instances = []
        super().__init__(**kwargs)

    def _create_instance(self, **kwargs):
        raise NotImplementedError

    def _get_instance(self, **kwargs):
        instance = next((inst for key, inst in self.__instances if key == kwargs), None)
        if instance is None:
            instance = self._create_instance(**kwargs)
            self.__instances.append((kwargs, instance))
        return instance

    def _clear_instances(self):
        for _, instance in self.__instances:
            if callable(getattr(instance, 'close', None)):
                instance.close()
        self.__instances.clear()


def add_accept_encoding_header(headers: HTTPHeaderDict, supported_encodings: Iterable[str]):
    headers.setdefault('Accept-Encoding', ', '.join(supported_encodings) or 'identity')


def wrap_request_errors(func):
    """Attach the handler to any UnsupportedRequest raised by `func`"""
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        try:
            return func(self, *args, **kwargs)
        except UnsupportedRequest as e:
            e.handler = e.handler or self
            raise
    return wrapper
