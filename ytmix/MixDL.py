import functools
import http.cookiejar
import itertools
import json
import os
import platform
import re
import sys
import time
import traceback
import urllib.request

from .cookies import load_cookies
from .extractor import gen_extractor_classes, get_info_extractor
from .networking import Request, RequestDirector
from .networking.common import _REQUEST_HANDLERS
from .networking.exceptions import NoSupportingHandlers, RequestError
from .utils import (
    DownloadError,
    ExtractorError,
    Namespace,
    UnsupportedError,
    bug_reports_message,
    format_field,
    sanitize_url,
    traverse_obj,
    variadic,
    write_string,
)
from .utils import _MixDLLogger
from .utils.networking import HTTPHeaderDict, clean_proxies, std_headers
from .version import ORIGIN, RELEASE_GIT_HEAD, __version__


class MixDL:
    """Turns mix URLs into printed playlist entries.

    A MixDL holds the options of a run, the output streams, the cookie jar
    and the request director. Extractors are registered on it in order;
    a URL goes to the first one whose _VALID_URL matches. The extractor
    returns a playlist whose entries are fetched lazily, page by page,
    and MixDL consumes them until `playlistend` is reached or the mix ends.

    Available options:

    verbose:           Print additional info to stdout.
    quiet:             Do not print messages to stdout.
    no_warnings:       Do not print out anything for warnings.
    logger:            An object with `debug`, `warning` and `error` methods taking
                       the message; it receives every message instead of the terminal.
                       Screen messages go to `debug` as well, debug messages are
                       prefixed with `[debug] `.
    ignoreerrors:      Do not stop on extraction errors.
    playlistend:       Stop after this many entries.
    max_pages:         Stop after this many pages (windows) of a mix.
    forcejson:         Print one JSON object per entry.
    dump_single_json:  Print the whole playlist as a single JSON object.
    print_next_page:   Print the page to continue from, as JSON, once done.
    start_page:        Page (or its dict layout) to resume a mix from.
    http_headers:      A dictionary of custom headers to be used for all requests.
    proxy:             URL of the proxy server to use.
    socket_timeout:    Time to wait for unresponsive hosts, in seconds.
    source_address:    Client-side IP address to bind to.
    nocheckcertificate: Do not verify SSL certificates.
    cookiefile:        File name or text stream from where cookies should be read and dumped to.
    debug_printtraffic: Print out sent and received HTTP traffic.
    sleep_interval_requests: Number of seconds to sleep between requests
                       during extraction.
    dump_intermediate_pages: Print the body of every downloaded page.
    """

    def __init__(self, params=None, auto_init=True):
        """@param auto_init    Register the default extractors and print the debug header (if verbose)"""
        self.params = params if params is not None else {}
        self._ies = {}
        self._ies_instances = {}
        self._printed_messages = set()
        self._first_webpage_request = True
        self._download_retcode = 0

        # With --quiet, screen messages that are still printed (verbose) must not mix with the output
        self._out_files = Namespace(
            out=sys.stdout,
            error=sys.stderr,
            screen=sys.stderr if self.params.get('quiet') else sys.stdout,
        )
        self.params['http_headers'] = HTTPHeaderDict(std_headers, self.params.get('http_headers'))

        if auto_init:
            self.print_debug_header()
            self.add_default_info_extractors()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        self.save_cookies()
        if '_request_director' in self.__dict__:
            self._request_director.close()
            del self._request_director

    def save_cookies(self):
        if self.params.get('cookiefile') is not None:
            self.cookiejar.save()

    def add_info_extractor(self, ie):
        """Register an extractor class or instance after the existing ones"""
        ie_key = ie.ie_key()
        self._ies[ie_key] = ie
        if not isinstance(ie, type):
            self._ies_instances[ie_key] = ie
            ie.set_downloader(self)

    def get_info_extractor(self, ie_key):
        """The instance of the extractor `ie_key`, created and registered on first use"""
        ie = self._ies_instances.get(ie_key)
        if ie is None:
            ie = get_info_extractor(ie_key)()
            self.add_info_extractor(ie)
        return ie

    def add_default_info_extractors(self):
        ies = gen_extractor_classes()
        for ie in ies:
            self.add_info_extractor(ie)
        self.write_debug(f'Loaded {len(ies)} extractors')

    # Output

    def _write_string(self, message, out=None, only_once=False):
        if only_once:
            if message in self._printed_messages:
                return
            self._printed_messages.add(message)
        write_string(message, out=out, encoding=self.params.get('encoding'))

    def to_stdout(self, message):
        """Print a result line; never silenced"""
        self._write_string(f'{message}\n', self._out_files.out)

    def to_screen(self, message, skip_eol=False, quiet=None, only_once=False):
        """Print a progress message unless quiet"""
        logger = self.params.get('logger')
        if logger:
            logger.debug(message)
            return
        if quiet is None:
            quiet = self.params.get('quiet')
        if quiet and not self.params.get('verbose'):
            return
        self._write_string(message if skip_eol else f'{message}\n', self._out_files.screen, only_once=only_once)

    def to_stderr(self, message, only_once=False):
        assert isinstance(message, str)
        logger = self.params.get('logger')
        if logger:
            logger.error(message)
            return
        self._write_string(f'{message}\n', self._out_files.error, only_once=only_once)

    def report_warning(self, message, only_once=False):
        logger = self.params.get('logger')
        if logger is not None:
            logger.warning(message)
        elif not self.params.get('no_warnings'):
            self.to_stderr(f'WARNING: {message}', only_once)

    def report_error(self, message, *args, **kwargs):
        """trouble() with the message prefixed by 'ERROR:'"""
        self.trouble(f'ERROR: {message}', *args, **kwargs)

    def write_debug(self, message, only_once=False):
        if not self.params.get('verbose'):
            return
        message = f'[debug] {message}'
        logger = self.params.get('logger')
        if logger:
            logger.debug(message)
        else:
            self.to_stderr(message, only_once)

    @staticmethod
    def _cause_exc_info():
        """exc_info of the error being handled, or of the error it wraps"""
        exc_info = sys.exc_info()
        wrapped = getattr(exc_info[1], 'exc_info', None)
        return wrapped if wrapped and wrapped[0] else exc_info

    def trouble(self, message=None, tb=None, is_error=True):
        """Report a problem, then raise DownloadError unless errors are ignored

        @param tb          Traceback text printed in verbose mode; by default
                           the one of the exception being handled, False for none
        @param is_error    False for a problem that never stops the run
        """
        if message is not None:
            self.to_stderr(message)
        if self.params.get('verbose') and tb is None:
            if sys.exc_info()[0]:
                wrapped = getattr(sys.exc_info()[1], 'exc_info', None)
                tb = ''.join(traceback.format_exception(*wrapped)) if wrapped and wrapped[0] else ''
                tb += traceback.format_exc()
            else:
                tb = ''.join(traceback.format_stack())
        if self.params.get('verbose') and tb:
            self.to_stderr(tb)

        if not is_error:
            return
        if not self.params.get('ignoreerrors'):
            raise DownloadError(message, self._cause_exc_info())
        self._download_retcode = 1

    # Extraction

    def extract_info(self, url, ie_key=None, extra_info=None, process=True):
        """
        Extract the information dictionary of `url`

        @param ie_key       Use only the extractor with this key
        @param extra_info   Fields added to every entry that lacks them
        @param process      Resolve the playlist entries, printing them
        """
        ies = self._ies
        if ie_key:
            ies = {ie_key: self._ies[ie_key]} if ie_key in self._ies else {}

        key = next((key for key, ie in ies.items() if ie.suitable(url)), None)
        if key is None:
            self.report_error(f'No suitable extractor{format_field(ie_key, None, " (%s)")} found for URL {url}')
            return None
        return self.__extract_info(url, self.get_info_extractor(key), extra_info or {}, process)

    def _handle_extraction_exceptions(func):
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except DownloadError:
                raise
            except ExtractorError as e:
                self.report_error(str(e), e.format_traceback())
            except Exception as e:
                if not self.params.get('ignoreerrors'):
                    raise
                self.report_error(str(e), tb=traceback.format_exc())
        return wrapper

    @_handle_extraction_exceptions
    def __extract_info(self, url, ie, extra_info, process):
        ie_result = ie.extract(url)
        if ie_result is None:
            self.report_warning(f'Extractor {ie.IE_NAME} returned nothing{bug_reports_message()}')
            return None
        self.add_default_extra_info(ie_result, ie, url)
        return self.process_ie_result(ie_result, extra_info) if process else ie_result

    @staticmethod
    def add_extra_info(info_dict, extra_info):
        for key, value in extra_info.items():
            info_dict.setdefault(key, value)

    def add_default_extra_info(self, ie_result, ie, url):
        if url is not None:
            self.add_extra_info(ie_result, {'webpage_url': url, 'original_url': url})
        if ie is not None:
            self.add_extra_info(ie_result, {'extractor': ie.IE_NAME, 'extractor_key': ie.ie_key()})

    def process_ie_result(self, ie_result, extra_info=None):
        """Print a "url" result, or each entry of a "playlist" as it is produced; returns the result"""
        result_type = ie_result.get('_type', 'url')
        if result_type == 'playlist':
            return self.__process_playlist(ie_result)
        if result_type != 'url':
            raise Exception(f'Invalid result type: {result_type}')

        ie_result['url'] = sanitize_url(ie_result['url'], scheme='https')
        self.add_extra_info(ie_result, extra_info or {})
        self.__forced_printings(ie_result)
        return ie_result

    @staticmethod
    def _playlist_infodict(ie_result, **kwargs):
        return {
            'playlist': ie_result.get('title') or ie_result.get('id'),
            'playlist_id': ie_result.get('id'),
            'playlist_title': ie_result.get('title'),
            'playlist_uploader': ie_result.get('uploader'),
            'extractor': ie_result['extractor'],
            'extractor_key': ie_result['extractor_key'],
            'webpage_url': ie_result['webpage_url'],
            **kwargs,
        }

    def __process_playlist(self, ie_result):
        assert ie_result['_type'] == 'playlist'

        common_info = self._playlist_infodict(ie_result)
        title = common_info['playlist'] or '<Untitled>'
        self.to_screen(f'[download] Downloading playlist: {title}')

        entries = iter(ie_result['entries'])
        playlistend = self.params.get('playlistend')
        if playlistend not in (None, -1):
            entries = itertools.islice(entries, playlistend)

        # A mix never ends, so entries are only kept when printed all together
        keep_entries = self.params.get('dump_single_json')
        resolved = []
        try:
            for index, entry in enumerate(entries, 1):
                self.to_screen(f'[download] Downloading item {index}')
                info = self.process_ie_result(entry, {
                    **common_info,
                    'playlist_index': entry.get('playlist_index') or index,
                })
                if keep_entries:
                    resolved.append(info)
        finally:
            # A page that failed can still be resumed from
            ie_result['entries'] = resolved
            self.__print_next_page(ie_result)

        self.to_screen(f'[download] Finished downloading playlist: {title}')
        return ie_result

    def __print_next_page(self, ie_result):
        if not self.params.get('print_next_page'):
            return
        get_next_page = ie_result.get('__next_page')
        next_page = get_next_page() if get_next_page else None
        if next_page is None:
            self.report_warning('There is no page to continue from')
        else:
            self.to_stdout(json.dumps(next_page.to_dict()))

    def __forced_printings(self, info_dict):
        if self.params.get('forcejson'):
            self.to_stdout(json.dumps(self.sanitize_info(info_dict)))
        elif not self.params.get('dump_single_json'):
            self.to_stdout(info_dict['url'])

    def download(self, url_list):
        """Extract and print the entries of every URL; returns the exit code"""
        # A single URL is accepted as well
        for url in variadic(url_list):
            res = self.extract_info(url)
            if res is not None and self.params.get('dump_single_json'):
                self.to_stdout(json.dumps(self.sanitize_info(res)))
        return self._download_retcode

    @staticmethod
    def sanitize_info(info_dict, remove_private_keys=False):
        """Copy of `info_dict` that json.dumps accepts, without the internal "__" keys"""
        if info_dict is None:
            return None
        info_dict.setdefault('epoch', int(time.time()))
        info_dict.setdefault('_version', {
            'version': __version__,
            'release_git_head': RELEASE_GIT_HEAD,
            'repository': ORIGIN,
        })

        def keep(key, value):
            if key.startswith('__'):
                return False
            return not remove_private_keys or (value is not None and key != 'original_url')

        def clean(obj):
            if isinstance(obj, dict):
                return {k: clean(v) for k, v in obj.items() if keep(k, v)}
            if isinstance(obj, (list, tuple, set)):
                return [clean(v) for v in obj]
            if obj is None or isinstance(obj, (str, int, float, bool)):
                return obj
            return repr(obj)

        return clean(info_dict)

    def print_debug_header(self):
        if not self.params.get('verbose'):
            return

        from .dependencies import available_dependencies

        def write_debug(msg):
            self._write_string(f'[debug] {msg}\n')

        source = 'exe' if getattr(sys, 'frozen', False) else 'source'
        write_debug(f'ytmix version {__version__} [{RELEASE_GIT_HEAD or "unknown"}] ({source})')
        write_debug(f'Python {platform.python_version()} ({platform.python_implementation()}) - {platform.platform()}')
        libs = sorted(
            f'{name}-{getattr(module, "__version__", "")}'.rstrip('-')
            for name, module in available_dependencies.items())
        write_debug(f'Optional libraries: {", ".join(libs) or "none"}')
        write_debug(f'Proxy map: {self.proxies}')
        write_debug(f'Request Handlers: {", ".join(rh.RH_NAME for rh in self._request_director.handlers.values())}')

    # Networking

    @functools.cached_property
    def proxies(self):
        """Proxy map for every request: the `proxy` param, else the environment"""
        proxy = self.params.get('proxy')
        if proxy is not None:
            return {'all': proxy or '__noproxy__'}
        proxies = urllib.request.getproxies()
        # An http proxy from the environment serves https too, unless HTTPS_PROXY=__noproxy__
        if 'http' in proxies:
            proxies.setdefault('https', proxies['http'])
        return proxies

    @functools.cached_property
    def cookiejar(self):
        try:
            return load_cookies(self.params.get('cookiefile'))
        except (http.cookiejar.LoadError, OSError) as error:
            self.report_error(f'Unable to load cookies: {error}', tb=False)
            raise

    def urlopen(self, req):
        """Send a Request (or a url) through the request director"""
        if isinstance(req, str):
            req = Request(req)
        assert isinstance(req, Request)

        req.url = sanitize_url(req.url)
        clean_proxies(proxies=req.proxies)

        try:
            return self._request_director.send(req)
        except NoSupportingHandlers as e:
            proxy_error = next((
                ue for ue in e.unsupported_errors
                if ue.handler and re.match(r'unsupported proxy type: "(?:socks|https)', (ue.msg or '').lower())), None)
            if proxy_error is not None:
                raise RequestError(
                    f'The proxy of this request is not supported: {proxy_error.msg}. '
                    'Only http:// and https:// proxies can be used', cause=proxy_error) from proxy_error
            raise

    def build_request_director(self, handlers):
        logger = _MixDLLogger(self)
        headers = self.params['http_headers'].copy()
        proxies = dict(self.proxies)
        clean_proxies(proxies)

        director = RequestDirector(logger=logger, verbose=self.params.get('debug_printtraffic'))
        for handler in handlers:
            director.add_handler(handler(
                logger=logger,
                headers=headers,
                cookiejar=self.cookiejar,
                proxies=proxies,
                prefer_system_certs=bool(os.environ.get('YTMIX_NO_CERTIFI')),
                verify=not self.params.get('nocheckcertificate'),
                **traverse_obj(self.params, {
                    'verbose': 'debug_printtraffic',
                    'source_address': 'source_address',
                    'timeout': 'socket_timeout',
                }),
            ))
        return director

    @functools.cached_property
    def _request_director(self):
        return self.build_request_director(_REQUEST_HANDLERS.values())


__all__ = ['MixDL', 'UnsupportedError']
