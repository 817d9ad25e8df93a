import json
import re
import sys
import time

from ..networking import Request
from ..networking.exceptions import (
    IncompleteRead,
    TransportError,
    network_exceptions,
)
from ..utils import (
    NO_DEFAULT,
    ExtractorError,
    NetworkFailureError,
    RegexNotFoundError,
    UnsupportedError,
    bug_reports_message,
    classproperty,
    format_field,
    truncate_string,
    update_url_query,
    variadic,
)


class InfoExtractor:
    """Information Extractor class.

    Information extractors are the classes that, given a URL, extract
    information about the playlist the URL refers to. The information is
    returned as a dictionary with the keys below.

    _type           "playlist" for a stream of entries, "url" for a single
                    entry that is resolved by another extractor.
    id              Playlist or entry identifier.
    title           Playlist or entry title.
    entries         Iterable (usually a generator) of "url" results.
    url             For "url" results, the address of the entry.
    ie_key          For "url" results, the key of the extractor handling `url`.
    thumbnail       URL of the main thumbnail.
    thumbnails      List of dictionaries with "url", "width" and "height".
    uploader        Full name of the uploader.
    playlist_index  Position of an entry inside the playlist, starting at 1.

    Keys starting with "__" are internal; they are available to the
    program embedding MixDL but are stripped from any printed output.

    Subclasses of this one should re-define the _real_extract() method
    and define a _VALID_URL regexp. The regexp must contain a named group "id".
    """
    _downloader = None
    IE_DESC = None
    _VALID_URL = None

    def __init__(self, downloader=None):
        """Constructor. Receives an optional downloader (a MixDL instance).
        If a downloader is not passed during initialization,
        it must be set using "set_downloader()" before "extract()" is called"""
        self._printed_messages = set()
        self.set_downloader(downloader)

    @classmethod
    def _match_valid_url(cls, url):
        if cls._VALID_URL is False:
            return None
        # The compiled regexp is cached on *this* class, not on a superclass
        if '_VALID_URL_RE' not in cls.__dict__:
            cls._VALID_URL_RE = tuple(map(re.compile, variadic(cls._VALID_URL)))
        return next(filter(None, (regex.match(url) for regex in cls._VALID_URL_RE)), None)

    @classmethod
    def suitable(cls, url):
        """Receives a URL and returns True if suitable for this IE."""
        return cls._match_valid_url(url) is not None

    @classmethod
    def get_temp_id(cls, url):
        mobj = cls._match_valid_url(url)
        return mobj and mobj.group('id')

    def extract(self, url):
        """Extracts URL information and returns it as a dict."""
        self._printed_messages = set()
        try:
            self.to_screen('Extracting URL: {}'.format(
                url if self.get_param('verbose') else truncate_string(url, 100, 20)))
            return self._real_extract(url)
        except UnsupportedError:
            raise
        except ExtractorError as e:
            e.video_id = e.video_id or self.get_temp_id(url)
            e.ie = e.ie or self.IE_NAME
            e.traceback = e.traceback or sys.exc_info()[2]
            raise
        except IncompleteRead as e:
            raise NetworkFailureError('A network error has occurred.', cause=e, video_id=self.get_temp_id(url))
        except (KeyError, StopIteration) as e:
            raise ExtractorError('An extractor error has occurred.', cause=e, video_id=self.get_temp_id(url))

    def set_downloader(self, downloader):
        """Sets a MixDL instance as the downloader for this IE."""
        self._downloader = downloader

    def _real_extract(self, url):
        """Real extraction process. Redefine in subclasses."""
        raise NotImplementedError('This method must be implemented by subclasses')

    @classmethod
    def ie_key(cls):
        """A string for getting the InfoExtractor with get_info_extractor"""
        return cls.__name__[:-2]

    @classproperty
    def IE_NAME(cls):
        return cls.__name__[:-2]

    def _request_webpage(self, url_or_request, video_id, note=None, errnote=None, headers=None, query=None):
        """Send a request and return the response handle; network failures raise NetworkFailureError"""
        if self._downloader._first_webpage_request:
            self._downloader._first_webpage_request = False
        else:
            sleep_interval = self.get_param('sleep_interval_requests') or 0
            if sleep_interval > 0:
                self.to_screen(f'Sleeping {sleep_interval} seconds ...')
                time.sleep(sleep_interval)

        if note is not False:
            self.to_screen(f'{video_id}: {note or "Downloading webpage"}')

        if isinstance(url_or_request, Request):
            url_or_request.headers.update(headers or {})
            url_or_request.url = update_url_query(url_or_request.url, query or {})
        else:
            url_or_request = Request(url_or_request, headers=headers, query=query)

        try:
            return self._downloader.urlopen(url_or_request)
        except network_exceptions as err:
            raise NetworkFailureError(f'{errnote or "Unable to download webpage"}: {err}', cause=err)

    def _download_webpage_handle(self, url_or_request, video_id, note=None, errnote=None, headers=None, query=None):
        """
        Return a tuple (page content as string, URL handle).

        Arguments:
        url_or_request -- plain text URL as a string or
            a ytmix.networking.Request object
        video_id -- Playlist or item identifier (string)

        Keyword arguments:
        note -- note printed before downloading (string), False to print nothing
        errnote -- note prefixed to the NetworkFailureError message (string)
        headers -- HTTP headers (dict)
        query -- URL query (dict)
        """
        # Fragments are never sent to the server
        if isinstance(url_or_request, str):
            url_or_request = url_or_request.partition('#')[0]

        urlh = self._request_webpage(url_or_request, video_id, note, errnote, headers=headers, query=query)
        try:
            webpage_bytes = urlh.read()
        except TransportError as err:
            raise NetworkFailureError(f'{video_id}: Error reading response: {err.msg}', cause=err)

        if self.get_param('dump_intermediate_pages', False):
            self.to_screen(f'Dumping request to {urlh.url}')
            self._downloader.to_screen(webpage_bytes.decode('utf-8', 'replace'))

        mobj = re.match(r'[\w.-]+/[\w.-]+\s*;\s*charset=(.+)', urlh.headers.get('Content-Type', ''))
        try:
            return webpage_bytes.decode(mobj.group(1) if mobj else 'utf-8', 'replace'), urlh
        except LookupError:
            return webpage_bytes.decode('utf-8', 'replace'), urlh

    def _parse_json(self, json_string, video_id, errnote='Failed to parse JSON'):
        try:
            return json.loads(json_string, strict=False)
        except ValueError as ve:
            raise ExtractorError(f'{video_id}: {errnote}', cause=ve)

    def _download_json_handle(self, url_or_request, video_id, note='Downloading JSON metadata',
                              errnote='Unable to download JSON metadata', headers=None, query=None):
        """Return a tuple (JSON object, URL handle); see _download_webpage_handle for the arguments"""
        content, urlh = self._download_webpage_handle(
            url_or_request, video_id, note=note, errnote=errnote, headers=headers, query=query)
        return self._parse_json(content, video_id), urlh

    def report_warning(self, msg, video_id=None, *args, only_once=False, **kwargs):
        idstr = format_field(video_id, None, '%s: ')
        msg = f'[{self.IE_NAME}] {idstr}{msg}'
        if only_once:
            if f'WARNING: {msg}' in self._printed_messages:
                return
            self._printed_messages.add(f'WARNING: {msg}')
        self._downloader.report_warning(msg, *args, **kwargs)

    def to_screen(self, msg, *args, **kwargs):
        """Print msg to screen, prefixing it with '[ie_name]'"""
        self._downloader.to_screen(f'[{self.IE_NAME}] {msg}', *args, **kwargs)

    def write_debug(self, msg, *args, **kwargs):
        self._downloader.write_debug(f'[{self.IE_NAME}] {msg}', *args, **kwargs)

    def get_param(self, name, default=None, *args, **kwargs):
        if self._downloader:
            return self._downloader.params.get(name, default, *args, **kwargs)
        return default

    @staticmethod
    def playlist_result(entries, playlist_id=None, playlist_title=None, **kwargs):
        """Returns a playlist"""
        if playlist_id:
            kwargs['id'] = playlist_id
        if playlist_title:
            kwargs['title'] = playlist_title
        return {
            **kwargs,
            '_type': 'playlist',
            'entries': entries,
        }

    def _search_regex(self, pattern, string, name, default=NO_DEFAULT, fatal=True, flags=0, group=None):
        """
        Perform a regex search on the given string, using a single or a list of
        patterns returning the first matching group.
        In case of failure return a default value or raise a WARNING or a
        RegexNotFoundError, depending on fatal, specifying the field name.
        """
        mobj = None
        if string is not None:
            for p in variadic(pattern, (str, re.Pattern)):
                mobj = re.search(p, string, flags)
                if mobj:
                    break

        if mobj:
            if group is None:
                # return the first matching group
                return next(g for g in mobj.groups() if g is not None)
            return mobj.group(group)
        elif default is not NO_DEFAULT:
            return default
        elif fatal:
            raise RegexNotFoundError(f'Unable to extract {name}')
        self.report_warning(f'unable to extract {name}' + bug_reports_message())
        return None
