import dataclasses
import functools
import itertools
import threading
import typing
import urllib.parse

from ._base import YoutubeBaseInfoExtractor
from ...cookies import read_cookie
from ...utils import (
    ChannelMixError,
    ContinuationNotFoundError,
    EmptyIdentifierError,
    InvalidPageError,
    MissingFieldError,
    ThumbnailUnavailableError,
    UnsupportedError,
    traverse_obj,
    update_url_query,
)
from ...utils.networking import cookie_header

# YouTube ties the continuation of a mix to this cookie; without it the
# following windows are generated from scratch and repeat earlier items
COOKIE_NAME = 'VISITOR_INFO1_LIVE'

# Item count reported for playlists that never end
ITEM_COUNT_INFINITE = -2


def _is_page_url(url):
    return isinstance(url, str) and urllib.parse.urlparse(url).scheme in ('http', 'https')


@dataclasses.dataclass(frozen=True)
class Page:
    """Everything needed to request the next window of a mix"""
    url: str
    cookies: dict = dataclasses.field(default_factory=dict)

    def to_dict(self):
        return {'url': self.url, 'cookies': dict(self.cookies)}

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict) or not isinstance(data.get('url'), str):
            raise InvalidPageError('Page must be an object with a "url" string')
        if not _is_page_url(data['url']):
            raise InvalidPageError(f'Page url must be an http(s) url, not "{data["url"]}"')
        cookies = data.get('cookies')
        if cookies is None:
            cookies = {}
        if not isinstance(cookies, dict) or not all(
                isinstance(k, str) and isinstance(v, str) for k, v in cookies.items()):
            raise InvalidPageError('Page cookies must map names to string values')
        if set(cookies) - {COOKIE_NAME}:
            raise InvalidPageError(f'Page cookies may only hold {COOKIE_NAME}')
        return cls(data['url'], dict(cookies))


class MixDescriptor(typing.NamedTuple):
    playlist_id: str
    video_id: str
    service: str


@dataclasses.dataclass(frozen=True)
class MixMetadata:
    name: str
    thumbnail_url: str

    # Mixes are generated by YouTube itself and have no channel of their own
    banner_url: typing.ClassVar[str] = ''
    uploader_name: typing.ClassVar[str] = 'YouTube'
    uploader_url: typing.ClassVar[str] = ''
    uploader_avatar_url: typing.ClassVar[str] = ''
    sub_channel_name: typing.ClassVar[str] = ''
    sub_channel_url: typing.ClassVar[str] = ''
    sub_channel_avatar_url: typing.ClassVar[str] = ''
    item_count: typing.ClassVar[int] = ITEM_COUNT_INFINITE


def _thumbnail_from_playlist_id(playlist_id):
    if not isinstance(playlist_id, str):
        return None, MissingFieldError('Could not get playlist id')
    if playlist_id.startswith('RDMM'):
        video_id = playlist_id[4:]
    elif playlist_id.startswith('RDCMUC'):
        return None, ChannelMixError(f'{playlist_id} is a channel mix')
    else:
        video_id = playlist_id[2:]
    if not video_id:
        return None, EmptyIdentifierError(f'No video id in playlist id {playlist_id}')
    return YoutubeBaseInfoExtractor.thumbnail_url_from_video_id(video_id), None


def _thumbnail_from_video_id(video_id):
    if not isinstance(video_id, str) or not video_id:
        return None, MissingFieldError('Could not get id of the current video')
    return YoutubeBaseInfoExtractor.thumbnail_url_from_video_id(video_id), None


def thumbnail_for(playlist_id, fallback_video_id):
    """
    Thumbnail of a mix: the seed video's one, or the current video's one
    for mixes whose id does not carry a video id (e.g. channel mixes)
    """
    strategies = (
        functools.partial(_thumbnail_from_playlist_id, playlist_id),
        functools.partial(_thumbnail_from_video_id, fallback_video_id),
    )
    first_error = None
    for strategy in strategies:
        url, error = strategy()
        if url:
            return url
        first_error = first_error or error
    raise ThumbnailUnavailableError('Could not get playlist thumbnail', cause=first_error)


def trim_window(window, current_index):
    """Return the part of `window` that comes after the item at `current_index`

    Every window repeats up to 24 items that were already returned; the item
    at `currentIndex` is the last one seen in the previous window.
    """
    if not isinstance(window, list):
        raise ContinuationNotFoundError('Playlist window is not a list')
    if (not isinstance(current_index, int) or isinstance(current_index, bool)
            or not 0 <= current_index < len(window)):
        raise ContinuationNotFoundError(
            f'Invalid current index {current_index!r} for a window of {len(window)} items')
    return window[current_index + 1:]


class YoutubeMixPlaylist:
    """
    Extraction state of a single mix

    The first window, the playlist panel and the continuation cookie are
    fetched once, on first use, and shared by every later call.
    """

    def __init__(self, ie, url):
        mobj = ie._match_valid_url(url)
        if not mobj:
            raise UnsupportedError(url)
        self._ie = ie
        self.url = url
        self.descriptor = MixDescriptor(mobj.group('id'), mobj.group('video_id'), ie.ie_key())
        self.next_page = None
        self._lock = threading.Lock()
        self._initial_data = None
        self._playlist_data = None
        self._cookie_value = None

    def _download_panel(self, url, note, cookies=None):
        headers = self._ie._generate_pbj_headers()
        cookie = cookie_header(cookies or {})
        if cookie:
            headers['Cookie'] = cookie
        ajax, urlh = self._ie._download_json_handle(
            url, self.descriptor.playlist_id, note=note, headers=headers)
        response = traverse_obj(
            ajax, (3, 'response'), (..., 'response', {dict}, any), ('response',), expected_type=dict)
        playlist = traverse_obj(response, (
            'contents', 'twoColumnWatchNextResults', 'playlist', 'playlist', {dict}))
        if not playlist:
            raise MissingFieldError('Could not find the playlist panel')
        return response, playlist, urlh

    def _fetch_first_page(self):
        with self._lock:
            if self._playlist_data is not None:
                return
            response, playlist, urlh = self._download_panel(
                update_url_query(self.url, {'pbj': 1}), 'Downloading mix page')
            self._cookie_value = read_cookie(COOKIE_NAME, urlh)
            if not self._cookie_value:
                self._ie.write_debug(f'{self.descriptor.playlist_id}: No {COOKIE_NAME} cookie was set')
            self._initial_data, self._playlist_data = response, playlist

    def get_name(self):
        self._fetch_first_page()
        name = traverse_obj(self._playlist_data, ('title', {str}))
        if name is None:
            raise MissingFieldError('Could not get playlist name')
        return name

    def get_thumbnail_url(self):
        self._fetch_first_page()
        return thumbnail_for(
            self._playlist_data.get('playlistId'),
            traverse_obj(self._initial_data, ('currentVideoEndpoint', 'watchEndpoint', 'videoId')))

    def get_metadata(self):
        return MixMetadata(self.get_name(), self.get_thumbnail_url())

    def get_initial_page(self):
        self._fetch_first_page()
        window = self._playlist_data.get('contents')
        entries = list(self._ie._collect_entries(window))
        cookies = {COOKIE_NAME: self._cookie_value} if self._cookie_value else {}
        return entries, Page(self._ie._next_page_url(window), cookies)

    def get_page(self, page):
        if page is None or not page.url:
            raise InvalidPageError()
        if not _is_page_url(page.url):
            raise InvalidPageError(f'Page url must be an http(s) url, not "{page.url}"')
        _, playlist, _ = self._download_panel(page.url, 'Downloading next mix page', page.cookies)
        window = playlist.get('contents')
        entries = list(self._ie._collect_entries(trim_window(window, playlist.get('currentIndex'))))
        return entries, Page(self._ie._next_page_url(window), page.cookies)

    def get_next_page(self):
        return self.next_page

    def entries(self, page=None, max_pages=None):
        playlist_index = 0
        for page_num in itertools.count(1):
            if page_num == 1 and page is None:
                items, self.next_page = self.get_initial_page()
            else:
                items, self.next_page = self.get_page(page)
            if not items:
                self._ie.to_screen(f'{self.descriptor.playlist_id}: No new entries, the mix has ended')
                return
            for item in items:
                playlist_index += 1
                item['playlist_index'] = playlist_index
                yield item
            if max_pages and page_num >= max_pages:
                return
            page = self.next_page


class YoutubeMixPlaylistIE(YoutubeBaseInfoExtractor):
    IE_NAME = 'youtube:mix'
    IE_DESC = 'YouTube mixes (auto-generated endless playlists)'
    _VALID_URL = r'''(?x)
        https?://(?:www\.|m\.|music\.)?youtube\.com/watch\?
        (?=(?:[^#]*&)?v=(?P<video_id>[\w-]{11}))
        (?=(?:[^#]*&)?list=(?P<id>RD[\w-]+))
    '''
    _TESTS = [{
        'url': 'https://www.youtube.com/watch?v=UtF6Jej8yb4&list=RDMMUtF6Jej8yb4',
        'only_matching': True,
    }, {
        'url': 'https://www.youtube.com/watch?list=RDCMUCBR8-60-B28hp2BmDPdntcQ&v=FuxlHwdSRfE',
        'only_matching': True,
    }, {
        'url': 'https://music.youtube.com/watch?v=OQDxxX9AOq0&list=RDAMVMOQDxxX9AOq0',
        'only_matching': True,
    }]

    def _collect_entries(self, window):
        for item in window or []:
            renderer = traverse_obj(item, ('playlistPanelVideoRenderer', {dict}))
            if renderer:
                yield self._extract_panel_video(renderer)

    def _next_page_url(self, window):
        if not isinstance(window, list) or not window:
            raise ContinuationNotFoundError('Could not extract next page url: the window is empty')
        url = self.url_from_navigation_endpoint(traverse_obj(
            window[-1], ('playlistPanelVideoRenderer', 'navigationEndpoint', {dict})))
        if not url:
            raise ContinuationNotFoundError('Could not extract next page url')
        return update_url_query(url, {'pbj': 1})

    def _real_extract(self, url):
        mix = YoutubeMixPlaylist(self, url)
        playlist_id = mix.descriptor.playlist_id

        title = mix.get_name()
        try:
            thumbnail = mix.get_thumbnail_url()
        except ThumbnailUnavailableError as e:
            self.report_warning(e.orig_msg, playlist_id)
            thumbnail = None

        start_page = self.get_param('start_page')
        if start_page is not None and not isinstance(start_page, Page):
            start_page = Page.from_dict(start_page)

        return self.playlist_result(
            mix.entries(start_page, self.get_param('max_pages')), playlist_id, title,
            thumbnail=thumbnail, uploader=MixMetadata.uploader_name, webpage_url=url,
            **{'__next_page': mix.get_next_page})
