import enum
import re
import time
import urllib.parse

from ..common import InfoExtractor
from ...utils import (
    MissingFieldError,
    filter_dict,
    format_field,
    int_or_none,
    parse_count,
    parse_duration,
    parse_qs,
    sanitize_url,
    str_to_int,
    traverse_obj,
    try_get,
    url_or_none,
    urljoin,
    variadic,
)


class BadgeType(enum.Enum):
    AVAILABILITY_UNLISTED = enum.auto()
    AVAILABILITY_PRIVATE = enum.auto()
    AVAILABILITY_PUBLIC = enum.auto()
    AVAILABILITY_PREMIUM = enum.auto()
    AVAILABILITY_SUBSCRIPTION = enum.auto()
    LIVE_NOW = enum.auto()
    VERIFIED = enum.auto()


class YoutubeBaseInfoExtractor(InfoExtractor):
    """Provide base functions for Youtube extractors"""

    _BASE_URL = 'https://www.youtube.com'

    # The watch page answers `&pbj=1` with its structured JSON only for a known web client
    _WEB_CLIENT_NAME = '1'
    _WEB_CLIENT_VERSION = '2.20250312.04.00'

    _YT_HANDLE_RE = r'@[\w.-]{3,30}'  # https://support.google.com/youtube/answer/11585688?hl=en
    _YT_CHANNEL_UCID_RE = r'UC[\w-]{22}'

    _THUMBNAIL_TMPL = 'https://i.ytimg.com/vi/{}/hqdefault.jpg'

    # A month counts as 30 days and a year as 365, as precise as the text itself
    _RELATIVE_UNITS = {
        's': 1, 'sec': 1, 'second': 1,
        'min': 60, 'minute': 60,
        'h': 3600, 'hr': 3600, 'hour': 3600,
        'd': 86400, 'day': 86400,
        'w': 604800, 'wk': 604800, 'week': 604800,
        'mo': 2592000, 'month': 2592000,
        'y': 31536000, 'yr': 31536000, 'year': 31536000,
    }

    def _generate_pbj_headers(self):
        return {
            'X-YouTube-Client-Name': self._WEB_CLIENT_NAME,
            'X-YouTube-Client-Version': self._WEB_CLIENT_VERSION,
            'Origin': self._BASE_URL,
        }

    def ucid_or_none(self, ucid):
        return self._search_regex(rf'^({self._YT_CHANNEL_UCID_RE})$', ucid, 'UC-id', default=None)

    def handle_from_url(self, url):
        return self._search_regex(rf'^(?:https?://(?:www\.)?youtube\.com)?/({self._YT_HANDLE_RE})',
                                  urllib.parse.unquote(url or ''), 'channel handle', default=None)

    @classmethod
    def thumbnail_url_from_video_id(cls, video_id):
        return cls._THUMBNAIL_TMPL.format(video_id)

    def url_from_navigation_endpoint(self, endpoint):
        """
        Build an absolute URL from a navigationEndpoint object
        @returns None if the endpoint does not point anywhere known
        """
        if not isinstance(endpoint, dict):
            return None

        url = traverse_obj(endpoint, ('commandMetadata', 'webCommandMetadata', 'url', {str}))
        if url:
            return urljoin(self._BASE_URL, url)

        watch = traverse_obj(endpoint, ('watchEndpoint', {dict}))
        if watch and isinstance(watch.get('videoId'), str):
            query = filter_dict({
                'v': watch['videoId'],
                'list': watch.get('playlistId'),
                'index': int_or_none(watch.get('index')),
                't': format_field(int_or_none(watch.get('startTimeSeconds')), None, '%ds', default=None),
            })
            return f'{self._BASE_URL}/watch?{urllib.parse.urlencode(query)}'

        url = traverse_obj(endpoint, ('urlEndpoint', 'url', {str}))
        if url:
            # Links to external sites are wrapped in /redirect?q=<target>
            if urllib.parse.urlparse(url).path == '/redirect':
                url = traverse_obj(parse_qs(url), ('q', 0)) or url
            return urljoin(self._BASE_URL, url)

        browse = traverse_obj(endpoint, ('browseEndpoint', {dict}))
        if browse:
            canonical = traverse_obj(browse, ('canonicalBaseUrl', {str}))
            if canonical:
                return urljoin(self._BASE_URL, canonical)
            browse_id = traverse_obj(browse, ('browseId', {str}))
            if browse_id:
                if browse_id.startswith('UC'):
                    return f'{self._BASE_URL}/channel/{browse_id}'
                return f'{self._BASE_URL}/browse/{browse_id}'

        return None

    def _extract_badges(self, badge_list: list):
        """
        Extract known BadgeType's from a list of badge renderers.
        @returns [{'type': BadgeType}]
        """
        icon_type_map = {
            'PRIVACY_UNLISTED': BadgeType.AVAILABILITY_UNLISTED,
            'PRIVACY_PRIVATE': BadgeType.AVAILABILITY_PRIVATE,
            'PRIVACY_PUBLIC': BadgeType.AVAILABILITY_PUBLIC,
            'CHECK_CIRCLE_THICK': BadgeType.VERIFIED,
            'OFFICIAL_ARTIST_BADGE': BadgeType.VERIFIED,
            'CHECK': BadgeType.VERIFIED,
        }

        badge_style_map = {
            'BADGE_STYLE_TYPE_MEMBERS_ONLY': BadgeType.AVAILABILITY_SUBSCRIPTION,
            'BADGE_STYLE_TYPE_PREMIUM': BadgeType.AVAILABILITY_PREMIUM,
            'BADGE_STYLE_TYPE_LIVE_NOW': BadgeType.LIVE_NOW,
            'BADGE_STYLE_TYPE_VERIFIED': BadgeType.VERIFIED,
            'BADGE_STYLE_TYPE_VERIFIED_ARTIST': BadgeType.VERIFIED,
        }

        label_map = {
            'unlisted': BadgeType.AVAILABILITY_UNLISTED,
            'private': BadgeType.AVAILABILITY_PRIVATE,
            'members only': BadgeType.AVAILABILITY_SUBSCRIPTION,
            'live': BadgeType.LIVE_NOW,
            'premium': BadgeType.AVAILABILITY_PREMIUM,
            'verified': BadgeType.VERIFIED,
            'official artist channel': BadgeType.VERIFIED,
        }

        badges = []
        for badge in traverse_obj(badge_list, (..., lambda key, _: re.search(r'[bB]adgeRenderer$', key))):
            badge_type = (
                icon_type_map.get(traverse_obj(badge, ('icon', 'iconType'), expected_type=str))
                or badge_style_map.get(traverse_obj(badge, 'style'))
            )
            if badge_type:
                badges.append({'type': badge_type})
                continue

            # fallback, won't work in some languages
            label = traverse_obj(
                badge, 'label', ('accessibilityData', 'label'), 'tooltip', 'iconTooltip', get_all=False, expected_type=str, default='')
            for match, label_badge_type in label_map.items():
                if match in label.lower():
                    badges.append({'type': label_badge_type})
                    break

        return badges

    @staticmethod
    def _has_badge(badges, badge_type):
        return bool(traverse_obj(badges, lambda _, v: v['type'] == badge_type))

    @staticmethod
    def _get_text(data, *path_list, max_runs=None):
        for path in path_list or [None]:
            if path is None:
                obj = [data]
            else:
                obj = traverse_obj(data, path, default=[])
                if not any(key is ... or isinstance(key, (list, tuple)) for key in variadic(path)):
                    obj = [obj]
            for item in obj:
                text = try_get(item, lambda x: x['simpleText'], str)
                if text:
                    return text
                runs = try_get(item, lambda x: x['runs'], list) or []
                if not runs and isinstance(item, list):
                    runs = item

                runs = runs[:min(len(runs), max_runs or len(runs))]
                text = ''.join(traverse_obj(runs, (..., 'text'), expected_type=str))
                if text:
                    return text

    def _get_count(self, data, *path_list):
        count_text = self._get_text(data, *path_list) or ''
        count = parse_count(count_text)
        if count is None:
            count = str_to_int(
                self._search_regex(r'^([\d,]+)', re.sub(r'\s', '', count_text), 'count', default=None))
        return count

    @staticmethod
    def _extract_thumbnails(data, *path_list, final_key='thumbnails'):
        """
        Extract thumbnails from thumbnails dict
        @param path_list: path list to level that contains 'thumbnails' key
        @returns thumbnails sorted from the smallest to the largest
        """
        thumbnails = []
        for path in path_list or [()]:
            for thumbnail in traverse_obj(data, (*variadic(path), final_key, ..., {dict})):
                thumbnail_url = url_or_none(thumbnail.get('url'))
                if not thumbnail_url:
                    continue
                # The query of maxresdefault urls can point at a missing image
                if 'maxresdefault' in thumbnail_url:
                    thumbnail_url = thumbnail_url.split('?')[0]
                thumbnails.append({
                    'url': sanitize_url(thumbnail_url, scheme='https'),
                    'height': int_or_none(thumbnail.get('height')),
                    'width': int_or_none(thumbnail.get('width')),
                })
        return sorted(thumbnails, key=lambda t: (t['width'] or 0) * (t['height'] or 0))

    def _parse_time_text(self, text):
        """
        Timestamp of a relative date text
        e.g. 'streamed 6 days ago', '5 seconds ago (edited)', 'updated today', '8 yr ago'
        """
        if not text:
            return None
        mobj = re.search(
            r'(?P<day>today|yesterday|now)|(?P<time>\d+)\s*(?P<unit>sec(?:ond)?|s|min(?:ute)?|h(?:our|r)?|d(?:ay)?|w(?:eek|k)?|mo(?:nth)?|y(?:ear|r)?)s?\s*ago',
            text)
        if not mobj:
            self.report_warning(f'Cannot parse localized time text "{text}"', only_once=True)
            return None
        now = int(time.time())
        if mobj.group('day'):
            return now - (86400 if mobj.group('day') == 'yesterday' else 0)
        return now - int(mobj.group('time')) * self._RELATIVE_UNITS[mobj.group('unit')]

    def _extract_panel_video(self, renderer):
        """Build a "url" result out of a playlistPanelVideoRenderer"""
        video_id = traverse_obj(renderer, ('videoId', {str}))
        if not video_id:
            raise MissingFieldError('Could not get video id of playlist item')

        duration = int_or_none(renderer.get('lengthSeconds'))
        if duration is None:
            duration = parse_duration(self._get_text(
                renderer, 'lengthText', ('thumbnailOverlays', ..., 'thumbnailOverlayTimeStatusRenderer', 'text')))

        # The long byline is empty for some items, the short one then names the channel
        byline = next((
            byline for byline in traverse_obj(renderer, ('longBylineText', {dict}), ('shortBylineText', {dict}))
            if self._get_text(byline)), None)
        channel = self._get_text(byline)
        channel_id = self.ucid_or_none(traverse_obj(
            byline, ('runs', ..., 'navigationEndpoint', 'browseEndpoint', 'browseId'),
            expected_type=str, get_all=False))
        channel_handle = traverse_obj(byline, (
            'runs', ..., 'navigationEndpoint',
            (('commandMetadata', 'webCommandMetadata', 'url'), ('browseEndpoint', 'canonicalBaseUrl'))),
            expected_type=self.handle_from_url, get_all=False)

        overlay_style = traverse_obj(
            renderer, ('thumbnailOverlays', ..., 'thumbnailOverlayTimeStatusRenderer', 'style'),
            get_all=False, expected_type=str)
        badges = self._extract_badges(traverse_obj(renderer, 'badges'))
        time_text = self._get_text(renderer, 'publishedTimeText') or ''
        if 'streamed' in time_text.lower():
            live_status = 'was_live'
        elif overlay_style == 'LIVE' or self._has_badge(badges, BadgeType.LIVE_NOW):
            live_status = 'is_live'
        else:
            live_status = None

        view_count_text = self._get_text(renderer, 'viewCountText', 'shortViewCountText') or ''
        if 'no views' in view_count_text.lower():
            view_count = 0
        else:
            view_count = self._get_count({'simpleText': view_count_text})

        return {
            '_type': 'url',
            'id': video_id,
            'url': f'{self._BASE_URL}/watch?v={video_id}',
            'title': self._get_text(renderer, 'title'),
            'duration': duration,
            'channel_id': channel_id,
            'channel': channel,
            'channel_url': format_field(channel_id, None, f'{self._BASE_URL}/channel/%s', default=None),
            'uploader': channel,
            'uploader_id': channel_handle,
            'uploader_url': format_field(channel_handle, None, f'{self._BASE_URL}/%s', default=None),
            'thumbnails': self._extract_thumbnails(renderer, 'thumbnail'),
            'view_count': view_count,
            'timestamp': self._parse_time_text(time_text),
            'live_status': live_status,
        }
