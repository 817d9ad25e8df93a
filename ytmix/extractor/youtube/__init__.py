# flake8: noqa: F401
from ._base import BadgeType, YoutubeBaseInfoExtractor
from ._mix import (
    ITEM_COUNT_INFINITE,
    MixDescriptor,
    MixMetadata,
    Page,
    YoutubeMixPlaylist,
    YoutubeMixPlaylistIE,
    thumbnail_for,
    trim_window,
)

for _cls in [
    YoutubeBaseInfoExtractor,
    YoutubeMixPlaylistIE,
]:
    _cls.__module__ = 'ytmix.extractor.youtube'
