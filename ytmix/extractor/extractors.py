# flake8: noqa: F401
from .youtube import YoutubeMixPlaylistIE
