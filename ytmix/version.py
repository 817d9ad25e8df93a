__version__ = '2026.10.17'

RELEASE_GIT_HEAD = ''

VARIANT = None

ORIGIN = 'ytmix/ytmix'
