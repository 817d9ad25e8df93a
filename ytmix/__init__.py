import sys

if sys.version_info < (3, 9):
    raise ImportError(
        f'You are using an unsupported version of Python. Only Python versions 3.9 and above are supported by ytmix')  # noqa: F541

__license__ = 'The Unlicense'

import collections
import json
import optparse
import os

from .options import parseOpts
from .utils import (
    DownloadError,
    InvalidPageError,
    variadic,
    write_string,
)
from .MixDL import MixDL
from .extractor.youtube import Page


def _exit(status=0, *args):
    for msg in args:
        sys.stderr.write(msg)
    raise SystemExit(status)


def validate_options(opts):
    def validate(cndn, name, value=None, msg=None):
        if cndn:
            return True
        raise ValueError((msg or 'invalid {name} "{value}" given').format(name=name, value=value))

    def validate_positive(name, value, strict=False):
        return validate(value is None or value > 0 or (not strict and value == 0),
                        name, value, '{name} "{value}" must be positive' + ('' if strict else ' or 0'))

    # Numbers
    if opts.playlistend != -1:
        validate_positive('playlist end', opts.playlistend, True)
    validate_positive('max pages', opts.max_pages, True)

    # Time ranges
    validate_positive('requests sleep interval', opts.sleep_interval_requests)
    validate_positive('socket timeout', opts.socket_timeout, True)

    # Output
    validate(not (opts.dumpjson and opts.dump_single_json), '--dump-json',
             msg='{name} and --dump-single-json are mutually exclusive')
    validate(not opts.dump_single_json or opts.playlistend not in (None, -1) or opts.max_pages,
             '--dump-single-json', msg='{name} needs --playlist-end or --max-pages, a mix never ends')

    # Resuming
    if opts.start_page is not None:
        try:
            opts.start_page = Page.from_dict(json.loads(opts.start_page))
        except json.JSONDecodeError as err:
            raise ValueError(f'invalid start page JSON: {err}')
        except InvalidPageError as err:
            raise ValueError(f'invalid start page: {err.orig_msg}')

    if opts.verbose:
        opts.quiet = False


ParsedOptions = collections.namedtuple('ParsedOptions', ('parser', 'options', 'urls', 'ydl_opts'))


def parse_options(argv=None):
    """@returns ParsedOptions(parser, opts, urls, ydl_opts)"""
    parser, opts, urls = parseOpts(argv)
    urls = [url.strip() for url in urls]

    try:
        validate_options(opts)
    except ValueError as err:
        parser.error(f'{err}\n')

    any_getting = opts.dumpjson or opts.dump_single_json or opts.print_next_page
    if opts.quiet is None:
        opts.quiet = any_getting

    return ParsedOptions(parser, opts, urls, {
        'quiet': opts.quiet,
        'no_warnings': opts.no_warnings,
        'verbose': opts.verbose,
        'ignoreerrors': opts.ignoreerrors,
        'forcejson': opts.dumpjson,
        'dump_single_json': opts.dump_single_json,
        'print_next_page': opts.print_next_page,
        'playlistend': opts.playlistend,
        'max_pages': opts.max_pages,
        'start_page': opts.start_page,
        'http_headers': opts.headers,
        'proxy': opts.proxy,
        'socket_timeout': opts.socket_timeout,
        'source_address': opts.source_address,
        'nocheckcertificate': opts.no_check_certificate,
        'cookiefile': opts.cookiefile,
        'debug_printtraffic': opts.debug_printtraffic,
        'dump_intermediate_pages': opts.dump_intermediate_pages,
        'sleep_interval_requests': opts.sleep_interval_requests,
    })


def _real_main(argv=None):
    parser, opts, all_urls, ydl_opts = parse_options(argv)

    with MixDL(ydl_opts) as ydl:
        if not all_urls:
            parser.error(
                'You must provide at least one URL.\n'
                'Type ytmix --help to see a list of all options.')
        if opts.start_page is not None and len(all_urls) > 1:
            ydl.report_warning('--start-page is applied to every URL given')

        parser.destroy()
        return ydl.download(all_urls)


def main(argv=None):
    try:
        _exit(*variadic(_real_main(argv)))
    except DownloadError:
        _exit(1)
    except KeyboardInterrupt:
        _exit('\nERROR: Interrupted by user')
    except BrokenPipeError as e:
        # https://docs.python.org/3/library/signal.html#note-on-sigpipe
        devnull = os.open(os.devnull, os.O_WRONLY)
        os.dup2(devnull, sys.stdout.fileno())
        _exit(f'\nERROR: {e}')
    except optparse.OptParseError as e:
        _exit(2, f'\n{e}')


from .extractor import gen_extractors

__all__ = [
    'main',
    'MixDL',
    'parse_options',
    'gen_extractors',
    'write_string',
]
