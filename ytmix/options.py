import contextlib
import optparse
import os.path
import re
import sys

from .utils import (
    Config,
    variadic,
    write_string,
)
from .version import __version__

PACKAGE_NAME = 'ytmix'


def config_locations():
    """User and system config files by group, in lookup order; a group uses its first readable file"""
    xdg_config_home = os.getenv('XDG_CONFIG_HOME') or os.path.expanduser('~/.config')
    return {
        'User': [
            os.path.join(xdg_config_home, PACKAGE_NAME, 'config'),
            os.path.join(os.path.expanduser('~'), f'.{PACKAGE_NAME}', 'config'),
        ],
        'System': [os.path.join('/etc', f'{PACKAGE_NAME}.conf')],
    }


def parseOpts(overrideArguments=None, ignore_config_files='if_override'):  # noqa: N803
    root = Config(create_parser())
    if ignore_config_files == 'if_override':
        ignore_config_files = overrideArguments is not None

    def load_group(label, paths):
        for path in paths:
            args = Config.read_file(path, default=None)
            if args is not None:
                root.append_config(args, path, label=label)
                return

    opts = optparse.Values({'verbose': True, 'print_help': False})
    try:
        try:
            if overrideArguments is not None:
                root.append_config(overrideArguments, label='Override')
            else:
                root.append_config(sys.argv[1:], label='Command-line')

            if not ignore_config_files:
                for label, paths in config_locations().items():
                    # --ignore-config in a loaded file stops the lookup too
                    if root.parse_known_args()[0].ignoreconfig:
                        break
                    load_group(label, paths)
        except ValueError as err:
            raise root.parser.error(err)

        opts, args = root.parse_args()
    except optparse.OptParseError:
        with contextlib.suppress(optparse.OptParseError):
            opts, _ = root.parse_known_args(strict=False)
        raise
    except (SystemExit, KeyboardInterrupt):
        opts.verbose = False
        raise
    finally:
        if opts.verbose:
            for line in str(root).splitlines():
                write_string(f'[debug] {line.removeprefix("| ")}\n')
        if opts.print_help:
            root.parser.print_help()
    if opts.print_help:
        sys.exit()
    return root.parser, opts, args


class _MixOptionParser(optparse.OptionParser):
    # optparse is deprecated since Python 3.2. So assume a stable interface even for private methods
    def __init__(self):
        super().__init__(
            prog='ytmix',
            version=__version__,
            usage='%prog [OPTIONS] URL [URL...]',
            formatter=optparse.IndentedHelpFormatter(width=100, max_help_position=40),
            conflict_handler='resolve',
            add_help_option=False,
        )

    _UNKNOWN_OPTION = (optparse.BadOptionError, optparse.AmbiguousOptionError)
    _BAD_OPTION = optparse.OptionValueError

    def parse_known_args(self, args=None, values=None, strict=True):
        """Same as parse_args, but ignore unknown switches. Similar to argparse.parse_known_args"""
        self.rargs, self.largs = self._get_args(args), []
        self.values = values or self.get_default_values()
        while self.rargs:
            arg = self.rargs[0]
            try:
                if arg == '--':
                    del self.rargs[0]
                    break
                elif arg.startswith('--'):
                    self._process_long_opt(self.rargs, self.values)
                elif arg.startswith('-') and arg != '-':
                    self._process_short_opts(self.rargs, self.values)
                elif self.allow_interspersed_args:
                    self.largs.append(self.rargs.pop(0))
                else:
                    break
            except optparse.OptParseError as err:
                if isinstance(err, self._UNKNOWN_OPTION):
                    self.largs.append(err.opt_str)
                elif strict:
                    if isinstance(err, self._BAD_OPTION):
                        self.error(str(err))
                    raise
        return self.check_values(self.values, self.largs)

    def _generate_error_message(self, msg):
        msg = f'{self.get_prog_name()}: error: {str(msg).strip()}\n'
        return f'{self.get_usage()}\n{msg}' if self.usage else msg

    def error(self, msg):
        raise optparse.OptParseError(self._generate_error_message(msg))

    def _get_args(self, args):
        return sys.argv[1:] if args is None else list(args)


def create_parser():
    def _dict_from_options_callback(
            option, opt_str, value, parser,
            allowed_keys=r'[\w-]+', delimiter=':', default_key=None, process=None, multiple_keys=True,
            process_key=str.lower, append=False):

        out_dict = dict(getattr(parser.values, option.dest))
        multiple_args = not isinstance(value, str)
        if multiple_keys:
            allowed_keys = fr'({allowed_keys})(,({allowed_keys}))*'
        mobj = re.match(
            fr'(?is)(?P<keys>{allowed_keys}){delimiter}(?P<val>.*)$',
            value[0] if multiple_args else value)
        if mobj is not None:
            keys, val = mobj.group('keys').split(','), mobj.group('val')
            if multiple_args:
                val = [val, *value[1:]]
        elif default_key is not None:
            keys, val = variadic(default_key), value
        else:
            raise optparse.OptionValueError(
                f'wrong {opt_str} formatting; it should be {option.metavar}, not "{value}"')
        try:
            keys = map(process_key, keys) if process_key else keys
            val = process(val) if process else val
        except Exception as err:
            raise optparse.OptionValueError(f'wrong {opt_str} formatting; {err}')
        for key in keys:
            out_dict[key] = [*out_dict.get(key, []), val] if append else val
        setattr(parser.values, option.dest, out_dict)

    parser = _MixOptionParser()
    general = optparse.OptionGroup(parser, 'General Options')
    general.add_option(
        '-h', '--help', dest='print_help', action='store_true',
        help='Print this help text and exit')
    general.add_option(
        '--version',
        action='version',
        help='Print program version and exit')
    general.add_option(
        '-i', '--ignore-errors',
        action='store_true', dest='ignoreerrors',
        help='Ignore errors and continue with the next URL')
    general.add_option(
        '--abort-on-error', '--no-ignore-errors',
        action='store_false', dest='ignoreerrors',
        help='Abort on the first error (default)')
    general.add_option(
        '--ignore-config', '--no-config',
        action='store_true', dest='ignoreconfig',
        help=(
            'Don\'t load the user and system configuration files. '
            'Inside the user configuration file, skips the system one'))
    general.add_option(
        '--no-config-locations',
        action='store_const', dest='config_locations', const=None,
        help='Do not load any custom configuration files (default).')
    general.add_option(
        '--config-locations',
        dest='config_locations', metavar='PATH', action='append',
        help=(
            'Location of the main configuration file; either the path to the config or its containing directory. '
            'Can be used multiple times and inside other configuration files'))

    network = optparse.OptionGroup(parser, 'Network Options')
    network.add_option(
        '--proxy', dest='proxy',
        default=None, metavar='URL',
        help=(
            'Use the specified HTTP/HTTPS proxy. '
            'Pass in an empty string (--proxy "") for direct connection'))
    network.add_option(
        '--socket-timeout',
        dest='socket_timeout', type=float, default=None, metavar='SECONDS',
        help='Time to wait before giving up, in seconds')
    network.add_option(
        '--source-address',
        metavar='IP', dest='source_address', default=None,
        help='Client-side IP address to bind to',
    )
    network.add_option(
        '--no-check-certificates',
        action='store_true', dest='no_check_certificate', default=False,
        help='Suppress HTTPS certificate validation')
    network.add_option(
        '--cookies',
        dest='cookiefile', metavar='FILE',
        help='Netscape formatted file to read cookies from and dump cookie jar in')
    network.add_option(
        '--no-cookies',
        action='store_const', const=None, dest='cookiefile', metavar='FILE',
        help='Do not read/dump cookies from/to file (default)')
    network.add_option(
        '--add-headers',
        metavar='FIELD:VALUE', dest='headers', default={}, type='str',
        action='callback', callback=_dict_from_options_callback,
        callback_kwargs={'multiple_keys': False, 'process_key': None},
        help='Specify a custom HTTP header and its value, separated by a colon ":". You can use this option multiple times',
    )
    network.add_option(
        '--sleep-requests', metavar='SECONDS',
        dest='sleep_interval_requests', type=float,
        help='Number of seconds to sleep between requests during extraction')
    network.add_option(
        '--print-traffic', '--dump-headers',
        dest='debug_printtraffic', action='store_true', default=False,
        help='Display sent and read HTTP traffic')

    selection = optparse.OptionGroup(parser, 'Mix Selection')
    selection.add_option(
        '--playlist-end',
        dest='playlistend', metavar='NUMBER', default=None, type=int,
        help='Stop after this many entries. Mixes never end, so this is how most runs are bounded')
    selection.add_option(
        '--max-pages',
        dest='max_pages', metavar='NUMBER', default=None, type=int,
        help='Stop after downloading this many pages of the mix')
    selection.add_option(
        '--start-page',
        dest='start_page', metavar='JSON', default=None,
        help=(
            'Resume a mix from a page printed by --print-next-page. '
            'The JSON object must have a "url" string and may have a "cookies" object'))
    selection.add_option(
        '--print-next-page',
        action='store_true', dest='print_next_page', default=False,
        help='Print, as JSON, the page to continue the mix from once done')
    selection.add_option(
        '--no-print-next-page',
        action='store_false', dest='print_next_page',
        help='Do not print the page to continue from (default)')

    verbosity = optparse.OptionGroup(parser, 'Verbosity Options')
    verbosity.add_option(
        '-q', '--quiet',
        action='store_true', dest='quiet', default=None,
        help='Activate quiet mode')
    verbosity.add_option(
        '--no-quiet',
        action='store_false', dest='quiet',
        help='Deactivate quiet mode. (Default)')
    verbosity.add_option(
        '--no-warnings',
        dest='no_warnings', action='store_true', default=False,
        help='Ignore warnings')
    verbosity.add_option(
        '-j', '--dump-json',
        action='store_true', dest='dumpjson', default=False,
        help='Print one JSON line per entry instead of its URL')
    verbosity.add_option(
        '-J', '--dump-single-json',
        action='store_true', dest='dump_single_json', default=False,
        help='Print a single JSON line for the whole mix once all entries are collected')
    verbosity.add_option(
        '--dump-pages',
        action='store_true', dest='dump_intermediate_pages', default=False,
        help='Print the body of every downloaded page to debug problems')
    verbosity.add_option(
        '-v', '--verbose',
        action='store_true', dest='verbose', default=False,
        help='Print various debugging information')

    parser.add_option_group(general)
    parser.add_option_group(network)
    parser.add_option_group(selection)
    parser.add_option_group(verbosity)

    return parser


__all__ = ['create_parser', 'parseOpts']
