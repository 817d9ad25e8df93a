#!/usr/bin/env python3

# Allow direct execution
import os
import sys
import unittest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


from ytmix.networking.exceptions import TransportError
from ytmix.utils import (
    ContinuationNotFoundError,
    ExtractorError,
    InvalidPageError,
    MissingFieldError,
    NetworkFailureError,
    UnsupportedError,
    bug_reports_message,
    determine_file_encoding,
    error_to_str,
    filter_dict,
    format_field,
    int_or_none,
    join_nonempty,
    parse_count,
    parse_duration,
    parse_qs,
    remove_start,
    sanitize_url,
    str_or_none,
    str_to_int,
    truncate_string,
    try_get,
    update_url,
    update_url_query,
    url_or_none,
    urljoin,
    variadic,
)
from ytmix.utils.networking import (
    HTTPHeaderDict,
    clean_proxies,
    cookie_header,
    normalize_url,
    remove_dot_segments,
    select_proxy,
)


class TestUtil(unittest.TestCase):
    def test_sanitize_url(self):
        self.assertEqual(sanitize_url('//i.ytimg.com/vi/x/hqdefault.jpg'), 'http://i.ytimg.com/vi/x/hqdefault.jpg')
        self.assertEqual(sanitize_url('//i.ytimg.com/vi/x/hqdefault.jpg', scheme='https'), 'https://i.ytimg.com/vi/x/hqdefault.jpg')
        self.assertEqual(sanitize_url('https://foo.bar'), 'https://foo.bar')
        self.assertEqual(sanitize_url('foo bar'), 'foo bar')
        self.assertIsNone(sanitize_url(None))

    def test_remove_start(self):
        self.assertEqual(remove_start(None, 'A - '), None)
        self.assertEqual(remove_start('A - B', 'A - '), 'B')
        self.assertEqual(remove_start('B - A', 'A - '), 'B - A')
        self.assertEqual(remove_start('Mix - Song', 'Mix - '), 'Song')

    def test_int_or_none(self):
        self.assertEqual(int_or_none('42'), 42)
        self.assertEqual(int_or_none(''), None)
        self.assertEqual(int_or_none(None), None)
        self.assertEqual(int_or_none([]), None)
        self.assertEqual(int_or_none(set()), None)
        self.assertEqual(int_or_none('x', default=0), 0)

    def test_str_or_none(self):
        self.assertEqual(str_or_none(None), None)
        self.assertEqual(str_or_none(12), '12')
        self.assertEqual(str_or_none(None, default=''), '')

    def test_str_to_int(self):
        self.assertEqual(str_to_int('123,456'), 123456)
        self.assertEqual(str_to_int('123.456'), 123456)
        self.assertEqual(str_to_int(523), 523)
        self.assertEqual(str_to_int('noninteger'), None)
        self.assertEqual(str_to_int([]), None)

    def test_urljoin(self):
        self.assertEqual(urljoin('https://www.youtube.com', '/watch?v=x'), 'https://www.youtube.com/watch?v=x')
        self.assertEqual(urljoin(b'http://foo.de/', '/a/b/c.txt'), 'http://foo.de/a/b/c.txt')
        self.assertEqual(urljoin('http://foo.de/', b'/a/b/c.txt'), 'http://foo.de/a/b/c.txt')
        self.assertEqual(urljoin('//foo.de/', '/a/b/c.txt'), '//foo.de/a/b/c.txt')
        self.assertEqual(urljoin('http://foo.de/', 'a/b/c.txt'), 'http://foo.de/a/b/c.txt')
        self.assertEqual(urljoin('http://foo.de/', 'http://foo.de/a/b/c.txt'), 'http://foo.de/a/b/c.txt')
        self.assertEqual(urljoin(None, 'http://foo.de/a/b/c.txt'), 'http://foo.de/a/b/c.txt')
        self.assertEqual(urljoin('', 'http://foo.de/a/b/c.txt'), 'http://foo.de/a/b/c.txt')
        self.assertEqual(urljoin('http://foo.de/', None), None)
        self.assertEqual(urljoin('http://foo.de/', ''), None)
        self.assertEqual(urljoin('http://foo.de/', ['foobar']), None)
        self.assertEqual(urljoin('foo.de/', '/a/b/c.txt'), None)

    def test_url_or_none(self):
        self.assertEqual(url_or_none(None), None)
        self.assertEqual(url_or_none(''), None)
        self.assertEqual(url_or_none('foo'), None)
        self.assertEqual(url_or_none('http://foo.de'), 'http://foo.de')
        self.assertEqual(url_or_none('https://foo.de'), 'https://foo.de')
        self.assertEqual(url_or_none(' https://foo.de '), 'https://foo.de')
        self.assertEqual(url_or_none('//foo.de'), '//foo.de')
        self.assertEqual(url_or_none('s3://foo.de'), None)
        self.assertEqual(url_or_none(42), None)

    def test_parse_duration(self):
        self.assertEqual(parse_duration(None), None)
        self.assertEqual(parse_duration(False), None)
        self.assertEqual(parse_duration(''), None)
        self.assertEqual(parse_duration('invalid'), None)
        self.assertEqual(parse_duration('1'), 1)
        self.assertEqual(parse_duration('1337:12'), 80232)
        self.assertEqual(parse_duration('9:12:43'), 33163)
        self.assertEqual(parse_duration('12:00'), 720)
        self.assertEqual(parse_duration('00:01:01'), 61)
        self.assertEqual(parse_duration('x:y'), None)
        self.assertEqual(parse_duration('3h11m53s'), 11513)
        self.assertEqual(parse_duration('3 hours 11 minutes 53 seconds'), 11513)
        self.assertEqual(parse_duration('3 hours, 11 mins, 53 secs'), 11513)
        self.assertEqual(parse_duration('62m45s'), 3765)
        self.assertEqual(parse_duration('0s'), 0)
        self.assertAlmostEqual(parse_duration('01:02:03.05'), 3723.05)
        self.assertEqual(parse_duration('1 day 2 hours'), 93600)
        self.assertEqual(parse_duration('01:02:03:04'), 93784)

    def test_parse_count(self):
        self.assertEqual(parse_count(None), None)
        self.assertEqual(parse_count(''), None)
        self.assertEqual(parse_count('0'), 0)
        self.assertEqual(parse_count('1000'), 1000)
        self.assertEqual(parse_count('1.000'), 1000)
        self.assertEqual(parse_count('1.1k'), 1100)
        self.assertEqual(parse_count('1,1 k'), 1100)
        self.assertEqual(parse_count('1.1kk'), 1100000)
        self.assertEqual(parse_count('100 views'), 100)
        self.assertEqual(parse_count('1,100 views'), 1100)
        self.assertEqual(parse_count('10M views'), 10000000)
        self.assertEqual(parse_count('2.3B views'), 2300000000)
        self.assertEqual(parse_count('has 10M views'), 10000000)

    def test_update_url_query(self):
        self.assertEqual(parse_qs(update_url_query(
            'https://www.youtube.com/watch?v=x&list=RDx', {'pbj': 1})),
            parse_qs('https://www.youtube.com/watch?v=x&list=RDx&pbj=1'))
        self.assertEqual(parse_qs(update_url_query(
            'http://example.com/path', {'system': ['LINUX', 'WINDOWS']})),
            parse_qs('http://example.com/path?system=LINUX&system=WINDOWS'))
        self.assertEqual(parse_qs(update_url_query(
            'http://example.com/path?index=1', {'index': ['26']})),
            parse_qs('http://example.com/path?index=26'))
        self.assertEqual(parse_qs(update_url_query(
            'http://example.com/path?manifest=f4m', {'manifest': []})),
            parse_qs('http://example.com/path'))

    def test_update_url(self):
        self.assertEqual(update_url('http://example.com/path'), 'http://example.com/path')
        self.assertEqual(update_url('http://example.com/path', scheme='https'), 'https://example.com/path')
        self.assertEqual(update_url('http://example.com/path#frag', fragment=''), 'http://example.com/path')

    def test_truncate_string(self):
        self.assertEqual(truncate_string(None, 5), None)
        self.assertEqual(truncate_string('abcdef', 10), 'abcdef')
        self.assertEqual(truncate_string('abcdefghijklmnop', 10), 'abcdefg...')
        self.assertEqual(truncate_string('abcdefghijklmnop', 10, 3), 'abcdefg...nop')
        with self.assertRaises(AssertionError):
            truncate_string('abc', 3)

    def test_format_field(self):
        self.assertEqual(format_field({}, 'key'), '')
        self.assertEqual(format_field({'key': 'value'}, 'key'), 'value')
        self.assertEqual(format_field({'key': 'value'}, 'key', '[%s]'), '[value]')
        self.assertEqual(format_field({'key': 0}, 'key', '%d', ignore=None), '0')
        self.assertEqual(format_field({'key': 'none'}, 'key', ignore='none', default='-'), '-')
        self.assertEqual(format_field({'key': 'x'}, 'key', func=str.upper), 'X')
        self.assertEqual(format_field(3, None, ':%s'), ':3')
        self.assertEqual(format_field(None, None, ':%s'), '')

    def test_join_nonempty(self):
        self.assertEqual(join_nonempty('a', None, 'b', ''), 'a-b')
        self.assertEqual(join_nonempty('a', 0, 1, delim=':'), 'a:1')
        self.assertEqual(join_nonempty(), '')

    def test_variadic(self):
        self.assertEqual(variadic(None), (None, ))
        self.assertEqual(variadic('spam'), ('spam', ))
        self.assertEqual(variadic(['spam']), ['spam'])
        self.assertEqual(variadic({'a': 1}), ({'a': 1}, ))
        self.assertEqual(variadic('spam', allowed_types=dict), 'spam')

    def test_try_get(self):
        self.assertEqual(try_get({'a': [1]}, lambda x: x['a'][0]), 1)
        self.assertEqual(try_get({'a': [1]}, lambda x: x['b'][0]), None)
        self.assertEqual(try_get({'a': '1'}, lambda x: x['a'], int), None)
        self.assertEqual(try_get({'a': 1}, (lambda x: x['b'], lambda x: x['a'])), 1)

    def test_filter_dict(self):
        self.assertEqual(filter_dict({'a': 1, 'b': None}), {'a': 1})
        self.assertEqual(filter_dict({'a': 1, 'b': 2}, lambda k, _: k != 'a'), {'b': 2})

    def test_determine_file_encoding(self):
        self.assertEqual(determine_file_encoding(b''), (None, 0))
        self.assertEqual(determine_file_encoding(b'--verbose -x --audio-format mkv\n'), (None, 0))
        self.assertEqual(determine_file_encoding(b'\xef\xbb\xbf'), ('utf-8', 3))
        self.assertEqual(determine_file_encoding(b'\x00\x00\xfe\xff'), ('utf-32-be', 4))
        self.assertEqual(determine_file_encoding(b'\xff\xfe'), ('utf-16-le', 2))
        self.assertEqual(determine_file_encoding(b'# coding: utf-8\n--verbose'), ('utf-8', 0))
        self.assertEqual(determine_file_encoding(b'# coding: someencodinghere-12345\n--verbose'), ('someencodinghere-12345', 0))

    def test_http_header_dict(self):
        headers = HTTPHeaderDict()
        headers['ytmix-test'] = b'0'
        self.assertEqual(list(headers.items()), [('Ytmix-Test', '0')])
        headers['ytmix-test'] = 1
        self.assertEqual(list(headers.items()), [('Ytmix-Test', '1')])
        headers['Ytmix-test'] = '2'
        self.assertEqual(list(headers.items()), [('Ytmix-Test', '2')])
        self.assertTrue('ytMix-Test' in headers)
        self.assertEqual(headers.get('YTMIX-TEST'), '2')
        self.assertEqual(headers.sensitive(), {'Ytmix-test': '2'})

        headers.update({'X-Youtube-Client-name': '1'})
        self.assertEqual(dict(headers), {'Ytmix-Test': '2', 'X-Youtube-Client-Name': '1'})
        self.assertEqual(len(headers), 2)
        self.assertEqual(headers.copy(), headers)

        # ensure we prefer latter headers
        headers2 = HTTPHeaderDict({'Ytmix-TeSt': 1}, {'Ytmix-test': 2})
        self.assertEqual(set(headers2.items()), {('Ytmix-Test', '2')})
        del headers2['ytmix-tesT']
        self.assertEqual(dict(headers2), {})

        headers3 = HTTPHeaderDict({'Cookie': ' a=b '})
        self.assertEqual(headers3['cookie'], 'a=b')
        self.assertEqual(dict(headers3 | {'Accept': '*/*'}), {'Cookie': 'a=b', 'Accept': '*/*'})
        self.assertEqual(headers3.pop('COOKIE'), 'a=b')
        self.assertEqual(headers3.pop('cookie', None), None)

    def test_cookie_header(self):
        self.assertEqual(cookie_header({}), None)
        self.assertEqual(cookie_header({'VISITOR_INFO1_LIVE': 'abc'}), 'VISITOR_INFO1_LIVE=abc')
        self.assertEqual(cookie_header({'a': '1', 'b': None, 'c': '3'}), 'a=1; c=3')

    def test_clean_proxies(self):
        proxies = {
            'http': 'example.com:3128',
            'https': '//example.com:3128',
            'all': 'socks5://example.com',
            'no': 'localhost',
            'ftp': '__noproxy__',
        }
        clean_proxies(proxies)
        self.assertEqual(proxies, {
            'http': 'http://example.com:3128',
            'https': 'http://example.com:3128',
            'all': 'socks5://example.com',
            'no': 'localhost',
            'ftp': None,
        })

    def test_select_proxy(self):
        proxies = {
            'all': 'socks5://example.com',
            'http': 'http://example.com:1080',
            'no': 'bypass.example.com,youtube.test',
        }
        self.assertEqual(select_proxy('https://example.com', proxies), proxies['all'])
        self.assertEqual(select_proxy('http://example.com', proxies), proxies['http'])
        self.assertIsNone(select_proxy('http://bypass.example.com', proxies))
        self.assertIsNone(select_proxy('https://youtube.test', proxies))

    def test_remove_dot_segments(self):
        self.assertEqual(remove_dot_segments('/a/b/c/./../../g'), '/a/g')
        self.assertEqual(remove_dot_segments('mid/content=5/../6'), 'mid/6')
        self.assertEqual(remove_dot_segments('/..'), '/')
        self.assertEqual(remove_dot_segments('/./a'), '/a')
        self.assertEqual(remove_dot_segments(''), '')
        self.assertEqual(remove_dot_segments('../a'), 'a')

    def test_normalize_url(self):
        self.assertEqual(normalize_url('http://www.example.com/../a/b/../c/./d.html'), 'http://www.example.com/a/c/d.html')
        self.assertEqual(
            normalize_url('https://www.youtube.com/watch?v=x&list=RDx&index=26&pbj=1'),
            'https://www.youtube.com/watch?v=x&list=RDx&index=26&pbj=1')
        self.assertEqual(normalize_url('http://example.com/a b'), 'http://example.com/a%20b')


class TestErrors(unittest.TestCase):
    def test_expected_message(self):
        err = ExtractorError('Unable to find the playlist', expected=True, video_id='RDx', ie='youtube:mix')
        self.assertEqual(str(err), '[youtube:mix] RDx: Unable to find the playlist')
        self.assertEqual(err.orig_msg, 'Unable to find the playlist')

    def test_unexpected_message(self):
        err = ExtractorError('Something broke')
        self.assertEqual(str(err), 'Something broke' + bug_reports_message())
        self.assertFalse(err.expected)

    def test_message_follows_attributes(self):
        err = ExtractorError('Broken', expected=True)
        err.ie = 'youtube:mix'
        self.assertEqual(str(err), '[youtube:mix] Broken')
        self.assertEqual(err.msg, '[youtube:mix] Broken')

    def test_bug_reports_message(self):
        self.assertTrue(bug_reports_message().startswith('; please report this issue'))
        self.assertTrue(bug_reports_message(before='').startswith('Please report this issue'))
        self.assertTrue(bug_reports_message(before='Failed.').startswith('Failed. Please'))

    def test_kinds(self):
        self.assertEqual(InvalidPageError().kind, 'InvalidArgument')
        self.assertEqual(str(InvalidPageError()), 'Page url is empty or null')
        self.assertTrue(InvalidPageError('bad').expected)
        self.assertEqual(MissingFieldError('x').kind, 'MissingField')
        self.assertEqual(ContinuationNotFoundError('x').kind, 'ContinuationNotFound')
        self.assertIsNone(ExtractorError('x').kind)
        self.assertIsInstance(MissingFieldError('x'), ExtractorError)

    def test_network_failure(self):
        cause = TransportError('connection reset')
        err = NetworkFailureError('Unable to download page', cause=cause)
        self.assertTrue(err.expected)
        self.assertIs(err.cause, cause)
        self.assertEqual(err.kind, 'NetworkFailure')
        self.assertIn('caused by', str(err))

    def test_network_exception_is_expected(self):
        try:
            raise TransportError('boom')
        except TransportError:
            err = ExtractorError('Failed')
        self.assertTrue(err.expected)

    def test_unsupported(self):
        err = UnsupportedError('https://example.com')
        self.assertEqual(err.url, 'https://example.com')
        self.assertEqual(str(err), 'Unsupported URL: https://example.com')

    def test_error_to_str(self):
        self.assertEqual(error_to_str(ValueError('x')), 'ValueError: x')


if __name__ == '__main__':
    unittest.main()
