import collections.abc
import contextlib
import itertools

from ._utils import (
    IDENTITY,
    NO_DEFAULT,
    is_iterable_like,
    try_call,
    variadic,
)


def traverse_obj(obj, *paths, default=NO_DEFAULT, expected_type=None, get_all=True):
    """
    Safely look up values in the nested `dict`s and `list`s of a JSON response

    >>> ajax = [{}, {'response': {'contents': [{'videoId': 'x'}]}}]
    >>> traverse_obj(ajax, (1, 'response', 'contents', 0, 'videoId'))
    'x'

    The `paths` are tried in order and the first one producing a result wins;
    a path that branched without finding anything falls through to the next.
    `None` and `{}` count as missing and are dropped from the results.
    A single key is accepted in place of a path.

    Keys of a path:
        - `str`/`int`:      `obj[key]`; integers also index sequences.
        - `None`:           The current object.
        - `set`:            `{type, ...}` keeps objects of these types,
                            `{func}` replaces the object with `func(obj)`.
        - `Ellipsis`:       Branch into every value.
        - `tuple`/`list`:   Branch into each of the given sub-paths.
        - `function`:       Branch into the values for which `function(key, value)`
                            is truthy. Sequences use the index as key.
        - `dict`:           Build a dict by traversing each of its values as a path.
        - `any`/`all`:      Collapse the branches into the first result, or into
                            a list of all of them.
        - `filter`:         Drop falsy results.

    @param default          Returned when no path matches. A branching last path
                            otherwise yields `[]`.
    @param expected_type    A type to filter the final values by, or a function
                            to transform them with.
    @param get_all          Return every result of a branching path instead of
                            the first one.
    """
    if isinstance(expected_type, type):
        def type_test(val):
            return val if isinstance(val, expected_type) else None
    else:
        def type_test(val):
            return try_call(expected_type or IDENTITY, args=(val,))

    def apply_key(key, obj, is_last):
        if key is None:
            return False, (obj,)

        if isinstance(key, set):
            if all(isinstance(item, type) for item in key):
                return False, (obj if isinstance(obj, tuple(key)) else None,)
            assert len(key) == 1, 'a set key holds either types or a single function'
            return False, (try_call(next(iter(key)), args=(obj,)),)

        if isinstance(key, (list, tuple)):
            return True, itertools.chain.from_iterable(
                walk(obj, branch, is_last)[0] for branch in key)

        if key is ...:
            if isinstance(obj, collections.abc.Mapping):
                return True, obj.values()
            return True, obj if is_iterable_like(obj) else ()

        if callable(key):
            if isinstance(obj, collections.abc.Mapping):
                pairs = obj.items()
            elif is_iterable_like(obj):
                pairs = enumerate(obj)
            else:
                pairs = ()
            return True, (v for k, v in pairs if try_call(key, args=(k, v)))

        if isinstance(key, dict):
            values = {k: collect(obj, path, False, is_last) for k, path in key.items()}
            return False, ({
                k: default if v is None else v for k, v in values.items()
                if v is not None or default is not NO_DEFAULT
            } or None,)

        if isinstance(obj, collections.abc.Mapping):
            return False, (try_call(obj.get, args=(key,)),)

        if isinstance(key, int) and is_iterable_like(obj, collections.abc.Sequence):
            with contextlib.suppress(IndexError):
                return False, (obj[key],)

        return False, (None,)

    def walk(start, path, test_type):
        objs, branched, key = (start,), False, None
        keys = variadic(path, (str, bytes, dict, set))
        for index, key in enumerate(keys, 1):
            if key is any or key is all:
                branched = False
                found = (o for o in objs if o not in (None, {}))
                objs = (next(found, None),) if key is any else (list(found),)
                continue

            if key is filter:
                objs = filter(None, objs)
                continue

            results = []
            for obj in objs:
                did_branch, values = apply_key(key, obj, index == len(keys))
                branched |= did_branch
                results.append(values)
            objs = itertools.chain.from_iterable(results)

        if test_type and not isinstance(key, (dict, list, tuple)):
            objs = map(type_test, objs)

        return objs, branched, isinstance(key, dict)

    def collect(obj, path, allow_empty, test_type):
        results, branched, is_dict = walk(obj, path, test_type)
        results = [item for item in results if item not in (None, {})]
        if get_all and branched:
            if results:
                return results
            if allow_empty:
                return [] if default is NO_DEFAULT else default
            return None

        if results:
            return results[0]
        return {} if allow_empty and is_dict else None

    for index, path in enumerate(paths, 1):
        result = collect(obj, path, index == len(paths), True)
        if result is not None:
            return result

    return None if default is NO_DEFAULT else default
