from .common import InfoExtractor


def gen_extractor_classes():
    """ Return a list of supported extractors.
    The order does matter; the first extractor matched is the one handling the URL.
    """
    from . import extractors

    return [
        klass for name, klass in vars(extractors).items()
        if name.endswith('IE') and isinstance(klass, type) and issubclass(klass, InfoExtractor)]


def gen_extractors():
    """ Return a list of an instance of every supported extractor.
    The order does matter; the first extractor matched is the one handling the URL.
    """
    return [klass() for klass in gen_extractor_classes()]


def get_info_extractor(ie_name):
    """Returns the info extractor class with the given ie_name"""
    from . import extractors

    return getattr(extractors, f'{ie_name}IE')
