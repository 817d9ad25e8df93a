# flake8: noqa: F401
from .common import (
    Request,
    RequestDirector,
    RequestHandler,
    Response,
)

# isort: split
from . import _requests
