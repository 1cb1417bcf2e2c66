"""Core domain types and logic."""

from .errors import ErrorCode, WspError
from .identity import RepositoryIdentity
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # errors
    "ErrorCode",
    "WspError",
    # identity
    "RepositoryIdentity",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
