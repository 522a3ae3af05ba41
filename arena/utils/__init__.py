"""Utility modules."""

from arena.utils.errors import ArenaError, ErrorCode
from arena.utils.json_utils import ORJSONResponse, json_dumps, json_dumps_bytes, json_loads

__all__ = [
    "ArenaError",
    "ErrorCode",
    "ORJSONResponse",
    "json_dumps",
    "json_dumps_bytes",
    "json_loads",
]
