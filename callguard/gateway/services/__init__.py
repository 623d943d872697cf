from callguard.gateway.services.calls import CallsService
from callguard.gateway.services.ranges import ByteRange, InvalidRangeError, parse_range

__all__ = [
    "ByteRange",
    "CallsService",
    "InvalidRangeError",
    "parse_range",
]
