# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


import logging
import math
import numbers

from allocation.exceptions import ValuationError

logger = logging.getLogger('VM.cache')


def exact_key(value):
    if isinstance(value, float):
        return value.hex()
    if isinstance(value, tuple):
        return tuple(exact_key(v) for v in value)
    return value


class ValuationCache:
    """
    Memoizes a pure valuation function by its exact arguments.

    The key is the argument tuple: a ResourcePoint for the AR2 point function,
    (ResourcePoint, band) for the AR3 sub-valuations and (points, bands) tuples for the
    whole-rack valuation. Floats are keyed by their exact representation (float.hex), so
    0.0 and -0.0 are distinct entries. There is no tolerance and no eviction, the record
    only grows with the number of distinct occupancy states visited.

    Example:
    value = ValuationCache(point_function, name='ar2')
    value(ResourcePoint(0.5, 0.5))
    value.hits, value.calls
    """

    def __init__(self, function, name=None, enabled=True):
        self.function = function
        self.name = name or getattr(function, '__name__', type(function).__name__)
        self.enabled = enabled
        self.record = {}
        self.hits = 0
        self.calls = 0  # real invocations of the wrapped function

    def __call__(self, *args):
        key = exact_key(args) if self.enabled else None
        if self.enabled and key in self.record:
            self.hits += 1
            return self.record[key]

        value = self.function(*args)
        self.calls += 1
        if not isinstance(value, numbers.Real) or not math.isfinite(value):
            raise ValuationError(f"valuation {self.name} returned {value!r} for {args!r}")
        value = float(value)
        if self.enabled:
            self.record[key] = value
        return value

    def __len__(self):
        return len(self.record)

    def __contains__(self, args):
        return exact_key(args) in self.record

    def stats(self):
        return {'hits': self.hits, 'calls': self.calls, 'size': len(self.record)}
