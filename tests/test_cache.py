import math

import numpy as np
import pytest

from allocation.cache import ValuationCache
from allocation.exceptions import ValuationError
from allocation.points import ResourcePoint


class CountingFunction:
    def __init__(self, function):
        self.function = function
        self.calls = 0

    def __call__(self, *args):
        self.calls += 1
        return self.function(*args)


def test_hit_skips_the_function():
    fn = CountingFunction(lambda p: p.cpu + p.mem)
    cache = ValuationCache(fn)
    assert cache(ResourcePoint(0.5, 0.25)) == 0.75
    assert cache(ResourcePoint(0.5, 0.25)) == 0.75
    assert fn.calls == 1
    assert cache.stats() == {'hits': 1, 'calls': 1, 'size': 1}
    assert (ResourcePoint(0.5, 0.25),) in cache


def test_keys_use_exact_equality():
    fn = CountingFunction(lambda p: p.cpu)
    cache = ValuationCache(fn)
    cache(ResourcePoint(0.3, 0.))
    # 0.1 + 0.2 != 0.3 in floating point, so this is a different entry
    cache(ResourcePoint(0.1 + 0.2, 0.))
    assert fn.calls == 2
    assert len(cache) == 2


def test_composite_keys():
    fn = CountingFunction(lambda p, band: p.cpu + band)
    cache = ValuationCache(fn)
    cache(ResourcePoint(1., 1.), 0.5)
    cache(ResourcePoint(1., 1.), 0.25)
    cache(ResourcePoint(1., 1.), 0.5)
    assert fn.calls == 2


def test_disabled_cache_always_calls():
    fn = CountingFunction(lambda p: p.cpu)
    cache = ValuationCache(fn, enabled=False)
    for _ in range(3):
        cache(ResourcePoint(1., 1.))
    assert fn.calls == 3
    assert len(cache) == 0


def test_numpy_results_are_accepted():
    cache = ValuationCache(lambda p: np.int64(3))
    value = cache(ResourcePoint(1., 1.))
    assert value == 3. and isinstance(value, float)


@pytest.mark.parametrize("bad", [math.nan, math.inf, -math.inf, None, "1"])
def test_non_finite_result_is_a_configuration_error(bad):
    cache = ValuationCache(lambda p: bad, name='broken')
    with pytest.raises(ValuationError, match='broken'):
        cache(ResourcePoint(1., 1.))
    assert len(cache) == 0


def test_signed_zeros_are_distinct_entries():
    fn = CountingFunction(lambda p: math.copysign(1., p.cpu))
    cache = ValuationCache(fn)
    assert cache(ResourcePoint(0., 0.5)) == 1.
    assert cache(ResourcePoint(-0., 0.5)) == -1.
    assert fn.calls == 2
    assert (ResourcePoint(-0., 0.5),) in cache
    assert cache(ResourcePoint(-0., 0.5)) == -1.
    assert cache.hits == 1
