# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


"""
Occupancy points fed to the valuation functions.

ResourcePoint: (cpu, mem) free fractions of one host, 1 is empty, 0 is full,
               negative means the host would be overcommitted.
BandwidthPoint: free fraction of one bandwidth unit (DPU/NIC), a plain float.

Points are cached bit for bit, so two points share a cache entry only when both
coordinates have the same float representation (0.0 and -0.0 do not).
"""

from typing import NamedTuple


class ResourcePoint(NamedTuple):
    cpu: float
    mem: float

    def consume(self, cpu, mem):
        return ResourcePoint(self.cpu - cpu, self.mem - mem)


BandwidthPoint = float
