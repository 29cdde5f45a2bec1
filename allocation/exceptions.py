# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


class PlacementError(Exception):
    """Base class for errors raised while deciding a placement."""


class OvercommitError(PlacementError):
    """A host judged suitable would end up with a negative free fraction."""

    def __init__(self, host_id, point, stage):
        self.host_id = host_id
        self.point = point
        self.stage = stage
        super(OvercommitError, self).__init__(
            f"host {host_id} is overcommitted {stage} placement: cpu = {point.cpu}, mem = {point.mem}")


class ValuationError(ValueError):
    """The valuation function returned something that is not a finite number."""
