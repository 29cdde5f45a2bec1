# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


from allocation.exceptions import PlacementError, OvercommitError, ValuationError
from allocation.points import ResourcePoint, BandwidthPoint
from allocation.cache import ValuationCache
from allocation.resources import parse_input, build_cluster, Const, Cluster, Rack, BandwidthUnit, PhysicalMachine, \
    VirtualMachine
from allocation.valuation import VmType, VmTypeCatalog, PackingValuation, NodeValuation, DpuValuation, \
    JointRackValuation
from allocation.policies import Decision, VmAllocationPolicy, VmAllocationPolicyAR2, VmAllocationPolicyAR3, \
    VmAllocationPolicyAR3Split, POLICIES, make_policy
