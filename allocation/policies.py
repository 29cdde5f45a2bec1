# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


"""
Valuation driven vm allocation policies.

AR2        values (cpu, mem) of a single host and keeps the host whose placement raises the value most.
AR3        values a whole rack (nodes + shared bandwidth units) jointly and keeps the (host, unit)
           pair whose placement costs the least value. Ties go to the pair whose node / unit cost
           split improves one side while the other side stays equal.
AR3-split  values node and unit separately: per host the unit with the largest bandwidth gain is
           chosen first, then the host with the largest node gain + unit gain wins.

A policy only decides. Mutating host and rack capacity is left to the caller (see
VmAllocationPolicy.allocate_host_for_vm for the plain provisioning path).
"""

import logging
import math
from typing import NamedTuple, Optional

from allocation.cache import ValuationCache
from allocation.exceptions import OvercommitError
from allocation.points import ResourcePoint
from allocation.valuation import PackingValuation, NodeValuation, DpuValuation, JointRackValuation

logger = logging.getLogger('VM.policy')


class Decision(NamedTuple):
    host: object
    nic_id: Optional[int] = None


class VmAllocationPolicy:
    name = None

    def __init__(self, strict=True):
        # strict: an overcommitted point raises OvercommitError, otherwise it is only logged
        self.strict = strict

    def find_host_for_vm(self, vm, hosts) -> Optional[Decision]:
        raise NotImplementedError

    def allocate_host_for_vm(self, vm, hosts) -> Optional[Decision]:
        decision = self.find_host_for_vm(vm, hosts)
        if decision is None:
            logger.debug(f"{self.name}: no host for {vm}")
            return None
        decision.host.add_a_vm(vm, decision.nic_id)
        return decision

    def check_overcommit(self, host, point, stage, free_cpu, cpu=0, ram=0):
        # judged on exact headroom, the fractions in point only serve the valuation
        if free_cpu >= cpu and host.free_ram >= ram:
            return
        if self.strict:
            raise OvercommitError(host.id, point, stage)
        logger.warning(f"{self.name}: host {host.id} overcommitted {stage} placement "
                       f"(cpu = {point.cpu}, mem = {point.mem})")

    def cache_stats(self):
        return {}


class VmAllocationPolicyAR2(VmAllocationPolicy):
    name = "ar2"

    def __init__(self, point_function, strict=True, use_cache=True):
        super(VmAllocationPolicyAR2, self).__init__(strict)
        self.point_record = ValuationCache(point_function, name='point', enabled=use_cache)

    def find_host_for_vm(self, vm, hosts):
        max_delta = -math.inf
        aim_host = None
        for host in hosts:
            if not host.can_place(vm):
                continue
            cpu_before = 1 - host.get_busy_pes_percent()
            mem_before = 1 - host.get_ram_utilization() / host.ram
            before = ResourcePoint(cpu_before, mem_before)
            after = before.consume(vm.pes / host.pes, vm.ram / host.ram)
            self.check_overcommit(host, before, "before", host.free_pes)
            self.check_overcommit(host, after, "after", host.free_pes, vm.pes, vm.ram)

            delta = self.point_record(after) - self.point_record(before)
            if delta > max_delta:
                aim_host = host
                max_delta = delta

        if aim_host is None:
            return None
        logger.debug(f"ar2: vm {vm.id} -> host {aim_host.id}, delta = {max_delta}")
        return Decision(aim_host)

    def cache_stats(self):
        return {'point': self.point_record.stats()}


class _RackPolicy(VmAllocationPolicy):
    """Shared by both AR3 formulations: node points are normalized by the first host's mips."""

    def __init__(self, node_function=None, dpu_function=None, strict=True, use_cache=True):
        super(_RackPolicy, self).__init__(strict)
        self.point_record_node = ValuationCache(node_function, name='node', enabled=use_cache) \
            if node_function is not None else None
        self.point_record_dpu = ValuationCache(dpu_function, name='dpu', enabled=use_cache) \
            if dpu_function is not None else None

    @staticmethod
    def reference_capacity(hosts):
        return hosts[0].get_total_mips()

    def node_points(self, vm, host, capacity):
        before = host.get_node_point(capacity)
        after = before.consume(vm.get_total_mips() / capacity, vm.ram / host.ram)
        self.check_overcommit(host, before, "before", host.get_available_mips())
        self.check_overcommit(host, after, "after", host.get_available_mips(), vm.get_total_mips(), vm.ram)
        return before, after

    @staticmethod
    def band_points(vm, unit):
        band_before = unit.get_free_fraction()
        return band_before, band_before - vm.bw / unit.capacity

    def split_delta(self, before, after, band_before, band_after):
        node = self.point_record_node(before, band_before) - self.point_record_node(after, band_after)
        dpu = self.point_record_dpu(before, band_before) - self.point_record_dpu(after, band_after)
        return node, dpu

    def cache_stats(self):
        stats = {}
        for name in ('node', 'dpu', 'rack'):
            record = getattr(self, f'point_record_{name}', None)
            if record is not None:
                stats[name] = record.stats()
        return stats


class VmAllocationPolicyAR3(_RackPolicy):
    """
    Joint whole-rack AR3 (the default AR3 formulation).

    For every suitable host and every unit of its rack with bandwidth headroom:
    delta = rack_value(now) - rack_value(after placing on host + unit), the smallest delta wins.
    Exact ties are resolved with the node / dpu sub-valuations: the newcomer wins only if one
    sub-delta is strictly smaller while the other is equal. Without sub-valuations the first
    pair seen is kept.
    """
    name = "ar3"

    def __init__(self, rack_function, node_function=None, dpu_function=None, strict=True, use_cache=True):
        super(VmAllocationPolicyAR3, self).__init__(node_function, dpu_function, strict, use_cache)
        self.point_record_rack = ValuationCache(rack_function, name='rack', enabled=use_cache)
        self.tie_break = node_function is not None and dpu_function is not None

    def find_host_for_vm(self, vm, hosts):
        if not hosts:
            return None
        capacity = self.reference_capacity(hosts)
        min_delta = min_delta_node = min_delta_dpu = math.inf
        best = None

        for host in hosts:
            if not host.can_place(vm):
                continue
            rack = host.rack
            points = [rhost.get_node_point(capacity) for rhost in rack.pms]
            bands = tuple(rack.get_free_fractions())
            init_val = self.point_record_rack(tuple(points), bands)

            old_point, new_point = self.node_points(vm, host, capacity)
            points[host.index] = new_point
            points = tuple(points)

            for unit in rack.units:
                if not unit.can_place(vm):
                    continue
                band_before, band_after = self.band_points(vm, unit)
                dpulist = bands[:unit.index] + (band_after,) + bands[unit.index + 1:]
                delta_value = init_val - self.point_record_rack(points, dpulist)

                if delta_value < min_delta:
                    best = Decision(host, unit.index)
                    min_delta = delta_value
                    if self.tie_break:
                        min_delta_node, min_delta_dpu = self.split_delta(old_point, new_point, band_before, band_after)
                elif delta_value == min_delta and self.tie_break:
                    delta_node, delta_dpu = self.split_delta(old_point, new_point, band_before, band_after)
                    if (delta_dpu == min_delta_dpu and delta_node < min_delta_node) or \
                            (delta_node == min_delta_node and delta_dpu < min_delta_dpu):
                        best = Decision(host, unit.index)
                        min_delta_node, min_delta_dpu = delta_node, delta_dpu

        if best is None:
            return None
        vm.nic_id = best.nic_id
        logger.debug(f"ar3: vm {vm.id} -> host {best.host.id}, unit {best.nic_id}, delta = {min_delta}")
        return best


class VmAllocationPolicyAR3Split(_RackPolicy):
    """
    Alternate AR3: independent node and bandwidth valuations, gains maximized.

    Per host, the unit maximizing dpu(after) - dpu(before) is kept (first one on ties), then
    the host maximizing node gain + that unit gain wins. Hosts whose rack has no unit with
    headroom are skipped.
    """
    name = "ar3-split"

    def __init__(self, node_function, dpu_function, strict=True, use_cache=True):
        super(VmAllocationPolicyAR3Split, self).__init__(node_function, dpu_function, strict, use_cache)

    def find_host_for_vm(self, vm, hosts):
        if not hosts:
            return None
        capacity = self.reference_capacity(hosts)
        max_delta = -math.inf
        best = None

        for host in hosts:
            if not host.can_place(vm):
                continue
            old_point, new_point = self.node_points(vm, host, capacity)

            max_gain_dpu = -math.inf
            chosen = None
            for unit in host.rack.units:
                if not unit.can_place(vm):
                    continue
                band_before, band_after = self.band_points(vm, unit)
                gain = self.point_record_dpu(new_point, band_after) - self.point_record_dpu(old_point, band_before)
                if gain > max_gain_dpu:
                    max_gain_dpu = gain
                    chosen = (unit.index, band_before, band_after)

            if chosen is None:
                logger.debug(f"ar3-split: rack {host.rack.id} has no unit for vm {vm.id}")
                continue

            nic_id, band_before, band_after = chosen
            gain_node = self.point_record_node(new_point, band_after) - self.point_record_node(old_point, band_before)
            delta_value = gain_node + max_gain_dpu
            if delta_value > max_delta:
                best = Decision(host, nic_id)
                max_delta = delta_value

        if best is None:
            return None
        vm.nic_id = best.nic_id
        logger.debug(f"ar3-split: vm {vm.id} -> host {best.host.id}, unit {best.nic_id}, delta = {max_delta}")
        return best


POLICIES = ('ar2', 'ar3', 'ar3-split')


def make_policy(name, catalog, strict=True, use_cache=True):
    """Builds one of the AR policies with the packing valuations of the given vm type catalog."""
    if name == 'ar2':
        return VmAllocationPolicyAR2(PackingValuation(catalog), strict=strict, use_cache=use_cache)
    elif name == 'ar3':
        return VmAllocationPolicyAR3(JointRackValuation(catalog), NodeValuation(catalog), DpuValuation(catalog),
                                     strict=strict, use_cache=use_cache)
    elif name == 'ar3-split':
        return VmAllocationPolicyAR3Split(NodeValuation(catalog), DpuValuation(catalog),
                                          strict=strict, use_cache=use_cache)
    else:
        raise ValueError(f'policy = {name} is not defined!')
