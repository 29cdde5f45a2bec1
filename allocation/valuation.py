# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


"""
Valuation functions used by the AR policies.

A valuation maps an occupancy state to a scalar: how much of the observed vm mix could still be
packed into it. All of them are pure, they snapshot the catalog at construction and never change.

point -> value                  PackingValuation (AR2)
(point, band) -> value          NodeValuation, DpuValuation (AR3 sub-valuations)
(points, bands) -> value        JointRackValuation (AR3 whole rack)

Counts are truncated toward zero like an integer cast, so negative free fractions give
non-positive counts instead of failing.
"""

import logging
from collections import defaultdict

import numpy as np

logger = logging.getLogger('VM.valuation')


class VmType:
    def __init__(self, type_info):
        self.id = type_info.get("id", type_info["vm_type"])
        self.type_id = type_info["vm_type"]
        # fractions of one host (cpu, memory) or of one bandwidth unit (bw)
        self.cpu = type_info["cpu"]
        self.memory = type_info["memory"]
        self.bw = type_info["bw"]
        for name in ("cpu", "memory", "bw"):
            if not getattr(self, name) > 0:
                raise ValueError(f"vm type {self.type_id}: {name} = {getattr(self, name)} must be positive")

    def __repr__(self):
        return f"VmType({self.type_id}: cpu={self.cpu}, memory={self.memory}, bw={self.bw})"


class VmTypeCatalog:
    """
    The vm types known to the valuation functions and how often each one was observed.

    Only types observed at least once take part in a valuation. A type's value is either its
    weighted resource size (value_mode='resources') or its observed instance count
    (value_mode='popularity').
    """
    value_modes = ('resources', 'popularity')

    def __init__(self, vm_types, weights=None, cpu_weight=1., mem_weight=1., dpu_weight=1., value_mode='resources'):
        if value_mode not in self.value_modes:
            raise ValueError(f'value_mode = {value_mode} is not defined!')
        self.vm_types = {vm_type.type_id: vm_type for vm_type in vm_types}
        self.weights = defaultdict(lambda: 0)
        if weights is not None:
            self.weights.update(weights)
        self.cpu_weight = cpu_weight
        self.mem_weight = mem_weight
        self.dpu_weight = dpu_weight
        self.value_mode = value_mode

    def observe(self, type_id, count=1):
        if type_id not in self.vm_types:
            raise KeyError(f"unknown vm type {type_id}")
        self.weights[type_id] += count

    def active_types(self):
        return [vm_type for type_id, vm_type in sorted(self.vm_types.items()) if self.weights[type_id] > 0]

    def value_of(self, vm_type):
        if self.value_mode == 'popularity':
            return float(self.weights[vm_type.type_id])
        return vm_type.cpu * self.cpu_weight + vm_type.memory * self.mem_weight + vm_type.bw * self.dpu_weight

    def as_arrays(self):
        active = self.active_types()
        cpu = np.array([t.cpu for t in active], dtype=float)
        mem = np.array([t.memory for t in active], dtype=float)
        bw = np.array([t.bw for t in active], dtype=float)
        value = np.array([self.value_of(t) for t in active], dtype=float)
        return cpu, mem, bw, value


class _CatalogValuation:
    def __init__(self, catalog):
        self.cpu, self.mem, self.bw, self.value = catalog.as_arrays()
        logger.debug(f"{type(self).__name__} over {len(self.cpu)} active vm types")

    def node_counts(self, point):
        return np.minimum(np.trunc(point[0] / self.cpu), np.trunc(point[1] / self.mem))

    def dpu_counts(self, band):
        return np.trunc(band / self.bw)


class PackingValuation(_CatalogValuation):
    """AR2: cpu share of every active type that still fits on the host."""

    def __call__(self, point):
        return float(self.node_counts(point) @ self.cpu)


class NodeValuation(_CatalogValuation):
    def __call__(self, point, band):
        return float(self.node_counts(point) @ self.value)


class DpuValuation(_CatalogValuation):
    def __call__(self, point, band):
        return float(self.dpu_counts(band) @ self.value)


class JointRackValuation(_CatalogValuation):
    """
    AR3: a type placed on the rack needs both a node and a bandwidth unit, so its count is the
    smaller of what all nodes and what all units of the rack can still hold.
    """

    def __call__(self, points, bands):
        node_sum = np.zeros_like(self.cpu)
        for point in points:
            node_sum += self.node_counts(point)
        dpu_sum = np.zeros_like(self.bw)
        for band in bands:
            dpu_sum += self.dpu_counts(band)
        return float(np.minimum(node_sum, dpu_sum) @ self.value)
