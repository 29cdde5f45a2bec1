# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


import heapq
import logging
import math
import time
from typing import NamedTuple

from tqdm import tqdm

from allocation.resources import Const, VirtualMachine

logger = logging.getLogger('VM.replay')


class ReplaySummary(NamedTuple):
    placed: int
    rejected: int
    skipped: int
    cpu_utilization: float  # percent, mean over hosts
    bw_utilization: float
    ram_utilization: float
    elapsed: float  # seconds spent deciding and provisioning
    cache: dict

    def to_dict(self):
        summary = self._asdict()
        summary.pop('cache')
        for record, stats in self.cache.items():
            for key, value in stats.items():
                summary[f'cache_{record}_{key}'] = value
        return summary


class TraceReplay:
    """
    Replays a vm instance trace against a cluster, one placement decision at a time.

    Instances arrive in start-time order. Before each arrival the vms whose lifetime ended are
    released; a vm nobody can hold is counted as rejected and dropped. Utilization is measured at
    the horizon with the vms still running at that time.
    """

    def __init__(self, cluster, policy, vm_types, host_pes=Const.HOST_PES, host_memory=Const.HOST_MEMORY,
                 host_bw=Const.HOST_BW, pe_mips=Const.PE_MIPS, progress=True):
        self.cluster = cluster
        self.policy = policy
        self.vm_types = vm_types
        self.host_pes = host_pes
        self.host_memory = host_memory
        self.host_bw = host_bw
        self.pe_mips = pe_mips
        self.progress = progress
        self.running = []  # heap of (finish_time, vm_id, vm)
        self.next_id = 0

    def make_vm(self, vm_type):
        vm = VirtualMachine({
            "instance_id": self.next_id,
            "vm_type": vm_type.type_id,
            "pes": max(int(vm_type.cpu * self.host_pes), 1),
            "mips": self.pe_mips,
            "ram_mb": max(int(vm_type.memory * self.host_memory * 1024), 1),
            "bw": max(int(vm_type.bw * self.host_bw * 1024), 1),
        })
        self.next_id += 1
        return vm

    def release_until(self, now, inclusive=True):
        while self.running and (self.running[0][0] <= now if inclusive else self.running[0][0] < now):
            _, _, vm = heapq.heappop(self.running)
            vm.pm.release_a_vm(vm)

    def run(self, instances, simulation_time):
        hosts = self.cluster.get_all_pms()
        placed = rejected = skipped = 0
        elapsed = 0.

        for row in tqdm(instances.itertuples(index=False), total=len(instances), disable=not self.progress):
            if row.start_time < 0:
                skipped += 1
                continue
            if row.start_time > simulation_time:
                break
            finish_time = simulation_time
            if not math.isnan(row.end_time) and row.end_time < simulation_time:
                finish_time = row.end_time
            if int(finish_time - row.start_time) == 0:
                skipped += 1
                continue
            vm_type = self.vm_types.get(row.vm_type)
            if vm_type is None:
                logger.warning(f"instance {row.vm_id} has unknown vm type {row.vm_type}")
                skipped += 1
                continue

            self.release_until(row.start_time)
            vm = self.make_vm(vm_type)
            tick = time.time()
            decision = self.policy.find_host_for_vm(vm, hosts)
            if decision is not None:
                decision.host.add_a_vm(vm, decision.nic_id)
            elapsed += time.time() - tick

            if decision is None:
                rejected += 1
                logger.debug(f"vm {vm.id} (type {vm.type}) rejected at t = {row.start_time}")
                continue
            placed += 1
            heapq.heappush(self.running, (finish_time, vm.id, vm))

        self.release_until(simulation_time, inclusive=False)
        summary = ReplaySummary(placed, rejected, skipped, self.cluster.get_cpu_utilization(),
                                self.cluster.get_bw_utilization(), self.cluster.get_ram_utilization(),
                                elapsed, self.policy.cache_stats())
        logger.info(f"placed {placed} vms, rejected {rejected}, skipped {skipped}")
        return summary
