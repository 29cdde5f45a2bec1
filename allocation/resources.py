# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


import json
import logging
import os

from allocation.points import ResourcePoint

logger = logging.getLogger('VM.resources')


# return the cluster described by a json file or an already loaded dict
def parse_input(input_stream):
    if isinstance(input_stream, (str, os.PathLike)) and os.path.isfile(input_stream):
        with open(input_stream, 'r', encoding='utf-8') as f:
            input_stream = json.load(f)

    return Cluster(input_stream)


def build_cluster(num_racks, hosts_per_rack=None, dpus_per_rack=None, host_pes=None, pe_mips=None,
                  host_memory=None, host_bw=None, cluster_name="dc0"):
    """
    Builds a cluster of identical racks. Memory is given in GB and bandwidth in Gbps, both are
    stored in MB / Mbps like the trace-sized VMs expect.
    """
    hosts_per_rack = Const.HOSTS_PER_RACK if hosts_per_rack is None else hosts_per_rack
    dpus_per_rack = Const.DPUS_PER_RACK if dpus_per_rack is None else dpus_per_rack
    host_pes = Const.HOST_PES if host_pes is None else host_pes
    pe_mips = Const.PE_MIPS if pe_mips is None else pe_mips
    host_memory = Const.HOST_MEMORY if host_memory is None else host_memory
    host_bw = Const.HOST_BW if host_bw is None else host_bw

    rack_list = []
    for r in range(num_racks):
        rack_list.append({
            "rack_id": r,
            "bandwidth_unit": [{"unit_id": f"rack{r}_dpu{i}", "capacity": host_bw * 1024}
                               for i in range(dpus_per_rack)],
            "host_info": [{"node_id": r * hosts_per_rack + i, "pes": host_pes, "pe_mips": pe_mips,
                           "memory_mb": host_memory * 1024}
                          for i in range(hosts_per_rack)],
        })
    return Cluster({"cluster_name": cluster_name, "rack_list": rack_list})


class Const:
    def __init__(self, *args, **kws):
        pass

    # 1. host shape used by the azure trace experiments
    PE_MIPS = 1000
    HOST_PES = 256
    HOST_MEMORY = 1024  # GB
    HOST_BW = 400  # Gbps per bandwidth unit

    # 2. rack shape
    HOSTS_PER_RACK = 8
    DPUS_PER_RACK = 4


class Cluster:
    def __init__(self, cluster):
        self.id = cluster.get("cluster_name", "")
        self.racks = []
        self.pms = {}  # key=pm_id, value=pm
        self.vms = {}  # key=vm_id, value=vm
        self._parse_rack_info(cluster["rack_list"])

    def _parse_rack_info(self, racks_info):
        for rack_info in racks_info:
            rack = Rack(rack_info, self)
            self.racks.append(rack)
            for pm in rack.pms:
                if pm.id in self.pms:
                    raise ValueError(f"host {pm.id} belongs to more than one rack")
                self.pms[pm.id] = pm

    def get_all_pms(self):
        return list(self.pms.values())

    def get_cpu_utilization(self):
        # mean allocated mips share, in percent
        pms = self.get_all_pms()
        return sum(1 - pm.get_available_mips() / pm.get_total_mips() for pm in pms) / len(pms) * 100

    def get_ram_utilization(self):
        pms = self.get_all_pms()
        return sum(pm.get_ram_utilization() / pm.ram for pm in pms) / len(pms) * 100

    def get_bw_utilization(self):
        # every host sees the units of its rack
        pms = self.get_all_pms()
        return sum(pm.rack.get_bw_utilization() for pm in pms) / len(pms) * 100

    def check_feasibility(self):
        for rack in self.racks:
            rack.check_feasibility()


class Rack:
    def __init__(self, rack_info, cluster=None):
        self.id = rack_info["rack_id"]
        self.cluster = cluster
        self.units = [BandwidthUnit(unit_info, self, i)
                      for i, unit_info in enumerate(rack_info["bandwidth_unit"])]
        self.pms = [PhysicalMachine(pm_info, self, i)
                    for i, pm_info in enumerate(rack_info["host_info"])]
        if not self.units:
            raise ValueError(f"rack {self.id} has no bandwidth unit")

    def get_free_fractions(self):
        return [unit.get_free_fraction() for unit in self.units]

    def get_bw_utilization(self):
        return sum(unit.capacity - unit.free for unit in self.units) / sum(unit.capacity for unit in self.units)

    def check_feasibility(self):
        for pm in self.pms:
            pm.check_feasibility()
        for unit in self.units:
            used = sum(vm.bw for vm in unit.vms.values())
            assert unit.capacity - used == unit.free and unit.free >= 0, \
                f"unit {unit.id}: capacity = {unit.capacity}, used = {used}, free = {unit.free}"


class BandwidthUnit:
    def __init__(self, unit_info, rack, index):
        self.id = unit_info["unit_id"]
        self.rack = rack
        self.index = index
        self.capacity = self.free = unit_info["capacity"]
        self.vms = {}

    def can_place(self, vm):
        return self.free >= vm.bw

    def get_free_fraction(self):
        return self.free / self.capacity


class PhysicalMachine:
    def __init__(self, pm_info, rack, index=0):
        self.id = pm_info["node_id"]
        self.rack = rack
        self.index = index  # position inside the rack
        self.pes = self.free_pes = pm_info["pes"]
        self.pe_mips = pm_info["pe_mips"]
        self.ram = self.free_ram = pm_info["memory_mb"]
        self.vms = {}

    def get_total_mips(self):
        return self.pes * self.pe_mips

    def get_available_mips(self):
        return self.free_pes * self.pe_mips

    def get_busy_pes_percent(self):
        return (self.pes - self.free_pes) / self.pes

    def get_ram_utilization(self):
        return self.ram - self.free_ram

    def get_node_point(self, capacity):
        # cpu is normalized by a reference capacity shared by the whole host list
        return ResourcePoint(self.get_available_mips() / capacity, self.free_ram / self.ram)

    def can_place(self, vm):
        return (self.free_pes >= vm.pes and self.pe_mips >= vm.mips and self.free_ram >= vm.ram and
                any(unit.can_place(vm) for unit in self.rack.units))

    def add_a_vm(self, vm, nic_id=None):
        if nic_id is None:
            nic_id = next((unit.index for unit in self.rack.units if unit.can_place(vm)), None)
            if nic_id is None:
                raise ValueError(f"no bandwidth unit on rack {self.rack.id} can hold vm {vm.id}")
        unit = self.rack.units[nic_id]
        if not (self.free_pes >= vm.pes and self.free_ram >= vm.ram and unit.can_place(vm)):
            raise ValueError(f"vm {vm.id} does not fit on host {self.id} / unit {unit.id}")

        self.vms[vm.id] = vm
        unit.vms[vm.id] = vm
        if self.rack.cluster is not None:
            self.rack.cluster.vms[vm.id] = vm
        vm.pm = self
        vm.nic_id = nic_id
        self.free_pes -= vm.pes
        self.free_ram -= vm.ram
        unit.free -= vm.bw
        logger.debug(f"vm {vm.id} -> host {self.id}, unit {unit.id}")

    def release_a_vm(self, vm):
        unit = self.rack.units[vm.nic_id]
        self.vms.pop(vm.id)
        unit.vms.pop(vm.id)
        if self.rack.cluster is not None:
            self.rack.cluster.vms.pop(vm.id)
        vm.pm = None
        self.free_pes += vm.pes
        self.free_ram += vm.ram
        unit.free += vm.bw

    def check_feasibility(self):
        pes = ram = 0
        for vm in self.vms.values():
            assert vm.pm is self
            pes += vm.pes
            ram += vm.ram
        assert self.pes - pes == self.free_pes and self.free_pes >= 0, f"host {self.id}: free_pes = {self.free_pes}"
        assert self.ram - ram == self.free_ram and self.free_ram >= 0, f"host {self.id}: free_ram = {self.free_ram}"


class VirtualMachine:
    def __init__(self, vm_info):
        self.id = vm_info["instance_id"]
        self.type = vm_info.get("vm_type")
        self.pes = vm_info["pes"]
        self.mips = vm_info.get("mips", Const.PE_MIPS)
        self.ram = vm_info["ram_mb"]
        self.bw = vm_info["bw"]
        self.pm = None
        self.nic_id = None  # index of the rack bandwidth unit serving this vm

    def get_total_mips(self):
        return self.pes * self.mips

    def __repr__(self):
        return f"VirtualMachine(id={self.id}, pes={self.pes}, ram={self.ram}, bw={self.bw})"
