import os
import sys

import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from allocation.resources import parse_input, VirtualMachine  # noqa: E402
from allocation.valuation import VmType, VmTypeCatalog  # noqa: E402


def make_rack(rack_id, hosts, units):
    """hosts: list of (node_id, pes, memory_mb), units: list of capacities"""
    return {
        "rack_id": rack_id,
        "bandwidth_unit": [{"unit_id": f"{rack_id}_dpu{i}", "capacity": capacity} for i, capacity in enumerate(units)],
        "host_info": [{"node_id": node_id, "pes": pes, "pe_mips": 1, "memory_mb": ram} for node_id, pes, ram in hosts],
    }


def make_cluster(*racks):
    return parse_input({"cluster_name": "test", "rack_list": list(racks)})


def make_vm(vm_id, pes, ram, bw, mips=1):
    return VirtualMachine({"instance_id": vm_id, "pes": pes, "mips": mips, "ram_mb": ram, "bw": bw})


@pytest.fixture
def catalog():
    vm_types = [
        VmType({"vm_type": 0, "cpu": 0.125, "memory": 0.125, "bw": 0.25}),
        VmType({"vm_type": 1, "cpu": 0.5, "memory": 0.25, "bw": 0.5}),
    ]
    return VmTypeCatalog(vm_types, weights={0: 3})
