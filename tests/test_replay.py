import json
import logging
import math

import pandas as pd
import pytest

import replay
from allocation.policies import make_policy
from allocation.resources import build_cluster
from allocation.simulation import TraceReplay
from allocation.trace import build_catalog, INSTANCE_COLUMNS
from allocation.valuation import VmType
from baselines.heuristics import BASELINES

HORIZON = 1000.


@pytest.fixture
def vm_types():
    # 2 pes, 512 MB and 256 Mbps on the small hosts below
    return {0: VmType({"vm_type": 0, "cpu": 0.5, "memory": 0.5, "bw": 0.25})}


@pytest.fixture
def instances():
    rows = [
        (6, 0, -1., math.nan),  # starts before the replay
        (0, 0, 0., math.nan),
        (1, 0, 0., 100.),
        (2, 0, 10., math.nan),
        (3, 0, 20., math.nan),
        (4, 0, 150., math.nan),  # takes the place of vm 1
        (5, 0, 160., math.nan),  # cluster is full again
        (7, 0, 200., 200.5),  # shorter than a second
        (8, 0, 5000., math.nan),  # past the horizon
    ]
    return pd.DataFrame(rows, columns=INSTANCE_COLUMNS)


def make_replay(policy_name, vm_types, instances):
    cluster = build_cluster(1, 2, 1, host_pes=4, pe_mips=1, host_memory=1, host_bw=1)
    if policy_name in BASELINES:
        policy = BASELINES[policy_name]()
    else:
        policy = make_policy(policy_name, build_catalog(vm_types, instances))
    return TraceReplay(cluster, policy, vm_types, host_pes=4, host_memory=1, host_bw=1, pe_mips=1, progress=False)


def test_vm_sizing(vm_types, instances):
    tiny = VmType({"vm_type": 1, "cpu": 0.01, "memory": 0.0001, "bw": 0.0001})
    simulation = make_replay('first-fit', vm_types, instances)
    vm = simulation.make_vm(vm_types[0])
    assert (vm.pes, vm.ram, vm.bw, vm.mips) == (2, 512, 256, 1)
    vm = simulation.make_vm(tiny)
    assert (vm.pes, vm.ram, vm.bw) == (1, 1, 1)


@pytest.mark.parametrize("policy_name", ['ar2', 'ar3', 'ar3-split', 'first-fit', 'best-fit'])
def test_replay_counts(policy_name, vm_types, instances):
    simulation = make_replay(policy_name, vm_types, instances)
    summary = simulation.run(instances, HORIZON)

    assert (summary.placed, summary.rejected, summary.skipped) == (5, 1, 2)
    # vms 0, 2, 3 and 4 run until the horizon
    assert summary.cpu_utilization == pytest.approx(100.)
    assert summary.ram_utilization == pytest.approx(100.)
    assert summary.bw_utilization == pytest.approx(100.)
    assert len(simulation.cluster.vms) == 4
    simulation.cluster.check_feasibility()


def test_vms_ending_before_the_horizon_are_released(vm_types, instances):
    simulation = make_replay('ar3', vm_types, instances)
    summary = simulation.run(instances, 155.)
    # vm 1 ends at 100, vm 4 arrived at 150, nothing later is replayed
    assert (summary.placed, summary.rejected) == (5, 0)
    assert summary.cpu_utilization == pytest.approx(100.)

    simulation = make_replay('ar3', vm_types, instances)
    summary = simulation.run(instances.iloc[:5], 150.)
    assert summary.cpu_utilization == pytest.approx(75.)


def test_summary_flattens_cache_stats(vm_types, instances):
    summary = make_replay('ar3', vm_types, instances).run(instances, HORIZON)
    flat = summary.to_dict()
    assert 'cache' not in flat
    assert {'cache_rack_hits', 'cache_node_calls', 'cache_dpu_size'} <= set(flat)
    assert make_replay('best-fit', vm_types, instances).run(instances, HORIZON).cache == {}


def test_main_saves_the_summary(tmp_path):
    (tmp_path / "vmtype.csv").write_text("id,vmTypeId,core,memory,bw\nx,0,0.5,0.5,0.25\n")
    (tmp_path / "vm.csv").write_text("vmId,vmTypeId,starttime,endtime\n0,0,0,\n1,0,0.1,none\n2,0,0.2,\n")
    (tmp_path / "params.json").write_text(json.dumps({
        "policy": "ar2", "num_racks": 1, "hosts_per_rack": 2, "dpus_per_rack": 1,
        "host_pes": 4, "pe_mips": 1, "host_memory": 1, "host_bw": 1,
    }))
    save_dir = tmp_path / "out"

    # 563 MB per vm: one vm per host
    summary = replay.main([
        "--vm-types", str(tmp_path / "vmtype.csv"), "--vm-instances", str(tmp_path / "vm.csv"),
        "--simulation-time", "86400", "--params", str(tmp_path / "params.json"), "--policy", "ar3",
        "--no-progress", "--save-dir", str(save_dir),
    ])
    assert (summary.placed, summary.rejected) == (2, 1)

    saved = list(save_dir.glob("ar3_1_*.json"))
    assert len(saved) == 1
    assert json.loads(saved[0].read_text())["placed"] == 2.


def test_command_line_overrides_params(tmp_path):
    (tmp_path / "params.json").write_text(json.dumps({"policy": "ar2", "num_racks": 4, "strict": True}))
    args = replay.parse_args(["--vm-types", "t.csv", "--vm-instances", "v.csv", "--simulation-time", "10",
                              "--params", str(tmp_path / "params.json"), "--num-racks", "2", "--lenient"])
    params = replay.get_params(args)
    assert (params.policy, params.num_racks, params.strict) == ("ar2", 2, False)
    assert params.vm_types == "t.csv"
    assert 'use_cache' not in params and 'save_dir' not in params

    with pytest.raises(SystemExit):
        replay.parse_args(["--vm-types", "t.csv", "--vm-instances", "v.csv", "--simulation-time", "10",
                           "--policy", "worst-fit"])


def test_main_writes_the_log_file(tmp_path):
    (tmp_path / "vmtype.csv").write_text("id,vmTypeId,core,memory,bw\nx,0,0.5,0.5,0.25\n")
    (tmp_path / "vm.csv").write_text("vmId,vmTypeId,starttime,endtime\n0,0,0,\n")
    (tmp_path / "params.json").write_text(json.dumps({
        "policy": "first-fit", "num_racks": 1, "hosts_per_rack": 1, "dpus_per_rack": 1,
        "host_pes": 4, "pe_mips": 1, "host_memory": 1, "host_bw": 1,
    }))
    log_path = tmp_path / "replay.log"

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        replay.main([
            "--vm-types", str(tmp_path / "vmtype.csv"), "--vm-instances", str(tmp_path / "vm.csv"),
            "--simulation-time", "86400", "--params", str(tmp_path / "params.json"), "--no-progress",
            "--log-path", str(log_path),
        ])
    finally:
        for handler in root.handlers[:]:
            if handler not in handlers:
                root.removeHandler(handler)
                handler.close()
        root.setLevel(level)

    assert "placed 1 vms, rejected 0" in log_path.read_text()
