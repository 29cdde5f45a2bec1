import pytest

from allocation.resources import build_cluster, Const
from conftest import make_cluster, make_rack, make_vm


def test_build_cluster_shape():
    cluster = build_cluster(2)
    assert len(cluster.racks) == 2
    assert len(cluster.get_all_pms()) == 2 * Const.HOSTS_PER_RACK
    rack = cluster.racks[1]
    assert len(rack.units) == Const.DPUS_PER_RACK
    assert [pm.index for pm in rack.pms] == list(range(Const.HOSTS_PER_RACK))
    pm = rack.pms[0]
    assert pm.id == Const.HOSTS_PER_RACK
    assert pm.get_total_mips() == Const.HOST_PES * Const.PE_MIPS
    assert pm.ram == Const.HOST_MEMORY * 1024
    assert rack.units[0].capacity == Const.HOST_BW * 1024


def test_units_are_shared_by_the_rack():
    cluster = make_cluster(make_rack("r0", [(0, 4, 4), (1, 4, 4)], [10]))
    pm0, pm1 = cluster.get_all_pms()
    pm0.add_a_vm(make_vm("a", 1, 1, 6))

    # the unit is drained for the other host of the rack as well
    assert not pm1.can_place(make_vm("b", 1, 1, 5))
    assert pm1.can_place(make_vm("c", 1, 1, 4))
    assert cluster.racks[0].get_bw_utilization() == pytest.approx(0.6)


def test_add_and_release_keep_bookkeeping():
    cluster = make_cluster(make_rack("r0", [(0, 4, 8)], [10, 10]))
    pm = cluster.get_all_pms()[0]
    vm = make_vm("a", 3, 2, 4)
    pm.add_a_vm(vm, nic_id=1)

    assert vm.pm is pm and vm.nic_id == 1
    assert (pm.free_pes, pm.free_ram) == (1, 6)
    assert pm.rack.units[1].free == 6 and pm.rack.units[0].free == 10
    assert cluster.vms == {"a": vm}
    assert pm.get_busy_pes_percent() == pytest.approx(0.75)
    cluster.check_feasibility()

    pm.release_a_vm(vm)
    assert vm.pm is None
    assert (pm.free_pes, pm.free_ram, pm.rack.units[1].free) == (4, 8, 10)
    assert cluster.vms == {}


def test_add_without_unit_uses_first_with_headroom():
    cluster = make_cluster(make_rack("r0", [(0, 4, 8)], [3, 10]))
    pm = cluster.get_all_pms()[0]
    vm = make_vm("a", 1, 1, 5)
    pm.add_a_vm(vm)
    assert vm.nic_id == 1


def test_add_rejects_vm_that_does_not_fit():
    cluster = make_cluster(make_rack("r0", [(0, 2, 8)], [10]))
    pm = cluster.get_all_pms()[0]
    with pytest.raises(ValueError):
        pm.add_a_vm(make_vm("a", 3, 1, 1))
    with pytest.raises(ValueError):
        pm.add_a_vm(make_vm("b", 1, 1, 11))


def test_suitability():
    cluster = make_cluster(make_rack("r0", [(0, 4, 8)], [10]))
    pm = cluster.get_all_pms()[0]
    assert pm.can_place(make_vm("a", 4, 8, 10))
    assert not pm.can_place(make_vm("b", 5, 1, 1))
    assert not pm.can_place(make_vm("c", 1, 9, 1))
    assert not pm.can_place(make_vm("d", 1, 1, 11))
    assert not pm.can_place(make_vm("e", 1, 1, 1, mips=2))


def test_host_in_two_racks_is_rejected():
    with pytest.raises(ValueError):
        make_cluster(make_rack("r0", [(0, 4, 8)], [10]), make_rack("r1", [(0, 4, 8)], [10]))


def test_cluster_utilization():
    cluster = make_cluster(make_rack("r0", [(0, 4, 8), (1, 4, 8)], [10, 10]))
    pm0 = cluster.get_all_pms()[0]
    pm0.add_a_vm(make_vm("a", 2, 4, 5))
    assert cluster.get_cpu_utilization() == pytest.approx(25.0)
    assert cluster.get_ram_utilization() == pytest.approx(25.0)
    assert cluster.get_bw_utilization() == pytest.approx(25.0)
