# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


import logging

import numpy as np

from allocation.policies import Decision, VmAllocationPolicy

logger = logging.getLogger('VM.baselines')


class VmAllocationPolicyFirstFit(VmAllocationPolicy):
    name = "first-fit"

    def find_host_for_vm(self, vm, hosts):
        for host in hosts:
            if host.can_place(vm):
                return Decision(host)
        return None


class VmAllocationPolicyBestFit(VmAllocationPolicy):
    """The suitable host with the most pes in use, the first one on ties."""
    name = "best-fit"

    def find_host_for_vm(self, vm, hosts):
        best_choice = [-1, None]
        for host in hosts:
            if not host.can_place(vm):
                continue
            busy_pes = host.pes - host.free_pes
            if busy_pes > best_choice[0]:
                best_choice = [busy_pes, host]
        if best_choice[1] is None:
            return None
        return Decision(best_choice[1])


BASELINES = {
    VmAllocationPolicyFirstFit.name: VmAllocationPolicyFirstFit,
    VmAllocationPolicyBestFit.name: VmAllocationPolicyBestFit,
}


def heuristic_place(env, policy):
    """
    Rolls a policy through a RackPlacementEnv until every request is placed or rejected.
    Policies that pick no unit get the first unit of the rack with enough headroom.
    Returns the summed reward and the last info dict.
    """
    base = env.unwrapped
    _, info = env.reset()
    total_reward = 0.
    done = base.vm is None

    while not done:
        decision = policy.find_host_for_vm(base.vm, base.pms)
        if decision is None:
            raise ValueError(f'{policy.name} found no host for vm {base.vm.id} although the env has a feasible action')
        nic_id = decision.nic_id
        if nic_id is None:
            nic_id = next(unit.index for unit in decision.host.rack.units if unit.can_place(base.vm))
        action = np.array([base.pm_index[decision.host.id], nic_id])
        _, reward, terminated, truncated, info = env.step(action)
        total_reward += reward
        done = terminated or truncated

    logger.info(f"{policy.name}: reward = {total_reward:.2f}, placed = {info['placed']}, rejected = {info['rejected']}")
    return total_reward, info
