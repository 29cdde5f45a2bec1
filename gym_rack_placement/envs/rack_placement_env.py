# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


"""
pm_info:  cpu, mem                free fractions of every host (1 is empty, 0 is full)
dpu_info: band_0 ... band_{k-1}   free fractions of the bandwidth units of every rack, 0 padded
vm_info:  cpu, mem, bw            demand of the pending vm, relative to the first host / unit
action:   (host index, unit index inside the host's rack)
reward:   joint rack value after placement - before placement
"""

import logging

import gym
import numpy as np
from gym import spaces

from allocation.resources import parse_input, VirtualMachine
from allocation.valuation import JointRackValuation

logger = logging.getLogger('VM.env')


class RackPlacementEnv(gym.Env):
    metadata = {"render_modes": []}

    def __init__(self, cluster_info, vm_requests, catalog, max_steps=None):
        self.cluster_info = cluster_info
        self.vm_requests = list(vm_requests)
        self.MAX_STEPS = max_steps
        self.valuation = JointRackValuation(catalog)

        self.cluster = parse_input(cluster_info)
        self.pms = self.cluster.get_all_pms()
        self.n_pms = len(self.pms)
        self.n_racks = len(self.cluster.racks)
        self.n_units = max(len(rack.units) for rack in self.cluster.racks)

        self.action_space = spaces.MultiDiscrete([self.n_pms, self.n_units])
        self.observation_space = spaces.Dict({
            "pm_info": spaces.Box(0, 1, shape=(self.n_pms, 2), dtype=np.float32),
            "dpu_info": spaces.Box(0, 1, shape=(self.n_racks, self.n_units), dtype=np.float32),
            "vm_info": spaces.Box(0, np.inf, shape=(3,), dtype=np.float32),
        })
        self.vm = None
        self.pending = 0

    def reset(self, seed=None, options=None):
        """
        Rebuilds the empty cluster and moves to the first request that can be placed.

        Returns
        -------
        observation, info
        """
        super().reset(seed=seed)
        self.cluster = parse_input(self.cluster_info)
        self.pms = self.cluster.get_all_pms()
        self.pm_index = {pm.id: i for i, pm in enumerate(self.pms)}
        self.capacity = self.pms[0].get_total_mips()

        self.pending = 0
        self.current_step = 0
        self.placed = 0
        self.rejected = 0
        self._load_pending()
        return self.get_obs(), self.get_info()

    def step(self, action):
        """
        Places the pending vm on (host, unit).

        Returns
        -------
        observation, reward, terminated, truncated, info
        """
        if self.vm is None:
            raise ValueError('No pending vm, call reset() first.')
        action = np.asarray(action)
        assert self.action_space.contains(action), f"action {action} is out of the action space"

        pm = self.pms[int(action[0])]
        nic_id = int(action[1])
        if self.get_pm_mask()[int(action[0]), nic_id]:
            raise ValueError(f'PM action is not fully masked. Improper action selected! '
                             f'vm {self.vm.id}, host {pm.id}, unit {nic_id}')

        value_before = self.rack_value(pm.rack)
        pm.add_a_vm(self.vm, nic_id)
        reward = self.rack_value(pm.rack) - value_before

        self.placed += 1
        self.current_step += 1
        self.pending += 1
        self._load_pending()

        terminated = self.vm is None
        truncated = self.MAX_STEPS is not None and self.current_step >= self.MAX_STEPS and not terminated
        return self.get_obs(), reward, terminated, truncated, self.get_info()

    def _load_pending(self):
        # requests no (host, unit) pair can hold are rejected right away
        self.vm = None
        while self.pending < len(self.vm_requests):
            self.vm = VirtualMachine(self.vm_requests[self.pending])
            if not self.get_pm_mask().all():
                return
            logger.debug(f"vm {self.vm.id} rejected, no feasible (host, unit)")
            self.rejected += 1
            self.pending += 1
            self.vm = None

    def rack_value(self, rack):
        points = tuple(pm.get_node_point(self.capacity) for pm in rack.pms)
        return self.valuation(points, tuple(rack.get_free_fractions()))

    def get_pm_mask(self):
        # 1 marks an infeasible (host, unit) pair
        pm_mask = np.ones((self.n_pms, self.n_units), dtype=np.int8)
        if self.vm is None:
            return pm_mask
        for index, pm in enumerate(self.pms):
            if not pm.can_place(self.vm):
                continue
            for unit in pm.rack.units:
                if unit.can_place(self.vm):
                    pm_mask[index, unit.index] = 0
        return pm_mask

    def get_obs(self):
        pm_info = np.array([[pm.get_available_mips() / pm.get_total_mips(), pm.free_ram / pm.ram]
                            for pm in self.pms], dtype=np.float32)
        dpu_info = np.zeros((self.n_racks, self.n_units), dtype=np.float32)
        for i, rack in enumerate(self.cluster.racks):
            dpu_info[i, :len(rack.units)] = rack.get_free_fractions()
        vm_info = np.zeros(3, dtype=np.float32)
        if self.vm is not None:
            vm_info[:] = [self.vm.get_total_mips() / self.capacity,
                          self.vm.ram / self.pms[0].ram,
                          self.vm.bw / self.cluster.racks[0].units[0].capacity]
        return {"pm_info": pm_info, "dpu_info": dpu_info, "vm_info": vm_info}

    def get_info(self):
        return {"placed": self.placed, "rejected": self.rejected, "pending": len(self.vm_requests) - self.pending}

    def close(self):
        pass
