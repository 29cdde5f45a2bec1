# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


"""
Replays an Azure vm trace on racks of hosts sharing bandwidth units, e.g.

python replay.py --vm-types data/vmtype.csv --vm-instances data/vm.csv --simulation-time 86400 \
    --num-racks 4 --policy ar3
"""

import argparse
import logging
import os

import utils
from allocation.policies import POLICIES, make_policy
from allocation.resources import build_cluster
from allocation.simulation import TraceReplay
from allocation.trace import read_vm_types, read_vm_instances, build_catalog
from baselines.heuristics import BASELINES

logger = logging.getLogger('VM.replay')


def parse_args(argv=None):
    parser = argparse.ArgumentParser()
    parser.add_argument("--vm-types", type=str, required=True, help="csv of vm types")
    parser.add_argument("--vm-instances", type=str, required=True, help="csv of vm instances")
    parser.add_argument("--simulation-time", type=float, required=True, help="horizon of the replay, in seconds")
    parser.add_argument("--params", type=str, default="experiments/replay/params.json",
                        help="json file with the cluster and valuation parameters")
    parser.add_argument("--policy", type=str, default=None, choices=list(POLICIES) + list(BASELINES),
                        help="placement policy")
    parser.add_argument("--num-racks", type=int, default=None, help="number of racks")
    parser.add_argument("--hosts-per-rack", type=int, default=None, help="hosts in every rack")
    parser.add_argument("--dpus-per-rack", type=int, default=None, help="bandwidth units shared by every rack")
    parser.add_argument("--value-mode", type=str, default=None, choices=["resources", "popularity"],
                        help="how a vm type is valued by the AR policies")
    parser.add_argument("--resample-types", type=int, default=None,
                        help="replace instance types with seeded draws in [0, n)")
    parser.add_argument("--seed", type=int, default=None, help="seed of the type resampling")
    parser.add_argument("--no-cache", dest="use_cache", action='store_false', default=None,
                        help="if toggled, every valuation is recomputed")
    parser.add_argument("--lenient", dest="strict", action='store_false', default=None,
                        help="if toggled, overcommitted hosts are only logged instead of raising")
    parser.add_argument("--save-dir", type=str, default=None, help="if given, the summary is saved there as json")
    parser.add_argument("--no-progress", action='store_true', help="if toggled, no progress bar is shown")
    parser.add_argument("--debug", action='store_true', help="if toggled, decision details are logged")
    parser.add_argument("--log-path", type=str, default=None, help="if given, the log is written to this file as well")
    return parser.parse_args(argv)


def get_params(args):
    params = utils.Params(args.params)
    overrides = argparse.Namespace(**{k: v for k, v in vars(args).items()
                                      if k not in ('params', 'save_dir', 'no_progress', 'debug', 'log_path')})
    params.update(params=overrides)
    return params


def make_allocation_policy(params, catalog):
    if params.policy in BASELINES:
        return BASELINES[params.policy](strict=params.get('strict', True))
    return make_policy(params.policy, catalog, strict=params.get('strict', True),
                       use_cache=params.get('use_cache', True))


def run(params, progress=True):
    vm_types = read_vm_types(params.vm_types, params.get('cpu_scale', 0.99), params.get('mem_scale', 1.1),
                             params.get('bw_scale', 0.7))
    instances = read_vm_instances(params.vm_instances, params.get('resample_types'), params.get('seed', 100))
    catalog = build_catalog(vm_types, instances, cpu_weight=params.get('cpu_weight', 1.),
                            mem_weight=params.get('mem_weight', 1.), dpu_weight=params.get('dpu_weight', 1.),
                            value_mode=params.get('value_mode', 'resources'))

    cluster = build_cluster(params.num_racks, params.get('hosts_per_rack'), params.get('dpus_per_rack'),
                            params.get('host_pes'), params.get('pe_mips'), params.get('host_memory'),
                            params.get('host_bw'))
    policy = make_allocation_policy(params, catalog)
    logger.info(f"time: {params.simulation_time}, racks: {params.num_racks}, "
                f"hosts: {len(cluster.pms)}, policy: {policy.name}")

    replay = TraceReplay(cluster, policy, vm_types, host_pes=params.get('host_pes', 256),
                         host_memory=params.get('host_memory', 1024), host_bw=params.get('host_bw', 400),
                         pe_mips=params.get('pe_mips', 1000), progress=progress)
    return replay.run(instances, params.simulation_time)


def main(argv=None):
    args = parse_args(argv)
    utils.set_logger(args.log_path, level=logging.DEBUG if args.debug else logging.INFO)
    params = get_params(args)

    summary = run(params, progress=not args.no_progress)
    print(f"placed {summary.placed} vms, rejected {summary.rejected}, decided in {summary.elapsed:.3f} seconds")
    print(f"{summary.cpu_utilization:.1f}%, {summary.bw_utilization:.1f}%, {summary.ram_utilization:.1f}%")

    if args.save_dir is not None:
        os.makedirs(args.save_dir, exist_ok=True)
        run_name = f"{params.policy}_{params.num_racks}_{utils.name_with_datetime()}"
        utils.save_dict_to_json(summary.to_dict(), os.path.join(args.save_dir, run_name + '.json'))
    return summary


if __name__ == "__main__":
    main()
