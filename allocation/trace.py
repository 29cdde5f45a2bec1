# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


"""
Readers for the preprocessed Azure vm traces.

vm types:     id, vmTypeId, cpu, memory, bw        (fractions of one host / one bandwidth unit)
vm instances: vmId, vmTypeId, starttime[, endtime] (days, an empty or "none" end runs to the horizon)

Only the column order matters, the header row is skipped whatever its names are.
"""

import logging

import numpy as np
import pandas as pd

from allocation.valuation import VmType, VmTypeCatalog

logger = logging.getLogger('VM.trace')

SECONDS_PER_DAY = 86400
INSTANCE_COLUMNS = ['vm_id', 'vm_type', 'start_time', 'end_time']


def read_vm_types(vm_types_path, cpu_scale=0.99, mem_scale=1.1, bw_scale=0.7):
    """
    Returns {type_id: VmType}. Fractions are scaled and capped at 1. When a type id shows up
    several times, a later row replaces the kept one if it is at least as large on the kept
    row's dominant resource (bw or memory).
    """
    df = pd.read_csv(vm_types_path, skipinitialspace=True)
    if df.shape[1] < 5:
        raise ValueError(f"{vm_types_path}: expected 5 columns (id, vmTypeId, cpu, memory, bw), got {df.shape[1]}")

    records = {}
    for row in df.iloc[:, :5].itertuples(index=False):
        try:
            vm_type = VmType({
                "id": str(row[0]),
                "vm_type": int(row[1]),
                "cpu": min(float(row[2]) * cpu_scale, 1),
                "memory": min(float(row[3]) * mem_scale, 1),
                "bw": min(float(row[4]) * bw_scale, 1),
            })
        except ValueError as e:
            logger.warning(f"skipping vm type row {tuple(row)}: {e}")
            continue
        record = records.get(vm_type.type_id)
        if record is None:
            records[vm_type.type_id] = vm_type
            continue
        max_val = max(record.bw, record.cpu, record.memory)
        if (vm_type.bw >= record.bw and max_val == record.bw) or \
                (vm_type.memory >= record.memory and max_val == record.memory):
            records[vm_type.type_id] = vm_type

    logger.info(f"read {len(records)} vm types from {vm_types_path}")
    return records


def read_vm_instances(vm_instances_path, resample_types=None, seed=100):
    """
    Returns a DataFrame with columns vm_id, vm_type, start_time, end_time (seconds, NaN = no end),
    sorted by start time. resample_types=n replaces every type id with a seeded draw in [0, n).
    """
    df = pd.read_csv(vm_instances_path, skipinitialspace=True, dtype=str, keep_default_na=False)
    if df.shape[1] < 3:
        raise ValueError(f"{vm_instances_path}: expected at least 3 columns (vmId, vmTypeId, starttime)")
    df = df.iloc[:, :4]
    if df.shape[1] == 3:
        df['end_time'] = ''
    df.columns = INSTANCE_COLUMNS

    df['vm_id'] = df['vm_id'].astype(int)
    df['vm_type'] = df['vm_type'].astype(int)
    df['start_time'] = df['start_time'].astype(float) * SECONDS_PER_DAY
    # "none" and empty cells become NaN
    df['end_time'] = pd.to_numeric(df['end_time'], errors='coerce') * SECONDS_PER_DAY

    if resample_types is not None:
        rng = np.random.default_rng(seed)
        df['vm_type'] = rng.integers(resample_types, size=len(df))

    df = df.sort_values('start_time', kind='stable').reset_index(drop=True)
    logger.info(f"read {len(df)} vm instances from {vm_instances_path}")
    return df


def build_catalog(vm_types, instances, **catalog_kwargs):
    """Catalog weighted by how many instances of each known type the trace holds."""
    catalog = VmTypeCatalog(vm_types.values(), **catalog_kwargs)
    counts = instances['vm_type'].value_counts()
    for type_id, count in counts.items():
        if int(type_id) in catalog.vm_types:
            catalog.observe(int(type_id), int(count))
        else:
            logger.warning(f"{count} instances use unknown vm type {type_id}")
    return catalog
