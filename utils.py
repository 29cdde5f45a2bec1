# Copyright (C) 2022. ByteDance Co., Ltd. All rights reserved.
#
# This program is free software; you can redistribute it and/or modify it under
# the terms of the Apache-2.0 license.
#
# This program is distributed in the hope that it will be useful, but WITHOUT ANY
# WARRANTY; without even the implied warranty of MERCHANTABILITY or FITNESS FOR A
# PARTICULAR PURPOSE. See the Apache-2.0 License for more details.


from datetime import datetime
import json
import logging
import os
import pytz

logger = logging.getLogger('VM.utils')


class Params:
    """
    Class that loads replay parameters from a json file as a dictionary.
    Example:
    params = Params(json_path)

    # access key-value pairs
    params.host_pes
    params['host_pes']

    # change the value of host_pes in params
    params.host_pes = 128
    params['host_pes'] = 128

    # print params
    print(params)

    # combine two json files
    params.update(json_path2)
    """

    def __init__(self, json_path=None):
        if json_path is not None and os.path.isfile(json_path):
            with open(json_path) as f:
                params = json.load(f)
                self.__dict__.update(params)
        else:
            self.__dict__ = {}

    def save(self, json_path):
        with open(json_path, 'w') as f:
            json.dump(self.__dict__, f, indent=4, ensure_ascii=False)

    def update(self, json_path=None, params=None):
        """Loads parameters from json file, or from an argparse namespace (None values are skipped)"""
        if json_path is not None:
            with open(json_path) as f:
                params = json.load(f)
                self.__dict__.update(params)
        elif params is not None:
            self.__dict__.update({k: v for k, v in vars(params).items() if v is not None})
        else:
            raise Exception('One of json_path and params must be provided in Params.update()!')

    def get(self, key, default=None):
        return self.__dict__.get(key, default)

    def __contains__(self, item):
        return item in self.__dict__

    def __getitem__(self, key):
        return getattr(self, str(key))

    def __setitem__(self, key, value):
        return setattr(self, key, value)

    def __str__(self):
        return json.dumps(self.__dict__, sort_keys=True, indent=4, ensure_ascii=False)


def set_logger(log_path=None, level=logging.INFO):
    """
    Logs to the terminal and, when log_path is given, to a file as well.
    Args:
        log_path: (string) where to write the log file
        level: logging level of the root logger
    """
    root = logging.getLogger()
    root.setLevel(level)
    if not root.handlers:
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter('[%(asctime)s] %(name)s: %(message)s', '%H:%M:%S'))
        root.addHandler(stream_handler)
    if log_path is not None:
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter('%(asctime)s:%(levelname)s:%(name)s: %(message)s'))
        root.addHandler(file_handler)


def save_dict_to_json(d, json_path):
    """
    Saves dict of floats in json file
    Args:
        d: (dict) of float-castable values (np.float, int, float, etc.)
        json_path: (string) path to json file
    """
    with open(json_path, 'w') as f:
        # We need to convert the values to float for json (it doesn't accept np.array, np.float, )
        d = {k: float(v) for k, v in d.items()}
        json.dump(d, f, indent=4)
    logger.info(f'Summary saved to {json_path}')


def name_with_datetime():
    now = datetime.now(tz=pytz.utc)
    now = now.astimezone(pytz.timezone('US/Pacific'))
    return now.strftime("%Y-%m-%d_%H:%M:%S")
