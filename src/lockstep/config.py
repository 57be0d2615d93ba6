# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import atexit
import functools
import inspect
import os
import sys
import tempfile
import urllib.parse
from functools import wraps
from typing import List, Optional

import draccus
import fsspec
from fsspec import AbstractFileSystem


CONFIG_ARGS = ("--config_path", "--config", "--configs")


def main(fn=None, *, args: Optional[List[str]] = None):
    """
    Like draccus.wrap, but config paths may be any url fsspec can open (e.g. gs://, s3://, memory://).
    Only the first argument of the wrapped function is parsed from the config.

    :param args: the args to parse. If None, will use sys.argv[1:]
    """

    if fn is None:
        return functools.partial(main, args=args)

    @wraps(fn)
    def wrapper_inner(*fn_args, **fn_kwargs):
        cmdline_args = sys.argv[1:] if args is None else args
        config_path, cmdline_args = _pop_config_path(cmdline_args)

        if config_path is not None and not os.path.exists(config_path):
            for candidate in (f"{config_path}.yaml", f"{config_path}.yml"):
                if os.path.exists(candidate):
                    config_path = candidate
                    break

        argspec = inspect.getfullargspec(fn)
        config_class = argspec.annotations[argspec.args[0]]
        config = draccus.parse(config_class=config_class, config_path=config_path, args=cmdline_args)
        return fn(config, *fn_args, **fn_kwargs)

    return wrapper_inner


def _pop_config_path(args: List[str]) -> tuple[Optional[str], List[str]]:
    """
    Remove ``--config_path <path>`` (or ``--config``/``--configs <path> <path> ...``) from ``args``.

    Remote paths are downloaded to a temp file. Several paths are concatenated into one file, later ones
    overriding earlier ones.
    """
    found = [i for i, arg in enumerate(args) if arg in CONFIG_ARGS]
    if not found:
        return None, args
    if len(found) > 1:
        raise ValueError(f"Multiple config args found in {args}")

    args = list(args)
    start = found[0]
    end = start + 1
    while end < len(args) and not args[end].startswith("-"):
        end += 1

    paths = [_localize(path) for path in args[start + 1 : end]]
    del args[start:end]

    if not paths:
        raise ValueError("No config path found in args")
    if len(paths) == 1:
        return paths[0], args

    merged = tempfile.NamedTemporaryFile(prefix="config_merged", suffix=".yaml", delete=False)
    atexit.register(lambda: os.unlink(merged.name))
    with open(merged.name, "w") as f:
        for path in paths:
            with open(path) as config_file:
                f.write(config_file.read())
                f.write("\n")

    return merged.name, args


def _localize(path: str) -> str:
    if not urllib.parse.urlparse(path).scheme:
        return path

    fs: AbstractFileSystem
    fs, fs_path = fsspec.core.url_to_fs(path)
    local = tempfile.NamedTemporaryFile(prefix="config", suffix=".yaml", delete=False)
    atexit.register(lambda: os.unlink(local.name))
    fs.get(fs_path, local.name)
    return local.name
