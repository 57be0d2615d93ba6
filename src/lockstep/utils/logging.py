# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import logging as pylogging
import os
from pathlib import Path
from typing import List, Union

import jax


def init_logging(log_dir: Union[str, Path], run_id: str, level: int = pylogging.INFO) -> Path:
    """
    Configure the root logger with console and file handlers, and set the level of the ``lockstep`` loggers.

    :param log_dir: directory for the log file, created if missing
    :param run_id: the log file is ``{log_dir}/{run_id}.log``
    :param level: level for ``lockstep`` loggers
    :return: the path of the log file
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_dir / f"{run_id}.log"

    process_index = jax.process_index()
    log_format = f"%(asctime)s - {process_index} - %(name)s - %(filename)s:%(lineno)d - %(levelname)s :: %(message)s"
    # ISO 8601 timestamps, no TZ
    date_format = "%Y-%m-%dT%H:%M:%S"

    handlers: List[pylogging.Handler] = [pylogging.FileHandler(path, mode="a"), pylogging.StreamHandler()]

    pylogging.basicConfig(format=log_format, datefmt=date_format, handlers=handlers, force=True)
    pylogging.getLogger("lockstep").setLevel(level)

    silence_transformer_nag()

    return path


def silence_transformer_nag():
    # transformers complains that none of PyTorch, TensorFlow or Flax is installed when we only want its tokenizers
    if os.getenv("TRANSFORMERS_VERBOSITY") is None:
        os.environ["TRANSFORMERS_VERBOSITY"] = "error"
