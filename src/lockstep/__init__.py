# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

__all__ = [
    "config",
    "generation",
    "BoundedStack",
    "GenerationConfig",
    "build_generate",
    "generate",
]

import lockstep.config as config
import lockstep.generation as generation
from lockstep.generation import BoundedStack, GenerationConfig, build_generate, generate


__version__ = "0.1.0"
