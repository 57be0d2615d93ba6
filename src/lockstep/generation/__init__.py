"""
Greedy autoregressive generation with fixed shapes.

This module provides the decode loop, its input handling and logits processors, and a bounded stack for carrying
auxiliary state through the loop (e.g. for constrained decoding).
"""

from .config import GenerationConfig, LengthFn
from .errors import (
    CapacityExceededError,
    ConfigError,
    EmptyStackError,
    GenerationError,
    InputTooLongError,
    InvalidOperandError,
)
from .generate import build_generate, generate
from .logits_processors import GenerationContext, LogitsProcessorPipeline
from .model import GenerativeModel, ModelOutput, init_cache
from .serving import CompileConfig, TextGeneration
from .stack import BoundedStack

__all__ = ["GenerationConfig", "LengthFn",
           "GenerationError", "ConfigError", "InputTooLongError", "InvalidOperandError",
           "EmptyStackError", "CapacityExceededError",
           "build_generate", "generate",
           "GenerationContext", "LogitsProcessorPipeline",
           "GenerativeModel", "ModelOutput", "init_cache",
           "CompileConfig", "TextGeneration",
           "BoundedStack"]
