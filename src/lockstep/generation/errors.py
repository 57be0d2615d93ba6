# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0


class GenerationError(Exception):
    """Base class for errors raised while setting up or running generation."""


class ConfigError(GenerationError, ValueError):
    """Generation options are malformed or contradict each other."""


class InputTooLongError(GenerationError, ValueError):
    """The prompt does not fit in the resolved maximum length."""


class InvalidOperandError(GenerationError, TypeError):
    """An operation was given a value of the wrong rank or kind."""


class EmptyStackError(GenerationError, IndexError):
    pass


class CapacityExceededError(GenerationError, IndexError):
    pass
