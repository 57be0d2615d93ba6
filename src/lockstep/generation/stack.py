# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import dataclasses
import numbers

import equinox as eqx
import haliax as hax
import jax
import jax.numpy as jnp
import numpy as np
from haliax import NamedArray
from haliax import haxtyping as ht

from lockstep.generation.errors import CapacityExceededError, ConfigError, EmptyStackError, InvalidOperandError


EMPTY = -1


def _check(x, bad, exc_type, message: str):
    """
    Guard ``x`` on the condition ``bad``.

    Concrete conditions raise ``exc_type`` right away. Traced conditions (inside jit or a while loop) can't be
    inspected from Python, so they are attached to ``x`` with ``eqx.error_if`` and fail when the program runs.
    """
    if isinstance(bad, jax.core.Tracer):
        return eqx.error_if(x, bad, message)
    if bool(bad):
        raise exc_type(message)
    return x


class BoundedStack(eqx.Module):
    """
    A fixed-capacity LIFO stack represented as a pytree, so it can be carried through ``jax.lax`` loops.

    Dynamic stacks need shapes we don't know up front, so instead we keep a preallocated buffer and a pointer into
    it. ``data["stack", 0:pointer]`` holds the pushed values in push order; everything past the pointer is
    unspecified (initially ``EMPTY``).

    All operations return a new stack. Nothing is mutated in place.
    """

    data: ht.i32[NamedArray, "stack"]
    pointer: jax.Array

    @staticmethod
    def init(capacity: int, dtype=jnp.int32) -> "BoundedStack":
        """Create an empty stack that can hold ``capacity`` scalars."""
        if capacity <= 0:
            raise ConfigError(f"Stack capacity must be positive, got {capacity}")

        return BoundedStack(
            data=hax.full({"stack": capacity}, EMPTY, dtype=dtype),
            pointer=jnp.array(0, dtype=jnp.int32),
        )

    @property
    def capacity(self) -> int:
        return self.data.axis_size("stack")

    def length(self) -> jax.Array:
        """Number of values currently on the stack."""
        return self.pointer

    def is_empty(self) -> jax.Array:
        return self.pointer == 0

    def is_full(self) -> jax.Array:
        return self.pointer >= self.capacity

    def push(self, value) -> "BoundedStack":
        """Push a scalar onto the top of the stack."""
        if isinstance(value, NamedArray):
            value = value.array

        if not isinstance(value, (numbers.Number, np.generic, np.ndarray, jax.Array)):
            raise InvalidOperandError(f"Can only push numbers to a stack, got {type(value).__name__}")

        if jnp.ndim(value) != 0:
            raise InvalidOperandError(f"Can only push scalar values to a stack, got shape {jnp.shape(value)}")

        dtype = value.dtype if hasattr(value, "dtype") else jnp.result_type(value)
        if not (jnp.issubdtype(dtype, jnp.number) or jnp.issubdtype(dtype, jnp.bool_)):
            raise InvalidOperandError(f"Can only push numbers to a stack, got dtype {dtype}")
        # no silent truncation of floats into an integer stack
        if jnp.issubdtype(dtype, jnp.inexact) and not jnp.issubdtype(self.data.dtype, jnp.inexact):
            raise InvalidOperandError(f"Cannot push a {dtype} value onto a {self.data.dtype} stack")

        pointer = _check(
            self.pointer,
            self.is_full(),
            CapacityExceededError,
            f"Cannot push onto a full stack (capacity {self.capacity})",
        )

        return dataclasses.replace(
            self,
            data=self.data.at["stack", pointer].set(jnp.asarray(value, dtype=self.data.dtype)),
            pointer=pointer + 1,
        )

    def pop(self) -> tuple[jax.Array, "BoundedStack"]:
        """Remove the top of the stack. Returns the popped value and the new stack."""
        pointer = _check(self.pointer, self.is_empty(), EmptyStackError, "Cannot pop from an empty stack")
        new_pointer = pointer - 1
        value = self.data["stack", new_pointer].scalar()
        return value, dataclasses.replace(self, pointer=new_pointer)

    def peek(self) -> jax.Array:
        """The value on top of the stack."""
        pointer = _check(self.pointer, self.is_empty(), EmptyStackError, "Cannot peek at an empty stack")
        return self.data["stack", pointer - 1].scalar()
