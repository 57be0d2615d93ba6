import equinox as eqx
import jax
import jax.numpy as jnp
import numpy as np
import pytest

from lockstep.generation import BoundedStack, CapacityExceededError, ConfigError, EmptyStackError, InvalidOperandError
from lockstep.generation.stack import EMPTY


def test_push_pop_is_lifo():
    stack = BoundedStack.init(4)
    stack = stack.push(1).push(2).push(3)

    assert stack.length() == 3

    value, stack = stack.pop()
    assert value == 3
    value, stack = stack.pop()
    assert value == 2
    assert stack.length() == 1
    assert stack.peek() == 1


def test_stacks_are_values():
    empty = BoundedStack.init(2)
    one = empty.push(5)

    assert empty.is_empty()
    assert not one.is_empty()

    _, popped = one.pop()
    assert one.length() == 1
    assert popped.length() == 0


def test_peek_does_not_remove():
    stack = BoundedStack.init(3).push(7)
    assert stack.peek() == 7
    assert stack.peek() == 7
    assert stack.length() == 1


def test_is_full():
    stack = BoundedStack.init(2)
    assert not stack.is_full()
    stack = stack.push(1).push(2)
    assert stack.is_full()
    assert stack.capacity == 2


def test_push_accepts_jax_scalars():
    stack = BoundedStack.init(2).push(jnp.array(4, dtype=jnp.int32))
    assert stack.peek() == 4


def test_push_non_scalar_raises():
    stack = BoundedStack.init(2).push(3)
    with pytest.raises(InvalidOperandError):
        stack.push(jnp.array([1, 2]))

    assert stack.length() == 1
    assert stack.peek() == 3
    np.testing.assert_array_equal(np.asarray(stack.data.array), [3, EMPTY])


def test_push_float_onto_int_stack_raises():
    stack = BoundedStack.init(2)
    with pytest.raises(InvalidOperandError):
        stack.push(2.7)
    with pytest.raises(InvalidOperandError):
        stack.push(jnp.array(1.5, dtype=jnp.float32))

    assert stack.is_empty()


def test_push_non_numeric_raises():
    stack = BoundedStack.init(2)
    with pytest.raises(InvalidOperandError):
        stack.push("x")
    with pytest.raises(InvalidOperandError):
        stack.push(None)


def test_float_stack_accepts_floats():
    stack = BoundedStack.init(2, dtype=jnp.float32).push(2.5).push(1)
    value, stack = stack.pop()
    assert value == 1.0
    assert stack.peek() == 2.5


def test_pop_empty_raises():
    with pytest.raises(EmptyStackError):
        BoundedStack.init(2).pop()


def test_peek_empty_raises():
    with pytest.raises(EmptyStackError):
        BoundedStack.init(2).peek()


def test_push_full_raises():
    stack = BoundedStack.init(1).push(1)
    with pytest.raises(CapacityExceededError):
        stack.push(2)


def test_invalid_capacity():
    with pytest.raises(ConfigError):
        BoundedStack.init(0)


def test_stack_in_jit():
    @jax.jit
    def push_then_pop(stack, x):
        stack = stack.push(x).push(x + 1)
        top, stack = stack.pop()
        return top, stack

    top, stack = push_then_pop(BoundedStack.init(4), jnp.array(10, dtype=jnp.int32))
    assert top == 11
    assert stack.length() == 1
    assert stack.peek() == 10


def test_stack_in_while_loop():
    def body(carry):
        i, stack = carry
        return i + 1, stack.push(i * i)

    def cond(carry):
        i, _ = carry
        return i < 3

    _, stack = jax.lax.while_loop(cond, body, (jnp.array(0, dtype=jnp.int32), BoundedStack.init(3)))

    assert stack.length() == 3
    value, stack = stack.pop()
    assert value == 4
    assert stack.peek() == 1


def test_pop_empty_in_jit_fails_at_runtime():
    with pytest.raises(RuntimeError, match="empty stack"):
        eqx.filter_jit(lambda s: s.pop()[0])(BoundedStack.init(2))
