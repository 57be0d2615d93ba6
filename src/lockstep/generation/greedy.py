# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import dataclasses
import functools
from typing import Callable, Optional

import equinox as eqx
import haliax as hax
import jax
import jax.numpy as jnp
from haliax import Axis, NamedArray
from haliax import haxtyping as ht

from lockstep.generation.errors import InputTooLongError
from lockstep.generation.logits_processors import GenerationContext
from lockstep.generation.model import GenerativeModel, Inputs, ModelOutput


LogitsProcessorFn = Callable[[NamedArray, GenerationContext], NamedArray]
UpdateInputsFn = Callable[[Inputs, ModelOutput, NamedArray], Inputs]


class GreedyState(eqx.Module):
    """
    Loop carry for greedy decoding.

    * ``sequences`` is the output buffer, pre-filled with the pad token. Its ``position`` axis is ``max_length``.
    * ``length`` is the number of filled columns, i.e. the column the next token is written to.
    * ``finished`` marks rows that have emitted EOS. It only ever goes from False to True.
    * ``inputs`` are the model inputs for the next forward pass, including the cache.
    """

    sequences: ht.i32[NamedArray, "batch position"]
    length: jax.Array
    finished: ht.bool_[NamedArray, "batch"]
    inputs: Inputs

    @staticmethod
    def init(initial_token_ids: NamedArray, inputs: Inputs, max_length: int, pad_token_id: int) -> "GreedyState":
        Batch = initial_token_ids.resolve_axis("batch")
        input_length = initial_token_ids.axis_size("position")

        sequences = hax.full((Batch, Axis("position", max_length)), pad_token_id, dtype=initial_token_ids.dtype)
        sequences = sequences.at["position", 0:input_length].set(initial_token_ids)

        return GreedyState(
            sequences=sequences,
            length=jnp.array(input_length, dtype=jnp.int32),
            finished=hax.zeros(Batch, dtype=bool),
            inputs=inputs,
        )


def greedy(
    inputs: Inputs,
    initial_token_ids: ht.i32[NamedArray, "batch position"],
    model: GenerativeModel,
    params,
    logits_processor: LogitsProcessorFn,
    update_inputs: UpdateInputsFn,
    *,
    max_length: int,
    pad_token_id: int,
    eos_token_id: Optional[int] = None,
) -> ht.i32[NamedArray, "batch position"]:
    """
    Greedily decode until every row has emitted ``eos_token_id`` or the buffer holds ``max_length`` tokens.

    All shapes are fixed before the loop starts, so this can be traced and compiled once.

    Returns:
        token ids with axes {batch, position=max_length}. Positions after a row's EOS, and positions never
        reached, are ``pad_token_id``.
    """
    input_length = initial_token_ids.axis_size("position")

    if input_length > max_length:
        raise InputTooLongError(f"Expected the input to be at most {max_length} tokens, got: {input_length}")

    state = GreedyState.init(initial_token_ids, inputs, max_length, pad_token_id)

    step = functools.partial(
        greedy_step,
        model=model,
        params=params,
        logits_processor=logits_processor,
        update_inputs=update_inputs,
        input_length=input_length,
        pad_token_id=pad_token_id,
        eos_token_id=eos_token_id,
    )

    # the prompt already fills the buffer, there is nothing left to generate
    if input_length == max_length:
        return state.sequences

    # the loop works on inputs of length 1, so a longer prompt gets its own first pass outside of it
    if input_length > 1:
        state = step(state)

    def cond(state: GreedyState):
        return (~hax.all(state.finished)).scalar() & (state.length < max_length)

    final_state = jax.lax.while_loop(cond, step, state)
    return final_state.sequences


def greedy_step(
    state: GreedyState,
    *,
    model: GenerativeModel,
    params,
    logits_processor: LogitsProcessorFn,
    update_inputs: UpdateInputsFn,
    input_length: int,
    pad_token_id: int,
    eos_token_id: Optional[int],
) -> GreedyState:
    """Run one forward pass, choose one token per row, and write it into the sequence buffer."""
    outputs = model(params, state.inputs)

    # only the most recent position predicts the next token
    num_positions = outputs.logits.axis_size("position")
    logits = outputs.logits["position", num_positions - 1]

    context = GenerationContext(sequences=state.sequences, length=state.length, input_length=input_length)
    logits = logits_processor(logits, context)

    token_id = hax.argmax(logits, axis="vocab").astype(state.sequences.dtype)
    token_id = hax.where(state.finished, pad_token_id, token_id)

    finished = state.finished
    if eos_token_id is not None:
        finished = finished | (token_id == eos_token_id)

    sequences = state.sequences.at["position", state.length].set(token_id)

    token_ids = hax.named(token_id.array[..., None], token_id.axes + (Axis("position", 1),))
    inputs = update_inputs(state.inputs, outputs, token_ids)

    return dataclasses.replace(
        state,
        sequences=sequences,
        length=state.length + 1,
        finished=finished,
        inputs=inputs,
    )
