# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

"""
Logits processors rewrite the next-token logits based on how far decoding has progressed.

A processor is a callable ``(logits, context) -> logits`` where ``logits`` has axes {batch, vocab}. Processors run
inside the decode loop, so ``context.length`` is usually traced; conditions are expressed with ``jax.lax.cond``
rather than Python branches.
"""

from typing import Optional, Sequence

import equinox as eqx
import haliax as hax
import jax
import jax.numpy as jnp
from haliax import AxisSelector, NamedArray
from haliax import haxtyping as ht

from lockstep.generation.config import GenerationConfig, LengthFn


class GenerationContext(eqx.Module):
    """Read-only view of the decoding progress handed to logits processors."""

    sequences: ht.i32[NamedArray, "batch position"]
    length: jax.Array | int
    """Number of filled positions in ``sequences``, i.e. the position about to be generated."""
    input_length: int = eqx.field(static=True)
    """Length of the initial token ids (the prompt, or the decoder start token)."""

    @property
    def max_length(self) -> int:
        return self.sequences.axis_size("position")


def force_token_id(logits: NamedArray, token_id: int, Vocab: AxisSelector = "vocab") -> NamedArray:
    """Make ``token_id`` the only selectable token: every other logit becomes -inf and the target becomes 0."""
    forced = hax.full_like(logits, -jnp.inf)
    return forced.at[Vocab, token_id].set(0.0)


def ignore_token_id(logits: NamedArray, token_id: int, Vocab: AxisSelector = "vocab") -> NamedArray:
    """Make ``token_id`` unselectable by setting its logit to -inf."""
    return logits.at[Vocab, token_id].set(-jnp.inf)


class MinLengthLogitsProcessor(eqx.Module):
    """Suppresses EOS until the sequence reaches its minimum length."""

    eos_token_id: int = eqx.field(static=True)
    min_length_fn: LengthFn = eqx.field(static=True)
    Vocab: AxisSelector = eqx.field(static=True, default="vocab")

    def __call__(self, logits: NamedArray, context: GenerationContext) -> NamedArray:
        min_length = self.min_length_fn(context.input_length)
        return jax.lax.cond(
            context.length < min_length,
            lambda lg: ignore_token_id(lg, self.eos_token_id, self.Vocab),
            lambda lg: lg,
            logits,
        )


class ForcedBOSLogitsProcessor(eqx.Module):
    """Forces ``bos_token_id`` right after the single start token."""

    bos_token_id: int = eqx.field(static=True)
    Vocab: AxisSelector = eqx.field(static=True, default="vocab")

    def __call__(self, logits: NamedArray, context: GenerationContext) -> NamedArray:
        return jax.lax.cond(
            context.length == 1,
            lambda lg: force_token_id(lg, self.bos_token_id, self.Vocab),
            lambda lg: lg,
            logits,
        )


class ForcedEOSLogitsProcessor(eqx.Module):
    """Forces ``eos_token_id`` as the last token when the sequence buffer is about to fill up."""

    eos_token_id: int = eqx.field(static=True)
    Vocab: AxisSelector = eqx.field(static=True, default="vocab")

    def __call__(self, logits: NamedArray, context: GenerationContext) -> NamedArray:
        return jax.lax.cond(
            context.length == context.max_length - 1,
            lambda lg: force_token_id(lg, self.eos_token_id, self.Vocab),
            lambda lg: lg,
            logits,
        )


class LogitsProcessorPipeline(eqx.Module):
    """Applies each processor in order to the same logits."""

    processors: tuple

    def __init__(self, processors: Sequence = ()):
        self.processors = tuple(processors)

    def __call__(self, logits: NamedArray, context: GenerationContext) -> NamedArray:
        for processor in self.processors:
            logits = processor(logits, context)
        return logits

    def __len__(self) -> int:
        return len(self.processors)


def build_logits_processor(
    config: GenerationConfig,
    min_length_fn: Optional[LengthFn] = None,
    Vocab: AxisSelector = "vocab",
) -> LogitsProcessorPipeline:
    """Build the pipeline for a resolved config. Each processor is only included when its token id is configured."""
    processors: list = []

    if min_length_fn is not None and config.eos_token_id is not None:
        processors.append(MinLengthLogitsProcessor(config.eos_token_id, min_length_fn, Vocab))

    if config.forced_bos_token_id is not None:
        processors.append(ForcedBOSLogitsProcessor(config.forced_bos_token_id, Vocab))

    if config.forced_eos_token_id is not None:
        processors.append(ForcedEOSLogitsProcessor(config.forced_eos_token_id, Vocab))

    return LogitsProcessorPipeline(processors)
