# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import functools
import logging
from typing import Callable, Optional

from haliax import NamedArray
from haliax import haxtyping as ht

from lockstep.generation.config import GenerationConfig
from lockstep.generation.greedy import LogitsProcessorFn, greedy
from lockstep.generation.inputs import InputPreparer, input_preparer_for
from lockstep.generation.logits_processors import LogitsProcessorPipeline, build_logits_processor
from lockstep.generation.model import GenerativeModel, Inputs


logger = logging.getLogger(__name__)

GenerateFn = Callable[..., ht.i32[NamedArray, "batch position"]]


def build_generate(
    model: GenerativeModel,
    config: GenerationConfig,
    *,
    logits_processors: Optional[list[LogitsProcessorFn]] = None,
) -> GenerateFn:
    """
    Build a function ``(params, inputs) -> token_ids`` that generates sequences from ``model``.

    The model should be either a decoder or an encoder-decoder. Tokens are generated greedily, one per step,
    until every sequence emits ``eos_token_id`` or the maximum length is reached. For encoder-decoder models the
    encoder is run once and its output is reused on every step.

    Options are resolved and validated here, once: unset token ids are taken from the model, and exactly one of
    ``max_new_tokens`` / ``max_length`` must be given. The returned function is pure and has fixed shapes for
    fixed input shapes, so it can be wrapped in ``jax.jit`` (or compiled ahead of time).

    Args:
        model: the model to decode from
        config: generation options
        logits_processors: extra processors applied after the built-in ones, e.g. for constrained decoding

    Returns:
        a function taking ``params`` and ``inputs`` (``input_ids`` and optionally ``attention_mask``, both with
        axes {batch, position}) and returning token ids with axes {batch, position}
    """
    config = config.with_model_defaults(model).validate()

    max_length_fn = config.max_length_fn
    min_length_fn = config.min_length_fn

    input_preparer = input_preparer_for(model, max_length_fn, config.resolved_decoder_start_token_id)

    logits_processor = build_logits_processor(config, min_length_fn)
    if logits_processors:
        logits_processor = LogitsProcessorPipeline(logits_processor.processors + tuple(logits_processors))

    logger.info(
        f"Built greedy generation for {type(model).__name__}: max_length={max_length_fn}, "
        f"min_length={min_length_fn}, {len(logits_processor)} logits processors"
    )

    return functools.partial(
        _generate_impl,
        model=model,
        input_preparer=input_preparer,
        logits_processor=logits_processor,
        pad_token_id=config.pad_token_id,
        eos_token_id=config.eos_token_id,
    )


def generate(
    model: GenerativeModel,
    params,
    inputs: Inputs,
    config: GenerationConfig,
) -> ht.i32[NamedArray, "batch position"]:
    """Build and run the generate function once. Prefer ``build_generate`` when generating repeatedly."""
    return build_generate(model, config)(params, inputs)


def _generate_impl(
    params,
    inputs: Inputs,
    *,
    model: GenerativeModel,
    input_preparer: InputPreparer,
    logits_processor: LogitsProcessorFn,
    pad_token_id: int,
    eos_token_id: Optional[int],
) -> ht.i32[NamedArray, "batch position"]:
    decoder_inputs, decoder_input_ids, max_length = input_preparer.prepare(params, inputs)

    return greedy(
        decoder_inputs,
        decoder_input_ids,
        model,
        params,
        logits_processor,
        input_preparer.update,
        max_length=max_length,
        pad_token_id=pad_token_id,
        eos_token_id=eos_token_id,
    )
