# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import abc
import logging
from typing import Optional

import haliax as hax
import jax.numpy as jnp
from haliax import Axis, NamedArray

from lockstep.generation.config import LengthFn
from lockstep.generation.errors import ConfigError
from lockstep.generation.model import GenerativeModel, Inputs, ModelOutput, init_cache


logger = logging.getLogger(__name__)


class InputPreparer(abc.ABC):
    """
    Builds the initial model inputs before decoding and advances them after every step.

    One implementation exists per model shape. The choice is made once, when the generate function is built, so the
    decode loop never branches on the kind of model.
    """

    prefix: str = ""
    """Prefix of the input names for the stream being decoded, e.g. ``decoder_`` for encoder-decoder models."""

    def __init__(self, model: GenerativeModel, max_length_fn: LengthFn):
        self.model = model
        self.max_length_fn = max_length_fn

    @abc.abstractmethod
    def prepare(self, params, inputs: Inputs) -> tuple[Inputs, NamedArray, int]:
        """
        Returns:
            the model inputs for the first step, the initial token ids with axes {batch, position}, and the
            resolved max length
        """
        pass

    def update(self, inputs: Inputs, outputs: ModelOutput, token_ids: NamedArray) -> Inputs:
        """
        Advance ``inputs`` past the step that produced ``outputs``.

        ``token_ids`` are the newly chosen tokens with axes {batch, position=1}. The cache is replaced by the one the
        model returned.
        """
        return update_decoder_inputs(inputs, outputs, token_ids, self.prefix)

    def _prepare_decoder_inputs(self, inputs: Inputs, max_length: int) -> Inputs:
        return prepare_decoder_inputs(self.model, inputs, self.prefix, max_length)


class DecoderOnlyInputs(InputPreparer):
    """Decoder-only models: the prompt itself is the start of the generated sequence."""

    def prepare(self, params, inputs: Inputs) -> tuple[Inputs, NamedArray, int]:
        input_ids = _check_token_ids(inputs, "input_ids")
        max_length = self.max_length_fn(input_ids.axis_size("position"))
        inputs = self._prepare_decoder_inputs(inputs, max_length)
        return inputs, inputs["input_ids"], max_length


class EncoderDecoderInputs(InputPreparer):
    """
    Encoder-decoder models: the encoder runs once up front and its hidden state is reused on every decoder step.
    Decoding starts from a single ``decoder_start_token_id``.
    """

    prefix = "decoder_"

    def __init__(self, model: GenerativeModel, max_length_fn: LengthFn, decoder_start_token_id: Optional[int]):
        super().__init__(model, max_length_fn)
        if decoder_start_token_id is None:
            raise ConfigError(
                "Encoder-decoder generation needs a decoder start token. Set decoder_start_token_id or bos_token_id"
            )
        self.decoder_start_token_id = decoder_start_token_id

    def prepare(self, params, inputs: Inputs) -> tuple[Inputs, NamedArray, int]:
        input_ids = _check_token_ids(inputs, "input_ids")
        encoder_hidden_state = self.model.encode(params, inputs)

        Batch = input_ids.resolve_axis("batch")
        decoder_input_ids = hax.full((Batch, Axis("position", 1)), self.decoder_start_token_id, dtype=input_ids.dtype)

        inputs = {
            **inputs,
            "encoder_hidden_state": encoder_hidden_state,
            "decoder_input_ids": decoder_input_ids,
        }

        max_length = self.max_length_fn(1)
        inputs = self._prepare_decoder_inputs(inputs, max_length)
        return inputs, inputs["decoder_input_ids"], max_length


def input_preparer_for(
    model: GenerativeModel, max_length_fn: LengthFn, decoder_start_token_id: Optional[int] = None
) -> InputPreparer:
    """Pick the input strategy for ``model`` based on the inputs it declares."""
    if model.is_encoder_decoder:
        logger.info(f"{type(model).__name__} is an encoder-decoder model; decoding from the decoder stream")
        return EncoderDecoderInputs(model, max_length_fn, decoder_start_token_id)
    return DecoderOnlyInputs(model, max_length_fn)


def prepare_decoder_inputs(model: GenerativeModel, inputs: Inputs, prefix: str, max_length: int) -> Inputs:
    """
    Fill in the attention mask (all ones when absent), position ids and an empty cache for the ``prefix`` stream.

    Position ids count attended positions, so left padding doesn't shift the positions of real tokens.
    """
    input_ids: NamedArray = inputs[prefix + "input_ids"]
    attention_mask = inputs.get(prefix + "attention_mask")
    if attention_mask is None:
        attention_mask = hax.ones(input_ids.axes, dtype=jnp.int32)

    position_ids = hax.cumsum(attention_mask.astype(jnp.int32), axis="position") - 1

    inputs = {
        **inputs,
        prefix + "attention_mask": attention_mask,
        prefix + "position_ids": position_ids,
    }

    batch_size = input_ids.axis_size("batch")
    inputs["cache"] = init_cache(model, batch_size, max_length, inputs)
    return inputs


def update_decoder_inputs(inputs: Inputs, outputs: ModelOutput, token_ids: NamedArray, prefix: str) -> Inputs:
    input_ids: NamedArray = inputs[prefix + "input_ids"]
    attention_mask: NamedArray = inputs[prefix + "attention_mask"]
    position_ids: NamedArray = inputs[prefix + "position_ids"]

    num_positions = position_ids.axis_size("position")
    last_position = position_ids["position", num_positions - 1 : num_positions]

    return {
        **inputs,
        prefix + "input_ids": token_ids.astype(input_ids.dtype),
        prefix + "attention_mask": hax.ones(token_ids.axes, dtype=attention_mask.dtype),
        prefix + "position_ids": last_position + 1,
        "cache": outputs.cache,
    }


def _check_token_ids(inputs: Inputs, name: str) -> NamedArray:
    if name not in inputs:
        raise ConfigError(f"Expected {name} in the inputs, got keys {sorted(inputs)}")

    token_ids = inputs[name]
    if not isinstance(token_ids, NamedArray) or tuple(ax.name for ax in token_ids.axes) != ("batch", "position"):
        raise ConfigError(f"Expected {name} to be a NamedArray with axes (batch, position), got {token_ids}")

    if not jnp.issubdtype(token_ids.dtype, jnp.integer):
        raise ConfigError(f"Expected {name} to be an integer array, got {token_ids.dtype}")

    return token_ids
