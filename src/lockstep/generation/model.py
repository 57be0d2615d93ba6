# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import abc
from typing import Any, Optional

import equinox as eqx
from haliax import NamedArray
from haliax import haxtyping as ht


Inputs = dict[str, Any]
"""Model inputs keyed by name, e.g. ``input_ids``, ``attention_mask``, ``position_ids`` and ``cache``."""


class ModelOutput(eqx.Module):
    logits: ht.Float[NamedArray, "batch position vocab"]
    cache: Any
    """Opaque cache to pass back in with the next step's inputs."""


class GenerativeModel(abc.ABC):
    """
    The interface a model must provide to be decoded from.

    Parameters are passed separately from the model so that a compiled generate function can be reused with
    different weights. Optional default token ids (``bos_token_id``, ``eos_token_id``, ``pad_token_id``,
    ``decoder_start_token_id``, ``forced_bos_token_id``, ``forced_eos_token_id``) may be provided as attributes and
    are used when the generation config leaves them unset.
    """

    bos_token_id: Optional[int] = None
    eos_token_id: Optional[int] = None
    pad_token_id: Optional[int] = None
    decoder_start_token_id: Optional[int] = None
    forced_bos_token_id: Optional[int] = None
    forced_eos_token_id: Optional[int] = None

    @property
    @abc.abstractmethod
    def input_names(self) -> frozenset[str]:
        """Names of the inputs the model accepts."""
        pass

    @property
    def is_encoder_decoder(self) -> bool:
        return "input_ids" in self.input_names and "decoder_input_ids" in self.input_names

    @abc.abstractmethod
    def init_cache(self, batch_size: int, max_length: int, inputs: Inputs) -> Any:
        """
        Build an empty cache with room for ``max_length`` positions per sequence.

        The returned value is opaque to the decoding loop: it is handed to the model with each forward pass and
        replaced by whatever the model returns.
        """
        raise NotImplementedError("init_cache not implemented")

    @abc.abstractmethod
    def __call__(self, params, inputs: Inputs) -> ModelOutput:
        """
        Run a forward pass.

        Args:
            params: model parameters
            inputs: token ids with axes {batch, position}, plus masks, position ids and cache

        Returns:
            ModelOutput: logits with axes {batch, position, vocab} and the updated cache
        """
        pass

    def encode(self, params, inputs: Inputs) -> NamedArray:
        """Encoder hidden state for encoder-decoder models. Run once per generation."""
        raise NotImplementedError(f"{type(self).__name__} is not an encoder-decoder model")


def init_cache(model: GenerativeModel, batch_size: int, max_length: int, inputs: Inputs) -> Any:
    """Initializes an opaque cache input for iterative inference."""
    return model.init_cache(batch_size, max_length, inputs)
