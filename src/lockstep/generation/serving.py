# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

import equinox as eqx
import haliax as hax
import jax
import jax.numpy as jnp
import numpy as np

from lockstep.generation.config import GenerationConfig
from lockstep.generation.errors import ConfigError
from lockstep.generation.generate import build_generate
from lockstep.generation.model import GenerativeModel


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompileConfig:
    """Fixed input shape to compile the generate function for ahead of time."""

    batch_size: Optional[int] = None
    sequence_length: Optional[int] = None
    """Prompts are left padded (or truncated) to this many tokens."""


class TextGeneration:
    """
    Text in, text out generation around a ``GenerativeModel``.

    Prompts are tokenized with left padding so every row ends on its last real token. When ``compile`` is given, the
    generate function is lowered and compiled once for ``[batch_size, sequence_length]`` inputs, and smaller batches
    are padded up to ``batch_size`` before running. Otherwise the function is jitted and recompiled per input shape.

    Typical usage:

        gen = TextGeneration(model, params, tokenizer, GenerationConfig(max_new_tokens=32))
        gen("The quick brown fox")  # {"results": [{"text": ...}]}
    """

    def __init__(
        self,
        model: GenerativeModel,
        params,
        tokenizer,
        config: GenerationConfig,
        *,
        compile: Optional[CompileConfig] = None,
    ):
        if compile is not None and (compile.batch_size is None or compile.sequence_length is None):
            raise ConfigError(f"Expected compile to specify both batch_size and sequence_length, got: {compile}")

        config = config.with_model_defaults(model)
        if config.pad_token_id is None and getattr(tokenizer, "pad_token_id", None) is not None:
            config = dataclasses.replace(config, pad_token_id=tokenizer.pad_token_id)

        self.model = model
        self.params = params
        self.tokenizer = tokenizer
        self.config = config
        self.compile_config = compile

        generate_fn = build_generate(model, config)

        if compile is None:
            self._generate = eqx.filter_jit(generate_fn)
        else:
            time_in = time.time()
            template = self._encode([""] * compile.batch_size)
            self._generate = jax.jit(generate_fn).lower(params, template).compile()
            logger.info(
                f"Compiled generation for batch_size={compile.batch_size}, "
                f"sequence_length={compile.sequence_length} in {time.time() - time_in:.2f}s"
            )

    def __call__(self, texts: str | Sequence[str]):
        texts, multi = _validate_texts(texts)

        num_texts = len(texts)
        if self.compile_config is not None:
            batch_size = self.compile_config.batch_size
            if num_texts > batch_size:
                raise ConfigError(f"Got {num_texts} inputs, but generation was compiled for batch_size={batch_size}")
            # fill the batch with copies of the last prompt, their outputs are dropped
            texts = list(texts) + [texts[-1]] * (batch_size - num_texts)

        inputs = self._encode(texts)
        token_ids = self._generate(self.params, inputs)
        token_ids = np.asarray(jax.device_get(token_ids.array))[:num_texts]

        decoded = self.tokenizer.batch_decode(token_ids.tolist(), skip_special_tokens=True)
        results = [{"results": [{"text": text}]} for text in decoded]

        if multi:
            return results
        return results[0]

    def _encode(self, texts: Sequence[str]) -> dict:
        self.tokenizer.padding_side = "left"
        if self.compile_config is not None:
            encoded = self.tokenizer(
                list(texts),
                padding="max_length",
                truncation=True,
                max_length=self.compile_config.sequence_length,
                return_tensors="np",
            )
        else:
            encoded = self.tokenizer(list(texts), padding="longest", return_tensors="np")

        return {
            "input_ids": hax.named(jnp.asarray(encoded["input_ids"], dtype=jnp.int32), ("batch", "position")),
            "attention_mask": hax.named(
                jnp.asarray(encoded["attention_mask"], dtype=jnp.int32), ("batch", "position")
            ),
        }


def _validate_texts(texts) -> tuple[list[str], bool]:
    if isinstance(texts, str):
        return [texts], False

    if isinstance(texts, (list, tuple)) and texts and all(isinstance(t, str) for t in texts):
        return list(texts), True

    raise TypeError(f"Expected a string or a non-empty list of strings, got: {texts!r}")
