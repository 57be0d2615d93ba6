# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import dataclasses
from dataclasses import dataclass
from typing import Optional

from lockstep.generation.errors import ConfigError


# token ids that fall back to the model's own defaults when not given
TOKEN_ID_FIELDS = (
    "decoder_start_token_id",
    "bos_token_id",
    "eos_token_id",
    "pad_token_id",
    "forced_bos_token_id",
    "forced_eos_token_id",
)


@dataclass(frozen=True)
class LengthFn:
    """
    A length limit that may depend on the prompt length.

    With ``relative=True`` the limit is ``input_length + value``, otherwise it is ``value`` regardless of the prompt.
    """

    value: int
    relative: bool

    def __call__(self, input_length: int) -> int:
        if self.relative:
            return input_length + self.value
        return self.value


@dataclass(frozen=True)
class GenerationConfig:
    """Options controlling greedy generation. Exactly one of ``max_new_tokens`` or ``max_length`` must be set."""

    max_new_tokens: Optional[int] = None
    """Maximum number of tokens to generate, not counting the prompt."""
    min_new_tokens: Optional[int] = None
    """Minimum number of tokens to generate, not counting the prompt."""
    max_length: Optional[int] = None
    """
    Maximum length of the generated sequence, including the prompt (and any prompt padding).
    Prefer ``max_new_tokens``, which ignores the prompt length.
    """
    min_length: Optional[int] = None
    """Minimum length of the generated sequence, including the prompt. Prefer ``min_new_tokens``."""

    decoder_start_token_id: Optional[int] = None
    """Initial decoder token for encoder-decoder models. Falls back to ``bos_token_id``."""
    bos_token_id: Optional[int] = None
    eos_token_id: Optional[int] = None
    pad_token_id: Optional[int] = None
    forced_bos_token_id: Optional[int] = None
    """Token to force as the first generated token."""
    forced_eos_token_id: Optional[int] = None
    """Token to force as the last generated token when ``max_length`` is reached."""

    def with_model_defaults(self, model) -> "GenerationConfig":
        """Fill any unset token id from the attribute of the same name on ``model``, when it has one."""
        defaults = {}
        for name in TOKEN_ID_FIELDS:
            if getattr(self, name) is None and getattr(model, name, None) is not None:
                defaults[name] = getattr(model, name)

        if not defaults:
            return self

        return dataclasses.replace(self, **defaults)

    @property
    def max_length_fn(self) -> LengthFn:
        match (self.max_new_tokens, self.max_length):
            case (None, None):
                raise ConfigError("Expected either max_new_tokens or max_length, but neither was given")
            case (max_new_tokens, None):
                return LengthFn(max_new_tokens, relative=True)
            case (None, max_length):
                return LengthFn(max_length, relative=False)
            case _:
                raise ConfigError("Only one of max_new_tokens or max_length may be given, but got both")

    @property
    def min_length_fn(self) -> Optional[LengthFn]:
        match (self.min_new_tokens, self.min_length):
            case (None, None):
                return None
            case (min_new_tokens, None):
                return LengthFn(min_new_tokens, relative=True)
            case (None, min_length):
                return LengthFn(min_length, relative=False)
            case _:
                raise ConfigError("Only one of min_new_tokens or min_length may be given, but got both")

    @property
    def resolved_decoder_start_token_id(self) -> Optional[int]:
        if self.decoder_start_token_id is not None:
            return self.decoder_start_token_id
        return self.bos_token_id

    def validate(self) -> "GenerationConfig":
        """
        Check the option combination once, before any generation runs. Returns ``self`` so it can be chained.
        """
        # resolving the length functions raises on both/neither
        self.max_length_fn
        self.min_length_fn

        for name in ("max_new_tokens", "max_length"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ConfigError(f"{name} must be positive, got {value}")

        for name in ("min_new_tokens", "min_length"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigError(f"{name} must be non-negative, got {value}")

        for name in TOKEN_ID_FIELDS:
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigError(f"{name} must be a non-negative token id, got {value}")

        if self.pad_token_id is None:
            raise ConfigError("Expected pad_token_id to be set, either explicitly or by the model")

        return self
