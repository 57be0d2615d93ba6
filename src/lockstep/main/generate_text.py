# Copyright 2025 The Lockstep Authors
# SPDX-License-Identifier: Apache-2.0

import importlib
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import lockstep
from lockstep.generation import CompileConfig, GenerationConfig, GenerativeModel, TextGeneration
from lockstep.utils.logging import init_logging


logger = logging.getLogger(__name__)


@dataclass
class LoadedModel:
    """What a model factory returns: the model, its parameters, and optionally its tokenizer."""

    model: GenerativeModel
    params: Any
    tokenizer: Any = None


@dataclass
class GenerateTextConfig:
    """Configuration for generating text from a list of prompts."""

    model_factory: str = ""
    """``module:callable`` returning a LoadedModel, e.g. ``my_project.models:load_tiny``."""
    tokenizer: Optional[str] = None
    """HF tokenizer name or path. Only used if the factory doesn't provide a tokenizer."""

    generation: GenerationConfig = field(default_factory=lambda: GenerationConfig(max_new_tokens=32))

    prompts: list[str] = field(default_factory=lambda: ["Four score and seven years ago, our"])

    batch_size: Optional[int] = None
    """If set together with sequence_length, compile once for that shape before generating."""
    sequence_length: Optional[int] = None

    log_dir: str = "logs"
    run_id: str = "generate_text"


def load_model(config: GenerateTextConfig) -> LoadedModel:
    if ":" not in config.model_factory:
        raise ValueError(f"model_factory must look like 'module:callable', got {config.model_factory!r}")

    module_name, fn_name = config.model_factory.split(":", 1)
    factory = getattr(importlib.import_module(module_name), fn_name)
    loaded: LoadedModel = factory()

    if loaded.tokenizer is None:
        if config.tokenizer is None:
            raise ValueError("Must specify a tokenizer or use a model factory that provides one")

        from transformers import AutoTokenizer

        loaded.tokenizer = AutoTokenizer.from_pretrained(config.tokenizer)

    return loaded


def main(config: GenerateTextConfig) -> list[str]:
    init_logging(config.log_dir, config.run_id)

    if not config.prompts:
        raise ValueError("No prompts given")

    loaded = load_model(config)

    compile_config = None
    if config.batch_size is not None or config.sequence_length is not None:
        compile_config = CompileConfig(batch_size=config.batch_size, sequence_length=config.sequence_length)

    generation = TextGeneration(
        loaded.model, loaded.params, loaded.tokenizer, config.generation, compile=compile_config
    )

    chunk_size = config.batch_size or len(config.prompts)
    texts = []
    for start in range(0, len(config.prompts), chunk_size):
        chunk = config.prompts[start : start + chunk_size]
        for prompt, output in zip(chunk, generation(chunk)):
            text = output["results"][0]["text"]
            logger.info(f"{prompt!r} -> {text!r}")
            print(text, flush=True)
            texts.append(text)

    return texts


if __name__ == "__main__":
    lockstep.config.main(main)()
