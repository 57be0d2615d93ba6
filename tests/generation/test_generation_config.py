import pytest

from lockstep.generation import ConfigError, GenerationConfig, LengthFn


class _ModelDefaults:
    bos_token_id = 1
    eos_token_id = 2
    pad_token_id = 0


def test_max_new_tokens_is_relative():
    fn = GenerationConfig(max_new_tokens=3).max_length_fn
    assert fn == LengthFn(3, relative=True)
    assert fn(2) == 5


def test_max_length_is_absolute():
    fn = GenerationConfig(max_length=10).max_length_fn
    assert fn(2) == 10
    assert fn(7) == 10


def test_neither_max_raises():
    with pytest.raises(ConfigError, match="neither"):
        GenerationConfig().max_length_fn


def test_both_max_raises():
    with pytest.raises(ConfigError, match="both"):
        GenerationConfig(max_new_tokens=3, max_length=10).max_length_fn


def test_min_length_fn():
    assert GenerationConfig(max_new_tokens=1).min_length_fn is None
    assert GenerationConfig(max_new_tokens=1, min_new_tokens=2).min_length_fn(3) == 5
    assert GenerationConfig(max_new_tokens=1, min_length=4).min_length_fn(3) == 4

    with pytest.raises(ConfigError):
        GenerationConfig(max_new_tokens=1, min_new_tokens=2, min_length=4).min_length_fn


def test_with_model_defaults_only_fills_unset_ids():
    config = GenerationConfig(max_new_tokens=3, eos_token_id=5).with_model_defaults(_ModelDefaults())

    assert config.eos_token_id == 5
    assert config.bos_token_id == 1
    assert config.pad_token_id == 0
    assert config.forced_bos_token_id is None


def test_with_model_defaults_ignores_missing_attributes():
    config = GenerationConfig(max_new_tokens=3)
    assert config.with_model_defaults(object()) is config


def test_decoder_start_falls_back_to_bos():
    assert GenerationConfig(bos_token_id=1).resolved_decoder_start_token_id == 1
    assert GenerationConfig(bos_token_id=1, decoder_start_token_id=4).resolved_decoder_start_token_id == 4
    assert GenerationConfig().resolved_decoder_start_token_id is None


def test_validate():
    config = GenerationConfig(max_new_tokens=3, pad_token_id=0)
    assert config.validate() is config

    with pytest.raises(ConfigError):
        GenerationConfig(max_new_tokens=3).validate()

    with pytest.raises(ConfigError):
        GenerationConfig(max_new_tokens=0, pad_token_id=0).validate()

    with pytest.raises(ConfigError):
        GenerationConfig(max_new_tokens=3, min_new_tokens=-1, pad_token_id=0).validate()

    with pytest.raises(ConfigError):
        GenerationConfig(max_new_tokens=3, pad_token_id=0, eos_token_id=-2).validate()

    with pytest.raises(ConfigError):
        GenerationConfig(max_length=3, max_new_tokens=3, pad_token_id=0).validate()


def test_config_error_is_value_error():
    with pytest.raises(ValueError):
        GenerationConfig().max_length_fn
