import json

import pytest
from pydantic import ValidationError

from apps.pipeline.errors import ApiKeyNotConfiguredError, ConfigurationError
from config import DEFAULT_SYSTEM_PROMPT, JarvisConfig, require_api_key


def test_defaults():
    config = JarvisConfig()
    assert config.groq.model == "llama-3.3-70b-versatile"
    assert config.groq.temperature == 1.0
    assert config.groq.top_p == 1.0
    assert config.groq.max_tokens == 250
    assert config.voice.max_chars == 2000
    assert config.voice.sentence_cut_ratio == 0.7
    assert config.voice.word_cut_ratio == 0.8
    assert config.voice.speech_format == "PlainText"
    assert config.system_prompt == DEFAULT_SYSTEM_PROMPT


def test_load_missing_file_returns_defaults(tmp_path):
    assert JarvisConfig.load(tmp_path / "absent.json") == JarvisConfig()


def test_load_reads_partial_json(tmp_path):
    path = tmp_path / "jarvis.json"
    path.write_text(json.dumps({"groq": {"model": "llama-3.1-8b-instant"}, "voice": {"max_chars": 900}}), encoding="utf-8")

    config = JarvisConfig.load(path)

    assert config.groq.model == "llama-3.1-8b-instant"
    assert config.groq.top_p == 1.0
    assert config.voice.max_chars == 900


def test_load_invalid_json_falls_back_to_defaults(tmp_path):
    path = tmp_path / "jarvis.json"
    path.write_text("{not json", encoding="utf-8")
    assert JarvisConfig.load(path) == JarvisConfig()


def test_from_env_applies_overrides_over_file(tmp_path):
    path = tmp_path / "jarvis.json"
    path.write_text(json.dumps({"groq": {"model": "from-file", "top_p": 0.5}}), encoding="utf-8")

    config = JarvisConfig.from_env({
        "JARVIS_CONFIG_PATH": str(path),
        "GROQ_MODEL": "from-env",
        "GROQ_TEMPERATURE": "0.3",
        "GROQ_MAX_TOKENS": "512",
        "JARVIS_SPEECH_FORMAT": "SSML",
        "JARVIS_SSML_VOICE": "",
    })

    assert config.groq.model == "from-env"
    assert config.groq.top_p == 0.5
    assert config.groq.temperature == 0.3
    assert config.groq.max_tokens == 512
    assert config.voice.speech_format == "SSML"
    assert config.voice.ssml_voice is None


def test_from_env_rejects_invalid_values():
    with pytest.raises(ValidationError):
        JarvisConfig.from_env({"GROQ_TEMPERATURE": "hot"})
    with pytest.raises(ValidationError):
        JarvisConfig.from_env({"JARVIS_SPEECH_FORMAT": "MP3"})


def test_merge_patch_leaves_other_fields_intact():
    config = JarvisConfig().merge_patch({"groq": {"temperature": 0.7}})
    assert config.groq.temperature == 0.7
    assert config.groq.model == "llama-3.3-70b-versatile"
    assert config.voice == JarvisConfig().voice


def test_require_api_key():
    assert require_api_key({"GROQ_API_KEY": " gsk_test "}) == "gsk_test"
    with pytest.raises(ApiKeyNotConfiguredError):
        require_api_key({})
    with pytest.raises(ConfigurationError):
        require_api_key({"GROQ_API_KEY": "   "})
