"""
Unit tests for the completion orchestrator.
"""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from textgen_guard import GenerationResult, TextGenerator
from textgen_guard.config import ServerConfig
from textgen_guard.exceptions import GenerationError, GeneratorBusyError
from textgen_guard.generator import strip_prompt

from conftest import FailingBackend, FakeTokenizer, InstrumentedBackend, ScriptedBackend

CONTINUATION = " world. It was a sunny day."


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


class TestStripPrompt:
    """Test prompt removal from returned sequences."""

    def test_strips_by_character_length(self):
        assert strip_prompt(["Hello world", "Hello there"], "Hello") == [" world", " there"]

    def test_prompt_only(self):
        assert strip_prompt(["Hello"], "Hello") == [""]

    def test_mismatch_logged_and_sliced(self, caplog):
        with caplog.at_level(logging.WARNING, logger="textgen_guard.generator"):
            completions = strip_prompt(["Hallo world"], "Hello")

        assert completions == [" world"]
        assert "does not start with the prompt" in caplog.text


class TestGenerate:
    """Test constrained generation through a scripted backend."""

    def test_unconstrained(self, tokenizer, single_config):
        backend = ScriptedBackend(tokenizer, CONTINUATION)
        generator = TextGenerator(backend, single_config)

        result = generator.generate("Hello")

        assert isinstance(result, GenerationResult)
        assert result.completions == [CONTINUATION]
        assert result.prompt_tokens == 1
        assert result.decoding_steps > 0

    def test_sentence_cap(self, tokenizer, single_config):
        backend = ScriptedBackend(tokenizer, CONTINUATION)
        generator = TextGenerator(backend, single_config)

        result = generator.generate("Hello", generate_sentences=1)

        assert result.completions == [" world."]

    def test_zero_cap_returns_empty_completion(self, tokenizer, single_config):
        backend = ScriptedBackend(tokenizer, CONTINUATION)
        generator = TextGenerator(backend, single_config)

        result = generator.generate("Hello", generate_paragraphs=0)

        assert result.completions == [""]

    def test_context_grounding(self, tokenizer, single_config):
        backend = ScriptedBackend(tokenizer, " jumps over")
        generator = TextGenerator(backend, single_config)

        result = generator.generate("The fox", context=["the quick brown fox jumps"])

        # " jumps" ends the snippet, so only END may follow
        assert result.completions == [" jumps"]

    def test_generation_settings_forwarded(self, tokenizer):
        config = ServerConfig(num_beams=3, num_return_sequences=3, max_length=50)
        backend = ScriptedBackend(tokenizer, CONTINUATION)
        generator = TextGenerator(backend, config)

        result = generator.generate("Hello", generate_sentences=1)

        assert result.completions == [" world."] * 3
        assert backend.calls[-1] == {
            "prompt": "Hello",
            "max_length": 50,
            "num_beams": 3,
            "num_return_sequences": 3,
        }

    def test_max_length_truncates(self, tokenizer):
        config = ServerConfig(num_beams=1, max_length=3)
        generator = TextGenerator(ScriptedBackend(tokenizer, CONTINUATION), config)

        result = generator.generate("Hello")

        assert result.completions == [" world."]

    @pytest.mark.parametrize("kwargs", [
        {"prompt": ""},
        {"prompt": "Hello", "generate_sentences": -1},
        {"prompt": "Hello", "generate_paragraphs": -2},
    ])
    def test_invalid_arguments(self, tokenizer, single_config, kwargs):
        generator = TextGenerator(ScriptedBackend(tokenizer), single_config)

        with pytest.raises(ValueError):
            generator.generate(**kwargs)

    def test_backend_failure_wrapped(self, tokenizer, single_config):
        generator = TextGenerator(FailingBackend(tokenizer), single_config)

        with pytest.raises(GenerationError) as exc_info:
            generator.generate("Hello")

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert generator.busy is False

        # the lock was released, so the next call fails the same way instead of hanging
        with pytest.raises(GenerationError):
            generator.generate("Hello")

    def test_custom_detector_factory(self, tokenizer, single_config):
        from textgen_guard.decoding import BoundaryCounts, BoundaryDetector

        class AlwaysOneSentence(BoundaryDetector):
            def detect_boundaries(self, text):
                return BoundaryCounts(sentences=1, paragraphs=0)

        generator = TextGenerator(
            ScriptedBackend(tokenizer, CONTINUATION),
            single_config,
            detector_factory=lambda tok, tokens: AlwaysOneSentence(),
        )

        assert generator.generate("Hello", generate_sentences=1).completions == [""]

    def test_boundary_detection_failure_wrapped(self, tokenizer, single_config):
        from textgen_guard.decoding import BoundaryDetector

        class BrokenDetector(BoundaryDetector):
            def detect_boundaries(self, text):
                raise RuntimeError("cleanup exploded")

        generator = TextGenerator(
            ScriptedBackend(tokenizer, CONTINUATION),
            single_config,
            detector_factory=lambda tok, tokens: BrokenDetector(),
        )

        with pytest.raises(GenerationError) as exc_info:
            generator.generate("Hello", generate_sentences=1)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert generator.busy is False
        assert generator.waiting == 0

    def test_tokenizer_failure_mid_step_wrapped(self, single_config):
        class FlakyTokenizer(FakeTokenizer):
            broken = False

            def encode(self, text, add_special_tokens=True):
                # the boundary detector re-tokenizes without special tokens
                if self.broken and not add_special_tokens:
                    raise RuntimeError("tokenizer crashed")
                return super().encode(text, add_special_tokens)

        tokenizer = FlakyTokenizer(corpus=["Hello world. It was a sunny day."])
        generator = TextGenerator(ScriptedBackend(tokenizer, CONTINUATION), single_config)
        tokenizer.broken = True

        with pytest.raises(GenerationError):
            generator.generate("Hello", generate_sentences=1)
        assert generator.busy is False

        tokenizer.broken = False
        assert generator.generate("Hello", generate_sentences=1).completions == [" world."]

    def test_sentence_cap_after_short_word(self, tokenizer, single_config):
        generator = TextGenerator(ScriptedBackend(tokenizer, " Bob. He left."), single_config)

        assert generator.generate("I met", generate_sentences=1).completions == [" Bob."]


class TestConcurrency:
    """Test single-flight access to the shared model."""

    def test_generations_never_overlap(self, tokenizer, single_config):
        backend = InstrumentedBackend(tokenizer, CONTINUATION, delay=0.05)
        generator = TextGenerator(backend, single_config)

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(generator.generate, "Hello", None, 1) for _ in range(4)]
            results = [f.result(timeout=10) for f in futures]

        assert backend.max_active == 1
        assert all(r.completions == [" world."] for r in results)
        assert generator.waiting == 0
        assert generator.busy is False

    def test_busy_when_no_waiters_allowed(self, tokenizer):
        gate = threading.Event()
        backend = InstrumentedBackend(tokenizer, CONTINUATION, delay=0, gate=gate)
        generator = TextGenerator(backend, ServerConfig(num_beams=1, max_pending_requests=0))

        with ThreadPoolExecutor(max_workers=1) as pool:
            first = pool.submit(generator.generate, "Hello")
            assert backend.entered.wait(timeout=5)

            with pytest.raises(GeneratorBusyError):
                generator.generate("Hello")

            gate.set()
            assert first.result(timeout=10).completions == [CONTINUATION]

    def test_idle_generator_accepts_with_zero_limit(self, tokenizer):
        generator = TextGenerator(
            ScriptedBackend(tokenizer, CONTINUATION),
            ServerConfig(num_beams=1, max_pending_requests=0),
        )

        assert generator.generate("Hello", generate_sentences=1).completions == [" world."]

    def test_waiters_up_to_limit(self, tokenizer):
        gate = threading.Event()
        backend = InstrumentedBackend(tokenizer, CONTINUATION, delay=0, gate=gate)
        generator = TextGenerator(backend, ServerConfig(num_beams=1, max_pending_requests=1))

        with ThreadPoolExecutor(max_workers=2) as pool:
            first = pool.submit(generator.generate, "Hello")
            assert backend.entered.wait(timeout=5)
            second = pool.submit(generator.generate, "Hello")
            wait_for(lambda: generator.waiting == 1)

            with pytest.raises(GeneratorBusyError):
                generator.generate("Hello")

            gate.set()
            first.result(timeout=10)
            second.result(timeout=10)

        assert generator.waiting == 0


class TestLifecycle:
    """Test info and shutdown."""

    def test_get_info(self, tokenizer, single_config):
        generator = TextGenerator(ScriptedBackend(tokenizer), single_config)
        info = generator.get_info()

        assert info["model_id"] == "scripted"
        assert info["busy"] is False
        assert info["waiting"] == 0
        assert info["num_beams"] == 1

    def test_close_releases_backend(self, tokenizer, single_config):
        backend = ScriptedBackend(tokenizer, CONTINUATION)
        generator = TextGenerator(backend, single_config)

        generator.close()
        generator.close()

        assert backend.closed is True
        with pytest.raises(GenerationError):
            generator.generate("Hello")
