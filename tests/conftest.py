"""
Shared fixtures: a deterministic word-level tokenizer and stub backends.

`FakeTokenizer` splits text GPT-2 style (leading space kept on words and
punctuation, "\n\n" as one token) so boundary counting and context matching
behave like they do on a real byte-level BPE vocabulary, without downloads.
"""

import re
import threading
import time

import pytest
import torch

from textgen_guard.backends.base import Backend
from textgen_guard.config import ServerConfig

TOKEN_PATTERN = re.compile(r"\n\n|\n| ?\w+| ?[^\w\s]|\s")

EOS = "<|endoftext|>"
BASE_PIECES = [EOS, ".", "?", "!", "\n", "\n\n", " ", ","]


def pytest_addoption(parser):
    parser.addoption(
        "--run-e2e", action="store_true", default=False,
        help="run end-to-end tests that download a real model"
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="needs --run-e2e (downloads gpt2)")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


class FakeTokenizer:
    """Lossless word-level tokenizer with a vocabulary that grows on demand."""

    eos_token = EOS

    def __init__(self, corpus=()):
        self.pieces = []
        self.ids = {}
        for piece in BASE_PIECES:
            self._id(piece)
        for text in corpus:
            self.encode(text)

    def _id(self, piece):
        if piece not in self.ids:
            self.ids[piece] = len(self.pieces)
            self.pieces.append(piece)
        return self.ids[piece]

    @property
    def eos_token_id(self):
        return self.ids[EOS]

    @property
    def all_special_ids(self):
        return [self.eos_token_id]

    def encode(self, text, add_special_tokens=True):
        return [self._id(piece) for piece in TOKEN_PATTERN.findall(text)]

    def decode(self, ids, skip_special_tokens=False, clean_up_tokenization_spaces=None):
        if hasattr(ids, "tolist"):
            ids = ids.tolist()
        special = set(self.all_special_ids) if skip_special_tokens else set()
        return "".join(self.pieces[i] for i in ids if i not in special)

    def token_id(self, piece):
        return self.ids[piece]

    def __len__(self):
        return len(self.pieces)


class ScriptedBackend(Backend):
    """
    Stub model that tries to emit a fixed continuation token by token.

    Each step it runs the logits processor on a zero score row. If the next
    scripted token is still allowed it is emitted; otherwise END if allowed,
    otherwise the highest-scoring allowed ID. END or the end of the script
    stops generation.
    """

    def __init__(self, tokenizer, continuation="", model_id="scripted"):
        self.tokenizer = tokenizer
        self.model_id = model_id
        self.device = "cpu"
        self.script = tokenizer.encode(continuation, add_special_tokens=False)
        self.calls = []
        self.closed = False

    def generate(self, prompt, logits_processor=None, max_length=200,
                 num_beams=1, num_return_sequences=1, **kwargs):
        self.calls.append({"prompt": prompt, "max_length": max_length,
                           "num_beams": num_beams,
                           "num_return_sequences": num_return_sequences})
        eos = self.tokenizer.eos_token_id
        ids = self.tokenizer.encode(prompt)

        for wanted in self.script:
            if len(ids) >= max_length:
                break
            scores = torch.zeros((1, len(self.tokenizer)))
            if logits_processor is not None:
                scores = logits_processor(torch.tensor([ids]), scores)
            row = scores[0]
            if wanted < row.shape[0] and row[wanted] != float("-inf"):
                next_id = wanted
            elif row[eos] != float("-inf"):
                next_id = eos
            else:
                next_id = int(torch.argmax(row))
            if next_id == eos:
                break
            ids.append(next_id)

        text = self.tokenizer.decode(ids, skip_special_tokens=True)
        return [text] * num_return_sequences

    def get_tokenizer(self):
        return self.tokenizer

    def get_model_info(self):
        return {"model_id": self.model_id, "device": self.device,
                "vocab_size": len(self.tokenizer)}

    def close(self):
        self.closed = True


class InstrumentedBackend(ScriptedBackend):
    """ScriptedBackend that records how many generate calls overlap."""

    def __init__(self, tokenizer, continuation="", delay=0.05, gate=None):
        super().__init__(tokenizer, continuation)
        self.delay = delay
        self.gate = gate
        self.entered = threading.Event()
        self.active = 0
        self.max_active = 0
        self._counter_lock = threading.Lock()

    def generate(self, *args, **kwargs):
        with self._counter_lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        self.entered.set()
        try:
            if self.gate is not None:
                self.gate.wait(timeout=5)
            time.sleep(self.delay)
            return super().generate(*args, **kwargs)
        finally:
            with self._counter_lock:
                self.active -= 1


class FailingBackend(ScriptedBackend):
    def generate(self, *args, **kwargs):
        raise RuntimeError("device lost")


@pytest.fixture
def tokenizer():
    return FakeTokenizer(corpus=[
        "the quick brown fox jumps over the lazy dog",
        "Hello world. It was a sunny day.",
    ])


@pytest.fixture
def single_config():
    return ServerConfig(num_beams=1, num_return_sequences=1, max_length=64)
