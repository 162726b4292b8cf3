"""
HuggingFace Transformers backend.

Owns one causal language model and its tokenizer, both resolved from a
pretrained resource identifier and cached by `transformers` on first use.
Generation is beam search with an optional per-step logits processor; every
returned sequence is decoded in full, prompt included.

Usage:
    ```python
    from textgen_guard.backends import TransformersBackend

    backend = TransformersBackend("gpt2", device="cpu")

    sequences = backend.generate(
        prompt="Once upon a time",
        logits_processor=processor,
        max_length=200,
        num_beams=5,
        num_return_sequences=5
    )
    # ["Once upon a time, ...", ...]
    ```
"""

import logging
from typing import Any, Dict, List, Optional

import torch

from textgen_guard.backends.base import Backend
from textgen_guard.backends.device_utils import default_dtype, resolve_device
from textgen_guard.exceptions import ModelLoadError

logger = logging.getLogger(__name__)


class TransformersBackend(Backend):
    """
    Backend for HuggingFace causal LMs.

    Attributes:
        model_id: Pretrained resource identifier
        device: Device the model was placed on
        torch_dtype: Weights dtype
        model: AutoModelForCausalLM instance (None after close)
        tokenizer: AutoTokenizer instance (None after close)
    """

    def __init__(
        self,
        model_id: str,
        device: Optional[str] = None,
        torch_dtype: Optional[torch.dtype] = None,
        **model_kwargs
    ):
        """
        Load the tokenizer, then the model.

        Args:
            model_id: Pretrained resource identifier (e.g., "gpt2")
            device: "mps", "cuda", "cpu", or None to auto-detect
            torch_dtype: Weights dtype (None: float16 on GPU, float32 on CPU)
            **model_kwargs: Forwarded to `AutoModelForCausalLM.from_pretrained`

        Raises:
            ModelLoadError: If either resource cannot be loaded
        """
        self.model_id = model_id
        try:
            self.device = resolve_device(device)
        except ValueError as e:
            raise ModelLoadError(str(e)) from e
        self.torch_dtype = torch_dtype or default_dtype(self.device)

        logger.info(f"Loading {model_id} on {self.device} ({self.torch_dtype})")

        self.tokenizer = self._load_tokenizer()
        self.model = self._load_model(model_kwargs)

    def _load_tokenizer(self) -> Any:
        from transformers import AutoTokenizer

        try:
            tokenizer = AutoTokenizer.from_pretrained(self.model_id)
        except Exception as e:
            logger.error(f"Tokenizer load failed for {self.model_id}: {e}")
            raise ModelLoadError(f"Tokenizer failed to load: {self.model_id}") from e

        if tokenizer.eos_token_id is None:
            raise ModelLoadError(f"Tokenizer for {self.model_id} defines no end-of-sequence token")

        # beam search pads finished beams
        if tokenizer.pad_token is None:
            tokenizer.pad_token = tokenizer.eos_token

        return tokenizer

    def _load_model(self, model_kwargs: Dict[str, Any]) -> Any:
        from transformers import AutoModelForCausalLM

        kwargs = {'torch_dtype': self.torch_dtype, 'low_cpu_mem_usage': True}
        kwargs.update(model_kwargs)

        try:
            model = AutoModelForCausalLM.from_pretrained(self.model_id, **kwargs)
            model.to(torch.device(self.device))
            model.eval()
        except Exception as e:
            logger.error(f"Model load failed for {self.model_id}: {e}")
            raise ModelLoadError(f"Model failed to load: {self.model_id}") from e

        logger.info(f"Model {self.model_id} ready")
        return model

    def generate(
        self,
        prompt: str,
        logits_processor: Optional[Any] = None,
        max_length: int = 200,
        num_beams: int = 1,
        num_return_sequences: int = 1,
        **kwargs
    ) -> List[str]:
        """
        Run beam search on one prompt.

        Returns:
            List[str]: `num_return_sequences` decoded sequences, each starting
                       with the prompt, special tokens removed
        """
        from transformers import LogitsProcessorList

        encoded = self.tokenizer(prompt, return_tensors="pt").to(self.device)

        gen_kwargs = {
            'max_length': max_length,
            'num_beams': num_beams,
            'num_return_sequences': num_return_sequences,
            'do_sample': False,
            'pad_token_id': self.tokenizer.pad_token_id,
            'eos_token_id': self.tokenizer.eos_token_id,
        }
        if logits_processor is not None:
            gen_kwargs['logits_processor'] = LogitsProcessorList([logits_processor])
        gen_kwargs.update(kwargs)

        with torch.no_grad():
            output_ids = self.model.generate(**encoded, **gen_kwargs)

        logger.debug(
            f"Beam search returned {output_ids.shape[0]} sequence(s) of up to "
            f"{output_ids.shape[1]} tokens"
        )

        return self.tokenizer.batch_decode(
            output_ids,
            skip_special_tokens=True,
            clean_up_tokenization_spaces=False,
        )

    def get_tokenizer(self) -> Any:
        return self.tokenizer

    def get_model_info(self) -> Dict[str, Any]:
        info = {
            'model_id': self.model_id,
            'device': self.device,
            'dtype': str(self.torch_dtype),
            'backend': 'transformers',
        }
        if self.tokenizer is not None:
            info['vocab_size'] = len(self.tokenizer)

        config = getattr(self.model, 'config', None)
        if config is not None and hasattr(config, 'max_position_embeddings'):
            info['context_length'] = config.max_position_embeddings

        return info

    def close(self) -> None:
        """Drop the model and tokenizer and release cached GPU memory."""
        self.model = None
        self.tokenizer = None
        if self.device == "cuda":
            torch.cuda.empty_cache()
        logger.info(f"Released {self.model_id}")
