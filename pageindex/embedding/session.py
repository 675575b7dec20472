"""Sequence encoder backed by an ONNX Runtime inference session."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping, Optional, Protocol, Sequence

import numpy as np
import onnxruntime as ort

from ..errors import InitializationError
from ..logging import get_logger

HIDDEN_STATE_OUTPUT = "last_hidden_state"
# onnxruntime severity levels: 0 verbose, 1 info, 2 warning, 3 error, 4 fatal.
_ERROR_SEVERITY = 3

logger = get_logger("session")


class Encoder(Protocol):
    """Anything that maps encoder feeds to a ``[batch, seq, hidden]`` array."""

    def run(self, feeds: Mapping[str, np.ndarray]) -> np.ndarray:
        ...


class OnnxEncoder:
    """Wraps ``onnxruntime.InferenceSession`` for a BERT-style sentence encoder.

    Not safe for concurrent ``run`` calls; ``EmbeddingEngine`` serialises access.
    """

    def __init__(
        self,
        model_path: Path,
        *,
        intra_op_threads: int = 1,
        providers: Optional[Sequence[str]] = None,
    ) -> None:
        model_path = Path(model_path).expanduser()
        if not model_path.is_file():
            raise InitializationError(
                f"ONNX model not found at {model_path}. Download the encoder model first."
            )

        options = ort.SessionOptions()
        options.graph_optimization_level = ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        options.enable_cpu_mem_arena = False
        options.enable_mem_pattern = False
        options.intra_op_num_threads = max(1, intra_op_threads)
        options.log_severity_level = _ERROR_SEVERITY
        options.logid = "pageindex-encoder"

        try:
            self._session = ort.InferenceSession(
                str(model_path),
                sess_options=options,
                providers=list(providers or ["CPUExecutionProvider"]),
            )
        except Exception as exc:
            raise InitializationError(f"Failed to load ONNX model {model_path}: {exc}") from exc

        self.model_path = model_path
        self.input_names = [node.name for node in self._session.get_inputs()]
        output_names = [node.name for node in self._session.get_outputs()]
        self.output_name = HIDDEN_STATE_OUTPUT if HIDDEN_STATE_OUTPUT in output_names else output_names[0]
        logger.info(
            "Loaded encoder %s (inputs=%s output=%s)",
            model_path.name,
            ", ".join(self.input_names),
            self.output_name,
        )

    def run(self, feeds: Mapping[str, np.ndarray]) -> np.ndarray:
        if self._session is None:
            raise InitializationError("Encoder session has been closed")
        accepted = {name: feeds[name] for name in self.input_names if name in feeds}
        missing = [name for name in self.input_names if name not in feeds]
        if missing:
            raise ValueError(f"Encoder requires inputs that were not provided: {', '.join(missing)}")
        (hidden_state,) = self._session.run([self.output_name], accepted)
        return np.asarray(hidden_state)

    def close(self) -> None:
        self._session = None


__all__ = ["Encoder", "HIDDEN_STATE_OUTPUT", "OnnxEncoder"]
