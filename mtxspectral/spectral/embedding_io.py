from __future__ import annotations

from pathlib import Path

import numpy as np
from safetensors.numpy import load_file, save_file

from .nystrom import SpectralEmbedding


EMBEDDING_FILENAME = "embedding.safetensors"
EMBEDDING_TEXT_FILENAME = "embedding_u.txt.gz"


def save_embedding(embedding: SpectralEmbedding, output_dir: Path) -> dict[str, Path]:
    """Write the tensors at full float64 precision plus a text copy of ``u``."""
    output_dir.mkdir(parents=True, exist_ok=True)
    tensors = {
        "u": np.ascontiguousarray(embedding.u, dtype=np.float64),
        "v": np.ascontiguousarray(embedding.v, dtype=np.float64),
        "singular_values": np.ascontiguousarray(embedding.singular_values, dtype=np.float64),
    }
    tensor_path = output_dir / EMBEDDING_FILENAME
    save_file(tensors, str(tensor_path), metadata={"format": "mtxspectral-embedding", "rank": str(embedding.rank)})

    text_path = output_dir / EMBEDDING_TEXT_FILENAME
    np.savetxt(text_path, embedding.u, fmt="%.17g", delimiter=" ")
    return {"embedding": tensor_path, "embedding_text": text_path}


def load_embedding(path: Path) -> SpectralEmbedding:
    if not path.exists():
        raise FileNotFoundError(f"Embedding file not found: {path}")
    tensors = load_file(str(path))
    missing = {"u", "v", "singular_values"} - set(tensors)
    if missing:
        raise ValueError(f"Embedding file {path} is missing tensors: {sorted(missing)}")
    return SpectralEmbedding(
        u=tensors["u"].astype(np.float64),
        v=tensors["v"].astype(np.float64),
        singular_values=tensors["singular_values"].astype(np.float64),
    )
