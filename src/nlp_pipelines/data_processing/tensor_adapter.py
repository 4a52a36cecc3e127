"""Conversion between tokenized inputs and engine tensors.

Inputs go in as uniform padded ``[batch, sequence]`` tensors. Outputs come back
irregular: one vector per real token of each input, padding positions dropped.
"""

from typing import Dict, List, Sequence

import numpy as np

from ..models.exceptions import ShapeError
from ..models.inference.inference_dataclasses import TensorSpec
from .dataset_types import TokenizedInput

# input name -> TokenizedInput attribute
INPUT_FIELDS = {
    "input_ids": "token_ids",
    "attention_mask": "attention_mask",
    "token_type_ids": "type_ids",
}


def _check_dimension(spec: TensorSpec, axis: int, expected: int, what: str) -> None:
    declared = spec.shape[axis]
    if declared is not None and declared != expected:
        raise ShapeError(
            f"input '{spec.name}' declares {what} {declared} but the batch has {expected}"
        )


def build_input_tensors(
    inputs: Sequence[TokenizedInput],
    input_specs: Sequence[TensorSpec],
    max_sequence_length: int
) -> Dict[str, np.ndarray]:
    """Build padded engine input tensors for a batch.

    Args:
        inputs: Tokenized inputs of the batch, in order
        input_specs: Inputs declared by the loaded model
        max_sequence_length: Padded sequence length of the batch

    Returns:
        Mapping of input name to a ``[batch, max_sequence_length]`` array

    Raises:
        ShapeError: When tokenization produced nothing or a declared input
            cannot be filled with the batch's shape
    """
    if not inputs:
        raise ShapeError("tokenization produced no inputs")
    empty = [i for i, tokenized in enumerate(inputs) if len(tokenized) == 0]
    if empty:
        raise ShapeError(f"tokenization produced no tokens for inputs {empty}")
    if max_sequence_length < max(len(t) for t in inputs):
        raise ShapeError(
            f"max sequence length {max_sequence_length} is shorter than the longest input"
        )

    batch_size = len(inputs)
    tensors = {}
    for spec in input_specs:
        if spec.name not in INPUT_FIELDS:
            raise ShapeError(f"model input '{spec.name}' is not supported")
        if spec.rank != 2:
            raise ShapeError(
                f"input '{spec.name}' must be two dimensional (batch, sequence), got rank {spec.rank}"
            )
        _check_dimension(spec, 0, batch_size, "batch size")
        _check_dimension(spec, 1, max_sequence_length, "sequence length")

        tensor = np.zeros((batch_size, max_sequence_length), dtype=spec.numpy_dtype)
        field_name = INPUT_FIELDS[spec.name]
        for row, tokenized in enumerate(inputs):
            values = getattr(tokenized, field_name)
            tensor[row, :len(values)] = values
        tensors[spec.name] = tensor
    return tensors


def extract_logits(
    output: np.ndarray,
    batch_size: int,
    max_sequence_length: int,
    logit_width: int,
    token_counts: Sequence[int]
) -> List[np.ndarray]:
    """Split a ``batch x sequence x width`` output into per-input token vectors.

    Args:
        output: Engine output, any shape holding the row-major values
        batch_size: Number of inputs in the batch
        max_sequence_length: Padded sequence length of the batch
        logit_width: Length of each per-token vector
        token_counts: True (unpadded) token count of every input

    Returns:
        One ``(token_count, logit_width)`` array per input; padding rows are dropped
    """
    flat = np.asarray(output, dtype=np.float32).reshape(-1)
    expected = batch_size * max_sequence_length * logit_width
    if flat.size != expected:
        raise ShapeError(
            f"output has {flat.size} values, expected {batch_size} x {max_sequence_length} x {logit_width}"
        )
    if len(token_counts) != batch_size:
        raise ShapeError(f"got {len(token_counts)} token counts for a batch of {batch_size}")

    cube = flat.reshape(batch_size, max_sequence_length, logit_width)
    vectors = []
    for i, count in enumerate(token_counts):
        if count > max_sequence_length:
            raise ShapeError(
                f"input {i} has {count} tokens, more than the sequence length {max_sequence_length}"
            )
        vectors.append(cube[i, :count, :].copy())
    return vectors


def extract_rows(output: np.ndarray, batch_size: int, width: int) -> List[np.ndarray]:
    """Split a ``batch x width`` output into one vector per input."""
    flat = np.asarray(output, dtype=np.float32).reshape(-1)
    if flat.size != batch_size * width:
        raise ShapeError(
            f"output has {flat.size} values, expected {batch_size} x {width}"
        )
    return [row.copy() for row in flat.reshape(batch_size, width)]
