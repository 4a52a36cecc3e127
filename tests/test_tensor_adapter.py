import numpy as np
import pytest

from nlp_pipelines.data_processing.load_tokenizer import TokenizerOptions
from nlp_pipelines.data_processing.tensor_adapter import build_input_tensors, extract_logits, extract_rows
from nlp_pipelines.models.exceptions import ShapeError
from nlp_pipelines.models.inference.inference_dataclasses import TensorSpec

SPECS = [
    TensorSpec("input_ids", (None, None)),
    TensorSpec("attention_mask", (None, None)),
    TensorSpec("token_type_ids", (None, None), "int32"),
]


@pytest.fixture
def inputs(tokenizer):
    options = TokenizerOptions()
    return [tokenizer.encode("one", options), tokenizer.encode("one two three", options)]


def test_inputs_are_padded_to_batch_length(inputs):
    tensors = build_input_tensors(inputs, SPECS, 5)

    assert set(tensors) == {"input_ids", "attention_mask", "token_type_ids"}
    assert tensors["input_ids"].shape == (2, 5)
    assert tensors["input_ids"].dtype == np.int64
    assert tensors["token_type_ids"].dtype == np.int32
    assert tensors["attention_mask"].tolist() == [[1, 1, 1, 0, 0], [1, 1, 1, 1, 1]]
    assert tensors["input_ids"][0, 3:].tolist() == [0, 0]


def test_unsupported_input_name(inputs):
    with pytest.raises(ShapeError, match="pixel_values"):
        build_input_tensors(inputs, [TensorSpec("pixel_values", (None, None))], 5)


def test_input_rank_must_be_two(inputs):
    with pytest.raises(ShapeError, match="rank 3"):
        build_input_tensors(inputs, [TensorSpec("input_ids", (None, None, None))], 5)


def test_static_dimension_mismatch(inputs):
    with pytest.raises(ShapeError, match="sequence length 128"):
        build_input_tensors(inputs, [TensorSpec("input_ids", (None, 128))], 5)


def test_empty_batch_is_rejected():
    with pytest.raises(ShapeError, match="no inputs"):
        build_input_tensors([], SPECS, 0)


def test_short_max_sequence_length(inputs):
    with pytest.raises(ShapeError, match="shorter than the longest input"):
        build_input_tensors(inputs, SPECS, 3)


def test_extract_logits_drops_padding():
    output = np.arange(2 * 4 * 3, dtype=np.float32).reshape(2, 4, 3)
    vectors = extract_logits(output, 2, 4, 3, [2, 4])

    assert [v.shape for v in vectors] == [(2, 3), (4, 3)]
    np.testing.assert_array_equal(vectors[0], output[0, :2])
    np.testing.assert_array_equal(vectors[1], output[1])


def test_extract_logits_returns_copies():
    output = np.zeros((1, 2, 2), dtype=np.float32)
    vectors = extract_logits(output, 1, 2, 2, [2])
    output[0, 0, 0] = 9.0
    assert vectors[0][0, 0] == 0.0


def test_extract_logits_size_mismatch():
    with pytest.raises(ShapeError, match="expected 2 x 4 x 3"):
        extract_logits(np.zeros((2, 4, 2)), 2, 4, 3, [4, 4])


def test_extract_logits_token_count_too_large():
    with pytest.raises(ShapeError, match="more than the sequence length"):
        extract_logits(np.zeros((1, 2, 2)), 1, 2, 2, [3])


def test_extract_rows():
    rows = extract_rows(np.array([[1.0, 2.0], [3.0, 4.0]]), 2, 2)
    assert [r.tolist() for r in rows] == [[1.0, 2.0], [3.0, 4.0]]
    with pytest.raises(ShapeError):
        extract_rows(np.zeros((2, 3)), 2, 2)
