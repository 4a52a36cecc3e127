"""Token classification aggregation: per-token scores to (grouped) entities.

Steps:
1. gather pre-entities from the non-special tokens
2. pick each token's label by argmax over its scores
3. with the SIMPLE strategy, merge adjacent tokens following BIO prefixes
4. drop ignored and empty labels
"""

from dataclasses import replace
from typing import Collection, Dict, List, Sequence, Tuple

import numpy as np

from ..data_processing.dataset_types import TokenizedInput
from ..data_processing.load_tokenizer import Tokenizer
from ..models.exceptions import AggregationError
from ..utils.math_utils import argmax, mean
from .pipeline_dataclasses import Entity

AGGREGATION_STRATEGIES = ("NONE", "SIMPLE")


def gather_pre_entities(tokenized: TokenizedInput, scores: Sequence[np.ndarray]) -> List[Entity]:
    """One unlabelled entity per real token, special tokens excluded.

    A token counts as a subword when its token string and the source text it
    covers differ in length.
    """
    pre_entities = []
    for j, token_scores in enumerate(scores):
        if tokenized.special_tokens_mask[j]:
            continue
        start, end = tokenized.offsets[j]
        word = tokenized.raw[start:end]
        pre_entities.append(Entity(
            entity="",
            score=0.0,
            scores=[float(s) for s in token_scores],
            index=j,
            word=word,
            token_id=int(tokenized.token_ids[j]),
            start=start,
            end=end,
            is_subword=len(tokenized.tokens[j]) != len(word),
        ))
    return pre_entities


def select_labels(pre_entities: Sequence[Entity], id2label: Dict[int, str]) -> List[Entity]:
    """Label every pre-entity with its highest scoring class."""
    entities = []
    for pre_entity in pre_entities:
        index, score = argmax(pre_entity.scores)
        label = id2label.get(index)
        if label is None:
            raise AggregationError(
                f"could not determine entity type for token {pre_entity.index} "
                f"('{pre_entity.word}'), predicted index {index} is not in the label map"
            )
        entities.append(replace(pre_entity, entity=label, score=score))
    return entities


def split_tag(label: str) -> Tuple[str, str]:
    """Split a BIO label into its prefix and tag; unprefixed labels count as "I"."""
    if label.startswith("B-"):
        return "B", label[2:]
    if label.startswith("I-"):
        return "I", label[2:]
    return "I", label


def group_sub_entities(members: Sequence[Entity], tokenizer: Tokenizer) -> Entity:
    """Merge consecutive entities of one group into a single span."""
    _, tag = split_tag(members[0].entity)
    return Entity(
        entity=tag,
        score=mean([m.score for m in members]),
        index=members[0].index,
        word=tokenizer.decode([m.token_id for m in members], skip_special_tokens=False),
        token_id=members[0].token_id,
        start=members[0].start,
        end=members[-1].end,
    )


def group_entities(entities: Sequence[Entity], tokenizer: Tokenizer) -> List[Entity]:
    """Group adjacent entities: a new group starts on a tag change or a "B" prefix."""
    groups = []
    current: List[Entity] = []
    for entity in entities:
        if not current:
            current.append(entity)
            continue
        prefix, tag = split_tag(entity.entity)
        _, last_tag = split_tag(current[-1].entity)
        if tag == last_tag and prefix != "B":
            current.append(entity)
        else:
            groups.append(group_sub_entities(current, tokenizer))
            current = [entity]
    if current:
        groups.append(group_sub_entities(current, tokenizer))
    return groups


def filter_entities(entities: Sequence[Entity], ignore_labels: Collection[str]) -> List[Entity]:
    return [e for e in entities if e.entity and e.entity not in ignore_labels]


def aggregate(
    tokenized: TokenizedInput,
    scores: Sequence[np.ndarray],
    *,
    id2label: Dict[int, str],
    strategy: str,
    ignore_labels: Collection[str],
    tokenizer: Tokenizer
) -> List[Entity]:
    """Turn one input's per-token scores into entities.

    Args:
        tokenized: The tokenized input the scores belong to
        scores: One normalized score vector per real token
        id2label: Class index to label
        strategy: "NONE" (one entity per token) or "SIMPLE" (BIO groups)
        ignore_labels: Labels removed from the result
        tokenizer: Tokenizer used to decode grouped words

    Raises:
        AggregationError: For unmapped label indices or unknown strategies
    """
    if strategy not in AGGREGATION_STRATEGIES:
        raise AggregationError(
            f"aggregation strategy {strategy} is not implemented, use one of {', '.join(AGGREGATION_STRATEGIES)}"
        )
    entities = select_labels(gather_pre_entities(tokenized, scores), id2label)
    if strategy == "SIMPLE":
        entities = group_entities(entities, tokenizer)
    return filter_entities(entities, ignore_labels)
