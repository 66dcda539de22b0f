"""Entity reconciliation for multi-model and two-pass extraction.

Multi-model runs are merged deterministically: the same inputs in the same
model order always produce the same merged list.

Strategy:
- Two entities match when their types are equal and either lowercased content
  contains the first 50 lowercased characters of the other
- A match keeps the earliest model's content, the highest confidence and the
  first non-empty provenance, and records every agreeing model
- Unmatched entities are appended in model order
"""

from typing import Any, Dict, List, Sequence, Tuple

from pydantic import ValidationError as SchemaValidationError

from app.schemas.pipeline import ExtractedEntity
from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

MATCH_PREFIX_LENGTH = 50
DEDUPE_PREFIX_LENGTH = 100

PROVENANCE_FIELDS = ("source_quote", "source_speaker", "source_timestamp", "structured_data")


def _prefix(entity: ExtractedEntity, length: int) -> str:
    return entity.content.strip().lower()[:length]


def entities_match(left: ExtractedEntity, right: ExtractedEntity) -> bool:
    if left.type.strip().upper() != right.type.strip().upper():
        return False
    left_text = left.content.strip().lower()
    right_text = right.content.strip().lower()
    if not left_text or not right_text:
        return False
    return (
        left_text[:MATCH_PREFIX_LENGTH] in right_text
        or right_text[:MATCH_PREFIX_LENGTH] in left_text
    )


def merge_model_results(runs: Sequence[Tuple[str, List[ExtractedEntity]]]) -> List[ExtractedEntity]:
    """Merge per-model entity lists in the given model order.

    Args:
        runs: (model name, entities) pairs in the configured model order

    Returns:
        Merged entities; ``found_by`` lists the models that reported each one
    """
    merged: List[ExtractedEntity] = []

    for model, entities in runs:
        for entity in entities:
            match = next((existing for existing in merged if entities_match(existing, entity)), None)
            if match is None:
                merged.append(entity.model_copy(update={"found_by": [model]}, deep=True))
                continue

            match.confidence = max(match.confidence, entity.confidence)
            for name in PROVENANCE_FIELDS:
                if getattr(match, name) in (None, "", {}) and getattr(entity, name) not in (None, "", {}):
                    setattr(match, name, getattr(entity, name))
            if model not in match.found_by:
                match.found_by.append(model)

    LOGGER.debug(
        "Merged multi-model extraction",
        extra={
            "models": [model for model, _ in runs],
            "input_count": sum(len(entities) for _, entities in runs),
            "merged_count": len(merged),
        },
    )
    return merged


def _dedupe_key(entity: ExtractedEntity) -> Tuple[str, str]:
    return entity.type.strip().upper(), entity.content.strip()[:DEDUPE_PREFIX_LENGTH]


def apply_refinements(
    entities: List[ExtractedEntity],
    refinements: Any,
    new_entities: List[ExtractedEntity],
) -> Tuple[List[ExtractedEntity], Dict[str, int]]:
    """Apply a corrective pass to first-pass entities.

    Refinements are matched by entity id and may replace content, type and
    confidence. New entities are de-duplicated by (type, first 100 characters
    of content) against everything kept so far, keeping the higher confidence.
    """
    by_id: Dict[str, dict] = {}
    if isinstance(refinements, list):
        for refinement in refinements:
            if isinstance(refinement, dict) and refinement.get("id"):
                by_id[str(refinement["id"])] = refinement

    refined_count = 0
    result: List[ExtractedEntity] = []
    for entity in entities:
        refinement = by_id.get(entity.id)
        if refinement is None:
            result.append(entity)
            continue
        update = {
            key: refinement[key]
            for key in ("content", "type", "confidence")
            if refinement.get(key) not in (None, "")
        }
        # Round-trip through validation so confidence is clamped again
        try:
            refined = ExtractedEntity.model_validate({**entity.model_dump(), **update})
        except SchemaValidationError as e:
            LOGGER.warning(
                "Ignoring malformed refinement",
                extra={"entity_id": entity.id, "error_count": e.error_count()},
            )
            result.append(entity)
            continue
        result.append(refined)
        refined_count += 1

    index: Dict[Tuple[str, str], int] = {_dedupe_key(entity): i for i, entity in enumerate(result)}
    added_count = 0
    for entity in new_entities:
        key = _dedupe_key(entity)
        position = index.get(key)
        if position is None:
            index[key] = len(result)
            result.append(entity)
            added_count += 1
        elif entity.confidence > result[position].confidence:
            result[position] = entity

    return result, {"refined": refined_count, "added": added_count}
