"""Tests for multi-model merging and second-pass refinement."""

from app.pipeline.reconciliation import apply_refinements, entities_match, merge_model_results
from app.schemas.pipeline import ExtractedEntity


def entity(type_: str, content: str, confidence: float = 0.8, **kwargs) -> ExtractedEntity:
    return ExtractedEntity(type=type_, content=content, confidence=confidence, **kwargs)


class TestEntitiesMatch:

    def test_same_type_and_contained_prefix(self):
        assert entities_match(
            entity("GOAL", "Reduce claim intake time"),
            entity("goal", "reduce claim intake time by half before Q3"),
        )

    def test_different_types_never_match(self):
        assert not entities_match(entity("GOAL", "Email intake"), entity("SCOPE_IN", "Email intake"))

    def test_unrelated_content(self):
        assert not entities_match(entity("RISK", "Vendor lock-in"), entity("RISK", "Peak season backlog"))

    def test_empty_content_never_matches(self):
        assert not entities_match(entity("RISK", "  "), entity("RISK", "Vendor lock-in"))


class TestMergeModelResults:

    def test_merge_is_deterministic_and_ordered(self):
        runs = [
            ("gemini", [entity("GOAL", "Cut intake time", 0.6), entity("RISK", "Vendor lock-in", 0.7)]),
            ("openrouter", [entity("goal", "cut intake time", 0.9), entity("KPI_TARGET", "4 hour response", 0.8)]),
        ]

        first = merge_model_results(runs)
        second = merge_model_results(runs)

        assert [e.content for e in first] == ["Cut intake time", "Vendor lock-in", "4 hour response"]
        assert [e.model_dump(exclude={"id"}) for e in first] == [e.model_dump(exclude={"id"}) for e in second]
        assert first[0].confidence == 0.9
        assert first[0].found_by == ["gemini", "openrouter"]
        assert first[1].found_by == ["gemini"]
        assert first[2].found_by == ["openrouter"]

    def test_provenance_fills_from_later_model(self):
        runs = [
            ("gemini", [entity("STAKEHOLDER", "Dana Lee")]),
            ("openrouter", [entity("STAKEHOLDER", "Dana Lee", source_quote="I own claims", source_speaker="Dana")]),
        ]

        merged = merge_model_results(runs)

        assert merged[0].source_quote == "I own claims"
        assert merged[0].source_speaker == "Dana"

    def test_first_provenance_wins(self):
        runs = [
            ("gemini", [entity("STAKEHOLDER", "Dana Lee", source_quote="first")]),
            ("openrouter", [entity("STAKEHOLDER", "Dana Lee", source_quote="second")]),
        ]

        assert merge_model_results(runs)[0].source_quote == "first"

    def test_inputs_are_not_mutated(self):
        original = entity("GOAL", "Cut intake time", 0.6)
        merge_model_results([("gemini", [original]), ("openrouter", [entity("GOAL", "Cut intake time", 0.9)])])

        assert original.confidence == 0.6
        assert original.found_by == []


class TestApplyRefinements:

    def test_refinement_by_id_clamps_confidence(self):
        entities = [entity("GOAL", "Cut intake time", 0.5, id="e1"), entity("RISK", "Vendor lock-in", id="e2")]

        refined, counts = apply_refinements(
            entities, [{"id": "e1", "confidence": 3, "content": "Halve intake time"}, {"id": "missing"}], []
        )

        assert counts == {"refined": 1, "added": 0}
        assert refined[0].id == "e1"
        assert refined[0].content == "Halve intake time"
        assert refined[0].confidence == 1.0
        assert refined[1] is entities[1]

    def test_malformed_refinements_are_ignored(self):
        entities = [entity("GOAL", "Cut intake time", id="e1")]

        refined, counts = apply_refinements(entities, "not a list", [])

        assert refined == entities
        assert counts == {"refined": 0, "added": 0}

    def test_refinement_with_invalid_fields_keeps_first_pass_entity(self):
        entities = [entity("GOAL", "Cut intake time", id="e1"), entity("RISK", "Vendor lock-in", id="e2")]

        refined, counts = apply_refinements(
            entities,
            [{"id": "e1", "content": 42}, {"id": "e2", "type": ["RISK"], "confidence": 0.9}],
            [],
        )

        assert counts == {"refined": 0, "added": 0}
        assert refined == entities

    def test_new_entities_are_deduplicated_keeping_higher_confidence(self):
        entities = [entity("STAKEHOLDER", "Dana Lee", 0.7, id="e1")]
        new = [
            entity("stakeholder", "Dana Lee", 0.95),
            entity("RISK", "Peak season backlog", 0.6),
            entity("RISK", "Peak season backlog", 0.4),
        ]

        refined, counts = apply_refinements(entities, [], new)

        assert counts == {"refined": 0, "added": 1}
        assert [e.content for e in refined] == ["Dana Lee", "Peak season backlog"]
        assert refined[0].confidence == 0.95
        assert refined[1].confidence == 0.6
