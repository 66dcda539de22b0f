"""Tests for lenient JSON parsing of model output."""

from app.utils.json_parser import parse_json_safely


class TestParseJsonSafely:

    def test_plain_json(self):
        assert parse_json_safely('{"type": "KICKOFF_SESSION"}') == {"type": "KICKOFF_SESSION"}

    def test_fenced_block_with_prose(self):
        text = 'Here is the result:\n```json\n{"items": [1, 2]}\n```\nLet me know.'

        assert parse_json_safely(text) == {"items": [1, 2]}

    def test_text_around_object(self):
        assert parse_json_safely('Sure! {"confidence": 0.9} Hope that helps') == {"confidence": 0.9}

    def test_trailing_commas(self):
        assert parse_json_safely('{"items": [{"a": 1},],}') == {"items": [{"a": 1}]}

    def test_truncated_output_is_closed(self):
        text = '{"entities": [{"type": "GOAL", "content": "Cut intake"}, {"type": "RISK", "content": "Vend'

        parsed = parse_json_safely(text)

        # The dangling "content" key is dropped, the open object and array closed
        assert parsed == {"entities": [{"type": "GOAL", "content": "Cut intake"}, {"type": "RISK"}]}

    def test_unterminated_fence(self):
        assert parse_json_safely('```json\n{"items": []}') == {"items": []}

    def test_top_level_array(self):
        assert parse_json_safely("[1, 2, 3]") == [1, 2, 3]

    def test_no_json(self):
        assert parse_json_safely("The model declined to answer.") is None
        assert parse_json_safely("") is None
