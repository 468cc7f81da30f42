import pytest

from material_validator.guardrails.json_repairer import JsonRepairer


@pytest.fixture
def repairer():
    return JsonRepairer()


class TestJsonRepairer:
    def test_plain_object(self, repairer):
        assert repairer.repair('{"a": 1}') == {"a": 1}

    def test_markdown_fence(self, repairer):
        assert repairer.repair('```json\n{"a": 1}\n```') == {"a": 1}

    def test_surrounding_prose_with_braces(self, repairer):
        raw = 'Here is the evaluation: {"grade": "B"} Use {curly} braces with care.'

        assert repairer.repair(raw) == {"grade": "B"}

    def test_braces_inside_strings(self, repairer):
        assert repairer.repair('{"explanation": "uses } and { freely", "found": true}') == {
            "explanation": "uses } and { freely",
            "found": True,
        }

    def test_trailing_comma_and_single_quotes(self, repairer):
        assert repairer.repair("{'a': [1, 2,],}") == {"a": [1, 2]}

    def test_truncated_reply(self, repairer):
        data = repairer.repair('{"claims": [{"id": 1, "claim": "A BST is ordered."')

        assert data["claims"][0]["id"] == 1

    @pytest.mark.parametrize("raw", ["", "   ", None])
    def test_empty_reply(self, repairer, raw):
        with pytest.raises(ValueError):
            repairer.repair(raw)

    def test_no_object(self, repairer):
        with pytest.raises(ValueError):
            repairer.repair("[1, 2, 3]")

    def test_required_keys(self, repairer):
        assert repairer.repair('{"claims": []}', required_keys=("claims",)) == {"claims": []}
        with pytest.raises(ValueError, match="claims"):
            repairer.repair('{"items": []}', required_keys=("claims",))
