import pytest

from material_validator.validator.citation_matcher import extract_citations, match_citation, normalize
from material_validator.validator.schemas import MaterialSource


class TestMatchCitation:
    def test_title_substring_ignores_case_and_whitespace(self, materials):
        matched = match_citation("bst   LECTURE notes - Data Structures", materials)

        assert matched is not None
        assert matched.id == 1

    def test_file_name_and_stem(self, materials):
        assert match_citation("traversal.pptx", materials).id == 2
        assert match_citation("see bst_notes, page 4", materials).id == 1

    def test_category(self, materials):
        matched = match_citation("Week 5 Algorithms handout", materials)

        assert matched.id == 2

    def test_fuzzy_title(self):
        materials = [MaterialSource(id="m-7", title="Binary Search Tree Lecture Notes")]

        matched = match_citation("Binary Search Tree Lecture Note - week 3", materials)

        assert matched is not None
        assert matched.id == "m-7"

    def test_fuzzy_threshold_is_respected(self):
        materials = [MaterialSource(id=1, title="Binary Search Tree Lecture Notes")]

        assert match_citation("Binary Search Tree Lecture Note", materials, fuzzy_threshold=101) is None

    @pytest.mark.parametrize("fragment", ["s", "e", "Notes", "Tree", "Lecture"])
    def test_short_title_fragment_is_not_a_match(self, materials, fragment):
        assert match_citation(fragment, materials) is None

    def test_slightly_shorter_abbreviation_still_matches(self, materials):
        matched = match_citation("BST Lecture Note", materials)

        assert matched is not None
        assert matched.id == 1

    def test_unrelated_text(self, materials):
        assert match_citation("Wikipedia", materials) is None

    def test_no_materials(self):
        assert match_citation("BST Lecture Notes", []) is None

    def test_blank_text(self, materials):
        assert match_citation("   ", materials) is None


class TestExtractCitations:
    def test_internal_and_external_in_order(self, materials):
        content = (
            "Keys are ordered [Source: BST Lecture Notes - Data Structures]. "
            "See also [External: Wikipedia - https://en.wikipedia.org/wiki/Binary_search_tree]."
        )

        citations = extract_citations(content, materials)

        assert [c.kind for c in citations] == ["internal", "external"]
        assert citations[0].matched_material_id == 1
        assert citations[0].raw_text == "[Source: BST Lecture Notes - Data Structures]"
        assert citations[1].matched_material_id is None

    def test_external_tag_wins_over_title_match(self, materials):
        citations = extract_citations("[External: BST Lecture Notes mirror]", materials)

        assert citations[0].kind == "external"

    def test_tag_variants(self, materials):
        content = (
            "[External Source - Wikipedia] "
            "[Reference: Tree Traversal Slides] "
            "[Sources: bst_notes.pdf] "
            "[Citation – Algorithms]"
        )

        citations = extract_citations(content, materials)

        assert [c.kind for c in citations] == ["external", "internal", "internal", "internal"]
        assert [c.matched_material_id for c in citations] == [None, 2, 1, 2]

    def test_unmatched_source_counts_as_external(self, materials):
        citations = extract_citations("[Source: Some Blog Post]", materials)

        assert citations[0].kind == "external"

    def test_plain_brackets_are_not_citations(self, materials):
        assert extract_citations("arr[0] and [link](http://x) and [Note: BST]", materials) == []


def test_normalize():
    assert normalize("  BST\tLecture\n Notes ") == "bst lecture notes"
