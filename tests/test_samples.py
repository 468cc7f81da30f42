import json

import pytest
from pydantic import ValidationError

from material_validator.samples import SAMPLE_CONTENT, SAMPLE_MATERIALS, load_materials
from material_validator.validator.grounding_scorer import score_grounding


class TestLoadMaterials:
    def test_camel_and_snake_case_fields(self, tmp_path):
        path = tmp_path / "materials.json"
        path.write_text(json.dumps([
            {"id": "m-1", "title": "Sorting Handout", "category": "Algorithms", "fileName": "sorting.pdf"},
            {"id": 2, "title": "Heap Slides", "file_name": "heaps.pptx"},
        ]), encoding="utf-8")

        materials = load_materials(path)

        assert [m.id for m in materials] == ["m-1", 2]
        assert materials[0].file_name == "sorting.pdf"
        assert materials[1].category == ""

    def test_empty_list(self, tmp_path):
        path = tmp_path / "materials.json"
        path.write_text("[]", encoding="utf-8")

        assert load_materials(str(path)) == []

    def test_rejects_non_list(self, tmp_path):
        path = tmp_path / "materials.json"
        path.write_text('{"title": "Sorting Handout"}', encoding="utf-8")

        with pytest.raises(ValidationError):
            load_materials(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            load_materials(tmp_path / "nope.json")


def test_sample_content_is_grounded_in_sample_materials():
    report = score_grounding(SAMPLE_CONTENT, SAMPLE_MATERIALS)

    assert report.internal_citations == 2
    assert report.external_citations == 0
