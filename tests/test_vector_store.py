import json

import numpy as np
import pytest

from rag.vector_store import CourseStore, EmbeddingParseError, parse_embedding, record_from_row


class TestParseEmbedding:
    """Test both stored embedding encodings."""

    def test_string_and_list_agree(self):
        """Test '[f1,f2,…]' and a native list decode to the same vector."""
        from_string = parse_embedding("[0.25,-1.5,3e-2]")
        from_list = parse_embedding([0.25, -1.5, 0.03])
        assert from_string.dtype == np.float32
        np.testing.assert_array_equal(from_string, from_list)

    def test_string_with_spaces(self):
        assert parse_embedding("[ 1, 2 , 3 ]").tolist() == [1.0, 2.0, 3.0]

    @pytest.mark.parametrize("value", [None, "", "[]", [], "  "])
    def test_empty_is_none(self, value):
        assert parse_embedding(value) is None

    @pytest.mark.parametrize("value", ["[a,b]", "[1,,2]", [[1, 2], [3, 4]], ["x"], [1.0, float("nan")]])
    def test_unparsable(self, value):
        with pytest.raises(EmbeddingParseError):
            parse_embedding(value)

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_embedding("[1,oops]")


class TestRecordFromRow:
    """Test building records from stored rows."""

    def test_norwegian_columns(self):
        """Test the course database's own column names are understood."""
        row = {
            "kurskode": "BED1001",
            "kursnavn": "Strategi",
            "level_of_study": "Master",
            "språk": "nb",
            "credits": 7.5,
            "ansvarlig_institutt": "Strategi",
            "ansvarlig_område": "Ledelse",
            "academic_coordinator": "Kari",
            "course_content": "Innhold",
            "learning_outcome_knowledge": "Kunnskap",
            "pensum": "Bok",
            "link_nb": "https://example.test/nb",
            "hf_embedding": "[1,0,0]",
        }
        course = record_from_row(row)
        assert course.code == "BED1001"
        assert course.name == "Strategi"
        assert course.level == "Master"
        assert course.language == "nb"
        assert course.credits == "7.5"
        assert course.institute == "Strategi"
        assert course.area == "Ledelse"
        assert course.coordinator == "Kari"
        assert course.content == "Innhold"
        assert course.knowledge == "Kunnskap"
        assert course.literature == "Bok"
        assert course.embedding.tolist() == [1.0, 0.0, 0.0]

    def test_bad_embedding_kept_without_vector(self):
        """Test an undecodable embedding leaves the course unranked, not lost."""
        course = record_from_row({"code": "X1", "embedding": "[oops]"})
        assert course.code == "X1"
        assert course.embedding is None


class TestCourseStore:
    """Test the corpus store."""

    def test_with_embeddings(self):
        store = CourseStore.from_rows([
            {"code": "A", "embedding": [1, 0]},
            {"code": "B", "embedding": None},
            {"code": "C", "embedding": "[0,1]"},
        ])
        assert len(store) == 3
        assert [c.code for c in store.with_embeddings()] == ["A", "C"]
        assert store.dim == 2

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "metadata.json"
        CourseStore.from_rows([{"code": "A", "name": "Alfa", "embedding": [0.5, 0.25]}]).save(path)

        rows = json.loads(path.read_text(encoding="utf-8"))
        assert rows[0]["embedding"] == [0.5, 0.25]

        loaded = CourseStore.load(path)
        assert loaded.courses[0].name == "Alfa"
        assert loaded.courses[0].embedding.tolist() == [0.5, 0.25]

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            CourseStore.load(tmp_path / "missing.json")
