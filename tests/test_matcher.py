"""
Tests for the match engine: exact, flexible and similar question lookup.
"""

import pytest

from models.question import OptionItem
from models.search import SearchRequest
from services.errors import StoreError
from services.matcher import (
    MatchEngine,
    build_exact_query,
    escape_regex,
    extract_keywords,
    STOP_WORDS,
)
from tests.conftest import make_question

pytestmark = pytest.mark.anyio


def request_from(record) -> SearchRequest:
    return SearchRequest(
        directions=record.directions,
        questionText=record.questionText,
        questionImage=record.questionImage,
        options=record.options,
    )


class RecordingStore:
    """Store double that remembers the order of lookups and never matches."""

    def __init__(self):
        self.calls = []

    async def find_exact(self, query):
        self.calls.append(("find_exact", query))
        return None

    async def find_text(self, term):
        self.calls.append(("find_text", term))
        return None

    async def find_one(self, query):
        self.calls.append(("find_one", query))
        return None

    async def aggregate(self, match, limit, extra_fields=None):
        self.calls.append(("aggregate", match))
        return []


class FailingStore(RecordingStore):
    async def aggregate(self, match, limit, extra_fields=None):
        raise StoreError("connection reset")


class TestHelpers:

    def test_escape_regex_escapes_metacharacters(self):
        assert escape_regex("2+2?") == "2\\+2\\?"
        assert escape_regex("(a|b)[c]") == "\\(a\\|b\\)\\[c\\]"
        assert escape_regex("plain words") == "plain words"

    def test_extract_keywords_filters_short_and_stop_words(self):
        keywords = extract_keywords("Which of these would explain the photosynthesis process?", 5, STOP_WORDS)
        assert keywords == ["these", "explain", "photosynthesis", "process"]

    def test_extract_keywords_respects_limit(self):
        assert extract_keywords("alpha bravo charlie delta echoes", 3) == ["alpha", "bravo", "charlie"]

    def test_extract_keywords_on_empty_text(self):
        assert extract_keywords(None, 5) == []
        assert extract_keywords("   ", 5) == []

    def test_build_exact_query_needs_an_anchor(self):
        request = SearchRequest(options=[OptionItem(text="3"), OptionItem(text="4")])
        assert build_exact_query(request) is None

    def test_build_exact_query_adds_text_and_image_for_one_slot(self):
        request = SearchRequest(
            questionText="Q",
            options=[OptionItem(text="x", images="https://img.example/x.png")],
        )
        assert build_exact_query(request) == {
            "$and": [{"$or": [{"questionText": "Q"}, {"question": "Q"}]}],
            "OptionA": "x",
            "OptionAImage": "https://img.example/x.png",
        }


class TestExactMatch:

    async def test_scenario_exact_hit(self, store, engine):
        saved = await store.save(make_question(questionText="What is 2+2?", options=["3", "4"], correctAnswers=["4"]))
        request = SearchRequest(questionText="What is 2+2?", options=[OptionItem(text="3"), OptionItem(text="4")])

        match = await engine.find_exact_match(request)

        assert match is not None
        assert match.id == saved.id
        assert [a.text for a in match.correctAnswers] == ["4"]

    async def test_request_built_from_record_matches_it(self, store, engine):
        await store.save(make_question(questionText="Other question", options=["p", "q"]))
        saved = await store.save(make_question(
            directions="Read the figure carefully.",
            questionText="Which shape comes next?",
            questionImage="https://img.example/series.png",
            options=[OptionItem(text="circle"), OptionItem(images="https://img.example/square.png")],
            correctAnswers=[OptionItem(text="circle")],
        ))

        match = await engine.find_exact_match(request_from(saved))

        assert match.id == saved.id
        assert match.directions == saved.directions
        assert match.questionImage == saved.questionImage
        assert match.options == saved.options

    async def test_options_only_request_never_matches(self, store):
        await store.save(make_question(questionText="Q", options=["3", "4"]))
        recording = RecordingStore()
        request = SearchRequest(options=[OptionItem(text="3"), OptionItem(text="4")])

        assert await MatchEngine(store, full_text_search=False).find_exact_match(request) is None
        assert await MatchEngine(recording).find_exact_match(request) is None
        assert recording.calls == []

    async def test_case_and_punctuation_sensitive(self, store, engine):
        await store.save(make_question(questionText="What is 2+2?"))
        assert await engine.find_exact_match(SearchRequest(questionText="what is 2+2")) is None

    async def test_unmentioned_fields_are_wildcards(self, store, engine):
        saved = await store.save(make_question(questionText="Q", directions="D", passage="P", options=["a", "b"]))
        match = await engine.find_exact_match(SearchRequest(questionText="Q"))
        assert match.id == saved.id

    async def test_image_mismatch_in_slot_prevents_match(self, store, engine):
        await store.save(make_question(
            questionText="Pick the figure",
            options=[OptionItem(text="x", images="https://img.example/x.png")],
        ))
        request = SearchRequest(
            questionText="Pick the figure",
            options=[OptionItem(text="x", images="https://img.example/other.png")],
        )
        assert await engine.find_exact_match(request) is None

    async def test_matches_legacy_only_document(self, db, engine):
        await db.questions.insert_one({
            "id": "legacy-1",
            "question": "Old question",
            "description": "Answer yes or no",
            "OptionA": "yes",
            "OptionB": "no",
            "CorrectAns": "yes",
        })
        request = SearchRequest(questionText="Old question", options=[OptionItem(text="yes"), OptionItem(text="no")])

        match = await engine.find_exact_match(request)

        assert match.id == "legacy-1"
        assert match.questionText == "Old question"
        assert match.correctAnswer == "yes"

    async def test_legacy_directions_are_an_anchor(self, db, engine):
        await db.questions.insert_one({"id": "legacy-2", "description": "Answer yes or no", "OptionA": "yes"})
        match = await engine.find_exact_match(SearchRequest(directions="Answer yes or no"))
        assert match.id == "legacy-2"


class TestFlexibleMatch:

    async def test_flexible_returns_exact_hit_first(self, store, engine):
        await store.save(make_question(questionText="What is 2+2? (variant)"))
        saved = await store.save(make_question(questionText="What is 2+2?", options=["3", "4"]))
        request = SearchRequest(questionText="What is 2+2?", options=[OptionItem(text="3"), OptionItem(text="4")])

        exact = await engine.find_exact_match(request)
        flexible = await engine.find_flexible_match(request)

        assert exact.id == saved.id
        assert flexible.id == exact.id

    async def test_scenario_substring_hit_ignores_case(self, store, engine):
        saved = await store.save(make_question(questionText="What is 2+2?", options=["3", "4"], correctAnswers=["4"]))
        request = SearchRequest(questionText="what is 2+2")

        assert await engine.find_exact_match(request) is None
        match = await engine.find_flexible_match(request)

        assert match.id == saved.id

    async def test_directions_substring_hit(self, store, engine):
        saved = await store.save(make_question(directions="Study the following table and answer the questions."))
        match = await engine.find_flexible_match(SearchRequest(directions="FOLLOWING TABLE"))
        assert match.id == saved.id

    async def test_image_equality_hit(self, store, engine):
        saved = await store.save(make_question(questionImage="https://img.example/q1.png", questionText="Identify it"))
        request = SearchRequest(questionImage="https://img.example/q1.png", questionText="Something else entirely")
        match = await engine.find_flexible_match(request)
        assert match.id == saved.id

    async def test_term_found_in_option_text(self, store, engine):
        saved = await store.save(make_question(questionText="Choose one", options=["The mitochondria", "The nucleus"]))
        match = await engine.find_flexible_match(SearchRequest(questionText="mitochondria"))
        assert match.id == saved.id

    async def test_regex_metacharacters_are_literal(self, store, engine):
        await store.save(make_question(directions="anything at all"))
        literal = ".*+?^${}()|[]\\"
        saved = await store.save(make_question(directions=f"Odd characters {literal} inside"))

        match = await engine.find_flexible_match(SearchRequest(directions=literal))

        assert match.id == saved.id

    async def test_pattern_interpretation_does_not_match(self, store, engine):
        await store.save(make_question(directions="abc"))
        assert await engine.find_flexible_match(SearchRequest(directions="a.c")) is None

    async def test_substring_hit_on_legacy_only_document(self, db, engine):
        await db.questions.insert_one({"id": "legacy-3", "question": "Old question about rivers", "OptionA": "Nile"})

        assert (await engine.find_flexible_match(SearchRequest(questionText="old question"))).id == "legacy-3"
        assert (await engine.find_flexible_match(SearchRequest(questionText="nile"))).id == "legacy-3"

    async def test_no_match_returns_none(self, store, engine):
        await store.save(make_question(questionText="Completely unrelated"))
        assert await engine.find_flexible_match(SearchRequest(questionText="Nothing like it")) is None

    async def test_strategies_run_in_order(self):
        recording = RecordingStore()
        request = SearchRequest(directions="D", questionText="Q", questionImage="https://img.example/i.png")

        assert await MatchEngine(recording, full_text_search=True).find_flexible_match(request) is None

        steps = [(name, query if name == "find_text" else list(query)) for name, query in recording.calls]
        assert steps == [
            ("find_exact", ["$and"]),
            ("find_text", "D"),
            ("find_one", ["$or"]),
            ("find_text", "Q"),
            ("find_one", ["$or"]),
            ("find_one", ["questionImage"]),
            ("find_one", ["$or"]),
            ("find_one", ["$or"]),
        ]

    async def test_full_text_search_can_be_disabled(self):
        recording = RecordingStore()
        await MatchEngine(recording, full_text_search=False).find_flexible_match(SearchRequest(questionText="Q"))
        assert "find_text" not in [name for name, _ in recording.calls]


class TestFindSimilar:

    async def test_keyword_hit_is_tagged_medium(self, store, engine):
        saved = await store.save(make_question(questionText="Photosynthesis happens in chloroplasts"))
        await store.save(make_question(questionText="Unrelated arithmetic"))

        results = await engine.find_similar("Where does photosynthesis happen?", None, None)

        assert [r.id for r in results] == [saved.id]
        assert results[0].similarity == "medium"

    async def test_direction_keywords(self, store, engine):
        saved = await store.save(make_question(directions="Arrange the sentences in logical order"))
        results = await engine.find_similar(None, None, "Sentences should be arranged")
        assert [r.id for r in results] == [saved.id]

    async def test_legacy_only_documents_are_suggested(self, db, engine):
        await db.questions.insert_one({"id": "legacy-4", "question": "Which river is longest?", "description": "Geography"})

        by_text = await engine.find_similar("longest river anywhere", None, None)
        by_directions = await engine.find_similar(None, None, "geography quiz")

        assert [r.id for r in by_text] == ["legacy-4"]
        assert [r.id for r in by_directions] == ["legacy-4"]

    async def test_image_matches_any_record_with_image(self, store, engine):
        saved = await store.save(make_question(questionImage="https://img.example/a.png"))
        await store.save(make_question(questionText="Text only"))
        results = await engine.find_similar(None, "https://img.example/other.png", None)
        assert [r.id for r in results] == [saved.id]

    async def test_limit_caps_results(self, store, engine):
        for i in range(7):
            await store.save(make_question(questionText=f"Velocity problem number {i}"))
        results = await engine.find_similar("velocity", None, None, limit=3)
        assert len(results) == 3

    async def test_no_keywords_returns_empty(self, engine):
        assert await engine.find_similar("What is the", None, None) == []

    async def test_empty_store_returns_empty(self, engine):
        assert await engine.find_similar("Unknown question entirely", None, None) == []

    async def test_store_failure_returns_empty(self):
        assert await MatchEngine(FailingStore()).find_similar("photosynthesis", None, None) == []
