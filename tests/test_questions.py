"""Tests for question normalization and answer evaluation."""

import pytest

from quiz_tournaments.exceptions import ValidationError
from quiz_tournaments.questions import (
    FALSE_INDEX,
    TRUE_INDEX,
    MatchingQuestion,
    MultipleChoiceQuestion,
    SingleChoiceQuestion,
    TrueFalseQuestion,
    canonical_answer,
    dump_question,
    evaluate_answer,
    load_question,
    normalize_question,
)


@pytest.fixture
def multiple_choice() -> MultipleChoiceQuestion:
    question = normalize_question(
        {
            "id": "mc1",
            "type": "MULTIPLE_CHOICE",
            "text": "Which are prime?",
            "options": [
                {"text": "2", "isCorrect": True},
                {"text": "4", "isCorrect": False},
                {"text": "5", "isCorrect": True},
            ],
        }
    )
    assert isinstance(question, MultipleChoiceQuestion)
    return question


@pytest.fixture
def matching() -> MatchingQuestion:
    question = normalize_question(
        {
            "id": "m1",
            "type": "MATCHING",
            "text": "Match the capitals",
            "pairs": [{"left": "A", "right": "1"}, {"left": "B", "right": "2"}],
        }
    )
    assert isinstance(question, MatchingQuestion)
    return question


class TestNormalization:
    """Tests for ingesting question bank payloads."""

    def test_true_false_from_bool_and_string(self):
        from_bool = normalize_question(
            {"id": "tf1", "type": "TRUE_FALSE", "text": "Sky is blue", "correctAnswer": True}
        )
        from_text = normalize_question(
            {"id": "tf2", "type": "true_false", "text": "Ice is hot", "correct_answer": "false"}
        )

        assert isinstance(from_bool, TrueFalseQuestion)
        assert from_bool.correct_index == TRUE_INDEX
        assert isinstance(from_text, TrueFalseQuestion)
        assert from_text.correct_index == FALSE_INDEX

    def test_options_serialized_as_json_text(self):
        question = normalize_question(
            {
                "id": "sc1",
                "questionType": "SINGLE_CHOICE",
                "questionText": "2 + 2?",
                "options": '[{"text": "3", "isCorrect": false}, {"text": "4", "isCorrect": true}]',
                "timeLimitSeconds": 20,
            }
        )

        assert isinstance(question, SingleChoiceQuestion)
        assert question.options == ["3", "4"]
        assert question.correct_index == 1
        assert question.time_limit_seconds == 20
        assert question.text == "2 + 2?"

    def test_string_options_with_separate_answer_key(self):
        question = normalize_question(
            {
                "id": "mc2",
                "type": "MULTIPLE_CHOICE",
                "options": ["red", "green", "blue"],
                "correctAnswer": "[2, 0]",
            }
        )

        assert isinstance(question, MultipleChoiceQuestion)
        assert question.correct_indices == [0, 2]

    def test_single_choice_requires_exactly_one_correct_option(self):
        with pytest.raises(ValidationError):
            normalize_question(
                {
                    "id": "sc2",
                    "type": "SINGLE_CHOICE",
                    "options": [
                        {"text": "a", "isCorrect": True},
                        {"text": "b", "isCorrect": True},
                    ],
                }
            )

    def test_multiple_choice_without_correct_options_is_rejected(self):
        with pytest.raises(ValidationError):
            normalize_question(
                {
                    "id": "mc3",
                    "type": "MULTIPLE_CHOICE",
                    "options": [{"text": "a", "isCorrect": False}],
                }
            )

    def test_matching_rejects_duplicate_left_items(self):
        with pytest.raises(ValidationError):
            normalize_question(
                {
                    "id": "m2",
                    "type": "MATCHING",
                    "pairs": [{"left": "A", "right": "1"}, {"left": "A", "right": "2"}],
                }
            )

    @pytest.mark.parametrize(
        "payload",
        [
            {"id": "x1", "type": "ESSAY", "text": "Discuss"},
            {"id": "x2", "type": "SINGLE_CHOICE", "options": "[not json"},
            {"id": "x3", "type": "MATCHING", "pairs": []},
            {"type": "TRUE_FALSE", "correctAnswer": True},
            {"id": "x4", "type": "TRUE_FALSE", "correctAnswer": True, "timeLimit": "soon"},
            {"id": "x5", "type": "TRUE_FALSE", "correctAnswer": True, "timeLimit": 0},
        ],
    )
    def test_malformed_payloads(self, payload):
        with pytest.raises(ValidationError):
            normalize_question(payload)

    def test_stored_snapshot_rebuilds_same_question(self, matching: MatchingQuestion):
        assert load_question(dump_question(matching)) == matching


class TestEvaluation:
    """Tests for checking submissions against canonical answers."""

    def test_true_false_accepts_bool_index_and_text(self):
        question = normalize_question(
            {"id": "tf1", "type": "TRUE_FALSE", "correctAnswer": True}
        )

        assert evaluate_answer(question, True).is_correct
        assert evaluate_answer(question, 0).is_correct
        assert evaluate_answer(question, "true").is_correct
        assert not evaluate_answer(question, False).is_correct

    def test_single_choice_numeric_string(self):
        question = normalize_question(
            {"id": "sc1", "type": "SINGLE_CHOICE", "options": ["a", "b"], "correctAnswer": 1}
        )

        result = evaluate_answer(question, "1")
        assert result.is_correct
        assert result.normalized_answer == 1

    def test_single_choice_out_of_range_is_malformed(self):
        question = normalize_question(
            {"id": "sc1", "type": "SINGLE_CHOICE", "options": ["a", "b"], "correctAnswer": 1}
        )
        with pytest.raises(ValidationError):
            evaluate_answer(question, 5)

    def test_multiple_choice_requires_exact_set(self, multiple_choice):
        assert evaluate_answer(multiple_choice, [0, 2]).is_correct
        assert evaluate_answer(multiple_choice, [2, 0]).is_correct
        assert evaluate_answer(multiple_choice, "0,2").is_correct
        assert not evaluate_answer(multiple_choice, [0]).is_correct
        assert not evaluate_answer(multiple_choice, [0, 1, 2]).is_correct

    def test_matching_exact_submission_is_correct(self, matching):
        result = evaluate_answer(
            matching, [{"left": "A", "right": "1"}, {"left": "B", "right": "2"}]
        )

        assert result.is_correct
        assert result.pair_results == [True, True]

    def test_matching_swapped_pairs_are_incorrect(self, matching):
        result = evaluate_answer(matching, [["A", "2"], ["B", "1"]])

        assert not result.is_correct
        assert result.pair_results == [False, False]

    def test_matching_partially_correct_reports_each_pair(self, matching):
        result = evaluate_answer(matching, '{"B": "2", "A": "3"}')

        assert not result.is_correct
        assert result.pair_results == [False, True]
        assert result.normalized_answer == [
            {"left": "A", "right": "3"},
            {"left": "B", "right": "2"},
        ]

    @pytest.mark.parametrize(
        "payload",
        [
            [["A", "1"]],  # B missing
            [["A", "1"], ["A", "2"]],  # A twice
            [["A", "1"], ["C", "2"]],  # unknown left
            "not json",
        ],
    )
    def test_matching_incomplete_submission_is_malformed(self, matching, payload):
        with pytest.raises(ValidationError):
            evaluate_answer(matching, payload)

    def test_public_view_hides_canonical_answer(self, multiple_choice, matching):
        view = multiple_choice.public_view()
        assert view["options"] == ["2", "4", "5"]
        assert "correct_indices" not in view

        matching_view = matching.public_view()
        assert matching_view["left"] == ["A", "B"]
        assert sorted(matching_view["right"]) == ["1", "2"]
        assert "pairs" not in matching_view

    def test_canonical_answer_shapes(self, multiple_choice, matching):
        assert canonical_answer(multiple_choice) == [0, 2]
        assert canonical_answer(matching) == [
            {"left": "A", "right": "1"},
            {"left": "B", "right": "2"},
        ]
