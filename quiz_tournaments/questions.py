"""Question normalization and answer evaluation.

Question banks hand over payloads in several shapes: options may arrive as a
list or as JSON text, keys may be camelCase or snake_case, a true/false answer
may be a bool or a string. Everything is normalized once, at ingestion, into a
tagged ``Question`` variant so the match logic never inspects raw payloads.
"""

import json
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

TRUE_INDEX = 0
FALSE_INDEX = 1


class MatchingPair(BaseModel):
    """A left item and the right item it belongs to."""

    left: str
    right: str


class BaseQuestion(BaseModel):
    id: str
    text: str
    time_limit_seconds: int | None = None
    image_url: str | None = None

    def public_view(self) -> dict[str, Any]:
        """Question as shown to players, without the canonical answer."""
        return {
            "id": self.id,
            "type": getattr(self, "type"),
            "text": self.text,
            "time_limit_seconds": self.time_limit_seconds,
            "image_url": self.image_url,
        }


class TrueFalseQuestion(BaseQuestion):
    type: Literal["TRUE_FALSE"] = "TRUE_FALSE"
    correct_index: Literal[0, 1]

    def public_view(self) -> dict[str, Any]:
        view = super().public_view()
        view["options"] = ["True", "False"]
        return view


class SingleChoiceQuestion(BaseQuestion):
    type: Literal["SINGLE_CHOICE"] = "SINGLE_CHOICE"
    options: list[str]
    correct_index: int

    def public_view(self) -> dict[str, Any]:
        view = super().public_view()
        view["options"] = list(self.options)
        return view


class MultipleChoiceQuestion(BaseQuestion):
    type: Literal["MULTIPLE_CHOICE"] = "MULTIPLE_CHOICE"
    options: list[str]
    correct_indices: list[int]

    def public_view(self) -> dict[str, Any]:
        view = super().public_view()
        view["options"] = list(self.options)
        return view


class MatchingQuestion(BaseQuestion):
    type: Literal["MATCHING"] = "MATCHING"
    pairs: list[MatchingPair]

    def public_view(self) -> dict[str, Any]:
        view = super().public_view()
        view["left"] = [pair.left for pair in self.pairs]
        view["right"] = sorted(pair.right for pair in self.pairs)
        return view


Question = Annotated[
    Union[TrueFalseQuestion, SingleChoiceQuestion, MultipleChoiceQuestion, MatchingQuestion],
    Field(discriminator="type"),
]

question_adapter: TypeAdapter[Question] = TypeAdapter(Question)


@dataclass
class AnswerEvaluation:
    """Outcome of checking one submission against a question."""

    is_correct: bool
    normalized_answer: Any
    pair_results: list[bool] | None = field(default=None)


def load_question(data: str | Mapping[str, Any]) -> Question:
    """Rebuild a stored, already normalized question snapshot."""
    if isinstance(data, str):
        return question_adapter.validate_json(data)
    return question_adapter.validate_python(data)


def dump_question(question: Question) -> str:
    return question.model_dump_json()


def canonical_answer(question: Question) -> Any:
    """Canonical answer in the same shape a normalized submission takes."""
    if isinstance(question, (TrueFalseQuestion, SingleChoiceQuestion)):
        return question.correct_index
    if isinstance(question, MultipleChoiceQuestion):
        return list(question.correct_indices)
    return [pair.model_dump() for pair in question.pairs]


# =============================================================================
# INGESTION
# =============================================================================


def _first(raw: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return None


def _decode_json(value: Any, field_name: str, question_id: str) -> Any:
    """Decode a field that may have been serialized to JSON text."""
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"Question {question_id}: field '{field_name}' is not valid JSON ({e})",
            "Question data is malformed",
        ) from e


def _parse_bool(value: Any, question_id: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    raise ValidationError(
        f"Question {question_id}: true/false answer {value!r} is not a boolean",
        "Question data is malformed",
    )


def _parse_time_limit(value: Any, question_id: str) -> int | None:
    if value is None:
        return None
    try:
        if isinstance(value, bool):
            raise ValueError("booleans are not durations")
        seconds = int(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(
            f"Question {question_id}: time limit {value!r} is not a number of seconds",
            "Question data is malformed",
        ) from e
    if seconds <= 0:
        raise ValidationError(
            f"Question {question_id}: time limit must be positive, got {seconds}",
            "Question data is malformed",
        )
    return seconds


def _parse_options(
    raw: Mapping[str, Any], question_id: str
) -> tuple[list[str], list[int]]:
    """Return option texts and the indices flagged correct."""
    options = _decode_json(_first(raw, "options"), "options", question_id)
    if not isinstance(options, list) or not options:
        raise ValidationError(
            f"Question {question_id}: options must be a non-empty list",
            "Question data is malformed",
        )

    texts: list[str] = []
    flagged: list[int] = []
    for index, option in enumerate(options):
        if isinstance(option, Mapping):
            text = _first(option, "text", "label")
            if text is None:
                raise ValidationError(
                    f"Question {question_id}: option {index} has no text",
                    "Question data is malformed",
                )
            texts.append(str(text))
            if _first(option, "isCorrect", "is_correct") is True:
                flagged.append(index)
        elif isinstance(option, str):
            texts.append(option)
        else:
            raise ValidationError(
                f"Question {question_id}: option {index} has unsupported shape",
                "Question data is malformed",
            )

    # Plain string options carry their answer key separately.
    if not flagged:
        answer = _decode_json(
            _first(raw, "correctAnswer", "correct_answer"), "correctAnswer", question_id
        )
        if isinstance(answer, bool):
            answer = None
        if isinstance(answer, int):
            flagged = [answer]
        elif isinstance(answer, list) and all(
            isinstance(i, int) and not isinstance(i, bool) for i in answer
        ):
            flagged = sorted(set(answer))

    for index in flagged:
        if not 0 <= index < len(texts):
            raise ValidationError(
                f"Question {question_id}: correct index {index} out of range",
                "Question data is malformed",
            )
    return texts, flagged


def _parse_pairs(raw: Mapping[str, Any], question_id: str) -> list[MatchingPair]:
    pairs = _decode_json(_first(raw, "pairs"), "pairs", question_id)
    if not isinstance(pairs, list) or not pairs:
        raise ValidationError(
            f"Question {question_id}: pairs must be a non-empty list",
            "Question data is malformed",
        )
    parsed: list[MatchingPair] = []
    for pair in pairs:
        if isinstance(pair, Mapping) and "left" in pair and "right" in pair:
            parsed.append(MatchingPair(left=str(pair["left"]), right=str(pair["right"])))
        else:
            raise ValidationError(
                f"Question {question_id}: pair {pair!r} must have left and right",
                "Question data is malformed",
            )
    lefts = [pair.left for pair in parsed]
    if len(set(lefts)) != len(lefts):
        raise ValidationError(
            f"Question {question_id}: duplicate left items in pairs",
            "Question data is malformed",
        )
    return parsed


def normalize_question(raw: Mapping[str, Any]) -> Question:
    """Normalize a raw question-bank payload into a ``Question`` variant."""
    if not isinstance(raw, Mapping):
        raise ValidationError(
            f"Question payload must be a mapping, got {type(raw).__name__}",
            "Question data is malformed",
        )

    question_id = _first(raw, "id", "question_id")
    if question_id is None:
        raise ValidationError("Question payload has no id", "Question data is malformed")
    question_id = str(question_id)

    question_type = str(_first(raw, "type", "questionType", "question_type") or "")
    question_type = question_type.strip().upper()
    text = str(_first(raw, "text", "questionText", "question_text", "question") or "")

    time_limit = _first(raw, "timeLimitSeconds", "time_limit_seconds", "timeLimit")
    common: dict[str, Any] = {
        "id": question_id,
        "text": text,
        "time_limit_seconds": _parse_time_limit(time_limit, question_id),
        "image_url": _first(raw, "imageUrl", "image_url"),
    }

    if question_type == "TRUE_FALSE":
        answer = _decode_json(
            _first(raw, "correctAnswer", "correct_answer"), "correctAnswer", question_id
        )
        is_true = _parse_bool(answer, question_id)
        return TrueFalseQuestion(
            correct_index=TRUE_INDEX if is_true else FALSE_INDEX, **common
        )

    if question_type == "SINGLE_CHOICE":
        texts, flagged = _parse_options(raw, question_id)
        if len(flagged) != 1:
            raise ValidationError(
                f"Question {question_id}: single choice needs exactly one correct "
                f"option, found {len(flagged)}",
                "Question data is malformed",
            )
        return SingleChoiceQuestion(options=texts, correct_index=flagged[0], **common)

    if question_type == "MULTIPLE_CHOICE":
        texts, flagged = _parse_options(raw, question_id)
        if not flagged:
            raise ValidationError(
                f"Question {question_id}: multiple choice has no correct options",
                "Question has no correct answer configured",
            )
        return MultipleChoiceQuestion(
            options=texts, correct_indices=sorted(set(flagged)), **common
        )

    if question_type == "MATCHING":
        return MatchingQuestion(pairs=_parse_pairs(raw, question_id), **common)

    raise ValidationError(
        f"Question {question_id}: unknown question type {question_type!r}",
        "Question type is not supported",
    )


# =============================================================================
# EVALUATION
# =============================================================================


def _malformed_answer(question: Question, payload: Any, reason: str) -> ValidationError:
    return ValidationError(
        f"Answer {payload!r} for question {question.id} rejected: {reason}",
        "Answer is malformed",
    )


def _parse_index(question: Question, payload: Any, option_count: int) -> int:
    if isinstance(question, TrueFalseQuestion) and isinstance(payload, bool):
        return TRUE_INDEX if payload else FALSE_INDEX

    index: int | None = None
    if isinstance(payload, int) and not isinstance(payload, bool):
        index = payload
    elif isinstance(payload, str):
        value = payload.strip()
        if isinstance(question, TrueFalseQuestion) and value.lower() in ("true", "false"):
            return TRUE_INDEX if value.lower() == "true" else FALSE_INDEX
        try:
            index = int(value)
        except ValueError:
            index = None

    if index is None:
        raise _malformed_answer(question, payload, "expected an option index")
    if not 0 <= index < option_count:
        raise _malformed_answer(question, payload, "option index out of range")
    return index


def _parse_index_set(question: MultipleChoiceQuestion, payload: Any) -> list[int]:
    if isinstance(payload, str):
        text = payload.strip()
        if text.startswith("["):
            try:
                payload = json.loads(text)
            except json.JSONDecodeError as e:
                raise _malformed_answer(question, payload, "invalid JSON") from e
        else:
            payload = [part for part in text.split(",") if part.strip()]

    if isinstance(payload, (int, str)) and not isinstance(payload, bool):
        payload = [payload]
    if not isinstance(payload, (list, tuple, set, frozenset)):
        raise _malformed_answer(question, payload, "expected a list of option indices")

    indices: set[int] = set()
    for item in payload:
        if isinstance(item, bool):
            raise _malformed_answer(question, payload, "option indices must be integers")
        try:
            index = int(item)
        except (TypeError, ValueError) as e:
            raise _malformed_answer(question, payload, "option indices must be integers") from e
        if not 0 <= index < len(question.options):
            raise _malformed_answer(question, payload, "option index out of range")
        indices.add(index)
    return sorted(indices)


def _parse_pair_submission(question: MatchingQuestion, payload: Any) -> dict[str, str]:
    if isinstance(payload, str):
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError as e:
            raise _malformed_answer(question, payload, "invalid JSON") from e

    if isinstance(payload, Mapping) and "left" not in payload:
        items: list[tuple[Any, Any]] = list(payload.items())
    elif isinstance(payload, Sequence) and not isinstance(payload, str):
        items = []
        for pair in payload:
            if isinstance(pair, Mapping) and "left" in pair and "right" in pair:
                items.append((pair["left"], pair["right"]))
            elif (
                isinstance(pair, Sequence)
                and not isinstance(pair, str)
                and len(pair) == 2
            ):
                items.append((pair[0], pair[1]))
            else:
                raise _malformed_answer(question, payload, f"pair {pair!r} is malformed")
    else:
        raise _malformed_answer(question, payload, "expected a list of pairs")

    submitted: dict[str, str] = {}
    for left, right in items:
        left, right = str(left), str(right)
        if left in submitted:
            raise _malformed_answer(question, payload, f"left item {left!r} paired twice")
        submitted[left] = right

    expected_lefts = {pair.left for pair in question.pairs}
    if set(submitted) != expected_lefts:
        raise _malformed_answer(
            question, payload, "submission must pair every left item exactly once"
        )
    return submitted


def evaluate_answer(question: Question, payload: Any) -> AnswerEvaluation:
    """Check a submission against the canonical answer of a question."""
    if isinstance(question, TrueFalseQuestion):
        index = _parse_index(question, payload, 2)
        return AnswerEvaluation(
            is_correct=index == question.correct_index, normalized_answer=index
        )

    if isinstance(question, SingleChoiceQuestion):
        index = _parse_index(question, payload, len(question.options))
        return AnswerEvaluation(
            is_correct=index == question.correct_index, normalized_answer=index
        )

    if isinstance(question, MultipleChoiceQuestion):
        indices = _parse_index_set(question, payload)
        # Exact set equality; subsets and supersets earn nothing.
        return AnswerEvaluation(
            is_correct=indices == sorted(question.correct_indices),
            normalized_answer=indices,
        )

    submitted = _parse_pair_submission(question, payload)
    canonical = {(pair.left, pair.right) for pair in question.pairs}
    pair_results = [
        (pair.left, submitted[pair.left]) in canonical for pair in question.pairs
    ]
    return AnswerEvaluation(
        is_correct=all(pair_results),
        normalized_answer=[
            {"left": pair.left, "right": submitted[pair.left]} for pair in question.pairs
        ],
        pair_results=pair_results,
    )
