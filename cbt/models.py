"""
Exam data model: authored questions, exam definitions, per-session presentation and results.
Everything here is immutable once built.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Question:
    id: str
    text: str
    options: Tuple[str, ...]
    correct_option_index: int
    explanation: str = ""

    def __post_init__(self):
        object.__setattr__(self, "options", tuple(self.options))
        if len(self.options) < 2:
            raise ValueError(f"Question {self.id} needs at least 2 options, got {len(self.options)}")
        if not 0 <= self.correct_option_index < len(self.options):
            raise ValueError(
                f"Question {self.id}: correct_option_index {self.correct_option_index} "
                f"outside {len(self.options)} options"
            )

    @classmethod
    def from_row(cls, row: Dict) -> "Question":
        """Build from a `questions` table row."""
        return cls(
            id=str(row["id"]),
            text=row.get("text") or "",
            options=tuple(row.get("options") or ()),
            correct_option_index=int(row["correct_option_index"]),
            explanation=row.get("explanation") or "",
        )


class QuestionBank:
    """Read-only question lookup for one exam. Safe to share between sessions."""

    def __init__(self, questions):
        self._by_id: Dict[str, Question] = {q.id: q for q in questions}

    def __getitem__(self, question_id: str) -> Question:
        return self._by_id[question_id]

    def __contains__(self, question_id) -> bool:
        return question_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def __iter__(self) -> Iterator[Question]:
        return iter(self._by_id.values())


@dataclass(frozen=True)
class ExamDefinition:
    id: str
    title: str
    duration_seconds: int
    question_ids: Tuple[str, ...]
    presented_question_count: int
    shuffle_questions: bool = True
    shuffle_options: bool = True

    def __post_init__(self):
        object.__setattr__(self, "question_ids", tuple(self.question_ids))
        if self.duration_seconds <= 0:
            raise ValueError(f"Exam {self.id}: duration_seconds must be > 0, got {self.duration_seconds}")
        if self.presented_question_count < 0:
            raise ValueError(f"Exam {self.id}: presented_question_count must be >= 0")

    @classmethod
    def from_row(cls, row: Dict) -> "ExamDefinition":
        """Build from an `exams` table row."""
        question_ids = tuple(str(q) for q in (row.get("question_ids") or ()))
        count = row.get("presented_question_count")
        return cls(
            id=str(row["id"]),
            title=row.get("title") or "",
            duration_seconds=int(row["duration_seconds"]),
            question_ids=question_ids,
            presented_question_count=len(question_ids) if count is None else int(count),
            shuffle_questions=row.get("shuffle_questions") is not False,
            shuffle_options=row.get("shuffle_options") is not False,
        )


@dataclass(frozen=True)
class OptionPermutation:
    """
    Invertible mapping between presented option positions and canonical option indices.

    order[p] is the canonical index shown at presented position p.
    """
    order: Tuple[int, ...]

    def __post_init__(self):
        object.__setattr__(self, "order", tuple(self.order))
        if sorted(self.order) != list(range(len(self.order))):
            raise ValueError(f"Not a permutation: {self.order}")

    @classmethod
    def identity(cls, size: int) -> "OptionPermutation":
        return cls(tuple(range(size)))

    def __len__(self) -> int:
        return len(self.order)

    def canonical_index(self, presented_position: int) -> int:
        return self.order[presented_position]

    def presented_position(self, canonical_index: int) -> int:
        return self.order.index(canonical_index)

    def apply(self, options) -> Tuple:
        """Reorder canonical options into presented order."""
        return tuple(options[i] for i in self.order)


@dataclass(frozen=True)
class PresentationEntry:
    original_question_id: str
    option_order: OptionPermutation


@dataclass(frozen=True)
class PresentationMap:
    """Per-session question order and option permutations."""
    entries: Tuple[PresentationEntry, ...]

    def __post_init__(self):
        object.__setattr__(self, "entries", tuple(self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __getitem__(self, position: int) -> PresentationEntry:
        return self.entries[position]

    def __iter__(self) -> Iterator[PresentationEntry]:
        return iter(self.entries)

    def canonical(self, position: int, option_position: int) -> Tuple[str, int]:
        """(original_question_id, canonical_option_index) for a presented answer."""
        entry = self.entries[position]
        return entry.original_question_id, entry.option_order.canonical_index(option_position)

    def to_rows(self) -> List[Dict]:
        return [
            {"question_id": e.original_question_id, "option_order": list(e.option_order.order)}
            for e in self.entries
        ]

    @classmethod
    def from_rows(cls, rows) -> "PresentationMap":
        return cls(tuple(
            PresentationEntry(str(r["question_id"]), OptionPermutation(tuple(r["option_order"])))
            for r in rows
        ))


@dataclass(frozen=True)
class PresentedQuestion:
    """What the rendering layer shows for one presented position."""
    position: int
    total: int
    text: str
    options: Tuple[str, ...]
    selected_option: Optional[int] = None


@dataclass(frozen=True)
class Result:
    session_id: str
    candidate_identity: str
    exam_id: str
    correct_count: int
    total_questions: int
    percent_score: int
    submitted_at_epoch_seconds: float
    time_taken_seconds: int
    raw_answers: Mapping[int, int] = field(default_factory=dict)
    presentation: Optional[PresentationMap] = None
    terminated_by: str = "manual"

    def __post_init__(self):
        object.__setattr__(self, "raw_answers", MappingProxyType(dict(self.raw_answers)))

    def to_row(self) -> Dict:
        """Serialise to a `results` table row."""
        return {
            "session_id": self.session_id,
            "candidate_identity": self.candidate_identity,
            "exam_id": self.exam_id,
            "correct_count": self.correct_count,
            "total_questions": self.total_questions,
            "percent_score": self.percent_score,
            "submitted_at_epoch_seconds": self.submitted_at_epoch_seconds,
            "time_taken_seconds": self.time_taken_seconds,
            "raw_answers": {str(k): v for k, v in sorted(self.raw_answers.items())},
            "presentation": self.presentation.to_rows() if self.presentation is not None else None,
            "terminated_by": self.terminated_by,
        }

    @classmethod
    def from_row(cls, row: Dict) -> "Result":
        presentation = row.get("presentation")
        return cls(
            session_id=str(row["session_id"]),
            candidate_identity=str(row.get("candidate_identity") or ""),
            exam_id=str(row["exam_id"]),
            correct_count=int(row["correct_count"]),
            total_questions=int(row["total_questions"]),
            percent_score=int(row["percent_score"]),
            submitted_at_epoch_seconds=float(row.get("submitted_at_epoch_seconds") or 0),
            time_taken_seconds=int(row.get("time_taken_seconds") or 0),
            raw_answers={int(k): int(v) for k, v in (row.get("raw_answers") or {}).items()},
            presentation=PresentationMap.from_rows(presentation) if presentation else None,
            terminated_by=row.get("terminated_by") or "manual",
        )
