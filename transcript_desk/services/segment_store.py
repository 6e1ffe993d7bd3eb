"""
Segment Store

Pure operations over an ordered list of transcript segments. Nothing here
touches the database: every function takes a list and returns a new one,
leaving its inputs untouched.
"""

import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from transcript_desk.core.errors import InvalidSplitPoint, NoPreviousSegment, SegmentNotFound
from transcript_desk.schemas.segment import (
    DeleteOperation,
    MergeOperation,
    ReassignSpeakerOperation,
    Segment,
    SegmentOperation,
    SplitOperation,
    UpdateTextOperation,
    Word,
)

IdFactory = Callable[[], str]


def mint_segment_id() -> str:
    return str(uuid.uuid4())


@dataclass
class OperationOutcome:
    """Result of applying one operation to a segment list"""

    operation_type: str
    segments: List[Segment]
    changed: bool
    details: dict[str, Any] = field(default_factory=dict)


# ============ Helpers ============

def find_index(segments: Sequence[Segment], segment_id: str) -> int:
    for idx, segment in enumerate(segments):
        if segment.id == segment_id:
            return idx
    return -1


def find_segment(segments: Sequence[Segment], segment_id: str) -> Optional[Segment]:
    idx = find_index(segments, segment_id)
    return segments[idx] if idx >= 0 else None


def _require_index(segments: Sequence[Segment], segment_id: str, operation: str) -> int:
    idx = find_index(segments, segment_id)
    if idx < 0:
        raise SegmentNotFound(
            f"Segment '{segment_id}' not found",
            target_type="segment",
            target_id=segment_id,
            operation=operation,
        )
    return idx


def sort_segments(segments: Sequence[Segment]) -> List[Segment]:
    """Stable sort by start time for display and persistence"""
    return sorted(segments, key=lambda s: s.start)


def joined_words(words: Sequence[Word]) -> str:
    return " ".join(w.text for w in words)


def validate_alignment(segment: Segment) -> List[str]:
    """
    Return word-alignment problems for a segment (empty list when aligned).
    Segments without words are considered unaligned but not broken.
    """
    problems: List[str] = []
    words = segment.words
    if not words:
        return problems

    prev_start = words[0].start
    for idx, word in enumerate(words):
        if word.end < word.start:
            problems.append(f"word {idx} ends before it starts")
        if word.start < prev_start:
            problems.append(f"word {idx} starts before word {idx - 1}")
        prev_start = word.start

    if segment.start != words[0].start:
        problems.append("segment start does not match first word")
    if segment.end != words[-1].end:
        problems.append("segment end does not match last word")
    if joined_words(words) != segment.text.strip():
        problems.append("segment text does not match its words")
    return problems


def _speaker_key(speaker: Optional[str]) -> tuple[bool, str]:
    # Unassigned only ever equals unassigned; never the string "None"/"null"
    if speaker is None:
        return (False, "")
    return (True, str(speaker))


# ============ Operations ============

def split(
    segments: Sequence[Segment],
    segment_id: str,
    cursor_position: int,
    id_factory: IdFactory = mint_segment_id,
) -> List[Segment]:
    """
    Split a segment at the word boundary nearest to cursor_position.

    Boundaries are the character offsets reached by accumulating
    ``len(word.text) + 1`` per word. The first half keeps the original id and
    start; the second half gets a new id.
    """
    idx = _require_index(segments, segment_id, "split")
    original = segments[idx]
    words = original.words

    def reject(reason: str) -> InvalidSplitPoint:
        return InvalidSplitPoint(
            reason,
            target_type="segment",
            target_id=segment_id,
            operation="split",
            details={"cursor_position": cursor_position},
        )

    if not words:
        raise reject("Segment has no word-level alignment")
    if len(words) < 2:
        raise reject("Segment has a single word and cannot be split")
    if cursor_position <= 0 or cursor_position >= len(original.text):
        raise reject("Cursor must be strictly inside the segment text")

    boundaries: List[int] = []
    offset = 0
    for word in words[:-1]:
        offset += len(word.text) + 1
        boundaries.append(offset)

    # Nearest interior boundary; ties go to the earlier one
    split_at = min(range(len(boundaries)), key=lambda i: (abs(boundaries[i] - cursor_position), i))
    words_before = list(words[: split_at + 1])
    words_after = list(words[split_at + 1:])
    if not words_before or not words_after:
        raise reject("Split would produce an empty segment")

    if joined_words(words) == original.text.strip():
        text_before = joined_words(words_before)
        text_after = joined_words(words_after)
    else:
        # Text was edited after alignment; cut it at the same offset
        char_offset = min(boundaries[split_at], len(original.text))
        text_before = original.text[:char_offset].strip()
        text_after = original.text[char_offset:].strip()
        if not text_before or not text_after:
            raise reject("Split would produce an empty segment")

    first = original.model_copy(
        update={"text": text_before, "end": words_before[-1].end, "words": words_before},
        deep=True,
    )
    second = original.model_copy(
        update={
            "id": id_factory(),
            "start": words_after[0].start,
            "text": text_after,
            "words": words_after,
        },
        deep=True,
    )
    return [*segments[:idx], first, second, *segments[idx + 1:]]


def merge(segments: Sequence[Segment], segment_id: str) -> List[Segment]:
    """Merge a segment into the one before it"""
    idx = _require_index(segments, segment_id, "merge")
    if idx == 0:
        raise NoPreviousSegment(
            "First segment has nothing to merge into",
            target_type="segment",
            target_id=segment_id,
            operation="merge",
        )

    previous = segments[idx - 1]
    target = segments[idx]
    merged = previous.model_copy(
        update={
            "text": f"{previous.text} {target.text}".strip(),
            "end": target.end,
            "words": [*previous.words, *target.words],
        },
        deep=True,
    )
    return [*segments[: idx - 1], merged, *segments[idx + 1:]]


def delete(segments: Sequence[Segment], segment_id: str) -> List[Segment]:
    """Remove a segment. Unknown ids leave the list unchanged."""
    return [s for s in segments if s.id != segment_id]


def update_text(segments: Sequence[Segment], segment_id: str, new_text: str) -> List[Segment]:
    """Replace text only; words and timing stay as they are"""
    idx = _require_index(segments, segment_id, "update_text")
    updated = segments[idx].model_copy(update={"text": new_text})
    return [*segments[:idx], updated, *segments[idx + 1:]]


def reassign_speaker(
    segments: Sequence[Segment],
    segment_id: str,
    new_speaker: Optional[str],
    is_global: bool = False,
) -> tuple[List[Segment], int]:
    """
    Assign new_speaker to a segment, or to every segment sharing its
    current speaker when is_global is set.

    Returns the new list and how many segments actually changed. Zero means
    the call was a no-op.
    """
    idx = _require_index(segments, segment_id, "reassign_speaker")
    old_key = _speaker_key(segments[idx].speaker)
    new_key = _speaker_key(new_speaker)

    changed = 0
    result: List[Segment] = []
    for position, segment in enumerate(segments):
        current_key = _speaker_key(segment.speaker)
        selected = position == idx or (is_global and current_key == old_key)
        if selected and current_key != new_key:
            result.append(segment.model_copy(update={"speaker": new_speaker}))
            changed += 1
        else:
            result.append(segment)
    return result, changed


def apply_operation(
    segments: Sequence[Segment],
    operation: SegmentOperation,
    id_factory: IdFactory = mint_segment_id,
) -> OperationOutcome:
    """Dispatch one operation and describe what it did"""
    if isinstance(operation, SplitOperation):
        result = split(segments, operation.segment_id, operation.cursor_position, id_factory)
        idx = find_index(result, operation.segment_id)
        return OperationOutcome(
            "split",
            result,
            changed=True,
            details={
                "cursor_position": operation.cursor_position,
                "new_segment_id": result[idx + 1].id,
            },
        )

    if isinstance(operation, MergeOperation):
        idx = find_index(segments, operation.segment_id)
        merged_with = segments[idx - 1].id if idx > 0 else None
        result = merge(segments, operation.segment_id)
        return OperationOutcome("merge", result, changed=True, details={"merged_with": merged_with})

    if isinstance(operation, DeleteOperation):
        result = delete(segments, operation.segment_id)
        return OperationOutcome("delete", result, changed=len(result) != len(segments))

    if isinstance(operation, UpdateTextOperation):
        before = find_segment(segments, operation.segment_id)
        result = update_text(segments, operation.segment_id, operation.new_text)
        return OperationOutcome(
            "update_text",
            result,
            changed=before is not None and before.text != operation.new_text,
        )

    if isinstance(operation, ReassignSpeakerOperation):
        target = find_segment(segments, operation.segment_id)
        result, count = reassign_speaker(
            segments, operation.segment_id, operation.new_speaker, operation.is_global
        )
        return OperationOutcome(
            "reassign_speaker",
            result,
            changed=count > 0,
            details={
                "old_speaker": target.speaker if target else None,
                "new_speaker": operation.new_speaker,
                "is_global": operation.is_global,
                "affected_segments_count": count,
            },
        )

    raise TypeError(f"Unsupported segment operation: {type(operation).__name__}")
