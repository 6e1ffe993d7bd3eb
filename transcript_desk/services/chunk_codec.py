"""
Chunk Codec

Splits a transcript body into ordered, size-bounded chunks and rebuilds it.

A transcript is ``{"text": str, "utterances": [dict, ...]}``. The text body
and the utterance list are chunked separately: text chunks take indices
``0 .. text_chunks - 1`` and utterance chunks follow. Each chunk is a compact
JSON document whose UTF-8 size stays within ``max_chunk_bytes``, except for a
single utterance that is larger than the limit on its own.
"""

import json
from dataclasses import dataclass
from typing import Any, Iterable, List, Mapping, Optional, Sequence

from transcript_desk.core.errors import (
    ChunkLimitExceeded,
    CorruptChunk,
    IncompleteChunkSet,
    UnsplittableUnit,
)
from transcript_desk.core.logging import get_logger
from transcript_desk.core.time import utc_now
from transcript_desk.schemas.chunk import ChunkSetMetadata, ReconstructedTranscript

logger = get_logger(__name__)

TEXT_KIND = "text"
UTTERANCES_KIND = "utterances"

SENTENCE_ENDINGS = ".?!"
# Look back at most this far for a natural break (20% of the chunk or 1000 chars)
BREAK_WINDOW_RATIO = 0.2
BREAK_WINDOW_MAX = 1000


@dataclass(frozen=True)
class EncodedChunk:
    index: int
    kind: str
    payload: str

    @property
    def size(self) -> int:
        return byte_size(self.payload)


@dataclass
class ChunkSet:
    metadata: ChunkSetMetadata
    chunks: List[EncodedChunk]


def serialize(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def byte_size(serialized: str) -> int:
    return len(serialized.encode("utf-8"))


# ============ Text ============

def _char_costs(text: str) -> List[int]:
    """Prefix sums of each character's serialized (escaped, UTF-8) size"""
    prefix = [0]
    total = 0
    for ch in text:
        total += byte_size(serialize(ch)) - 2  # minus the quotes
        prefix.append(total)
    return prefix


def _find_break(text: str, start: int, end: int) -> int:
    """Best cut position in (start, end]: sentence end, then whitespace, then end"""
    window = max(1, min(int((end - start) * BREAK_WINDOW_RATIO), BREAK_WINDOW_MAX))
    lower = max(start + 1, end - window)

    for cut in range(end, lower - 1, -1):
        # cut after "<punct><space>"
        if cut - start >= 2 and text[cut - 1].isspace() and text[cut - 2] in SENTENCE_ENDINGS:
            return cut
    for cut in range(end, lower - 1, -1):
        if text[cut - 1].isspace():
            return cut
    return end


def chunk_text(text: str, max_chunk_bytes: int, *, strict: bool = False) -> List[str]:
    """Split text into pieces whose ``{"text": piece}`` payload fits the limit"""
    overhead = byte_size(serialize({"text": ""}))
    budget = max_chunk_bytes - overhead
    if not text:
        return [""]

    prefix = _char_costs(text)
    if prefix[-1] <= budget:
        return [text]

    pieces: List[str] = []
    start = 0
    n = len(text)
    while start < n:
        end = start
        while end < n and prefix[end + 1] - prefix[start] <= budget:
            end += 1
        if end == start:
            # A single character does not fit; it still has to go somewhere
            if strict:
                raise UnsplittableUnit(
                    f"Character at offset {start} exceeds the chunk size {max_chunk_bytes}",
                    operation="chunk",
                )
            end = start + 1
        elif end < n:
            end = _find_break(text, start, end)
        pieces.append(text[start:end])
        start = end
    return pieces


# ============ Utterances ============

def _utterance_payload(utterances: Sequence[Any]) -> dict[str, Any]:
    return {
        "start": utterances[0].get("start") if utterances else None,
        "end": utterances[-1].get("end") if utterances else None,
        "utterances": list(utterances),
    }


def _payload_size(first: Mapping[str, Any], last: Mapping[str, Any], item_sizes: Sequence[int]) -> int:
    # Compact JSON is compositional: envelope + items + separating commas
    envelope = byte_size(
        serialize({"start": first.get("start"), "end": last.get("end"), "utterances": []})
    )
    return envelope + sum(item_sizes) + max(len(item_sizes) - 1, 0)


def chunk_utterances(
    utterances: Sequence[Mapping[str, Any]],
    max_chunk_bytes: int,
    *,
    strict: bool = False,
) -> List[List[Mapping[str, Any]]]:
    """Group utterances into runs whose payload fits; never splits an utterance"""
    groups: List[List[Mapping[str, Any]]] = []
    current: List[Mapping[str, Any]] = []
    sizes: List[int] = []

    for position, utterance in enumerate(utterances):
        size = byte_size(serialize(utterance))
        if current and _payload_size(current[0], utterance, [*sizes, size]) > max_chunk_bytes:
            groups.append(current)
            current, sizes = [], []

        current.append(utterance)
        sizes.append(size)

        if len(current) == 1 and _payload_size(utterance, utterance, sizes) > max_chunk_bytes:
            if strict:
                raise UnsplittableUnit(
                    f"Utterance {position} alone exceeds the chunk size {max_chunk_bytes}",
                    target_type="utterance",
                    target_id=str(utterance.get("id", position)),
                    operation="chunk",
                )
            logger.warning(
                f"Utterance {utterance.get('id', position)} ({size} bytes) exceeds "
                f"chunk size {max_chunk_bytes}; storing it as its own chunk"
            )
            groups.append(current)
            current, sizes = [], []

    if current:
        groups.append(current)
    return groups


# ============ Public API ============

def chunk(
    transcript: Mapping[str, Any],
    max_chunk_bytes: int,
    *,
    include_text: bool = True,
    strict: bool = False,
    max_chunks: Optional[int] = None,
) -> ChunkSet:
    """
    Chunk a transcript body.

    Args:
        transcript: Mapping with ``text`` and ``utterances``.
        max_chunk_bytes: Upper bound for each serialized chunk.
        include_text: Store the text body; when False the text is rebuilt
            from utterances on reconstruction.
        strict: Raise UnsplittableUnit instead of emitting an oversized chunk.
        max_chunks: Optional cap on the total number of chunks.
    """
    if max_chunk_bytes < 1:
        raise ValueError("max_chunk_bytes must be positive")

    text = transcript.get("text") or ""
    utterances = list(transcript.get("utterances") or [])

    text_pieces = chunk_text(text, max_chunk_bytes, strict=strict) if include_text else []
    utterance_groups = chunk_utterances(utterances, max_chunk_bytes, strict=strict)

    total = len(text_pieces) + len(utterance_groups)
    if max_chunks is not None and total > max_chunks:
        raise ChunkLimitExceeded(
            f"Transcript needs {total} chunks, limit is {max_chunks}",
            operation="chunk",
            details={"total_chunks": total, "max_chunks": max_chunks},
        )

    chunks: List[EncodedChunk] = []
    for piece in text_pieces:
        chunks.append(EncodedChunk(len(chunks), TEXT_KIND, serialize({"text": piece})))
    for group in utterance_groups:
        chunks.append(EncodedChunk(len(chunks), UTTERANCES_KIND, serialize(_utterance_payload(group))))

    metadata = ChunkSetMetadata(
        total_chunks=total,
        text_chunks=len(text_pieces),
        utterance_chunks=len(utterance_groups),
        chunk_size=max_chunk_bytes,
        chunked_at=utc_now(),
    )
    logger.debug(
        f"Chunked transcript: {metadata.text_chunks} text + "
        f"{metadata.utterance_chunks} utterance chunks (limit {max_chunk_bytes} bytes)"
    )
    return ChunkSet(metadata=metadata, chunks=chunks)


def _decode(chunk_: EncodedChunk) -> dict[str, Any]:
    try:
        data = json.loads(chunk_.payload)
    except (TypeError, ValueError) as e:
        raise CorruptChunk(
            f"Chunk {chunk_.index} is not valid JSON: {e}",
            operation="reconstruct",
            details={"chunk_index": chunk_.index, "chunk_kind": chunk_.kind},
        ) from e

    valid = isinstance(data, dict) and (
        (chunk_.kind == TEXT_KIND and isinstance(data.get("text"), str))
        or (chunk_.kind == UTTERANCES_KIND and isinstance(data.get("utterances"), list))
    )
    if not valid:
        raise CorruptChunk(
            f"Chunk {chunk_.index} has an unexpected shape for kind '{chunk_.kind}'",
            operation="reconstruct",
            details={"chunk_index": chunk_.index, "chunk_kind": chunk_.kind},
        )
    return data


def reconstruct(metadata: ChunkSetMetadata, chunks: Iterable[EncodedChunk]) -> ReconstructedTranscript:
    """
    Rebuild a transcript from its chunks.

    Either the full transcript comes back or an error is raised; a partial
    result is never returned.
    """
    by_index: dict[int, EncodedChunk] = {}
    for chunk_ in chunks:
        if chunk_.index in by_index:
            raise CorruptChunk(
                f"Duplicate chunk index {chunk_.index}",
                operation="reconstruct",
                details={"chunk_index": chunk_.index},
            )
        by_index[chunk_.index] = chunk_

    expected = set(range(metadata.total_chunks))
    missing = sorted(expected - by_index.keys())
    unexpected = sorted(by_index.keys() - expected)
    if missing or unexpected:
        raise IncompleteChunkSet(
            f"Chunk set is incomplete: {len(missing)} missing, {len(unexpected)} unexpected",
            operation="reconstruct",
            details={"missing": missing, "unexpected": unexpected, "total_chunks": metadata.total_chunks},
        )

    text_parts: List[str] = []
    utterances: List[dict[str, Any]] = []
    for index in range(metadata.total_chunks):
        chunk_ = by_index[index]
        expected_kind = TEXT_KIND if index < metadata.text_chunks else UTTERANCES_KIND
        if chunk_.kind != expected_kind:
            raise CorruptChunk(
                f"Chunk {index} is '{chunk_.kind}', expected '{expected_kind}'",
                operation="reconstruct",
                details={"chunk_index": index, "chunk_kind": chunk_.kind},
            )
        data = _decode(chunk_)
        if expected_kind == TEXT_KIND:
            text_parts.append(data["text"])
        else:
            utterances.extend(data["utterances"])

    if metadata.text_chunks:
        text = "".join(text_parts)
    else:
        text = " ".join(str(u.get("text", "")) for u in utterances)

    return ReconstructedTranscript(
        text=text,
        utterances=utterances,
        chunk_count=metadata.total_chunks,
    )
