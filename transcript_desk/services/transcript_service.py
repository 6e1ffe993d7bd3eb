"""
Transcript Editing Service

Orchestrates segment operations: serializes them per (episode_slug, lang),
writes the result through the repository and records every committed
mutation in the edit history.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession

from transcript_desk.core.config import settings
from transcript_desk.core.errors import AlreadyExists, AppError, InvalidTransition
from transcript_desk.core.logging import get_logger
from transcript_desk.models.transcript import Transcript
from transcript_desk.schemas.editor import EditorIdentity
from transcript_desk.schemas.history import EditEntryCreate
from transcript_desk.schemas.segment import (
    DESTRUCTIVE_OPERATIONS,
    Segment,
    SegmentOperation,
    TranscriptPayload,
    UpdateTextOperation,
)
from transcript_desk.services import segment_store
from transcript_desk.services.editor_service import AuthRequired, require_auth
from transcript_desk.services.history_service import EditHistoryService
from transcript_desk.services.revert_targets import (
    SEGMENT_TARGET,
    TRANSCRIPT_TARGET,
    dump_payload,
    dump_segment,
    segment_target_id,
)
from transcript_desk.services.segment_store import IdFactory, mint_segment_id
from transcript_desk.services.transcript_repository import (
    TranscriptRepository,
    rebuild_text,
    transcript_key,
    transcript_locks,
)

logger = get_logger(__name__)

EDIT_TYPES = {
    "split": "segment_split",
    "merge": "segment_merge",
    "delete": "segment_delete",
    "update_text": "segment_text_edit",
    "reassign_speaker": "speaker_reassign",
}


class SessionState(str, Enum):
    IDLE = "idle"
    EDITING = "editing"
    SAVING = "saving"
    ERROR = "error"


@dataclass(frozen=True)
class PlaybackState:
    """Player position captured on entering edit mode, handed back on exit"""

    position: float = 0.0
    is_playing: bool = False


@dataclass(frozen=True)
class ConfirmationPreferences:
    """Per-operation "ask before doing this" flags for destructive operations"""

    split: bool = True
    merge: bool = True
    delete: bool = True

    @classmethod
    def from_settings(cls) -> "ConfirmationPreferences":
        return cls(
            split=settings.confirm_split,
            merge=settings.confirm_merge,
            delete=settings.confirm_delete,
        )

    def requires(self, operation_type: str) -> bool:
        if operation_type not in DESTRUCTIVE_OPERATIONS:
            return False
        return getattr(self, operation_type)

    def disable(self, operation_type: str) -> "ConfirmationPreferences":
        """The "don't ask again" choice for one operation type"""
        if operation_type not in DESTRUCTIVE_OPERATIONS:
            return self
        return replace(self, **{operation_type: False})


@dataclass(frozen=True)
class ConfirmationRequired:
    operation_type: str
    segment_id: str


@dataclass
class OperationResult:
    operation_type: str
    segments: List[Segment]
    history_entry_id: Optional[str] = None
    restore_playback: Optional[PlaybackState] = None


@dataclass
class EditingSession:
    """
    Client-side editing state for one transcript.

    IDLE -> EDITING -> SAVING -> IDLE on success. A failed store write leaves
    the session in ERROR until retry() reopens the segment. cancel() abandons
    the edit from any state but SAVING.
    """

    episode_slug: str
    lang: str
    state: SessionState = SessionState.IDLE
    segment_id: Optional[str] = None
    playback: Optional[PlaybackState] = None
    error: Optional[Exception] = field(default=None, repr=False)

    def _expect(self, *allowed: SessionState) -> None:
        if self.state not in allowed:
            raise InvalidTransition(
                f"Cannot leave {self.state.value} this way",
                target_type=TRANSCRIPT_TARGET,
                target_id=transcript_key(self.episode_slug, self.lang),
                operation="editing_session",
                details={"state": self.state.value},
            )

    def begin_editing(self, segment_id: str, playback: Optional[PlaybackState] = None) -> None:
        self._expect(SessionState.IDLE)
        self.state = SessionState.EDITING
        self.segment_id = segment_id
        self.playback = playback
        self.error = None

    def start_saving(self) -> None:
        self._expect(SessionState.EDITING)
        self.state = SessionState.SAVING

    def finish_saving(self) -> Optional[PlaybackState]:
        self._expect(SessionState.SAVING)
        return self._reset()

    def fail_saving(self, error: Exception) -> None:
        self._expect(SessionState.SAVING)
        self.state = SessionState.ERROR
        self.error = error

    def retry(self) -> None:
        """Reopen the same segment after a failed save"""
        self._expect(SessionState.ERROR)
        self.state = SessionState.EDITING
        self.error = None

    def cancel(self) -> Optional[PlaybackState]:
        self._expect(SessionState.EDITING, SessionState.ERROR, SessionState.IDLE)
        return self._reset()

    def _reset(self) -> Optional[PlaybackState]:
        playback = self.playback
        self.state = SessionState.IDLE
        self.segment_id = None
        self.playback = None
        self.error = None
        return playback


class TranscriptEditingService:
    def __init__(
        self,
        session: AsyncSession,
        history: Optional[EditHistoryService] = None,
        preferences: Optional[ConfirmationPreferences] = None,
        id_factory: IdFactory = mint_segment_id,
    ):
        self.session = session
        self.repository = TranscriptRepository(session)
        self.history = history or EditHistoryService(session)
        self.preferences = preferences or ConfirmationPreferences.from_settings()
        self.id_factory = id_factory

    # ============ Reads ============

    async def get_transcript(self, episode_slug: str, lang: str) -> TranscriptPayload:
        return await self.repository.load_payload(episode_slug, lang)

    # ============ Whole-transcript writes ============

    async def create_transcript(
        self,
        editor: Optional[EditorIdentity],
        episode_slug: str,
        lang: str,
        payload: TranscriptPayload,
    ) -> Union[Transcript, AuthRequired]:
        auth = require_auth(editor, "create_transcript")
        if isinstance(auth, AuthRequired):
            return auth

        key = transcript_key(episode_slug, lang)
        async with transcript_locks.hold(key):
            if await self.repository.get(episode_slug, lang) is not None:
                raise AlreadyExists(
                    f"Transcript {episode_slug}/{lang} already exists",
                    target_type=TRANSCRIPT_TARGET,
                    target_id=key,
                    operation="create_transcript",
                )
            payload = self._normalized(payload)
            transcript = await self.repository.write_payload(episode_slug, lang, payload, create=True)
            await self.history.append_once(
                auth,
                EditEntryCreate(
                    edit_type="transcript_create",
                    target_type=TRANSCRIPT_TARGET,
                    target_id=key,
                    content_before=None,
                    content_after=dump_payload(payload),
                    metadata={"episode_slug": episode_slug, "lang": lang},
                ),
            )
        logger.info(f"Transcript {key} created by {auth.email}")
        return transcript

    async def save_transcript(
        self,
        editor: Optional[EditorIdentity],
        episode_slug: str,
        lang: str,
        payload: TranscriptPayload,
    ) -> Union[OperationResult, AuthRequired]:
        """Replace the whole transcript body, creating it when missing"""
        auth = require_auth(editor, "save_transcript")
        if isinstance(auth, AuthRequired):
            return auth

        key = transcript_key(episode_slug, lang)
        async with transcript_locks.hold(key):
            existing = await self.repository.get(episode_slug, lang)
            before = (
                dump_payload(TranscriptPayload.model_validate(existing.data or {}))
                if existing is not None
                else None
            )
            payload = self._normalized(payload)
            after = dump_payload(payload)
            if before == after:
                return OperationResult("transcript_replace", payload.utterances)

            await self.repository.write_payload(episode_slug, lang, payload, create=True)
            entry = await self.history.append_once(
                auth,
                EditEntryCreate(
                    edit_type="transcript_replace",
                    target_type=TRANSCRIPT_TARGET,
                    target_id=key,
                    content_before=before,
                    content_after=after,
                    metadata={
                        "episode_slug": episode_slug,
                        "lang": lang,
                        "utterance_count": len(payload.utterances),
                    },
                ),
            )
        return OperationResult("transcript_replace", payload.utterances, history_entry_id=entry.id)

    @staticmethod
    def _normalized(payload: TranscriptPayload) -> TranscriptPayload:
        return payload.model_copy(update={"utterances": segment_store.sort_segments(payload.utterances)})

    # ============ Segment operations ============

    async def apply_operation(
        self,
        editor: Optional[EditorIdentity],
        episode_slug: str,
        lang: str,
        operation: SegmentOperation,
        *,
        confirmed: bool = False,
        preferences: Optional[ConfirmationPreferences] = None,
        editing: Optional[EditingSession] = None,
    ) -> Union[OperationResult, ConfirmationRequired, AuthRequired]:
        """
        Apply one segment operation and log it.

        Order: auth gate, confirmation gate, then under the per-transcript
        lock compute, write, append history. A failed write leaves no history
        entry. No-ops write nothing and return history_entry_id=None.
        """
        auth = require_auth(editor, operation.type)
        if isinstance(auth, AuthRequired):
            return auth

        preferences = preferences or self.preferences
        if preferences.requires(operation.type) and not confirmed:
            return ConfirmationRequired(operation.type, operation.segment_id)

        if editing is not None:
            if editing.state == SessionState.IDLE:
                editing.begin_editing(operation.segment_id)
            editing.start_saving()

        key = transcript_key(episode_slug, lang)
        try:
            async with transcript_locks.hold(key):
                result = await self._apply_locked(auth, episode_slug, lang, operation)
        except AppError as e:
            # Validation and store failures both park the session in ERROR
            if editing is not None:
                editing.fail_saving(e)
            raise

        if editing is not None:
            result.restore_playback = editing.finish_saving()
        return result

    async def _apply_locked(
        self,
        editor: EditorIdentity,
        episode_slug: str,
        lang: str,
        operation: SegmentOperation,
    ) -> OperationResult:
        payload = await self.repository.load_payload(episode_slug, lang)
        before_segments = payload.utterances
        outcome = segment_store.apply_operation(before_segments, operation, self.id_factory)

        if not outcome.changed:
            logger.info(f"No-op {operation.type} on {episode_slug}/{lang} segment {operation.segment_id}")
            return OperationResult(outcome.operation_type, list(before_segments))

        segments = segment_store.sort_segments(outcome.segments)
        updated = payload.model_copy(update={"utterances": segments, "text": rebuild_text(segments)})

        # Raises TransientStoreError; nothing is logged in that case
        await self.repository.write_payload(episode_slug, lang, updated)

        entry = await self.history.append_once(
            editor,
            self._history_entry(episode_slug, lang, operation, outcome.details, payload, updated),
        )
        logger.info(
            f"{outcome.operation_type} on {episode_slug}/{lang} segment {operation.segment_id} "
            f"by {editor.email} logged as {entry.id}"
        )
        return OperationResult(outcome.operation_type, segments, history_entry_id=entry.id)

    def _history_entry(
        self,
        episode_slug: str,
        lang: str,
        operation: SegmentOperation,
        details: dict,
        before: TranscriptPayload,
        after: TranscriptPayload,
    ) -> EditEntryCreate:
        metadata = {
            "segment_id": operation.segment_id,
            "episode_slug": episode_slug,
            "lang": lang,
            **details,
        }
        edit_type = EDIT_TYPES[operation.type]

        if isinstance(operation, UpdateTextOperation):
            return EditEntryCreate(
                edit_type=edit_type,
                target_type=SEGMENT_TARGET,
                target_id=segment_target_id(episode_slug, lang, operation.segment_id),
                content_before=dump_segment(segment_store.find_segment(before.utterances, operation.segment_id)),
                content_after=dump_segment(segment_store.find_segment(after.utterances, operation.segment_id)),
                metadata=metadata,
            )

        return EditEntryCreate(
            edit_type=edit_type,
            target_type=TRANSCRIPT_TARGET,
            target_id=transcript_key(episode_slug, lang),
            content_before=dump_payload(before),
            content_after=dump_payload(after),
            metadata=metadata,
        )
