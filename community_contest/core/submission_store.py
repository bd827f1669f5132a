"""
Submission Store for the community contest service.

Persists article submissions and owns the submission status state machine:

    pending  --approve-->  approved
    pending  --reject-->   rejected
    approved --resolve-->  winner

`rejected` and `winner` are terminal. Every status change is a single
compare-and-set UPDATE guarded on the expected current status, so the loser
of a race between an edit, an approval and a rejection gets an error instead
of silently overwriting the winner's change.
"""
import logging
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from community_contest.config.settings import settings
from community_contest.core.errors import (
    InvalidState,
    InvalidTransition,
    NotAuthenticated,
    NotAuthorized,
    NotFound,
    ValidationError,
)
from community_contest.models import ContestPeriodORM, SubmissionORM
from community_contest.models.dtos import (
    PUBLIC_STATUSES,
    Actor,
    ActorRole,
    SubmissionDTO,
    SubmissionEditRequest,
    SubmissionStatus,
)
from community_contest.utils.time_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

# Allowed transitions: new status -> the only status it may be entered from.
_SOURCE_STATUS = {
    SubmissionStatus.APPROVED: SubmissionStatus.PENDING,
    SubmissionStatus.REJECTED: SubmissionStatus.PENDING,
    SubmissionStatus.WINNER: SubmissionStatus.APPROVED,
}

# Role required to move a submission into each status.
_REQUIRED_ROLE = {
    SubmissionStatus.APPROVED: ActorRole.MODERATOR,
    SubmissionStatus.REJECTED: ActorRole.MODERATOR,
    SubmissionStatus.WINNER: ActorRole.SCHEDULER,
}

_EDITABLE_FIELDS = ("title", "body", "excerpt", "cover_image_url")


class SubmissionStore:
    """
    Creates, edits, reads and transitions article submissions.

    The store works inside the caller's session and never commits; the
    request (or CLI command) that owns the session decides the transaction
    boundary.
    """

    def __init__(
        self,
        session: AsyncSession,
        min_content_length: Optional[int] = None,
        excerpt_length: Optional[int] = None,
    ):
        self._session = session
        self.min_content_length = min_content_length if min_content_length is not None else settings.MIN_CONTENT_LENGTH
        self.excerpt_length = excerpt_length if excerpt_length is not None else settings.EXCERPT_AUTO_LENGTH

    # ------------------------------------------------------------------ #
    # Validation helpers
    # ------------------------------------------------------------------ #

    def _validate_content(self, title: Optional[str], body: Optional[str]) -> None:
        if title is None or not title.strip():
            raise ValidationError("The article title must not be empty.")
        if len(title.strip()) > settings.MAX_TITLE_LENGTH:
            raise ValidationError(
                f"The article title is too long ({len(title.strip())} characters, "
                f"maximum {settings.MAX_TITLE_LENGTH})."
            )
        if body is None or not body.strip():
            raise ValidationError("The article body must not be empty.")
        length = len(body.strip())
        if length < self.min_content_length:
            raise ValidationError(
                f"The article must have at least {self.min_content_length} characters "
                f"(it currently has {length})."
            )

    def _excerpt_for(self, excerpt: Optional[str], body: str) -> str:
        if excerpt and excerpt.strip():
            return excerpt.strip()
        return body.strip()[: self.excerpt_length]

    async def _load(self, submission_id: uuid.UUID) -> SubmissionORM:
        submission = await self._session.get(SubmissionORM, submission_id, populate_existing=True)
        if submission is None:
            raise NotFound(f"Submission {submission_id} does not exist.")
        return submission

    async def _check_contest_open(self, contest_period_id: uuid.UUID) -> None:
        period = await self._session.get(ContestPeriodORM, contest_period_id)
        if period is None:
            raise NotFound(f"Contest period {contest_period_id} does not exist.")
        if not period.is_active:
            raise InvalidState(f"The contest '{period.name}' is not accepting submissions.")
        if as_utc(period.end_date) <= utcnow():
            raise InvalidState(f"The contest '{period.name}' has already ended.")

    # ------------------------------------------------------------------ #
    # Author operations
    # ------------------------------------------------------------------ #

    async def create(
        self,
        author_id: Optional[str],
        title: str,
        body: str,
        excerpt: Optional[str] = None,
        cover_image_url: Optional[str] = None,
        contest_period_id: Optional[uuid.UUID] = None,
    ) -> SubmissionDTO:
        """
        Create a new pending submission.

        Raises:
            NotAuthenticated: If no author id is supplied.
            ValidationError: If the title or body is empty or the body is too short.
            NotFound / InvalidState: If the contest period is unknown or not open.
        """
        if not author_id:
            raise NotAuthenticated("You must be signed in to submit an article.")
        self._validate_content(title, body)
        if contest_period_id is not None:
            await self._check_contest_open(contest_period_id)

        submission = SubmissionORM(
            author_id=author_id,
            contest_period_id=contest_period_id,
            title=title.strip(),
            body=body,
            excerpt=self._excerpt_for(excerpt, body),
            cover_image_url=cover_image_url,
            status=SubmissionStatus.PENDING.value,
            vote_count=0,
        )
        self._session.add(submission)
        await self._session.flush()
        await self._session.refresh(submission)
        logger.info(
            f"Submission {submission.id} created by {author_id} "
            f"(contest_period_id={contest_period_id})"
        )
        return SubmissionDTO.model_validate(submission)

    async def edit(
        self,
        submission_id: uuid.UUID,
        editor_id: Optional[str],
        fields: Union[SubmissionEditRequest, Mapping[str, Any]],
    ) -> SubmissionDTO:
        """
        Edit a pending submission's content.

        Only the author may edit, and only while the submission is pending.
        Content is re-validated against the merged result.
        """
        if not editor_id:
            raise NotAuthenticated("You must be signed in to edit an article.")
        if isinstance(fields, SubmissionEditRequest):
            changes: Dict[str, Any] = fields.model_dump(exclude_unset=True)
        else:
            changes = dict(fields)
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"These fields cannot be edited: {', '.join(sorted(unknown))}.")

        submission = await self._load(submission_id)
        if submission.author_id != editor_id:
            raise NotAuthorized("Only the author can edit this article.")
        if submission.status != SubmissionStatus.PENDING.value:
            raise InvalidState(
                "This article can no longer be edited because it has already been "
                f"reviewed (status: {submission.status})."
            )

        title = changes.get("title", submission.title)
        body = changes.get("body", submission.body)
        self._validate_content(title, body)

        values: Dict[str, Any] = {"title": title.strip(), "body": body, "updated_at": utcnow()}
        if "excerpt" in changes:
            values["excerpt"] = self._excerpt_for(changes["excerpt"], body)
        elif "body" in changes and submission.excerpt == self._excerpt_for(None, submission.body):
            # Generated excerpts follow the body; author-written ones are kept.
            values["excerpt"] = self._excerpt_for(None, body)
        if "cover_image_url" in changes:
            values["cover_image_url"] = changes["cover_image_url"]

        result = await self._session.execute(
            update(SubmissionORM)
            .where(
                SubmissionORM.id == submission_id,
                SubmissionORM.author_id == editor_id,
                SubmissionORM.status == SubmissionStatus.PENDING.value,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._load(submission_id)
            logger.warning(
                f"Edit of submission {submission_id} lost a race; status is now {current.status}"
            )
            raise InvalidState(
                "This article can no longer be edited because it was reviewed while "
                f"you were editing it (status: {current.status})."
            )

        submission = await self._load(submission_id)
        logger.info(f"Submission {submission_id} edited by {editor_id}")
        return SubmissionDTO.model_validate(submission)

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    async def get(self, submission_id: uuid.UUID) -> SubmissionDTO:
        return SubmissionDTO.model_validate(await self._load(submission_id))

    async def list_approved(
        self,
        contest_period_id: Optional[uuid.UUID] = None,
        include_winners: bool = True,
        limit: Optional[int] = None,
    ) -> List[SubmissionDTO]:
        """
        Publicly visible submissions ordered by tally.

        Ordered by vote_count descending; ties go to the earliest created
        submission, then to the lower id so the order is total.
        """
        statuses: Sequence[SubmissionStatus] = PUBLIC_STATUSES if include_winners else (SubmissionStatus.APPROVED,)
        query = select(SubmissionORM).where(SubmissionORM.status.in_([s.value for s in statuses]))
        if contest_period_id is not None:
            query = query.where(SubmissionORM.contest_period_id == contest_period_id)
        query = query.order_by(
            SubmissionORM.vote_count.desc(),
            SubmissionORM.created_at.asc(),
            SubmissionORM.id.asc(),
        )
        if limit is not None:
            query = query.limit(limit)

        result = await self._session.execute(query.execution_options(populate_existing=True))
        return [SubmissionDTO.model_validate(row) for row in result.scalars().all()]

    async def list_by_author(
        self,
        author_id: str,
        contest_period_id: Optional[uuid.UUID] = None,
    ) -> List[SubmissionDTO]:
        """An author's own submissions in every status, newest first."""
        query = select(SubmissionORM).where(SubmissionORM.author_id == author_id)
        if contest_period_id is not None:
            query = query.where(SubmissionORM.contest_period_id == contest_period_id)
        query = query.order_by(SubmissionORM.created_at.desc(), SubmissionORM.id.desc())

        result = await self._session.execute(query.execution_options(populate_existing=True))
        return [SubmissionDTO.model_validate(row) for row in result.scalars().all()]

    # ------------------------------------------------------------------ #
    # Status transitions
    # ------------------------------------------------------------------ #

    async def set_status(
        self,
        submission_id: uuid.UUID,
        new_status: SubmissionStatus,
        actor: Actor,
        feedback: Optional[str] = None,
    ) -> SubmissionDTO:
        """
        Move a submission along the state machine.

        Invoked only by the moderation gateway (approve/reject) and the contest
        period manager (winner). The update is conditional on the expected
        source status.

        Raises:
            NotAuthorized: If the actor's role may not perform this transition.
            NotFound: If the submission does not exist.
            InvalidTransition: If the transition is illegal from the current
                status, including when a concurrent transition got there first.
        """
        new_status = SubmissionStatus(new_status)
        if new_status not in _SOURCE_STATUS:
            raise InvalidTransition(f"A submission cannot be moved to '{new_status.value}'.")
        required_role = _REQUIRED_ROLE[new_status]
        if actor.role != required_role:
            raise NotAuthorized(
                f"Only a {required_role.value} can mark a submission as '{new_status.value}'."
            )

        current = await self._load(submission_id)
        expected = _SOURCE_STATUS[new_status]
        if current.status != expected.value:
            raise InvalidTransition(
                f"This article cannot be marked '{new_status.value}' because it is "
                f"'{current.status}'; only '{expected.value}' articles can."
            )

        now = utcnow()
        values: Dict[str, Any] = {"status": new_status.value, "updated_at": now}
        if new_status in (SubmissionStatus.APPROVED, SubmissionStatus.REJECTED):
            values.update(reviewed_by=actor.user_id, reviewed_at=now, admin_feedback=feedback)

        result = await self._session.execute(
            update(SubmissionORM)
            .where(SubmissionORM.id == submission_id, SubmissionORM.status == expected.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            current = await self._load(submission_id)
            logger.warning(
                f"Transition of submission {submission_id} to {new_status.value} lost a race; "
                f"status is now {current.status}"
            )
            raise InvalidTransition(
                f"This article cannot be marked '{new_status.value}' because it was "
                f"changed concurrently (status: {current.status})."
            )

        submission = await self._load(submission_id)
        logger.info(
            f"Submission {submission_id} moved {expected.value} -> {new_status.value} by "
            f"{actor.role.value} {actor.user_id}"
        )
        return SubmissionDTO.model_validate(submission)
