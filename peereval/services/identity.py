"""
Links login accounts to the roster records that represent the same person.

Students are get-only: a roster record is found (by back-reference, email or
name) and linked to the account, but never created here. Professors are
find-or-create: course creation needs a professor record, so one is created
when nothing matches.

Name matching is normalized-exact first, then a similarity score with a
configured threshold. When more than one record qualifies equally the result
is ``AMBIGUOUS`` and nothing is linked.
"""

from dataclasses import dataclass, field
from difflib import SequenceMatcher
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple
from sqlalchemy import select, func, or_, true
from sqlalchemy.ext.asyncio import AsyncSession
from ..core.config import settings
from ..models.account import Account
from ..models.student import StudentRecord
from ..models.professor import ProfessorRecord
import logging

logger = logging.getLogger(__name__)


class MatchOutcome(str, Enum):
    LINKED = "linked"
    MATCHED_EMAIL = "matched_email"
    MATCHED_NAME = "matched_name"
    CREATED = "created"
    AMBIGUOUS = "ambiguous"
    NOT_FOUND = "not_found"


@dataclass
class Resolution:
    outcome: MatchOutcome
    record_id: Optional[int] = None
    candidates: List[int] = field(default_factory=list)
    wrote: bool = False

    @property
    def found(self) -> bool:
        return self.record_id is not None


@dataclass
class NameMatch:
    record_id: Optional[int] = None
    candidates: List[int] = field(default_factory=list)
    score: float = 0.0

    @property
    def ambiguous(self) -> bool:
        return self.record_id is None and len(self.candidates) > 1


class AmbiguousIdentityError(Exception):
    def __init__(self, message: str, candidates: Sequence[int]):
        super().__init__(message)
        self.candidates = list(candidates)


def normalize_name(value: Optional[str]) -> str:
    return " ".join((value or "").split()).casefold()


def match_name(target: str, candidates: Iterable[Tuple[int, str]],
               threshold: Optional[float] = None) -> NameMatch:
    """Pick the single record whose name matches ``target``.

    Exact matches after normalization win outright. Otherwise each name is
    scored with ``SequenceMatcher.ratio`` and the top scorer is accepted if it
    reaches ``threshold`` and nobody else shares its score.
    """
    threshold = settings.name_match_threshold if threshold is None else threshold
    wanted = normalize_name(target)
    if not wanted:
        return NameMatch()

    candidates = [(record_id, normalize_name(name)) for record_id, name in candidates]

    exact = [record_id for record_id, name in candidates if name == wanted]
    if len(exact) == 1:
        return NameMatch(record_id=exact[0], candidates=exact, score=1.0)
    if len(exact) > 1:
        return NameMatch(candidates=exact, score=1.0)

    scored = [
        (SequenceMatcher(None, wanted, name).ratio(), record_id)
        for record_id, name in candidates
        if name
    ]
    scored = [(score, record_id) for score, record_id in scored if score >= threshold]
    if not scored:
        return NameMatch()

    best = max(score for score, _ in scored)
    top = [record_id for score, record_id in scored if score == best]
    if len(top) > 1:
        return NameMatch(candidates=top, score=best)
    return NameMatch(record_id=top[0], candidates=top, score=best)


def _email_unset_or(column, email: Optional[str]):
    """Rows whose stored email is empty or equals ``email``; every row when ``email`` is unknown"""
    if not email:
        return true()
    return or_(column.is_(None), column == "", func.lower(column) == email.lower())


async def _link_student(session: AsyncSession, student: StudentRecord, account: Account):
    student.user_id = account.id
    if not student.email:
        student.email = account.email
    await session.flush()
    logger.info(f"Linked student record {student.id} to account {account.id}")


async def resolve_student(session: AsyncSession, account: Account) -> Resolution:
    """Find the student record for ``account``, linking it when newly discovered.

    The caller owns the transaction; links are flushed, not committed.
    """
    linked = await session.execute(
        select(StudentRecord).filter(StudentRecord.user_id == account.id)
    )
    student = linked.scalars().first()
    if student:
        return Resolution(MatchOutcome.LINKED, record_id=student.id)

    if account.email:
        by_email = await session.execute(
            select(StudentRecord)
            .filter(func.lower(StudentRecord.email) == account.email.lower(),
                    StudentRecord.user_id.is_(None))
            .order_by(StudentRecord.id)
        )
        matches = by_email.scalars().all()
        if len(matches) > 1:
            logger.warning(f"Email {account.email} matches {len(matches)} student records")
            return Resolution(MatchOutcome.AMBIGUOUS, candidates=[s.id for s in matches])
        if matches:
            await _link_student(session, matches[0], account)
            return Resolution(MatchOutcome.MATCHED_EMAIL, record_id=matches[0].id, wrote=True)

    # A record that already carries another person's email is never a name candidate
    name_query = select(StudentRecord.id, StudentRecord.name).filter(StudentRecord.user_id.is_(None))
    name_query = name_query.filter(_email_unset_or(StudentRecord.email, account.email))
    unlinked = await session.execute(name_query)
    match = match_name(account.display_name, unlinked.all())
    if match.ambiguous:
        logger.warning(f"Name '{account.display_name}' matches students {match.candidates}")
        return Resolution(MatchOutcome.AMBIGUOUS, candidates=match.candidates)
    if match.record_id is None:
        return Resolution(MatchOutcome.NOT_FOUND)

    student = await session.get(StudentRecord, match.record_id)
    await _link_student(session, student, account)
    return Resolution(MatchOutcome.MATCHED_NAME, record_id=student.id, wrote=True)


async def resolve_student_by_email(session: AsyncSession, email: str) -> Resolution:
    account_result = await session.execute(
        select(Account).filter(func.lower(Account.email) == email.lower())
    )
    account = account_result.scalar_one_or_none()
    if account:
        return await resolve_student(session, account)

    # No account yet: a roster record may still carry the email
    direct = await session.execute(
        select(StudentRecord.id)
        .filter(func.lower(StudentRecord.email) == email.lower())
        .order_by(StudentRecord.id)
    )
    ids = list(direct.scalars().all())
    if len(ids) > 1:
        return Resolution(MatchOutcome.AMBIGUOUS, candidates=ids)
    if ids:
        return Resolution(MatchOutcome.MATCHED_EMAIL, record_id=ids[0])
    return Resolution(MatchOutcome.NOT_FOUND)


async def resolve_professor(session: AsyncSession, email: Optional[str] = None,
                            names: Sequence[Optional[str]] = ()) -> Resolution:
    """Find a professor record by email, then by each of ``names`` in turn"""
    if email:
        by_email = await session.execute(
            select(ProfessorRecord.id)
            .filter(func.lower(ProfessorRecord.email) == email.lower())
            .order_by(ProfessorRecord.id)
        )
        ids = list(by_email.scalars().all())
        if len(ids) > 1:
            return Resolution(MatchOutcome.AMBIGUOUS, candidates=ids)
        if ids:
            return Resolution(MatchOutcome.MATCHED_EMAIL, record_id=ids[0])

    names = [name for name in names if normalize_name(name)]
    if not names:
        return Resolution(MatchOutcome.NOT_FOUND)

    everyone = await session.execute(
        select(ProfessorRecord.id, ProfessorRecord.name)
        .filter(_email_unset_or(ProfessorRecord.email, email))
    )
    candidates = everyone.all()
    for name in names:
        match = match_name(name, candidates)
        if match.ambiguous:
            return Resolution(MatchOutcome.AMBIGUOUS, candidates=match.candidates)
        if match.record_id is not None:
            return Resolution(MatchOutcome.MATCHED_NAME, record_id=match.record_id)

    return Resolution(MatchOutcome.NOT_FOUND)


async def resolve_professor_for_account(session: AsyncSession, account: Account) -> Resolution:
    return await resolve_professor(
        session, email=account.email, names=[account.username, account.full_name]
    )


async def find_or_create_professor(session: AsyncSession, professor_id: Optional[int] = None,
                                   email: Optional[str] = None,
                                   name: Optional[str] = None) -> Resolution:
    """Return the professor record for these identifiers, creating one if none matches.

    Raises ``AmbiguousIdentityError`` when several records match and
    ``ValueError`` when neither an email nor a name is available.
    """
    if professor_id is not None:
        professor = await session.get(ProfessorRecord, professor_id)
        if professor:
            return Resolution(MatchOutcome.LINKED, record_id=professor.id)

    if not email and not normalize_name(name):
        raise ValueError("Could not identify professor. Please provide email or username.")

    resolution = await resolve_professor(session, email=email, names=[name])

    if resolution.outcome == MatchOutcome.AMBIGUOUS:
        raise AmbiguousIdentityError(
            "More than one professor record matches this account", resolution.candidates
        )

    if resolution.found:
        professor = await session.get(ProfessorRecord, resolution.record_id)
        if email and not professor.email:
            professor.email = email
            await session.flush()
            resolution.wrote = True
        return resolution

    professor = ProfessorRecord(name=(name or "").strip() or "Professor", email=email)
    session.add(professor)
    await session.flush()
    logger.info(f"Created professor record {professor.id} (email: {email}, name: {professor.name})")
    return Resolution(MatchOutcome.CREATED, record_id=professor.id, wrote=True)


async def professor_ids_matching(session: AsyncSession, identifier: str) -> List[int]:
    """Professor ids whose email or exact name equals ``identifier``"""
    result = await session.execute(
        select(ProfessorRecord.id).filter(
            or_(func.lower(ProfessorRecord.email) == identifier.lower(),
                ProfessorRecord.name == identifier)
        )
    )
    return list(result.scalars().all())
