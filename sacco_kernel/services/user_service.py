"""
UserService -- user account administration.

Responsibility:
    Registers, edits and deactivates user accounts, and builds the ``Actor``
    value the authentication collaborator passes to every core operation.
    Credential hashes are opaque strings produced elsewhere; this service
    stores them and never computes or compares them.  There is no password
    reset here: that belongs to the authentication collaborator behind its
    own authorization.

Invariants enforced:
    - Only System_Admin registers, edits, deactivates or lists users.
    - SACCO roles carry an affiliated, existing, Active SACCO; ministry roles
      carry none.
    - Usernames are unique ignoring case; so are emails, among non-null
      values.  Lookups pre-check and the lower() unique indexes settle races.
    - Users are deactivated, never deleted, and an admin cannot deactivate
      their own account.
"""

from __future__ import annotations

from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sacco_kernel.domain.authorization import can_manage_users
from sacco_kernel.domain.clock import Clock
from sacco_kernel.domain.dtos import SaccoStatus, UserInfo, UserInput
from sacco_kernel.domain.roles import Actor, Role, requires_affiliation
from sacco_kernel.domain.validation import (
    validate_email,
    validate_role_affiliation,
    validate_user,
)
from sacco_kernel.exceptions import (
    ConflictError,
    DuplicateEmailError,
    DuplicateUsernameError,
    SaccoNotFoundError,
    UserNotFoundError,
    ValidationError,
)
from sacco_kernel.logging_config import LogContext, get_logger
from sacco_kernel.models.audit_log import AuditAction
from sacco_kernel.models.sacco import Sacco
from sacco_kernel.models.user import User
from sacco_kernel.services.audit_service import AuditService
from sacco_kernel.services.base import BaseService

logger = get_logger("services.user")

_PROFILE_FIELDS = ("first_name", "last_name", "email")
_ADMIN_FIELDS = ("first_name", "last_name", "email", "role", "sacco_id")


def _snapshot(user: User, names: tuple[str, ...]) -> dict:
    return {name: getattr(user, name) for name in names}


class UserService(BaseService[User]):
    """
    Service for user accounts.

    Public methods return UserInfo DTOs, never ORM User entities and never
    the credential hash.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auditor: AuditService | None = None,
    ):
        super().__init__(session, clock)
        self._auditor = auditor or AuditService(session, self._clock)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, user_id: UUID) -> User:
        user = self.session.get(User, user_id)
        if user is None:
            raise UserNotFoundError(str(user_id))
        return user

    def _check_unique(
        self, username: str | None, email: str | None, exclude_id: UUID | None = None
    ) -> None:
        if username is not None:
            stmt = select(User.id).where(func.lower(User.username) == username.lower())
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            if self.session.execute(stmt.limit(1)).first() is not None:
                raise DuplicateUsernameError(username)
        if email is not None:
            stmt = select(User.id).where(func.lower(User.email) == email.lower())
            if exclude_id is not None:
                stmt = stmt.where(User.id != exclude_id)
            if self.session.execute(stmt.limit(1)).first() is not None:
                raise DuplicateEmailError(email)

    def _require_active_sacco(self, sacco_id: UUID | None) -> None:
        if sacco_id is None:
            return
        sacco = self.session.get(Sacco, sacco_id)
        if sacco is None:
            raise SaccoNotFoundError(str(sacco_id))
        if sacco.status != SaccoStatus.ACTIVE:
            raise ValidationError("sacco_id", "SACCO is inactive")

    def _duplicate(
        self, exc: IntegrityError, username: str, email: str | None
    ) -> ConflictError:
        """Name the index that refused the write."""
        if "uq_user_email" in str(exc.orig):
            return DuplicateEmailError(email or "")
        return DuplicateUsernameError(username)

    def _insert_unique(self, user: User) -> None:
        username, email = user.username, user.email
        try:
            with self.session.begin_nested():
                self.session.add(user)
        except IntegrityError as exc:
            raise self._duplicate(exc, username, email) from exc

    def _save_unique(self, user: User, changes: dict) -> None:
        """Apply all changes in one savepoint; a refused write leaves none behind."""
        username = changes.get("username", user.username)
        email = changes.get("email", user.email)
        try:
            with self.session.begin_nested():
                for name, value in changes.items():
                    setattr(user, name, value)
        except IntegrityError as exc:
            raise self._duplicate(exc, username, email) from exc

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def bootstrap_admin(self, data: UserInput) -> UserInfo:
        """
        Create the first System_Admin of an empty installation.

        Refused once any System_Admin exists; after that, admins are
        registered by other admins.
        """
        if data.role != Role.SYSTEM_ADMIN:
            raise ValidationError("role", "bootstrap account must be System_Admin")
        existing = self.session.execute(
            select(User.id).where(User.role == Role.SYSTEM_ADMIN).limit(1)
        ).first()
        if existing is not None:
            raise ConflictError("A System_Admin already exists")

        data = validate_user(data)
        self._check_unique(data.username, data.email)
        now = self._clock.now_utc()
        user_id = uuid4()
        user = User(
            id=user_id,
            username=data.username,
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            role=data.role,
            sacco_id=None,
            is_active=True,
            credential_hash=data.credential_hash,
            created_at=now,
            updated_at=now,
            # Self-created: the account is its own creator.
            created_by_id=user_id,
        )
        self._insert_unique(user)

        self._auditor.record(
            AuditAction.USER_REGISTERED, "User", user.id, user.id,
            new_values={"username": user.username, "role": user.role},
        )
        logger.info("admin_bootstrapped", extra={"username": user.username})
        return UserInfo.from_model(user)

    def register(self, data: UserInput, actor: Actor) -> UserInfo:
        """
        Create a user account.

        Raises:
            AuthorizationError: Actor is not System_Admin.
            ValidationError: Blank username, bad email, or role/affiliation
                mismatch, or the SACCO is inactive.
            SaccoNotFoundError: Affiliated SACCO does not exist.
            DuplicateUsernameError / DuplicateEmailError
        """
        self._authorize(can_manage_users(actor), actor, "register user")
        data = validate_user(data)
        self._require_active_sacco(data.sacco_id)
        self._check_unique(data.username, data.email)

        now = self._clock.now_utc()
        user = User(
            username=data.username,
            email=data.email,
            first_name=data.first_name,
            last_name=data.last_name,
            role=data.role,
            sacco_id=data.sacco_id,
            is_active=True,
            credential_hash=data.credential_hash,
            created_at=now,
            updated_at=now,
            created_by_id=actor.id,
            updated_by_id=actor.id,
        )
        self._insert_unique(user)

        self._auditor.record(
            AuditAction.USER_REGISTERED, "User", user.id, actor.id,
            new_values=_snapshot(user, ("username",) + _ADMIN_FIELDS),
        )
        with LogContext.bind(actor_id=actor.id):
            logger.info(
                "user_registered",
                extra={"username": user.username, "role": data.role.value},
            )
        return UserInfo.from_model(user)

    def update_user(
        self,
        user_id: UUID,
        actor: Actor,
        *,
        first_name: str | None = None,
        last_name: str | None = None,
        email: str | None = None,
        role: Role | None = None,
        sacco_id: UUID | None = None,
        is_active: bool | None = None,
    ) -> UserInfo:
        """
        Administrative edit.  Only the keyword arguments given are changed;
        role and sacco_id are re-checked together.
        """
        self._authorize(can_manage_users(actor), actor, "update user")
        user = self._get(user_id)
        if is_active is not None and not is_active and user.id == actor.id:
            raise ValidationError("is_active", "cannot deactivate your own account")
        before = _snapshot(user, _ADMIN_FIELDS + ("is_active",))

        new_role = Role(role) if role is not None else Role(user.role)
        if sacco_id is not None:
            new_sacco = sacco_id
        elif requires_affiliation(new_role):
            new_sacco = user.sacco_id
        else:
            new_sacco = None
        validate_role_affiliation(new_role, new_sacco)
        if new_sacco != user.sacco_id:
            self._require_active_sacco(new_sacco)

        changes: dict = {
            "role": new_role,
            "sacco_id": new_sacco,
            "updated_at": self._clock.now_utc(),
            "updated_by_id": actor.id,
        }
        if email is not None:
            changes["email"] = validate_email(email)
            self._check_unique(None, changes["email"], exclude_id=user.id)
        if first_name is not None:
            changes["first_name"] = first_name.strip()
        if last_name is not None:
            changes["last_name"] = last_name.strip()
        if is_active is not None:
            changes["is_active"] = is_active
        self._save_unique(user, changes)

        self._auditor.record(
            AuditAction.USER_UPDATED, "User", user.id, actor.id,
            old_values=before,
            new_values=_snapshot(user, _ADMIN_FIELDS + ("is_active",)),
        )
        with LogContext.bind(actor_id=actor.id):
            logger.info("user_updated", extra={"user_id": str(user.id)})
        return UserInfo.from_model(user)

    def deactivate(self, user_id: UUID, actor: Actor) -> UserInfo:
        """
        Deactivate an account.  Users are never hard-deleted.

        Raises:
            ValidationError: Actor tried to deactivate themselves.
        """
        self._authorize(can_manage_users(actor), actor, "deactivate user")
        if user_id == actor.id:
            raise ValidationError("user_id", "cannot deactivate your own account")
        user = self._get(user_id)

        was_active = user.is_active
        user.is_active = False
        user.updated_at = self._clock.now_utc()
        user.updated_by_id = actor.id
        self.session.flush()

        self._auditor.record(
            AuditAction.USER_DEACTIVATED, "User", user.id, actor.id,
            old_values={"is_active": was_active}, new_values={"is_active": False},
        )
        with LogContext.bind(actor_id=actor.id):
            logger.info("user_deactivated", extra={"user_id": str(user.id)})
        return UserInfo.from_model(user)

    def list_users(self, actor: Actor) -> list[UserInfo]:
        """All accounts ordered by username."""
        self._authorize(can_manage_users(actor), actor, "list users")
        rows = self.session.execute(select(User).order_by(User.username)).scalars()
        return [UserInfo.from_model(u) for u in rows]

    def get_user(self, user_id: UUID, actor: Actor) -> UserInfo:
        """Admins may read any account; everyone may read their own."""
        self._authorize(
            actor.active and (can_manage_users(actor) or actor.id == user_id),
            actor,
            "view user",
        )
        return UserInfo.from_model(self._get(user_id))

    # ------------------------------------------------------------------
    # Self-service and authentication support
    # ------------------------------------------------------------------

    def update_profile(
        self,
        actor: Actor,
        *,
        first_name: str,
        last_name: str,
        email: str | None,
    ) -> UserInfo:
        """Self-service edit limited to name and email."""
        self._authorize(actor.active, actor, "update profile")
        user = self._get(actor.id)
        email = validate_email(email)
        self._check_unique(None, email, exclude_id=user.id)

        before = _snapshot(user, _PROFILE_FIELDS)
        self._save_unique(
            user,
            {
                "first_name": (first_name or "").strip(),
                "last_name": (last_name or "").strip(),
                "email": email,
                "updated_at": self._clock.now_utc(),
                "updated_by_id": actor.id,
            },
        )

        self._auditor.record(
            AuditAction.PROFILE_UPDATED, "User", user.id, actor.id,
            old_values=before, new_values=_snapshot(user, _PROFILE_FIELDS),
        )
        with LogContext.bind(actor_id=actor.id):
            logger.info("profile_updated")
        return UserInfo.from_model(user)

    def record_login(self, user_id: UUID) -> UserInfo:
        """
        Stamp ``last_login`` after the authentication collaborator has
        verified the credential.  Inactive accounts are refused.
        """
        user = self._get(user_id)
        if not user.is_active:
            raise ValidationError("user_id", "account is inactive")
        user.last_login = self._clock.now_utc()
        self.session.flush()

        self._auditor.record(
            AuditAction.USER_LOGIN, "User", user.id, user.id,
            new_values={"last_login": user.last_login},
        )
        with LogContext.bind(actor_id=user.id):
            logger.info("user_login_recorded")
        return UserInfo.from_model(user)

    def get_actor(self, user_id: UUID) -> Actor:
        """Build the Actor value for a stored user."""
        return self._get(user_id).to_actor()

    def find_by_username(self, username: str) -> UserInfo:
        """Lookup used by the authentication collaborator before verifying."""
        user = self.session.execute(
            select(User).where(func.lower(User.username) == username.strip().lower())
        ).scalar_one_or_none()
        if user is None:
            raise UserNotFoundError(username)
        return UserInfo.from_model(user)

    def credential_hash_for(self, user_id: UUID) -> str:
        """The stored opaque hash, for the authentication collaborator only."""
        return self._get(user_id).credential_hash

