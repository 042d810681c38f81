"""SQLAlchemy implementation of :class:`UserDirectory`."""
from __future__ import annotations

from typing import Iterable

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError

from core.models.authenticator import Authenticator
from core.models.user import User as UserModel
from core.time import utc_now
from shared.domain.auth.exceptions import CloneDetectedError
from shared.domain.user.entities import (
    AuthenticatorTransport,
    Credential,
    CredentialDeviceType,
    RegistrationInfo,
    WebAuthnUser,
)
from shared.domain.user.exceptions import (
    CredentialNotFoundError,
    DuplicateCredentialError,
    EmailAlreadyRegisteredError,
    LastCredentialError,
    UserNotFoundError,
)


class SqlAlchemyUserDirectory:
    """Persist users and their authenticators through a SQLAlchemy session."""

    def __init__(self, session) -> None:
        self.session = session

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------
    def find_by_id(self, user_id: str) -> WebAuthnUser | None:
        model = self.session.get(UserModel, user_id)
        if model:
            return self._to_domain(model)
        return None

    def find_by_name(self, user_name: str) -> WebAuthnUser | None:
        model = self._get_model_by_name(user_name)
        if model:
            return self._to_domain(model)
        return None

    def count_users(self) -> int:
        return self.session.execute(select(func.count()).select_from(UserModel)).scalar_one()

    def delete_user(self, user_name: str) -> None:
        """ユーザーを削除（認証器もカスケードで削除される）"""
        model = self._get_model_by_name(user_name)
        if model:
            self.session.delete(model)
            self.session.commit()

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------
    def list_credentials(self, user_name: str) -> list[Credential]:
        stmt = (
            select(Authenticator)
            .join(UserModel, Authenticator.user_id == UserModel.id)
            .where(UserModel.email == user_name)
            .order_by(Authenticator.created_at.asc(), Authenticator.id.asc())
        )
        return [self._credential_to_domain(row) for row in self.session.execute(stmt).scalars()]

    def find_credential(self, user_name: str, credential_id: str) -> Credential | None:
        stmt = (
            select(Authenticator)
            .join(UserModel, Authenticator.user_id == UserModel.id)
            .where(
                UserModel.email == user_name,
                Authenticator.credential_id == credential_id,
            )
        )
        model = self.session.execute(stmt).scalar_one_or_none()
        if model:
            return self._credential_to_domain(model)
        return None

    def upsert_user_with_credential(
        self,
        user: WebAuthnUser,
        registration_info: RegistrationInfo,
        *,
        transports: Iterable[str] | None = None,
        user_agent: str | None = None,
    ) -> WebAuthnUser:
        model = self.session.get(UserModel, user.user_id)
        if model is None:
            owner = self._get_model_by_name(user.user_name)
            if owner is not None:
                raise EmailAlreadyRegisteredError(user.user_name)
            model = UserModel(id=user.user_id, email=user.user_name)
            self.session.add(model)
        elif self._get_authenticator(model.id, registration_info.credential_id) is not None:
            raise DuplicateCredentialError()

        record = Authenticator(
            user=model,
            credential_id=registration_info.credential_id,
            public_key=registration_info.public_key,
            counter=registration_info.counter,
            device_type=registration_info.device_type.value,
            backed_up=registration_info.backed_up,
            transports=[t.value for t in AuthenticatorTransport.parse_many(transports)],
            user_agent=user_agent[:512] if user_agent else None,
        )
        try:
            self.session.add(record)
            self.session.commit()
        except IntegrityError as exc:
            # 同時登録でメールアドレスか認証器IDが先に使われた
            self.session.rollback()
            if self._get_model_by_name(user.user_name) is not None and (
                self.session.get(UserModel, user.user_id) is None
            ):
                raise EmailAlreadyRegisteredError(user.user_name) from exc
            raise DuplicateCredentialError() from exc
        return self._to_domain(model)

    def update_credential_counter(self, user_id: str, credential_id: str, counter: int) -> None:
        """Move the stored counter forward.

        The write is a conditional ``UPDATE`` so two concurrent sign-ins with
        the same counter value cannot both succeed.
        """

        advance = Authenticator.counter < counter
        if counter == 0:
            advance = or_(advance, Authenticator.counter == 0)

        stmt = (
            update(Authenticator)
            .where(
                Authenticator.user_id == user_id,
                Authenticator.credential_id == credential_id,
                advance,
            )
            .values(counter=counter, last_used_at=utc_now(), updated_at=utc_now())
        )
        result = self.session.execute(stmt)
        if result.rowcount:
            self.session.commit()
            return

        self.session.rollback()
        if self._get_authenticator(user_id, credential_id) is None:
            raise CredentialNotFoundError()
        raise CloneDetectedError()

    def delete_credential(self, user_id: str, credential_id: str) -> None:
        """Delete one credential unless it is the user's last.

        The owner's rows are read with ``FOR UPDATE`` so two concurrent
        deletions for the same user are serialised and the second one sees
        the first one's result.
        """

        model = self.session.get(UserModel, user_id)
        if model is None:
            raise UserNotFoundError()

        owned = self.session.execute(
            select(Authenticator.credential_id)
            .where(Authenticator.user_id == user_id)
            .with_for_update()
        ).scalars().all()
        if credential_id not in owned:
            self.session.rollback()
            raise CredentialNotFoundError()
        if len(owned) <= 1:
            self.session.rollback()
            raise LastCredentialError()

        target = self._get_authenticator(user_id, credential_id)
        self.session.delete(target)
        self.session.commit()
        self.session.expire(model, ["authenticators"])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _get_model_by_name(self, user_name: str) -> UserModel | None:
        stmt = select(UserModel).filter_by(email=user_name)
        return self.session.execute(stmt).scalar_one_or_none()

    def _get_authenticator(self, user_id: str, credential_id: str) -> Authenticator | None:
        stmt = select(Authenticator).filter_by(user_id=user_id, credential_id=credential_id)
        return self.session.execute(stmt).scalar_one_or_none()

    @staticmethod
    def _to_domain(model: UserModel) -> WebAuthnUser:
        return WebAuthnUser(user_id=model.id, user_name=model.email)

    @staticmethod
    def _credential_to_domain(model: Authenticator) -> Credential:
        return Credential(
            credential_id=model.credential_id,
            public_key=bytes(model.public_key),
            counter=int(model.counter or 0),
            device_type=CredentialDeviceType(model.device_type),
            backed_up=bool(model.backed_up),
            transports=AuthenticatorTransport.parse_many(model.transports),
            user_agent=model.user_agent,
            created_at=model.created_at,
            last_used_at=model.last_used_at,
            user_id=model.user_id,
        )


__all__ = ["SqlAlchemyUserDirectory"]
