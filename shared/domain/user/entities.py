from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional


class AuthenticatorTransport(str, Enum):
    """Transports an authenticator reports it can be reached over."""

    BLE = "ble"
    INTERNAL = "internal"
    NFC = "nfc"
    USB = "usb"
    CABLE = "cable"
    HYBRID = "hybrid"

    @classmethod
    def parse_many(cls, values: Iterable[str] | None) -> tuple["AuthenticatorTransport", ...]:
        """Return known transports from *values*, dropping anything unrecognised."""

        parsed: list[AuthenticatorTransport] = []
        for value in values or ():
            try:
                transport = cls(value)
            except ValueError:
                continue
            if transport not in parsed:
                parsed.append(transport)
        return tuple(parsed)


class CredentialDeviceType(str, Enum):
    """Whether a credential is bound to one device or synced across devices."""

    SINGLE_DEVICE = "single_device"
    MULTI_DEVICE = "multi_device"


@dataclass(frozen=True, slots=True)
class WebAuthnUser:
    """Identity of a relying-party account as seen by the ceremonies."""

    user_id: str
    user_name: str

    @classmethod
    def new(cls, email: str) -> "WebAuthnUser":
        """新規登録用に乱数の UUID を割り当てたユーザーを返す。"""
        return cls(user_id=str(uuid.uuid4()), user_name=email)

    @property
    def user_handle(self) -> bytes:
        return self.user_id.encode("utf-8")


@dataclass(frozen=True, slots=True)
class RegistrationInfo:
    """Attributes of a freshly verified credential, as reported by the verifier."""

    credential_id: str
    public_key: bytes
    counter: int
    device_type: CredentialDeviceType
    backed_up: bool


@dataclass(slots=True)
class Credential:
    """A stored public-key credential owned by exactly one user."""

    credential_id: str
    public_key: bytes
    counter: int
    device_type: CredentialDeviceType
    backed_up: bool = False
    transports: tuple[AuthenticatorTransport, ...] = ()
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
    last_used_at: Optional[datetime] = None
    user_id: Optional[str] = field(default=None, compare=False)

    @property
    def transport_values(self) -> list[str]:
        return [transport.value for transport in self.transports]
