"""ORM models backing the user directory."""

# モデルの循環インポートを避けるため、ここで一括インポート
from .user import User
from .authenticator import Authenticator
from .consumed_challenge import ConsumedChallenge

__all__ = [
    "Authenticator",
    "ConsumedChallenge",
    "User",
]
