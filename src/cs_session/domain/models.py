"""Domain models for cs_session."""

from dataclasses import dataclass, field

from src.cs_common.datetime_utils import utc_now_ms
from src.cs_common.enums import SessionMode


@dataclass(frozen=True)
class SessionRecord:
    """Binds a provider-facing username to the wallet that opened the game.

    Written by the game-ticket issuer when it hands a play token to the
    provider; provider callbacks are only honored while one is live.
    """

    wallet: str
    game_id: int
    provider_token: str
    mode: SessionMode = SessionMode.REAL
    created_at: int = field(default_factory=utc_now_ms)  # epoch ms
