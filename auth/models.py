"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, minimal logic). Dataclasses own
domain shape; the store persists them and the engine does the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class DeviceToken:
    """The most recent device-bound token issued to one client device.

    At registration this holds the refresh token minted for the device; the
    refresh flow overwrites it with the access token it issues. Either way the
    token carries a deviceId claim, which is what device authorization matches
    on. The empty string is the placeholder written before the first token.
    """

    device_id: str
    token: str = ""


@dataclass
class UserRecord:
    """A registered identity.

    otp holds the 4-digit code emailed at registration. It is not cleared
    after a successful login.

    tokens holds at most one DeviceToken per device_id; use set_device_token()
    rather than appending.
    """

    username: str
    email: str
    password_hash: str
    id: int | None = None
    otp: str | None = None
    tokens: list[DeviceToken] = field(default_factory=list)
    created_at: str | None = None

    def set_device_token(self, device_id: str, token: str) -> None:
        """Overwrite the token for device_id, adding an entry if none exists."""
        for entry in self.tokens:
            if entry.device_id == device_id:
                entry.token = token
                return
        self.tokens.append(DeviceToken(device_id=device_id, token=token))
