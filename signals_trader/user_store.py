# signals_trader/user_store.py
from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from cryptography.fernet import Fernet, InvalidToken

from .models import UserDefaults

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRecord:
    user_id: int
    api_key: str
    api_secret: str
    username: Optional[str] = None
    default_leverage: Optional[int] = None
    default_position_size: Optional[float] = None
    registered_at: float = 0.0


class UserStore:
    """
    JSON-файл с пользователями. Ключи API шифруются Fernet, настройки лежат открыто.
    Файл перечитывается на каждую операцию.
    """

    def __init__(self, path: str | os.PathLike, encryption_key: str) -> None:
        self.path = Path(path)
        self._fernet = Fernet(encryption_key.encode() if isinstance(encryption_key, str) else encryption_key)

    # ---------- io ----------

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"users": {}}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            log.error("[STORE] failed to load %s: %s", self.path, e)
            return {"users": {}}
        if not isinstance(data, dict) or not isinstance(data.get("users"), dict):
            return {"users": {}}
        return data

    def _save(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
        os.replace(tmp, self.path)

    def _enc(self, text: str) -> str:
        return self._fernet.encrypt(text.encode()).decode()

    def _dec(self, token: str) -> str:
        return self._fernet.decrypt(token.encode()).decode()

    # ---------- api ----------

    def is_registered(self, user_id: int) -> bool:
        return str(user_id) in self._load()["users"]

    def get_user(self, user_id: int) -> Optional[UserRecord]:
        row = self._load()["users"].get(str(user_id))
        if not row:
            return None
        try:
            return UserRecord(
                user_id=int(row["user_id"]),
                username=row.get("username"),
                api_key=self._dec(row["encrypted_api_key"]),
                api_secret=self._dec(row["encrypted_api_secret"]),
                default_leverage=row.get("default_leverage"),
                default_position_size=row.get("default_position_size"),
                registered_at=float(row.get("registered_at") or 0.0),
            )
        except (InvalidToken, KeyError, TypeError, ValueError) as e:
            log.error("[STORE] failed to decrypt user %s: %s", user_id, type(e).__name__)
            return None

    def save_user(self, user: UserRecord) -> None:
        data = self._load()
        data["users"][str(user.user_id)] = {
            "user_id": user.user_id,
            "username": user.username,
            "encrypted_api_key": self._enc(user.api_key),
            "encrypted_api_secret": self._enc(user.api_secret),
            "default_leverage": user.default_leverage,
            "default_position_size": user.default_position_size,
            "registered_at": user.registered_at or time.time(),
        }
        self._save(data)
        log.info("[STORE] user %s saved", user.user_id)

    def delete_user(self, user_id: int) -> bool:
        data = self._load()
        if data["users"].pop(str(user_id), None) is None:
            return False
        self._save(data)
        log.info("[STORE] user %s deleted", user_id)
        return True

    def update_settings(
        self,
        user_id: int,
        *,
        leverage: Optional[int] = None,
        position_size: Optional[float] = None,
    ) -> bool:
        data = self._load()
        row = data["users"].get(str(user_id))
        if row is None:
            return False
        if leverage is not None:
            row["default_leverage"] = leverage
        if position_size is not None:
            row["default_position_size"] = position_size
        self._save(data)
        return True

    def user_count(self) -> int:
        return len(self._load()["users"])

    def get_defaults(self, user_id: int) -> Optional[UserDefaults]:
        row = self._load()["users"].get(str(user_id))
        if row is None:
            return None
        return UserDefaults(
            leverage=row.get("default_leverage"),
            position_size=row.get("default_position_size"),
        )
