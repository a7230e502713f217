from typing import Literal

from pydantic import BaseModel


class SessionInfo(BaseModel):
    type: Literal["jwt", "cookie", "session", "mixed"] | None = None
    access_token: str | None = None
    cookies: list[str] | None = None
    local_storage: dict[str, str] | None = None
    session_storage: dict[str, str] | None = None

    def is_empty(self) -> bool:
        return not any(
            [self.access_token, self.cookies, self.local_storage, self.session_storage]
        )
