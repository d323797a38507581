"""Identity providers for the acting member."""

from .exceptions import UnauthenticatedError


class StaticIdentity:
    """Identity fixed at construction, e.g. from settings or a CLI flag."""

    def __init__(self, member_id: str | None):
        self.member_id = member_id.strip() if member_id else None

    def current_identity(self) -> str:
        if not self.member_id:
            raise UnauthenticatedError(
                "No acting member configured. Set FAIRSHARE_MEMBER_ID or pass --as."
            )
        return self.member_id
