"""Domain errors surfaced to API clients.

Every error carries the HTTP status it maps to, a user-facing message and,
where the user can fix the underlying condition, a recovery ``action`` and/or
deep ``link``.
"""
from __future__ import annotations

TIKTOK_UPLOAD_URL = "https://www.tiktok.com/upload"


class CrownError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str, *, action: str | None = None, link: str | None = None):
        super().__init__(message)
        self.message = message
        self.action = action
        self.link = link

    def to_dict(self) -> dict:
        body = {"detail": self.message, "code": self.code}
        if self.action:
            body["action"] = self.action
        if self.link:
            body["link"] = self.link
        return body


class NotSignedIn(CrownError):
    status_code = 401
    code = "not_signed_in"


class SessionExpired(CrownError):
    status_code = 401
    code = "session_expired"


class NotFound(CrownError):
    status_code = 404
    code = "not_found"


class Forbidden(CrownError):
    status_code = 403
    code = "forbidden"


class AlreadyJoined(CrownError):
    status_code = 409
    code = "already_joined"

    def __init__(self, message: str = "You have already joined this contest"):
        super().__init__(message)


class TikTokNotConnected(CrownError):
    status_code = 400
    code = "tiktok_not_connected"

    def __init__(self, message: str = "Please connect your TikTok account first to join contests"):
        super().__init__(message, action="connect_tiktok")


class TikTokPermissionDenied(CrownError):
    status_code = 403
    code = "tiktok_permission_denied"

    def __init__(self, message: str = "TikTok video access permission not granted. Please reconnect your TikTok account with video permissions."):
        super().__init__(message, action="reconnect_with_video_permissions", link="/tiktok/connect/video-permissions")


class StaleVideo(CrownError):
    status_code = 422
    code = "video_too_old"

    def __init__(self, message: str = "Selected video is more than 24 hours old. Please upload a newer video to join this contest."):
        super().__init__(message, action="upload_new_video", link=TIKTOK_UPLOAD_URL)


class ContestClosed(CrownError):
    status_code = 400
    code = "contest_closed"


class MinimumMediaViolation(CrownError):
    status_code = 409
    code = "minimum_media"


class InvalidUpload(CrownError):
    status_code = 400
    code = "invalid_upload"


class BackendError(CrownError):
    """Non-network error answered by the external backend."""
    status_code = 502
    code = "backend_error"

    def __init__(self, message: str, *, status: int | None = None, error_code: str | None = None, payload: dict | None = None):
        super().__init__(message)
        self.status = status
        self.error_code = error_code
        self.payload = payload or {}


class BackendUnavailable(CrownError):
    """The external backend could not be reached at all."""
    status_code = 503
    code = "backend_unavailable"
