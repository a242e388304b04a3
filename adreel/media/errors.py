from __future__ import annotations


class MediaError(RuntimeError):
    code = "MEDIA_FAILED"

    def __init__(self, message: str, *, stderr: str | None = None):
        super().__init__(f"{self.code}: {message}")
        self.stderr = stderr


class TranscodeError(MediaError):
    code = "TRANSCODE_FAILED"


class ThumbnailError(MediaError):
    code = "THUMBNAIL_FAILED"


class DownloadError(MediaError):
    code = "DOWNLOAD_FAILED"


__all__ = ["MediaError", "TranscodeError", "ThumbnailError", "DownloadError"]
