"""Media primitives: duration probing, transcoding, thumbnails and downloads."""

from .errors import DownloadError, MediaError, ThumbnailError, TranscodeError
from .fetch import download_to, filename_from_url, is_http_url
from .probe import parse_duration_payload, probe_duration
from .transcode import FrameBounds, render_thumbnail, transcode

__all__ = [
    "DownloadError",
    "FrameBounds",
    "MediaError",
    "ThumbnailError",
    "TranscodeError",
    "download_to",
    "filename_from_url",
    "is_http_url",
    "parse_duration_payload",
    "probe_duration",
    "render_thumbnail",
    "transcode",
]
