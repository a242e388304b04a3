from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

import cv2  # type: ignore

from .errors import ThumbnailError, TranscodeError

DEFAULT_THUMB_WIDTH = 640


@dataclass(slots=True)
class FrameBounds:
    """Output frame limits. ``letterbox`` pads to exactly ``width`` x ``height``."""

    max_height: int
    max_width: Optional[int] = None
    letterbox: bool = False

    def video_filter(self) -> str:
        if self.letterbox and self.max_width:
            w, h = self.max_width, self.max_height
            return (
                f"scale={w}:{h}:force_original_aspect_ratio=decrease,"
                f"pad={w}:{h}:(ow-iw)/2:(oh-ih)/2,setsar=1"
            )
        if self.max_width:
            return (
                f"scale='min({self.max_width},iw)':'min({self.max_height},ih)':"
                "force_original_aspect_ratio=decrease:force_divisible_by=2"
            )
        return f"scale=-2:'min({self.max_height},ih)'"


def build_transcode_command(source: Path, output: Path, *, max_duration_s: float, bounds: FrameBounds) -> List[str]:
    return [
        "ffmpeg",
        "-nostdin",
        "-v",
        "error",
        "-y",
        "-i",
        str(source),
        "-t",
        f"{max_duration_s:g}",
        "-vf",
        bounds.video_filter(),
        "-c:v",
        "libx264",
        "-preset",
        "veryfast",
        "-crf",
        "23",
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-movflags",
        "+faststart",
        str(output),
    ]


def transcode(source: Path, output: Path, *, max_duration_s: float, bounds: FrameBounds) -> Path:
    """Encode ``source`` to an H.264/AAC MP4 trimmed to ``max_duration_s`` from the start."""
    command = build_transcode_command(source, output, max_duration_s=max_duration_s, bounds=bounds)
    try:
        subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except FileNotFoundError as exc:
        raise TranscodeError("ffmpeg not found on PATH") from exc
    except subprocess.CalledProcessError as exc:
        raise TranscodeError(f"ffmpeg exited with {exc.returncode}", stderr=exc.stderr) from exc
    if not output.exists() or output.stat().st_size == 0:
        raise TranscodeError(f"no output written to {output.name}")
    return output


def build_thumbnail_command(video: Path, output: Path, *, offset_s: float, width: int) -> List[str]:
    return [
        "ffmpeg",
        "-nostdin",
        "-v",
        "error",
        "-ss",
        f"{max(offset_s, 0.0):.3f}",
        "-i",
        str(video),
        "-frames:v",
        "1",
        "-vf",
        f"scale={width}:-2",
        "-q:v",
        "2",
        "-y",
        str(output),
    ]


def render_thumbnail(video: Path, output: Path, *, offset_s: float = 1.0, width: int = DEFAULT_THUMB_WIDTH) -> Tuple[int, int]:
    """Extract a single still at ``offset_s`` and return its ``(width, height)``."""
    command = build_thumbnail_command(video, output, offset_s=offset_s, width=width)
    try:
        subprocess.run(command, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except FileNotFoundError as exc:
        raise ThumbnailError("ffmpeg not found on PATH") from exc
    except subprocess.CalledProcessError as exc:
        output.unlink(missing_ok=True)
        raise ThumbnailError(f"ffmpeg exited with {exc.returncode}", stderr=exc.stderr) from exc

    try:
        return _image_dimensions(output)
    except RuntimeError as exc:
        output.unlink(missing_ok=True)
        raise ThumbnailError(str(exc)) from exc


def _image_dimensions(image_path: Path) -> Tuple[int, int]:
    if not image_path.exists():
        raise RuntimeError(f"No thumbnail written at {image_path}")
    image = cv2.imread(str(image_path))
    if image is None:
        raise RuntimeError(f"Failed to read generated thumbnail at {image_path}")
    height, width = image.shape[:2]
    return width, height


__all__ = [
    "FrameBounds",
    "build_thumbnail_command",
    "build_transcode_command",
    "render_thumbnail",
    "transcode",
]
