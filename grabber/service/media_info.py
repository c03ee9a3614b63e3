"""
Media metadata helpers.

Centralizes ffprobe invocation and parsing. A probe always runs fresh: stages
re-probe because an earlier stage may have replaced the file.
"""

import json
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from grabber.service.config import resolve_config
from grabber.service.constants import PICTURE_CODEC_TYPES
from grabber.service.errors import ProbeError


@dataclass
class StreamInfo:
    """One stream as reported by ffprobe"""

    index: int
    codec_type: Optional[str] = None
    codec_name: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    pix_fmt: Optional[str] = None
    color_space: Optional[str] = None

    @classmethod
    def from_ffprobe(cls, data):
        return cls(
            index=data.get('index', 0),
            codec_type=data.get('codec_type'),
            codec_name=data.get('codec_name'),
            width=data.get('width'),
            height=data.get('height'),
            pix_fmt=data.get('pix_fmt'),
            color_space=data.get('color_space'),
        )


@dataclass
class ProbeResult:
    """Container and stream description of a file"""

    filename: Path
    format_name: Optional[str] = None
    streams: List[StreamInfo] = field(default_factory=list)

    def first_stream_of_type(self, *codec_types):
        """Return the first stream whose codec_type is one of `codec_types`"""
        for stream in self.streams:
            if stream.codec_type in codec_types:
                return stream
        return None

    @property
    def video_stream(self):
        return self.first_stream_of_type('video')

    @property
    def audio_stream(self):
        return self.first_stream_of_type('audio')

    @property
    def picture_stream(self):
        """First video or image stream, the one codec decisions are made on"""
        return self.first_stream_of_type(*PICTURE_CODEC_TYPES)


def parse_ffprobe_output(file_path, output):
    """
    Parse `ffprobe -print_format json -show_format -show_streams` output.

    Raises:
        ProbeError: If the output is not JSON or lists no streams
    """
    try:
        metadata = json.loads(output)
    except (json.JSONDecodeError, TypeError) as e:
        raise ProbeError(f'Failed to parse ffprobe output for {file_path}: {e}') from e

    streams = [
        StreamInfo.from_ffprobe(s)
        for s in metadata.get('streams', []) or []
        if isinstance(s, dict)
    ]
    if not streams:
        raise ProbeError(f'ffprobe found no streams in {file_path}')

    return ProbeResult(
        filename=Path(file_path),
        format_name=(metadata.get('format') or {}).get('format_name'),
        streams=streams,
    )


def probe_file(file_path, config=None, logger=None):
    """
    Describe a media file using ffprobe.

    Args:
        file_path: Path to media file
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        ProbeResult

    Raises:
        ProbeError: On a failed run, unparsable output or zero streams
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    file_path = Path(file_path)

    cmd = [
        config.ffprobe_path,
        '-v',
        'quiet',
        '-print_format',
        'json',
        '-show_format',
        '-show_streams',
        str(file_path),
    ]
    log(f'Running: {" ".join(cmd)}')

    try:
        result = subprocess.run(
            cmd,
            capture_output=True,
            text=True,
            timeout=config.probe_timeout,
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise ProbeError(f'Failed to run ffprobe on {file_path}: {e}') from e

    if result.returncode != 0:
        raise ProbeError(
            f'ffprobe failed on {file_path} with code {result.returncode}: {result.stderr.strip()}'
        )

    return parse_ffprobe_output(file_path, result.stdout)
