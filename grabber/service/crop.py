"""
Automatic removal of solid borders around videos.

ffmpeg's cropdetect runs twice, once on the negated picture (light borders)
and once on the picture as-is (dark borders). Each pass gives the largest
rectangle it ever saw, and the final crop is what both passes agree on.
"""

import subprocess
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path

from grabber.service.config import resolve_config
from grabber.service.constants import AUTO_CROP_SUFFIX, CROPDETECT_FILTER
from grabber.service.errors import FixerError, TranscodeError
from grabber.service.files import move_to_trash, with_suffix_infix
from grabber.service.media_info import probe_file

CROPDETECT_LINE_PREFIX = '[Parsed_cropdetect'
CROP_MARKER = 'crop='


@dataclass(frozen=True)
class CropRectangle:
    """A crop=W:H:X:Y area of a frame"""

    width: int
    height: int
    x: int
    y: int

    def union(self, other):
        """Smallest rectangle (by this representation) containing both"""
        return CropRectangle(
            width=max(self.width, other.width),
            height=max(self.height, other.height),
            x=min(self.x, other.x),
            y=min(self.y, other.y),
        )

    def intersect(self, other):
        """Area both rectangles agree on"""
        return CropRectangle(
            width=min(self.width, other.width),
            height=min(self.height, other.height),
            x=max(self.x, other.x),
            y=max(self.y, other.y),
        )

    @classmethod
    def union_all(cls, rects):
        rects = list(rects)
        if not rects:
            return None
        result = rects[0]
        for rect in rects[1:]:
            result = result.union(rect)
        return result

    @classmethod
    def intersect_all(cls, rects):
        rects = list(rects)
        if not rects:
            return None
        result = rects[0]
        for rect in rects[1:]:
            result = result.intersect(rect)
        return result

    @classmethod
    def parse(cls, text):
        """
        Parse 'W:H:X:Y' (as printed by cropdetect after 'crop=').

        Raises:
            ValueError: If the text does not hold four integers
        """
        parts = text.strip().split(':')
        if len(parts) != 4:
            raise ValueError(f'Failed to parse crop rectangle from {text!r}')
        width, height, x, y = (int(p) for p in parts)
        return cls(width=width, height=height, x=x, y=y)

    def covers(self, width, height):
        """True if cropping to this rectangle would keep the whole frame"""
        return self.width >= width and self.height >= height

    def __str__(self):
        return f'crop={self.width}:{self.height}:{self.x}:{self.y}'


class BorderColor:
    WHITE = 'white'
    BLACK = 'black'


def cropdetect_filter_for(border_color):
    if border_color == BorderColor.WHITE:
        return f'negate,{CROPDETECT_FILTER}'
    return CROPDETECT_FILTER


def parse_cropdetect_output(stderr):
    """
    Collect the distinct rectangles reported by cropdetect.

    Rectangles without area are dropped. cropdetect reports those (e.g.
    crop=-1904:-1072:1912:1080) when the whole frame is a single colour.

    Returns:
        list[CropRectangle]

    Raises:
        ValueError: If a cropdetect line carries a malformed rectangle
    """
    found = set()
    for line in stderr.splitlines():
        if not line.startswith(CROPDETECT_LINE_PREFIX) or CROP_MARKER not in line:
            continue
        found.add(line.strip().split(CROP_MARKER, 1)[1].strip())

    rects = [CropRectangle.parse(text) for text in sorted(found)]
    return [rect for rect in rects if rect.width > 0 and rect.height > 0]


def detect_crop_pass(file_path, border_color, config, logger=None):
    """
    Run one cropdetect pass.

    Returns:
        CropRectangle or None if ffmpeg could not run or found nothing
    """

    def log(message):
        if logger:
            logger(message)

    cmd = [
        config.ffmpeg_path,
        '-hide_banner',
        '-i', str(file_path),
        '-vf', cropdetect_filter_for(border_color),
        '-f', 'null',
        '-',
    ]
    log(f'Running: {" ".join(cmd)}')

    try:
        result = subprocess.run(cmd, capture_output=True, text=True, errors='replace')
    except OSError as e:
        log(f'Failed to run cropdetect ({border_color}): {e}')
        return None

    try:
        rects = parse_cropdetect_output(result.stderr or '')
    except ValueError as e:
        log(f'Failed to parse cropdetect output ({border_color}): {e}')
        return None

    rect = CropRectangle.union_all(rects)
    log(f'Crop rectangle for {border_color} borders: {rect}')
    return rect


def detect_crop(file_path, config=None, logger=None):
    """
    Find the crop both passes agree on.

    Returns:
        CropRectangle, or None when either pass gave no answer
    """
    config = resolve_config(config)
    colors = [BorderColor.WHITE, BorderColor.BLACK]

    with ThreadPoolExecutor(max_workers=2) as executor:
        rects = list(
            executor.map(lambda color: detect_crop_pass(file_path, color, config, logger), colors)
        )

    if any(rect is None for rect in rects):
        return None

    return CropRectangle.intersect_all(rects)


def auto_crop_video(file_path, config=None, logger=None):
    """
    Crop solid borders off a video.

    Files without a video stream, and videos without detectable borders, are
    returned unchanged. The cropped video is written next to the original as
    <stem>.ac.<ext> and the original goes to the trash.

    Args:
        file_path: Path to media file
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        Path: The cropped file, or `file_path` when nothing was cropped

    Raises:
        FixerError: If the video stream has no dimensions
        TranscodeError: If the crop re-encode fails
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    file_path = Path(file_path)
    log(f'Auto cropping video {file_path}')

    probe = probe_file(file_path, config=config, logger=logger)
    video_stream = probe.video_stream
    if video_stream is None:
        log('File does not contain a video stream, skipping')
        return file_path

    if not video_stream.width or not video_stream.height:
        raise FixerError(f'Failed to get video width and height for {file_path}')
    width, height = video_stream.width, video_stream.height

    crop = detect_crop(file_path, config=config, logger=logger)
    if crop is None:
        log('No crop filters found, skipping')
        return file_path

    log(f'Final crop filter: {crop}')
    if crop.covers(width, height):
        log('Video is already cropped, skipping')
        return file_path

    new_file_path = with_suffix_infix(file_path, AUTO_CROP_SUFFIX)
    cmd = [
        config.ffmpeg_path,
        '-y',
        '-loglevel', 'panic',
        '-i', str(file_path),
        '-vf', str(crop),
        '-preset', 'slow',
        str(new_file_path),
    ]
    log(f'Running: {" ".join(cmd)}')

    try:
        result = subprocess.run(cmd, capture_output=True, text=True)
    except OSError as e:
        raise TranscodeError(f'Failed to run ffmpeg on {file_path}: {e}') from e

    if result.returncode != 0 or not new_file_path.exists():
        raise TranscodeError(
            f'Cropping {file_path} failed with code {result.returncode}: {result.stderr}'
        )

    move_to_trash(file_path, logger=logger)
    return new_file_path
