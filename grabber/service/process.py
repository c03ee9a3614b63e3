"""
Media format normalization.

Decides from ffprobe data whether a file is already in a preferred format and
transcodes it with ffmpeg when it is not.
"""

import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from grabber.service.config import resolve_config
from grabber.service.constants import (
    CONVERTIBLE_IMAGE_CODECS,
    CONVERTIBLE_VIDEO_CODECS,
    EVEN_DIMENSIONS_FILTER,
    PREFERRED_AUDIO_CODEC,
    PREFERRED_IMAGE_CODECS,
    PREFERRED_VIDEO_CODEC,
    PREFERRED_VIDEO_EXTENSION,
    TRANSCODED_SUFFIX,
)
from grabber.service.errors import FixerError, TranscodeError, UnsupportedCodecError
from grabber.service.files import (
    move_to_trash,
    path_has_extension,
    transferable_file_times,
    with_suffix_infix,
)
from grabber.service.media_info import probe_file
from grabber.service.workspace import temp_workspace


@dataclass(frozen=True)
class TranscodeSpec:
    """Target container and codecs of a transcode"""

    extension: str
    video_codec: str
    audio_codec: Optional[str] = None
    extra_args: Tuple[str, ...] = ()


PREFERRED_VIDEO = TranscodeSpec('mp4', 'libx264', audio_codec='aac')
PREFERRED_STILL_LOSSY = TranscodeSpec('jpg', 'mjpeg')
PREFERRED_STILL_LOSSLESS = TranscodeSpec('png', 'png')

# Pillow modes with three colour channels, and with three plus alpha.
# Anything else (greyscale, palette, CMYK) is rejected.
OPAQUE_IMAGE_MODES = ['RGB']
TRANSPARENT_IMAGE_MODES = ['RGBA', 'RGBa']


def copy_file_to_cache_folder(file_path, cache_folder):
    """Copy a file into a transcode scratch folder, returning the copy"""
    file_path = Path(file_path)
    cache_file_path = Path(cache_folder) / file_path.name

    try:
        shutil.copy2(file_path, cache_file_path)
    except OSError as e:
        raise FixerError(f'Failed to copy {file_path} to {cache_file_path}: {e}') from e

    return cache_file_path


def build_transcode_command(ffmpeg_path, input_path, output_path, spec):
    cmd = [
        ffmpeg_path,
        '-y',
        '-hide_banner',
        '-loglevel', 'panic',
        '-i', str(input_path),
        '-max_muxing_queue_size', '1024',
        '-vf', EVEN_DIMENSIONS_FILTER,
        '-ab', '320k',
        '-map_metadata', '-1',
        '-preset', 'slow',
        '-c:v', spec.video_codec,
    ]
    if spec.audio_codec:
        cmd += ['-c:a', spec.audio_codec]
    cmd += list(spec.extra_args)
    cmd.append(str(output_path))
    return cmd


def transcode_media_into(from_path, spec, config=None, logger=None):
    """
    Transcode a file into the format described by `spec`.

    Works on a copy inside the cache dir so a failed run never leaves a
    half-written file next to the original. On success the result replaces
    the original (same stem, new extension), keeps its access and
    modification times, and the original goes to the trash.

    Args:
        from_path: File to transcode
        spec: TranscodeSpec
        config: PipelineConfig (defaults to settings)
        logger: Optional callable(str) for logging

    Returns:
        Path: The transcoded file

    Raises:
        TranscodeError: If ffmpeg fails or produces no output
        FixerError: If copying files around fails
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    from_path = Path(from_path)

    with temp_workspace(config.cache_dir, prefix='transcode-', logger=logger) as cache_folder:
        cache_from_path = copy_file_to_cache_folder(from_path, cache_folder)
        cache_to_path = cache_from_path.with_suffix(f'.{spec.extension}')
        if cache_to_path == cache_from_path:
            cache_to_path = with_suffix_infix(cache_to_path, TRANSCODED_SUFFIX)

        log(f'Converting {cache_from_path.name} to {cache_to_path.name}')

        cmd = build_transcode_command(config.ffmpeg_path, cache_from_path, cache_to_path, spec)
        log(f'Running: {" ".join(cmd)}')

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise TranscodeError(f'Failed to run ffmpeg on {from_path}: {e}') from e

        if result.returncode != 0 or not cache_to_path.exists():
            log(f'ffmpeg stderr: {result.stderr}')
            raise TranscodeError(f'Failed transforming {from_path} into {spec.extension}')

        try:
            transfer_file_times = transferable_file_times(from_path)
        except FixerError as e:
            log(f'Failed to transfer file times: {e}')
            transfer_file_times = None

        new_file_path = from_path.with_suffix(f'.{spec.extension}')
        log(f'Copying {cache_to_path} to {new_file_path}')
        try:
            shutil.copyfile(cache_to_path, new_file_path)
        except OSError as e:
            raise FixerError(f'Failed to copy {cache_to_path} to {new_file_path}: {e}') from e

        if new_file_path != from_path:
            try:
                move_to_trash(from_path, logger=logger)
            except FixerError as e:
                log(f'Failed to delete {from_path}: {e}')

        if transfer_file_times is not None:
            try:
                transfer_file_times(new_file_path)
            except FixerError as e:
                log(f'Failed to transfer file times: {e}')

        log(f'Converted {from_path} to {spec.extension}')
        return new_file_path


def is_animated_webp(stream):
    """
    ffprobe leaves colour metadata empty for animated webp files.

    This is a heuristic: ffprobe cannot decode animated webp frames, and the
    missing colour space is the only reliable difference in its output.
    """
    return not stream.color_space


def webp_target(file_path):
    """
    Pick a still-image preset for a webp from its colour channels.

    RGB goes to the lossy preset and RGBA to the lossless one.

    Raises:
        UnsupportedCodecError: For any other colour mode
    """
    try:
        with Image.open(file_path) as img:
            mode = img.mode
    except (OSError, UnidentifiedImageError) as e:
        raise UnsupportedCodecError(f'Failed to read image {Path(file_path).name}: {e}') from e

    if mode in TRANSPARENT_IMAGE_MODES:
        return PREFERRED_STILL_LOSSLESS
    if mode in OPAQUE_IMAGE_MODES:
        return PREFERRED_STILL_LOSSY

    raise UnsupportedCodecError(
        f'File has an unknown color type ({mode}), please report this issue to the developers.'
    )


@dataclass(frozen=True)
class CodecHandler:
    name: str
    codecs: Tuple[str, ...]
    handle: object  # callable(probe, stream, config, logger) -> Path

    def can_handle(self, codec):
        return codec in self.codecs


def _handle_preferred_video(probe, stream, config, logger):
    file_path = probe.filename
    audio = probe.audio_stream

    audio_ok = audio is None or audio.codec_name == PREFERRED_AUDIO_CODEC
    extension_ok = path_has_extension(file_path, PREFERRED_VIDEO_EXTENSION)

    if logger:
        logger(f'Audio codec ok: {audio_ok} | Extension ok: {extension_ok}')

    if audio_ok and extension_ok:
        if logger:
            logger(f'File {file_path} is already in preferred format')
        return file_path

    return transcode_media_into(file_path, PREFERRED_VIDEO, config=config, logger=logger)


def _handle_convertible_video(probe, stream, config, logger):
    if logger:
        logger(f'Converting {probe.filename} into mp4')
    return transcode_media_into(probe.filename, PREFERRED_VIDEO, config=config, logger=logger)


def _handle_preferred_image(probe, stream, config, logger):
    if logger:
        logger(f'File {probe.filename} is already in preferred format')
    return probe.filename


def _handle_convertible_image(probe, stream, config, logger):
    if is_animated_webp(stream):
        raise UnsupportedCodecError(
            'Animated webp files are not supported yet, please report this issue to the developers.'
        )

    spec = webp_target(probe.filename)
    if logger:
        logger(f'Converting {probe.filename} into {spec.extension}')
    return transcode_media_into(probe.filename, spec, config=config, logger=logger)


# First match wins. Order matters only if codec lists ever overlap.
CODEC_HANDLERS = (
    CodecHandler('preferred video', (PREFERRED_VIDEO_CODEC,), _handle_preferred_video),
    CodecHandler('convertible video', tuple(CONVERTIBLE_VIDEO_CODECS), _handle_convertible_video),
    CodecHandler('preferred image', tuple(PREFERRED_IMAGE_CODECS), _handle_preferred_image),
    CodecHandler('convertible image', tuple(CONVERTIBLE_IMAGE_CODECS), _handle_convertible_image),
)


def find_codec_handler(codec):
    for handler in CODEC_HANDLERS:
        if handler.can_handle(codec):
            return handler
    return None


def convert_into_preferred_formats(file_path, config=None, logger=None):
    """
    Make sure a file uses one of the preferred containers and codecs.

    h264 video with aac audio in mp4, png and jpeg pass through untouched;
    other video codecs become h264/aac mp4; webp becomes jpg or png.

    Returns:
        Path: The (possibly new) file path

    Raises:
        FixerError: Missing file or no picture stream
        UnsupportedCodecError: Unknown codec or animated webp
        TranscodeError: ffmpeg failure
    """

    def log(message):
        if logger:
            logger(message)

    config = resolve_config(config)
    file_path = Path(file_path)
    log(f'Checking if {file_path} has unwanted formats')

    if not file_path.exists():
        raise FixerError(f'File {file_path} does not exist')

    probe = probe_file(file_path, config=config, logger=logger)

    stream = probe.picture_stream
    if stream is None:
        raise FixerError(f'Failed to get image stream of {file_path}')

    codec = stream.codec_name
    log(f'File stream codec: {codec}')

    handler = find_codec_handler(codec)
    if handler is None:
        log(f'File {file_path} has unknown codec')
        raise UnsupportedCodecError(
            f'File has an unknown codec ({codec}), please report this issue to the developers.'
        )

    log(f'Using handler: {handler.name}')
    new_path = handler.handle(probe, stream, config, logger)
    log(f'File {file_path} done being converted')
    return new_path
