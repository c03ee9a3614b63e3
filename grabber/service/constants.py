"""
Media format constants.

Centralized definitions of codecs, extensions and ffmpeg filters.
"""

# ffprobe stream types that carry pictures
PICTURE_CODEC_TYPES = ['video', 'image']

# Preferred targets
PREFERRED_VIDEO_CODEC = 'h264'
PREFERRED_AUDIO_CODEC = 'aac'
PREFERRED_VIDEO_EXTENSION = 'mp4'

# Lossy video codecs that get re-encoded into the preferred video format
CONVERTIBLE_VIDEO_CODECS = ['mpeg4', 'vp8', 'vp9', 'av1', 'hevc']

# Still image codecs that are kept as they are
PREFERRED_IMAGE_CODECS = ['png', 'mjpeg']

# Raster formats that need a look at their colour channels first
CONVERTIBLE_IMAGE_CODECS = ['webp']

# mimetypes.guess_extension() answers with a few odd spellings
EXTENSION_ALIASES = {
    'jpe': 'jpg',
    'jpeg': 'jpg',
}

UNKNOWN_EXTENSION = 'unknown'

# Characters that are not allowed in file names on at least one platform
UNSAFE_FILENAME_CHARACTERS = '\\/:*?"<>|'

# Scales odd frame sizes up to even ones, which libx264 requires
EVEN_DIMENSIONS_FILTER = 'scale=ceil(iw/2)*2:ceil(ih/2)*2'

CROPDETECT_FILTER = 'cropdetect=mode=black:limit=24:round=2:reset=0'

# Infix for files produced by the auto-crop stage: name.ac.mp4
AUTO_CROP_SUFFIX = 'ac'

# Infix used when a transcode keeps the file extension: name.transcoded.png
TRANSCODED_SUFFIX = 'transcoded'

# yt-dlp reports this when the URL points at a picture instead of a video
YTDLP_IMAGE_ERROR_MARKER = 'Maybe an image?'
