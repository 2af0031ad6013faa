# core/arguments.py
"""
Pure argv builders for yt-dlp (acquisition) and ffmpeg (transcode).

Everything here is table-driven: new containers or source profiles are new
rows, not new branches. Nothing in this module performs I/O or raises.
"""
import re
from dataclasses import dataclass
from typing import Dict, Final, List, Optional, Tuple

from util.enums import MediaKind, SourceProfile

BEST: Final[str] = "best"
DEFAULT_AUDIO_BITRATE: Final[str] = "320k"
VIDEO_AUDIO_BITRATE: Final[str] = "192k"

_VIDEO_CAP = re.compile(r"^([1-9]\d*)p$")
_AUDIO_CAP = re.compile(r"^([1-9]\d*)k$")


@dataclass(frozen=True)
class CodecRow:
    container: str
    video_codec: Optional[str]
    audio_codec: str
    muxer: str
    content_type: str
    codec_flags: Tuple[str, ...] = ()
    muxer_flags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class AcquisitionPolicy:
    fragments: int
    buffer_size: str
    flags: Tuple[str, ...]
    fixed_format: Optional[str] = None


_FRAG_MP4 = ("-movflags", "+frag_keyframe+empty_moov+faststart+default_base_moof")
_X264 = ("-preset", "veryfast", "-tune", "zerolatency", "-crf", "23")

CODEC_TABLE: Final[Dict[Tuple[MediaKind, str], CodecRow]] = {
    (MediaKind.video, "mp4"): CodecRow(
        "mp4", "libx264", "aac", "mp4", "video/mp4", _X264, _FRAG_MP4
    ),
    (MediaKind.video, "webm"): CodecRow(
        "webm",
        "libvpx",
        "libopus",
        "webm",
        "video/webm",
        ("-deadline", "realtime", "-cpu-used", "8", "-crf", "23", "-b:v", "2M"),
    ),
    (MediaKind.video, "mkv"): CodecRow(
        "mkv", "libx264", "aac", "matroska", "video/x-matroska", _X264
    ),
    (MediaKind.audio, "mp3"): CodecRow(
        "mp3",
        None,
        "libmp3lame",
        "mp3",
        "audio/mpeg",
        ("-q:a", "0", "-compression_level", "0", "-ar", "44100", "-ac", "2"),
    ),
    (MediaKind.audio, "m4a"): CodecRow(
        "m4a",
        None,
        "aac",
        "ipod",
        "audio/mp4",
        ("-aac_coder", "fast", "-profile:a", "aac_low", "-ar", "44100", "-ac", "2"),
        ("-movflags", "+frag_keyframe+empty_moov+faststart"),
    ),
    (MediaKind.audio, "opus"): CodecRow(
        "opus",
        None,
        "libopus",
        "opus",
        "audio/opus",
        ("-compression_level", "0", "-ar", "48000", "-ac", "2"),
    ),
}

DEFAULT_CONTAINER: Final[Dict[MediaKind, str]] = {
    MediaKind.video: "mp4",
    MediaKind.audio: "mp3",
}

_COMMON_FETCH = ("--http-chunk-size", "10M")
_RESILIENT = ("--retries", "10", "--fragment-retries", "10", "--no-part")

ACQUISITION_POLICIES: Final[Dict[Tuple[SourceProfile, MediaKind], AcquisitionPolicy]] = {
    (SourceProfile.generic, MediaKind.video): AcquisitionPolicy(
        fragments=4,
        buffer_size="512K",
        flags=(
            "--no-playlist",
            "--no-check-certificate",
            "--throttled-rate",
            "100K",
        ),
    ),
    (SourceProfile.generic, MediaKind.audio): AcquisitionPolicy(
        fragments=16,
        buffer_size="2M",
        flags=(
            "--no-playlist",
            "--no-check-certificate",
            *_RESILIENT,
            "--extractor-args",
            "youtube:player_client=android",
        ),
    ),
    (SourceProfile.short_form, MediaKind.video): AcquisitionPolicy(
        fragments=4,
        buffer_size="512K",
        flags=("--no-warnings",),
        fixed_format=BEST,
    ),
    (SourceProfile.short_form, MediaKind.audio): AcquisitionPolicy(
        fragments=16,
        buffer_size="2M",
        flags=("--no-warnings", *_RESILIENT),
        fixed_format=BEST,
    ),
}

# Host markers checked in order; first hit wins.
SOURCE_PROFILE_RULES: Final[List[Tuple[Tuple[str, ...], SourceProfile]]] = [
    (("tiktok.com", "vm.tiktok.com"), SourceProfile.short_form),
]

VIDEO_QUALITIES: Final[List[str]] = [
    "144p", "240p", "360p", "480p", "720p", "1080p", "1440p", "2160p", BEST,
]
AUDIO_QUALITIES: Final[List[str]] = ["64k", "128k", "192k", "256k", "320k", BEST]


def detect_source_profile(url: str) -> SourceProfile:
    lowered = (url or "").lower()
    for markers, profile in SOURCE_PROFILE_RULES:
        if any(m in lowered for m in markers):
            return profile
    return SourceProfile.generic


def normalize_quality(media_kind: MediaKind, quality_selector: Optional[str]) -> str:
    """Return the selector when it is well-formed for this kind, else ``best``."""
    q = (quality_selector or "").strip().lower()
    pattern = _VIDEO_CAP if media_kind == MediaKind.video else _AUDIO_CAP
    return q if pattern.match(q) else BEST


def codec_row(media_kind: MediaKind, container_extension: Optional[str]) -> CodecRow:
    ext = (container_extension or "").strip().lower().lstrip(".")
    row = CODEC_TABLE.get((media_kind, ext))
    if row is None:
        row = CODEC_TABLE[(media_kind, DEFAULT_CONTAINER[media_kind])]
    return row


def content_type_for(media_kind: MediaKind, container_extension: str) -> str:
    return codec_row(media_kind, container_extension).content_type


def _format_selector(media_kind: MediaKind, quality: str) -> str:
    if media_kind == MediaKind.video:
        if quality == BEST:
            return "bestvideo+bestaudio/best"
        height = quality[:-1]
        return f"bestvideo[height<={height}]+bestaudio/best[height<={height}]"
    if quality == BEST:
        return "bestaudio[ext=m4a]/bestaudio/best"
    return f"bestaudio[abr<={quality[:-1]}]/bestaudio/best"


def build_acquisition_args(
    url: str,
    media_kind: MediaKind,
    quality_selector: Optional[str],
    source_profile: SourceProfile,
) -> List[str]:
    policy = ACQUISITION_POLICIES[(source_profile, media_kind)]
    quality = normalize_quality(media_kind, quality_selector)
    fmt = policy.fixed_format or _format_selector(media_kind, quality)
    return [
        *policy.flags,
        "-f",
        fmt,
        "--concurrent-fragments",
        str(policy.fragments),
        "--buffer-size",
        policy.buffer_size,
        *_COMMON_FETCH,
        "-o",
        "-",
        url,
    ]


def build_transcode_args(
    media_kind: MediaKind,
    container_extension: Optional[str],
    quality_selector: Optional[str],
) -> List[str]:
    row = codec_row(media_kind, container_extension)
    args = ["-hide_banner", "-loglevel", "error", "-i", "pipe:0"]
    if row.video_codec:
        args += ["-c:v", row.video_codec, *row.codec_flags]
        args += ["-c:a", row.audio_codec, "-b:a", VIDEO_AUDIO_BITRATE]
    else:
        quality = normalize_quality(media_kind, quality_selector)
        bitrate = DEFAULT_AUDIO_BITRATE if quality == BEST else quality
        args += ["-vn", "-c:a", row.audio_codec, "-b:a", bitrate, *row.codec_flags]
    args += [
        *row.muxer_flags,
        "-max_muxing_queue_size",
        "9999",
        "-f",
        row.muxer,
        "-threads",
        "0",
        "pipe:1",
    ]
    return args


def format_catalogue() -> Dict[str, List[str]]:
    def _containers(kind: MediaKind) -> List[str]:
        return [ext for (k, ext) in CODEC_TABLE if k == kind]

    return {
        "videoQualities": list(VIDEO_QUALITIES),
        "audioQualities": list(AUDIO_QUALITIES),
        "videoFormats": _containers(MediaKind.video),
        "audioFormats": _containers(MediaKind.audio),
    }


TITLE_ARGS: Final[Dict[SourceProfile, Tuple[str, ...]]] = {
    SourceProfile.generic: ("--get-title", "--no-playlist", "--skip-download"),
    SourceProfile.short_form: ("--get-title", "--no-warnings"),
}


def build_title_args(url: str, source_profile: SourceProfile) -> List[str]:
    return [*TITLE_ARGS[source_profile], url]
