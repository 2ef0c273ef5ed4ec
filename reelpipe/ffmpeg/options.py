"""
Encoding and container options for ffmpeg.

Option blocks come from the transcode template as plain dictionaries, e.g.::

    {"codec": "libx264", "preset": "slow", "tune": "film", "qp": 20, "use_qp": True}
    {"format": "matroska"}

A block is turned into one of a fixed set of option variants in two passes:
the ``codec`` (or, failing that, ``format``) discriminator is read first and
selects the variant, then the whole block is validated into that variant.
"""

import logging
import math
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from reelpipe.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Space (in kilobytes) to reserve at the start of a Matroska file for cues,
# per started hour of video. See https://www.ffmpeg.org/ffmpeg-formats.html#matroska
MATROSKA_RESERVE_INDEX_SPACE_PER_HOUR = 50


class EncodingOptions(BaseModel):
    """Base class for every option variant."""

    model_config = ConfigDict(extra="ignore", strict=True)

    # Discriminator value selecting this variant, None for fallback-only variants
    tag: ClassVar[Optional[str]] = None
    # Container variants render output format flags instead of codec flags
    is_container: ClassVar[bool] = False

    def get_options(self) -> List[str]:
        raise NotImplementedError


class CopyOptions(EncodingOptions):
    tag: ClassVar[Optional[str]] = "copy"

    def get_options(self) -> List[str]:
        return ["copy"]


class Libx264Options(EncodingOptions):
    """Software H.264 encoder settings."""

    tag: ClassVar[Optional[str]] = "libx264"

    qp: int = 0
    use_qp: bool = False
    preset: str = ""
    tune: str = ""

    def get_options(self) -> List[str]:
        args = ["libx264"]
        if self.use_qp:
            args.extend(["-qp", str(self.qp)])
        if self.preset:
            args.extend(["-preset", self.preset])
        if self.tune:
            args.extend(["-tune", self.tune])
        return args


class Libx265Options(EncodingOptions):
    """Software H.265 encoder settings."""

    tag: ClassVar[Optional[str]] = "libx265"

    crf: int = 0
    use_crf: bool = False
    preset: str = ""
    tune: str = ""

    def get_options(self) -> List[str]:
        args = ["libx265"]
        if self.use_crf:
            args.extend(["-crf", str(self.crf)])
        if self.preset:
            args.extend(["-preset", self.preset])
        if self.tune:
            args.extend(["-tune", self.tune])
        return args


class GenericAudioOptions(EncodingOptions):
    """Catch-all audio settings, used as the fallback for audio blocks."""

    codec: str = ""
    bitrate: str = ""
    channels: int = 0

    def get_options(self) -> List[str]:
        if not self.codec:
            return []
        args = [self.codec]
        if self.bitrate and self.codec != "copy":
            args.extend(["-b:a", self.bitrate])
        if self.channels > 0:
            args.extend(["-ac", str(self.channels)])
        return args


class MatroskaContainerOptions(EncodingOptions):
    tag: ClassVar[Optional[str]] = "matroska"
    is_container: ClassVar[bool] = True

    # Kilobytes reserved at the start of the file for cues
    reserve_index_space: Optional[int] = None

    def get_options(self) -> List[str]:
        args = ["-f", "matroska"]
        if self.reserve_index_space:
            args.extend(["-reserve_index_space", f"{self.reserve_index_space}k"])
        return args


class Mp4ContainerOptions(EncodingOptions):
    tag: ClassVar[Optional[str]] = "mp4"
    is_container: ClassVar[bool] = True

    enable_fast_start: bool = False

    def get_options(self) -> List[str]:
        args = ["-f", "mp4"]
        if self.enable_fast_start:
            args.extend(["-movflags", "+faststart"])
        return args


VARIANTS: Dict[str, Type[EncodingOptions]] = {
    cls.tag: cls
    for cls in (
        CopyOptions,
        Libx264Options,
        Libx265Options,
        MatroskaContainerOptions,
        Mp4ContainerOptions,
    )
}


class _Discriminator(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    codec: Optional[str] = None
    format: Optional[str] = None


def _validation_error(exc: ValidationError, variant: str) -> ConfigurationError:
    error = exc.errors()[0]
    field = ".".join(str(part) for part in error.get("loc", ())) or None
    return ConfigurationError(
        f"invalid {variant} options: field '{field}': {error.get('msg')}",
        field=field,
        value=error.get("input"),
    )


def resolve_encoding_options(
    block: Optional[Mapping[str, Any]],
    fallback: Union[EncodingOptions, Type[EncodingOptions], None] = None,
) -> EncodingOptions:
    """
    Decode a raw option block into a concrete options variant.

    Args:
        block: Untyped option mapping, as parsed from the template
        fallback: Variant (instance or class) to decode into when the
            discriminator matches nothing known

    Returns:
        A new options instance

    Raises:
        ConfigurationError: If the discriminator is unknown and there is no
            fallback, or if a field has the wrong type
    """
    if block is None:
        block = {}
    if not isinstance(block, Mapping):
        raise ConfigurationError(
            f"option block must be a mapping, got {type(block).__name__}", value=block
        )

    try:
        stub = _Discriminator.model_validate(block)
    except ValidationError as e:
        raise _validation_error(e, "discriminator") from e

    option_type = stub.codec or stub.format or ""

    target = VARIANTS.get(option_type)
    if target is None:
        if fallback is None:
            field = "codec" if stub.codec or not stub.format else "format"
            raise ConfigurationError(
                f"unknown codec or format: {option_type}", field=field, value=option_type
            )
        target = fallback if isinstance(fallback, type) else type(fallback)

    try:
        return target.model_validate(dict(block))
    except ValidationError as e:
        raise _validation_error(e, option_type or target.__name__) from e


def configure_container_options(
    options: Optional[EncodingOptions],
    enable_fast_start: bool,
    analysis=None,
) -> None:
    """Derive container flags from the fast-start request and analysis results.

    Matroska has no real fast-start; the equivalent is reserving room for the
    cues up front, which needs an estimate of the duration. Without one the
    field is left alone.
    """
    if not enable_fast_start:
        return

    if isinstance(options, MatroskaContainerOptions):
        duration = analysis.duration if analysis is not None else 0
        if duration and duration > 0:
            hours = math.floor(duration / 3600)
            options.reserve_index_space = MATROSKA_RESERVE_INDEX_SPACE_PER_HOUR * (hours + 1)
            logger.debug(
                f"Reserving {options.reserve_index_space}k of index space for {duration:.0f}s of video"
            )
        else:
            logger.debug("No duration estimate available, not reserving Matroska index space")
    elif isinstance(options, Mp4ContainerOptions):
        options.enable_fast_start = True
