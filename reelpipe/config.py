"""Configuration module for reelpipe."""

import json
import os
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Any, List, Union

DEFAULT_CONFIG_PATH = "./config/config.json"


@dataclass
class Config:
    """Main application configuration."""

    output_path: str
    work_dir: Optional[str] = None  # Parent for per-run scratch dirs, system temp if None
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    mkvmerge_path: str = "mkvmerge"
    log_level: str = "INFO"  # Application log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    report_interval: float = 1.0  # Seconds between progress reports
    use_lower_priority: bool = False  # Run external tools below normal priority
    split_enabled: bool = False  # Split multi-episode inputs before transcoding
    split_chapters: Union[str, List[int]] = "all"  # mkvmerge chapter split: "all" or chapter numbers
    analyze_enabled: bool = True  # Probe each file for duration/frame count before transcoding
    move_outputs: bool = False  # Move instead of copy into the output dir
    max_concurrent_jobs: int = 1
    secret_key: Optional[str] = None  # Flask session secret key
    transcode: Dict[str, Any] = None  # Transcode template, see TranscodeOptions
    naming: Dict[str, Any] = None  # Default library naming, see LibraryNaming

    def __post_init__(self):
        """Ensure dictionaries are initialized."""
        if self.transcode is None:
            self.transcode = {}
        if self.naming is None:
            self.naming = {}


def _config_path(config_path: Optional[str]) -> str:
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)
    return config_path


def load_config(config_path: str = None) -> Config:
    """Load configuration from a JSON file."""
    config_path = _config_path(config_path)

    default_transcode = {
        "video_options": {"codec": "libx265", "crf": 22, "use_crf": True, "preset": "medium"},
        "audio_options": {"codec": "copy"},
        "subtitle_options": {"codec": "copy"},
        "container_options": {"format": "matroska"},
        "copy_all_audio_streams": True,
        "copy_all_subtitle_streams": True,
        "enable_fast_start": True,
    }

    default_config = {
        "output_path": "./reelpipe-output",
        "transcode": default_transcode,
    }

    if not os.path.exists(config_path):
        logging.warning(
            f"Config file not found at {config_path}, using default configuration"
        )
        config_data = default_config
    else:
        with open(config_path, "r") as f:
            config_data = json.load(f)

        if not config_data.get("transcode"):
            logging.warning("No transcode template in config file, using default template")
            config_data["transcode"] = default_transcode

    return Config(
        output_path=config_data.get("output_path", default_config["output_path"]),
        work_dir=config_data.get("work_dir"),
        ffmpeg_path=config_data.get("ffmpeg_path", "ffmpeg"),
        ffprobe_path=config_data.get("ffprobe_path", "ffprobe"),
        mkvmerge_path=config_data.get("mkvmerge_path", "mkvmerge"),
        log_level=config_data.get("log_level", "INFO"),
        report_interval=float(config_data.get("report_interval", 1.0)),
        use_lower_priority=config_data.get("use_lower_priority", False),
        split_enabled=config_data.get("split_enabled", False),
        split_chapters=config_data.get("split_chapters", "all"),
        analyze_enabled=config_data.get("analyze_enabled", True),
        move_outputs=config_data.get("move_outputs", False),
        max_concurrent_jobs=config_data.get("max_concurrent_jobs", 1),
        secret_key=config_data.get("secret_key"),
        transcode=config_data.get("transcode"),
        naming=config_data.get("naming", {}),
    )


def save_config(config: Config, config_path: str = None) -> None:
    """Save configuration to a JSON file."""
    config_path = _config_path(config_path)

    # Generate a secret key if one doesn't exist
    if not config.secret_key:
        import secrets
        config.secret_key = secrets.token_hex(32)
        logging.info("Generated new Flask secret key")

    config_data = {
        "output_path": config.output_path,
        "work_dir": config.work_dir,
        "ffmpeg_path": config.ffmpeg_path,
        "ffprobe_path": config.ffprobe_path,
        "mkvmerge_path": config.mkvmerge_path,
        "log_level": config.log_level,
        "report_interval": config.report_interval,
        "use_lower_priority": config.use_lower_priority,
        "split_enabled": config.split_enabled,
        "split_chapters": config.split_chapters,
        "analyze_enabled": config.analyze_enabled,
        "move_outputs": config.move_outputs,
        "max_concurrent_jobs": config.max_concurrent_jobs,
        "secret_key": config.secret_key,
        "transcode": config.transcode,
        "naming": config.naming,
    }

    config_dir = os.path.dirname(config_path)
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(config_data, f, indent=2)
