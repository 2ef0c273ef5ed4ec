"""
Split → transcode → place pipeline.

A run walks its inputs in order. Each input is optionally split into
episode files, every file is transcoded, and every transcoded file is placed
into the output directory under a name derived from the current episode
number. The first failure stops the run; outputs placed before it stay.
"""

import os
import shutil
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from reelpipe.analyzer import Analyzer
from reelpipe.errors import CancelledError, PipelineError, PlacementError
from reelpipe.naming import LibraryNaming, get_output_path, make_output_dirs
from reelpipe.splitter import Splitter
from reelpipe.transcoder import TranscodeOptions, TranscodeVideo

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    IDLE = "idle"
    SPLITTING = "splitting"
    TRANSCODING = "transcoding"
    PLACING = "placing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class PipelineState:
    """Progress of one pipeline run."""

    inputs: List[str]
    episode: int = 1
    stage: Stage = Stage.IDLE
    input: Optional[str] = None
    file: Optional[str] = None
    files: List[str] = field(default_factory=list)  # current input's batch
    outputs: List[str] = field(default_factory=list)


def copy_file(source: str, dest: str) -> None:
    try:
        shutil.copyfile(source, dest)
    except OSError as e:
        raise PlacementError(f"could not copy {source} to {dest}: {e}") from e


def move_file(source: str, dest: str) -> None:
    try:
        shutil.move(source, dest)
    except OSError as e:
        raise PlacementError(f"could not move {source} to {dest}: {e}") from e


class Pipeline:
    """
    Runs inputs through the split, transcode and place stages.

    Args:
        output_dir: Root directory for placed outputs
        transcoder: Object with ``transcode(file, analysis, cancel_event, on_progress)``
        splitter: Object with ``split(input)``, or None to process inputs whole
        analyzer: Object with ``analyze(file)``, or None to skip analysis
        naming: Library naming settings; flat naming when disabled
        placer: Callable placing a finished file at its destination
        on_state: Called with the PipelineState after every stage change
    """

    def __init__(
        self,
        output_dir: str,
        transcoder,
        splitter=None,
        analyzer=None,
        naming: Optional[LibraryNaming] = None,
        placer: Callable[[str, str], None] = copy_file,
        on_state: Optional[Callable[[PipelineState], None]] = None,
    ):
        self.output_dir = output_dir
        self.transcoder = transcoder
        self.splitter = splitter
        self.analyzer = analyzer
        self.naming = naming or LibraryNaming()
        self.placer = placer
        self.on_state = on_state
        self.state: Optional[PipelineState] = None

    def _set_stage(self, state: PipelineState, stage: Stage, file: Optional[str] = None):
        state.stage = stage
        state.file = file
        logger.debug(f"Pipeline stage: {stage.value} input={state.input} file={file}")
        if self.on_state:
            try:
                self.on_state(state)
            except Exception as e:
                logger.error(f"Pipeline state callback error: {e}")

    def _fail(self, state: PipelineState, error: Exception) -> PipelineError:
        stage = state.stage
        file = state.file
        self._set_stage(state, Stage.FAILED, file)
        logger.error(f"Pipeline failed while {stage.value} input={state.input} file={file}: {error}")
        return PipelineError(
            f"error while {stage.value} {file or state.input}: {error}",
            stage=stage.value,
            input=state.input,
            file=file,
            outputs=state.outputs,
        )

    @staticmethod
    def _check_cancelled(cancel_event: Optional[threading.Event]):
        if cancel_event is not None and cancel_event.is_set():
            raise CancelledError("pipeline run cancelled")

    def _split(self, state: PipelineState, input_filename: str, cancel_event) -> List[str]:
        if self.splitter is None:
            return [input_filename]

        self._set_stage(state, Stage.SPLITTING)
        self._check_cancelled(cancel_event)
        return self.splitter.split(input_filename)

    def _transcode(self, state: PipelineState, file: str, cancel_event, on_progress) -> str:
        self._set_stage(state, Stage.TRANSCODING, file)
        self._check_cancelled(cancel_event)

        analysis = None
        if self.analyzer is not None:
            analysis = self.analyzer.analyze(file)
            self._check_cancelled(cancel_event)

        return self.transcoder.transcode(file, analysis, cancel_event, on_progress)

    def _place(self, state: PipelineState, transcoded: str) -> str:
        self._set_stage(state, Stage.PLACING, transcoded)
        output = get_output_path(self.output_dir, transcoded, self.naming, state.episode)
        make_output_dirs(output)
        self.placer(transcoded, output)
        logger.info(f"Placed {transcoded} at {output}")
        return output

    def run(
        self,
        inputs: List[str],
        cancel_event: Optional[threading.Event] = None,
        on_progress=None,
    ) -> List[str]:
        """
        Process every input in order.

        Returns:
            Paths of the placed outputs

        Raises:
            PipelineError: On the first failing stage, with the cause chained
        """
        state = PipelineState(inputs=list(inputs), episode=self.naming.first_episode)
        self.state = state

        for input_filename in state.inputs:
            state.input = input_filename
            logger.info(f"Processing {input_filename}")
            try:
                state.files = []
                state.files = list(self._split(state, input_filename, cancel_event))
                for file in state.files:
                    transcoded = self._transcode(state, file, cancel_event, on_progress)
                    state.outputs.append(self._place(state, transcoded))
                    state.episode += 1
            except Exception as e:
                raise self._fail(state, e) from e

        self._set_stage(state, Stage.DONE)
        logger.info(f"Pipeline done, placed {len(state.outputs)} outputs")
        return list(state.outputs)


def cleanup_work_dir(work_dir: str) -> None:
    """Remove a run's scratch directory."""
    if not work_dir or not os.path.isdir(work_dir):
        return
    try:
        shutil.rmtree(work_dir)
    except OSError as e:
        logger.error(f"Error while cleaning up work dir {work_dir}: {e}")


def create_pipeline(
    config,
    work_dir: str,
    naming: Optional[LibraryNaming] = None,
    detector=None,
    sink=None,
    on_state: Optional[Callable[[PipelineState], None]] = None,
) -> Pipeline:
    """
    Build a pipeline from application config.

    The transcode template is resolved once here so that a bad template fails
    before any input is touched.

    Raises:
        ConfigurationError: If the transcode template or naming is invalid
    """
    options = TranscodeOptions.from_dict(config.transcode)
    transcoder = TranscodeVideo(
        work_dir=work_dir,
        options=options,
        ffmpeg_path=config.ffmpeg_path,
        use_lower_priority=config.use_lower_priority,
        report_interval=config.report_interval,
    )
    transcoder.resolve_options()

    splitter = None
    if config.split_enabled:
        splitter = Splitter(
            work_dir=work_dir,
            mkvmerge_path=config.mkvmerge_path,
            chapters=config.split_chapters,
            detector=detector,
            sink=sink,
            use_lower_priority=config.use_lower_priority,
        )

    analyzer = Analyzer(config.ffprobe_path) if config.analyze_enabled else None

    return Pipeline(
        output_dir=config.output_path,
        transcoder=transcoder,
        splitter=splitter,
        analyzer=analyzer,
        naming=naming if naming is not None else LibraryNaming.from_dict(config.naming),
        placer=move_file if config.move_outputs else copy_file,
        on_state=on_state,
    )
