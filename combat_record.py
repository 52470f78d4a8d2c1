#!/usr/bin/env python3
"""
Combat Record - rebuild a deploy/retreat action log from a battle recording.
Reads the roster, stage and deploy screen, slices the battle into clips and
diffs consecutive clips into actions.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path

import progress
from change_reconstructor import ChangeReconstructor
from clip_analyzer import ClipAnalyzer
from clip_segmenter import ClipSegmenter, drop_unchanged_clips
from errors import CombatRecordError
from event_log import EventLog, document_path, save_document
from frame_source import VideoFrameSource
from game_data import GameData
from name_resolver import NameResolver
from phase_segmenter import PhaseSegmenter
from settings import DEFAULT_THRESHOLD, RecognitionSettings

logger = logging.getLogger(__name__)


def reconstruct_events(source, perception, game_data, settings=None, reporter=None, stage_name=None):
    """
    Run the recognition pipeline over an open frame source.

    Args:
        source: VideoFrameSource at the start of the video
        perception: Perception implementation
        game_data: GameData for stage and unit lookups
        settings: RecognitionSettings (defaults used if None)
        reporter: ProgressReporter for observer notifications
        stage_name: Optional stage name; skips stage OCR when given

    Returns:
        EventLog: Every action found, in battle order
    """
    settings = settings or RecognitionSettings()
    reporter = reporter or progress.ProgressReporter()

    phases = PhaseSegmenter(source, perception, game_data, settings, reporter, stage_name=stage_name)
    result = phases.run()

    clips = ClipSegmenter(source, perception, settings, reporter).slice(result.battle_start_frame)
    clips = drop_unchanged_clips(clips)

    event_log = EventLog(result.stage_name, [entry.name for entry in result.roster])
    analyzer = ClipAnalyzer(source, perception, game_data.tile_geometry(result.stage_name), settings, reporter)
    resolver = NameResolver(result.reference_avatars, game_data, perception, settings.name_match_threshold)
    reconstructor = ChangeReconstructor(resolver, event_log)

    previous = None
    for clip in clips:
        analyzer.analyze(clip, previous)
        reconstructor.process(clip, previous)
        previous = clip

    logger.info(f"{len(event_log)} actions from {len(clips)} clips")
    return event_log


def recognize_combat_record(video_path, perception, game_data, stage_name=None,
                            settings=None, on_progress=None):
    """
    Recognize a battle recording and save its action log.

    Args:
        video_path: Path to the input video file
        perception: Perception implementation
        game_data: GameData for stage and unit lookups
        stage_name: Optional stage name; skips stage OCR when given
        settings: RecognitionSettings (defaults used if None)
        on_progress: Optional callback(msg, payload) for progress notifications

    Returns:
        Path: The written copilot document
    """
    settings = settings or RecognitionSettings()
    reporter = progress.ProgressReporter(on_progress)

    with VideoFrameSource(video_path, settings.target_height) as source:
        event_log = reconstruct_events(source, perception, game_data, settings, reporter, stage_name)

    document = event_log.to_document(video_path, settings.minimum_required)
    path = save_document(document, document_path(settings.cache_dir, event_log.stage_name, video_path))
    reporter.info(progress.FINISHED, {'filename': str(path)})
    return path


def load_perception(target, game_data):
    """Instantiate a Perception class given as 'module:ClassName'."""
    module_name, _, class_name = target.partition(':')
    if not class_name:
        raise ValueError(f"Perception must be given as module:ClassName, got {target!r}")
    cls = getattr(importlib.import_module(module_name), class_name)
    return cls(game_data=game_data)


def main():
    parser = argparse.ArgumentParser(
        description="Rebuild a deploy/retreat action log from a battle recording"
    )
    parser.add_argument("video", help="Path to the input video file")
    parser.add_argument(
        "-d", "--data-dir",
        default="data",
        help="Directory containing tiles.json and units.json (default: data)"
    )
    parser.add_argument(
        "-p", "--perception",
        required=True,
        help="Perception implementation as module:ClassName"
    )
    parser.add_argument(
        "-s", "--stage",
        default=None,
        help="Stage name; skips stage name recognition when given"
    )
    parser.add_argument(
        "--cache-dir",
        default=None,
        help="Directory the action log is written under (default: ~/.cache/combat-record)"
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=DEFAULT_THRESHOLD,
        help=f"Avatar match threshold 0-1, higher = stricter (default: {DEFAULT_THRESHOLD})"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every recognition step"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = RecognitionSettings(
        avatar_match_threshold=args.threshold,
        name_match_threshold=args.threshold,
        cache_dir=args.cache_dir,
    )

    print("=" * 60)
    print("COMBAT RECORD - Video Analysis")
    print("=" * 60)
    print()

    game_data = GameData.load(str(Path(args.data_dir)))
    perception = load_perception(args.perception, game_data)

    try:
        path = recognize_combat_record(
            video_path=args.video,
            perception=perception,
            game_data=game_data,
            stage_name=args.stage,
            settings=settings,
        )
    except CombatRecordError as e:
        print(f"Recognition failed: {e}")
        return 1

    print()
    print("=" * 60)
    print("PROCESSING COMPLETE")
    print("=" * 60)
    print(f"Action log saved to: {path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
