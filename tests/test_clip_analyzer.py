from collections import Counter

import pytest

import progress
from conftest import FakeFrameSource, ScriptedPerception
from clip_analyzer import ClipAnalyzer, modal_value, sampling_window
from errors import ClipAnalysisError, EndOfStream
from models import BattlefieldOperator, Clip, DeployDirection, Location
from perception import Rect, UnitBox
from settings import RecognitionSettings

# Boxes whose area covers the screen point of a tile in stage "1-7"
BOX_2_3 = UnitBox(Rect(90, 90, 20, 20))
BOX_4_1 = UnitBox(Rect(190, 40, 20, 20))
BOX_NOWHERE = UnitBox(Rect(0, 0, 5, 5))


def make_analyzer(game_data, perception, settings=None):
    source = FakeFrameSource(total_frames=200)
    return ClipAnalyzer(source, perception, game_data.tile_geometry("1-7"), settings)


def test_modal_value_prefers_first_seen_on_tie():
    tally = Counter()
    tally['b'] += 1
    tally['a'] += 1
    tally['a'] += 1
    tally['b'] += 1

    assert modal_value(tally) == 'b'
    assert modal_value(Counter()) is None


def test_sampling_window_skips_margins():
    assert sampling_window(Clip(0, 60), 5) == (10, 50, 10)
    assert sampling_window(Clip(6, 20), 5) == (8, 18, 2)
    assert sampling_window(Clip(10, 14), 5) == (11, 13, 1)


def test_occupancy_is_modal_set(game_data):
    def boxes(i):
        if i == 20:
            return [BOX_2_3, BOX_4_1]
        return [BOX_2_3]

    perception = ScriptedPerception(battlefield=boxes)
    analyzer = make_analyzer(game_data, perception)
    clip = Clip(0, 60)

    analyzer.detect_occupancy(clip)

    assert perception.calls['detect_battlefield_units'] == [10, 20, 30, 40]
    assert list(clip.battlefield) == [Location(2, 3)]


def test_occupancy_unanimous_samples_are_kept_as_is(game_data):
    perception = ScriptedPerception(battlefield=lambda i: [BOX_4_1, BOX_2_3])
    analyzer = make_analyzer(game_data, perception)
    clip = Clip(6, 20)

    analyzer.detect_occupancy(clip)

    assert list(clip.battlefield) == [Location(4, 1), Location(2, 3)]


def test_occupancy_tie_goes_to_earliest_set(game_data):
    script = {10: [BOX_4_1], 20: [BOX_2_3], 30: [BOX_2_3], 40: [BOX_4_1]}
    perception = ScriptedPerception(battlefield=lambda i: script[i])
    analyzer = make_analyzer(game_data, perception)
    clip = Clip(0, 60)

    analyzer.detect_occupancy(clip)

    assert list(clip.battlefield) == [Location(4, 1)]


def test_unmapped_boxes_are_dropped(game_data):
    perception = ScriptedPerception(battlefield=lambda i: [BOX_NOWHERE, BOX_2_3])
    analyzer = make_analyzer(game_data, perception)
    clip = Clip(0, 60)

    analyzer.detect_occupancy(clip)

    assert list(clip.battlefield) == [Location(2, 3)]


def test_empty_field_is_a_valid_vote(game_data):
    analyzer = make_analyzer(game_data, ScriptedPerception())
    clip = Clip(0, 60)

    analyzer.detect_occupancy(clip)

    assert clip.battlefield == {}


def test_box_offset_applied_before_tile_lookup(game_data):
    settings = RecognitionSettings(oper_box_offset=(0, 40, 0, 0))
    perception = ScriptedPerception(battlefield=lambda i: [UnitBox(Rect(90, 50, 20, 20))])
    analyzer = make_analyzer(game_data, perception, settings)
    clip = Clip(0, 60)

    analyzer.detect_occupancy(clip)

    assert list(clip.battlefield) == [Location(2, 3)]


def test_clip_without_samples_fails(game_data):
    analyzer = make_analyzer(game_data, ScriptedPerception())

    with pytest.raises(ClipAnalysisError):
        analyzer.detect_occupancy(Clip(0, 2))


def test_directions_voted_for_newcomers_only(game_data):
    def direction(i, point):
        assert point == (200, 50)
        return DeployDirection.LEFT if i == 20 else DeployDirection.UP

    perception = ScriptedPerception(directions=direction)
    analyzer = make_analyzer(game_data, perception)
    previous = Clip(0, 10, battlefield={Location(2, 3): BattlefieldOperator()})
    clip = Clip(10, 70, battlefield={
        Location(2, 3): BattlefieldOperator(),
        Location(4, 1): BattlefieldOperator(),
    })

    analyzer.classify_directions(clip, previous)

    assert clip.battlefield[Location(4, 1)].direction == DeployDirection.UP
    assert clip.battlefield[Location(4, 1)].newcomer is True
    assert clip.battlefield[Location(2, 3)].newcomer is False
    assert len(perception.calls['classify_direction']) == 4


def test_direction_tie_goes_to_earliest(game_data):
    votes = {20: DeployDirection.DOWN, 30: DeployDirection.RIGHT, 40: DeployDirection.RIGHT, 50: DeployDirection.DOWN}
    perception = ScriptedPerception(directions=lambda i, point: votes[i])
    analyzer = make_analyzer(game_data, perception)
    previous = Clip(0, 10)
    clip = Clip(10, 70, battlefield={Location(5, 5): BattlefieldOperator()})

    analyzer.classify_directions(clip, previous)

    assert clip.battlefield[Location(5, 5)].direction == DeployDirection.DOWN


def test_first_clip_has_no_newcomers(game_data):
    perception = ScriptedPerception(battlefield=lambda i: [BOX_2_3])
    analyzer = make_analyzer(game_data, perception)
    clip = Clip(0, 60)

    analyzer.analyze(clip, None)

    assert clip.newcomers() == []
    assert perception.calls['classify_direction'] == []


def truncated_analyzer(game_data, perception, messages):
    source = FakeFrameSource(total_frames=200, decodable=25)
    reporter = progress.ProgressReporter(lambda msg, payload: messages.append((msg, payload['what'])))
    return ClipAnalyzer(source, perception, game_data.tile_geometry("1-7"), reporter=reporter)


def test_truncated_video_reports_detect_error(game_data):
    messages = []
    analyzer = truncated_analyzer(game_data, ScriptedPerception(battlefield=lambda i: [BOX_2_3]), messages)

    with pytest.raises(EndOfStream) as excinfo:
        analyzer.detect_occupancy(Clip(0, 60))

    # samples at 10 and 20 decode; skipping toward 30 stops where the file ends
    assert excinfo.value.frame_index == 25
    assert messages[-1] == (progress.SUBTASK_ERROR, progress.DETECT)


def test_truncated_video_reports_direction_error(game_data):
    messages = []
    perception = ScriptedPerception(directions=lambda i, point: DeployDirection.UP)
    analyzer = truncated_analyzer(game_data, perception, messages)
    clip = Clip(0, 60, battlefield={Location(2, 3): BattlefieldOperator()})

    with pytest.raises(EndOfStream):
        analyzer.classify_directions(clip, previous=Clip(0, 0))

    assert messages[-1] == (progress.SUBTASK_ERROR, progress.DIRECTION)
    assert not clip.battlefield[Location(2, 3)].newcomer
