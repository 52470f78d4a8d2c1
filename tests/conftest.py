"""
Shared fakes: an in-memory frame source and a scripted perception.
"""

from collections import defaultdict

import numpy as np
import pytest

from frame_source import VideoFrameSource
from game_data import GameData
from models import DeploymentSlot, Role
from perception import OnFieldResult, Perception, TrayResult


class FakeFrameSource(VideoFrameSource):
    """
    Frame source over synthetic frames; frame i is a tiny image filled with i.

    `decodable` models a truncated file: the header claims `total_frames`
    but only that many frames actually decode.
    """

    def __init__(self, total_frames, fps=30.0, decodable=None):
        self.video_path = "<memory>"
        self.cap = None
        self.fps = fps
        self.total_frames = total_frames
        self.scale = 1.0
        self.position = 0
        self._cursor = 0
        self._available = total_frames if decodable is None else decodable
        self.decoded = []
        self.seeks = []

    def _decode(self):
        if self._cursor >= self._available:
            return None
        image = np.full((4, 4, 3), self._cursor % 256, dtype=np.uint8)
        self.decoded.append(self._cursor)
        self._cursor += 1
        return image

    def _discard(self):
        if self._cursor >= self._available:
            return False
        self._cursor += 1
        return True

    def _reposition(self, index):
        self.seeks.append(index)
        self._cursor = index


class ScriptedPerception(Perception):
    """
    Perception whose answers are functions of the frame index.

    Every recognizer call is recorded in `calls` by method name.
    """

    def __init__(self, roster=None, stage=None, battle_ui=None, tray=None,
                 battlefield=None, directions=None, on_field=None):
        self.roster_script = roster or (lambda i: [])
        self.stage_script = stage or (lambda i: None)
        self.battle_ui_script = battle_ui or (lambda i: False)
        self.tray_script = tray or (lambda i: TrayResult())
        self.battlefield_script = battlefield or (lambda i: [])
        self.direction_script = directions
        self.on_field_script = on_field or (lambda i: OnFieldResult())
        self.calls = defaultdict(list)

    def read_roster(self, frame):
        self.calls['read_roster'].append(frame.index)
        return self.roster_script(frame.index)

    def read_stage_name(self, frame):
        self.calls['read_stage_name'].append(frame.index)
        return self.stage_script(frame.index)

    def detect_battle_ui(self, frame):
        self.calls['detect_battle_ui'].append(frame.index)
        return self.battle_ui_script(frame.index)

    def detect_deploy_tray(self, frame):
        self.calls['detect_deploy_tray'].append(frame.index)
        return self.tray_script(frame.index)

    def detect_battlefield_units(self, frame):
        self.calls['detect_battlefield_units'].append(frame.index)
        return self.battlefield_script(frame.index)

    def classify_direction(self, frame, base_point):
        self.calls['classify_direction'].append((frame.index, tuple(base_point)))
        return self.direction_script(frame.index, tuple(base_point))

    def detect_on_field(self, frame):
        self.calls['detect_on_field'].append(frame.index)
        return self.on_field_script(frame.index)


def random_avatar(seed, size=40):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, (size, size, 3), dtype=np.uint8)


def slot(name="", role=Role.WARRIOR, index=0, cooling=False, avatar=None):
    return DeploymentSlot(name=name, avatar=avatar, role=role, index=index, cooling=cooling)


@pytest.fixture
def game_data():
    tiles = {
        "1-7": [
            {"loc": [2, 3], "pos": [100, 100]},
            {"loc": [4, 1], "pos": [200, 50]},
            {"loc": [5, 5], "pos": [300, 300]},
        ],
        "CE-5": [
            {"loc": [0, 0], "pos": [10, 10]},
        ],
    }
    units = {
        "Alpha": {"role": "warrior", "rarity": 5},
        "Bravo": {"role": "sniper", "rarity": 4},
        "Charlie": {"role": "medic", "rarity": 1},
        "阿米娅": {"role": "caster", "rarity": 5},
    }
    return GameData(tiles=tiles, units=units)
