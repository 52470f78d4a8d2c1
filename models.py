"""
Core data types shared by every pipeline stage.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, List, NamedTuple, Optional

import numpy as np


class Role(Enum):
    CASTER = "caster"
    MEDIC = "medic"
    PIONEER = "pioneer"
    SNIPER = "sniper"
    SPECIAL = "special"
    SUPPORT = "support"
    TANK = "tank"
    WARRIOR = "warrior"
    DRONE = "drone"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value):
        """Parse a role name from game data, falling back to UNKNOWN."""
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


class DeployDirection(IntEnum):
    """Facing of a deployed unit. Values are the ones written to the action log."""
    RIGHT = 0  # east
    DOWN = 1   # south
    LEFT = 2   # west
    UP = 3     # north
    NONE = 4


class Location(NamedTuple):
    """A tile coordinate on the stage map."""
    x: int
    y: int


@dataclass
class Frame:
    """A frame already resized to the processing resolution."""
    index: int
    image: np.ndarray


@dataclass
class RosterEntry:
    name: str
    avatar: Optional[np.ndarray] = None


@dataclass
class DeploymentSlot:
    """A unit waiting in the deploy tray at one sampled instant."""
    name: str = ""
    avatar: Optional[np.ndarray] = None
    role: Role = Role.UNKNOWN
    index: int = 0
    cooling: bool = False


@dataclass
class BattlefieldOperator:
    direction: DeployDirection = DeployDirection.NONE
    newcomer: bool = False


@dataclass
class Clip:
    """
    A frame interval with a stable deploy tray.

    `battlefield` keeps insertion order: locations are stored in the order
    they were first detected.
    """
    start_frame: int
    end_frame: int
    deployment: List[DeploymentSlot] = field(default_factory=list)
    cooling: int = 0
    battlefield: Dict[Location, BattlefieldOperator] = field(default_factory=dict)

    @property
    def frame_count(self):
        return self.end_frame - self.start_frame

    def roles(self):
        return [slot.role for slot in self.deployment]

    def newcomers(self):
        return [loc for loc, oper in self.battlefield.items() if oper.newcomer]


@dataclass
class DeployAction:
    name: str
    location: Location
    direction: DeployDirection

    def to_dict(self):
        return {
            'type': 'Deploy',
            'name': self.name,
            'location': [self.location.x, self.location.y],
            'direction': int(self.direction),
        }


@dataclass
class RetreatAction:
    location: Location

    def to_dict(self):
        return {
            'type': 'Retreat',
            'location': [self.location.x, self.location.y],
        }
