"""
Static game data: stage tile geometry and unit role/rarity.

Data files live in one directory:
    tiles.json  {"<stage>": [{"loc": [x, y], "pos": [px, py]}, ...], ...}
    units.json  {"<unit name>": {"role": "warrior", "rarity": 6}, ...}

Tile screen positions are expressed at the processing resolution.
"""

import difflib
import json
import logging
import os
import re

from models import Location, Role

logger = logging.getLogger(__name__)

# Units whose tray icon can show up under a role other than their own
ROLE_EXCEPTIONS = {
    "阿米娅": {Role.WARRIOR},  # Amiya
}


def normalize_for_matching(text):
    """Normalize text for fuzzy matching - uppercase, drop spaces and stray punctuation."""
    text = text.upper()
    text = re.sub(r'[^A-Z0-9\-]', '', text)
    return text


class GameData:
    def __init__(self, tiles=None, units=None):
        """
        Args:
            tiles: Mapping stage name -> list of {"loc": [x, y], "pos": [px, py]}
            units: Mapping unit name -> {"role": str, "rarity": int}
        """
        self._tiles = {}
        for stage, entries in (tiles or {}).items():
            self._tiles[stage] = {
                Location(*entry['loc']): tuple(entry['pos']) for entry in entries
            }
        self._units = dict(units or {})

    @classmethod
    def load(cls, data_dir):
        """Load tiles.json and units.json from a directory."""
        tiles_path = os.path.join(data_dir, "tiles.json")
        units_path = os.path.join(data_dir, "units.json")
        for path in (tiles_path, units_path):
            if not os.path.exists(path):
                raise FileNotFoundError(f"Game data file not found: {path}")

        with open(tiles_path, 'r', encoding='utf-8') as f:
            tiles = json.load(f)
        with open(units_path, 'r', encoding='utf-8') as f:
            units = json.load(f)

        logger.info(f"Loaded game data: {len(tiles)} stages, {len(units)} units")
        return cls(tiles=tiles, units=units)

    def stage_names(self):
        return list(self._tiles)

    def has_stage(self, name):
        return bool(name) and name in self._tiles

    def tile_geometry(self, stage_name):
        """Mapping Location -> (x, y) screen point for every tile of a stage."""
        if stage_name not in self._tiles:
            raise KeyError(f"Unknown stage: {stage_name}")
        return dict(self._tiles[stage_name])

    def unit_role(self, name):
        info = self._units.get(name)
        if info is None:
            return Role.UNKNOWN
        return Role.parse(info.get('role'))

    def unit_rarity(self, name):
        info = self._units.get(name)
        if info is None:
            return 0
        return int(info.get('rarity', 0))

    def compatible_roles(self, name):
        """Roles a unit's tray icon can carry: its own plus any known exception."""
        return {self.unit_role(name)} | ROLE_EXCEPTIONS.get(name, set())

    def closest_stage(self, text, min_similarity=0.8):
        """
        Find the closest known stage name for OCR text.

        Returns:
            The matching stage name, or None if nothing is similar enough
        """
        if not text:
            return None

        normalized_to_original = {normalize_for_matching(stage): stage for stage in self._tiles}
        matches = difflib.get_close_matches(
            normalize_for_matching(text),
            normalized_to_original.keys(),
            n=1,
            cutoff=min_similarity
        )
        if matches:
            return normalized_to_original[matches[0]]
        return None
