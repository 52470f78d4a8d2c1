"""
Ordered action log and the copilot document built from it.
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import List, Union

from pydantic import BaseModel

from models import DeployAction, RetreatAction

logger = logging.getLogger(__name__)


class OperUsage(BaseModel):
    name: str
    skill: int = 0
    skill_usage: int = 0


class DocInfo(BaseModel):
    title: str
    details: str = ""


class CopilotDocument(BaseModel):
    stage_name: str
    minimum_required: str
    doc: DocInfo
    opers: List[OperUsage] = []
    actions: List[dict] = []


class EventLog:
    """Append-only list of actions, in the order they happened."""

    def __init__(self, stage_name="", roster=None):
        self.stage_name = stage_name
        self.roster = list(roster or [])
        self._actions = []

    def append(self, action: Union[DeployAction, RetreatAction]):
        self._actions.append(action)

    @property
    def actions(self):
        return tuple(self._actions)

    def __len__(self):
        return len(self._actions)

    def __iter__(self):
        return iter(self._actions)

    def to_document(self, video_path, minimum_required="v4.0.0"):
        """Build the copilot document for this log."""
        built_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        return CopilotDocument(
            stage_name=self.stage_name,
            minimum_required=minimum_required,
            doc=DocInfo(
                title=f"Combat record - {self.stage_name}",
                details=f"Built at: {built_at}\n{video_path}",
            ),
            opers=[OperUsage(name=name) for name in self.roster],
            actions=[action.to_dict() for action in self._actions],
        )


def document_path(cache_dir, stage_name, video_path):
    """Where a document for this stage and video is written."""
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    stage = re.sub(r'[\\/:*?"<>|]', '_', stage_name)
    filename = f"{stage}_{Path(video_path).stem}_{timestamp}.json"
    return Path(cache_dir) / "CombatRecord" / filename


def save_document(document: CopilotDocument, path) -> Path:
    """Write a copilot document as JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(document.model_dump_json(indent=4), encoding='utf-8')
    logger.info(f"Saved combat record: {path}")
    return path
