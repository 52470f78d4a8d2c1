"""
Progress notifications for an observer UI.

Notifications are observational only: the observer receives a copy of the
payload and anything it raises is logged, never propagated into the run.
"""

import copy
import logging

logger = logging.getLogger(__name__)

SUBTASK_START = "SubTaskStart"
SUBTASK_COMPLETED = "SubTaskCompleted"
SUBTASK_ERROR = "SubTaskError"
SUBTASK_EXTRA_INFO = "SubTaskExtraInfo"

# Sub-stage names
ROSTER = "OcrFormation"
STAGE = "OcrStage"
DEPLOYMENT = "MatchDeployment"
SLICE = "Slice"
DETECT = "DetectOperators"
DIRECTION = "ClassifyDirection"
FINISHED = "Finished"


class ProgressReporter:
    def __init__(self, callback=None, task="CombatRecord"):
        """
        Args:
            callback: Optional function(msg, payload) called for every notification
            task: Task name included in every payload
        """
        self.callback = callback
        self.task = task

    def notify(self, msg, what, details=None):
        payload = {
            'task': self.task,
            'what': what,
            'details': copy.deepcopy(details) if details else {},
        }
        logger.debug(f"{msg} {what} {payload['details']}")
        if self.callback is None:
            return
        try:
            self.callback(msg, payload)
        except Exception:
            logger.exception(f"Progress observer failed on {msg} {what}")

    def start(self, what, details=None):
        self.notify(SUBTASK_START, what, details)

    def complete(self, what, details=None):
        self.notify(SUBTASK_COMPLETED, what, details)

    def error(self, what, details=None):
        self.notify(SUBTASK_ERROR, what, details)

    def info(self, what, details=None):
        self.notify(SUBTASK_EXTRA_INFO, what, details)
