import logging
import os

from .core import GridCore, GridState, GridView
from .draft import CommitReport, DraftEngine, EditState
from .errors import DraftGridError
from .fields import FieldRegistry, FieldSpec
from .presets import PresetStore, ViewPreset

logger = logging.getLogger("draftgrid")
if os.environ.get("DRAFTGRID_DEBUG") and not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(levelname)s:%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)


__all__ = [
    "CommitReport",
    "DraftEngine",
    "DraftGridError",
    "EditState",
    "FieldRegistry",
    "FieldSpec",
    "GridCore",
    "GridState",
    "GridView",
    "PresetStore",
    "ViewPreset",
]
