"""devkit-android - ゲームアプリのAndroidビルドオーケストレーター"""

from devkit_android.logger import (
    BuildLogger,
    LogConfig,
    ProgressDisplay,
    VerboseLevel,
)
from devkit_android.pipeline import (
    BuildPipeline,
    BuildStage,
    BuildStageResult,
    PipelineResult,
    StageStatus,
)

__version__ = "0.1.0"

__all__ = [
    "BuildLogger",
    "BuildPipeline",
    "BuildStage",
    "BuildStageResult",
    "LogConfig",
    "PipelineResult",
    "ProgressDisplay",
    "StageStatus",
    "VerboseLevel",
]
