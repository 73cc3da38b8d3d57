from agent_teams_monitor.replay.auto_recorder import AutoRecorder
from agent_teams_monitor.replay.frames import Frame, Manifest, apply_frame, build_frame
from agent_teams_monitor.replay.replay_manager import RecordingInfo, ReplayConflictError, ReplayManager

__all__ = [
    "AutoRecorder",
    "Frame",
    "Manifest",
    "RecordingInfo",
    "ReplayConflictError",
    "ReplayManager",
    "apply_frame",
    "build_frame",
]
