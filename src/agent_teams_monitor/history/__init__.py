from agent_teams_monitor.history.pruning import prune_history
from agent_teams_monitor.history.session_archiver import SessionArchiver
from agent_teams_monitor.history.store import SessionHistory
from agent_teams_monitor.history.summary import SessionRecord, SessionStats, build_session_record

__all__ = [
    "SessionArchiver",
    "SessionHistory",
    "SessionRecord",
    "SessionStats",
    "build_session_record",
    "prune_history",
]
