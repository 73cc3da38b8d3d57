from __future__ import annotations

from agent_teams_monitor.history.summary import SessionRecord
from agent_teams_monitor.models import AgentTask, InboxEntry, PlainText, TaskStatus, timestamp_sort_key
from agent_teams_monitor.replay.replay_manager import RecordingInfo
from agent_teams_monitor.state.team_state import ReplayState, TeamStateManager

_TASK_MARKERS = {
    TaskStatus.PENDING: "[ ]",
    TaskStatus.IN_PROGRESS: "[~]",
    TaskStatus.COMPLETED: "[x]",
}


class StatusFormatter:
    def __init__(self, *, line_prefix: str, preview_chars: int = 60):
        self._line_prefix = line_prefix
        self._preview_chars = preview_chars

    def _preview(self, text: str) -> str:
        flat = " ".join(text.split())
        if len(flat) <= self._preview_chars:
            return flat
        return flat[: self._preview_chars - 3] + "..."

    def format_replay_state(self, replay: ReplayState) -> str:
        return (
            f"replay {replay.status} {replay.current_frame}/{replay.total_frames} "
            f"({replay.progress_pct}%, {replay.speed:g}x)"
        )

    def format_team_overview(self, state: TeamStateManager, team_name: str) -> str:
        config = state.get_team(team_name)
        status = state.get_team_status(team_name) or "unknown"
        tasks = state.get_tasks(team_name)
        done = sum(1 for t in tasks if state.get_effective_task_status(team_name, t) == TaskStatus.COMPLETED)
        members = len(config.members) if config is not None else 0
        line = f"{self._line_prefix}- {team_name}: {status} (agents={members}, tasks={done}/{len(tasks)})"
        replay = state.get_team_replay_state(team_name)
        if replay is not None:
            line += f" [{self.format_replay_state(replay)}]"
        return line

    def format_task_line(self, state: TeamStateManager, team_name: str, task: AgentTask) -> str:
        status = state.get_effective_task_status(team_name, task)
        marker = _TASK_MARKERS.get(status, "[?]")
        blocked = ""
        if state.is_task_blocked(task):
            blocked = f" (blocked by {', '.join(task.blocked_by)})"
        owner = f" @{task.owner_name}" if task.owner_name else ""
        return f"{self._line_prefix}  {marker} #{task.id} {self._preview(task.subject)}{owner}{blocked}"

    def format_message_line(self, agent_name: str, entry: InboxEntry) -> str:
        typed = entry.typed
        if isinstance(typed, PlainText):
            body = self._preview(entry.summary or entry.text)
        else:
            body = f"<{typed.type}>"
        return f"{self._line_prefix}  {entry.timestamp} {entry.sender} -> {agent_name}: {body}"

    def format_team_detail_lines(self, state: TeamStateManager, team_name: str, *, message_limit: int = 10) -> list[str]:
        config = state.get_team(team_name)
        if config is None:
            return [f"{self._line_prefix}Team not found: {team_name}"]

        lines = [self.format_team_overview(state, team_name)]
        if config.description:
            lines.append(f"{self._line_prefix}  {self._preview(config.description)}")

        lines.append(f"{self._line_prefix}Agents:")
        lifecycles = state.get_agent_lifecycle_states(team_name)
        for member in config.members:
            role = "lead" if member.is_lead else (member.agent_type or "worker")
            model = f", {member.model}" if member.model else ""
            lines.append(f"{self._line_prefix}  {member.name} ({role}{model}): {lifecycles.get(member.name, '?')}")

        tasks = state.get_tasks(team_name)
        if tasks:
            lines.append(f"{self._line_prefix}Tasks:")
            lines.extend(self.format_task_line(state, team_name, t) for t in tasks)

        inboxes = state.get_inboxes(team_name)
        recent = sorted(
            ((agent, entry) for agent, entries in inboxes.items() for entry in entries),
            key=lambda pair: timestamp_sort_key(pair[1].timestamp),
        )[-message_limit:]
        if recent:
            lines.append(f"{self._line_prefix}Recent messages:")
            lines.extend(self.format_message_line(agent, entry) for agent, entry in recent)
        return lines

    def format_recording_entry(self, index: int, recording: RecordingInfo) -> str:
        teams = ", ".join(recording.team_names) or "?"
        return (
            f"{self._line_prefix}{index}. {recording.label} [{recording.source}] "
            f"(frames={recording.frame_count}, teams={teams}) {recording.dir}"
        )

    def format_history_entry(self, record: SessionRecord) -> str:
        stats = record.stats
        return (
            f"{self._line_prefix}- {record.started_at} {record.team_name} ({record.duration}, {record.outcome}) "
            f"tasks={stats.completed_tasks}/{stats.total_tasks}, messages={stats.message_count}, "
            f"broadcasts={stats.broadcast_count}"
        )
