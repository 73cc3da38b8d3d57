from __future__ import annotations

from agent_teams_monitor.models import TaskStatus
from agent_teams_monitor.simulation.builders import (
    MemberSpec,
    build_config,
    build_message,
    build_task,
    build_typed_message,
    fake_uuid,
)
from agent_teams_monitor.simulation.scenario import (
    AppendInbox,
    DeleteTeam,
    Scenario,
    ScenarioFactory,
    SimEvent,
    WriteConfig,
    WriteTask,
)

QUICK_TEAM = "sim-quick"
LIFECYCLE_TEAM = "sim-lifecycle"

_KICKOFF = "Welcome team! Alpha: start research. Beta: wait for research results. Gamma: prepare your test plan."


def quick_session() -> Scenario:
    """Lead appears, one worker joins with two tasks, reports, finishes and shuts down."""
    lead_only = build_config(
        QUICK_TEAM,
        [MemberSpec("team-lead", agent_type="team-lead")],
        description="Quick bug fix session",
    )
    with_worker = build_config(
        QUICK_TEAM,
        [
            MemberSpec("team-lead", agent_type="team-lead"),
            MemberSpec("worker", color="blue", prompt="Fix the null pointer exception in PaymentService."),
        ],
        description="Quick bug fix session",
        created_at=lead_only.created_at,
    )

    investigate = "Investigate the null pointer exception in payment module"
    harden = "Add error handling for edge cases"

    return Scenario(
        name="quick",
        description="Quick 5-step session: team, agent, tasks, messages, shutdown",
        team_names=[QUICK_TEAM],
        events=[
            SimEvent(
                "Team appears with lead only",
                2000,
                [WriteConfig(QUICK_TEAM, lead_only)],
            ),
            SimEvent(
                "Worker agent joins + 2 tasks created",
                2000,
                [
                    WriteConfig(QUICK_TEAM, with_worker),
                    WriteTask(
                        QUICK_TEAM,
                        build_task("1", "worker", investigate, status=TaskStatus.IN_PROGRESS, blocks=["2"]),
                    ),
                    WriteTask(QUICK_TEAM, build_task("2", "worker", harden, blocked_by=["1"])),
                ],
            ),
            SimEvent(
                "Worker sends progress message",
                2000,
                [
                    AppendInbox(
                        QUICK_TEAM,
                        "team-lead",
                        build_message(
                            "worker",
                            "Found the bug. Null check missing in PaymentService.process(). Fixing now.",
                            summary="Bug found, fixing",
                            color="blue",
                        ),
                    )
                ],
            ),
            SimEvent(
                "Worker completes + shutdown approved",
                2000,
                [
                    AppendInbox(
                        QUICK_TEAM,
                        "team-lead",
                        build_message(
                            "worker",
                            "Fix applied and verified. Both tasks done.",
                            summary="Fix complete",
                            color="blue",
                        ),
                    ),
                    WriteTask(
                        QUICK_TEAM,
                        build_task("1", "worker", investigate, status=TaskStatus.COMPLETED, blocks=["2"]),
                    ),
                    WriteTask(
                        QUICK_TEAM,
                        build_task("2", "worker", harden, status=TaskStatus.COMPLETED, blocked_by=["1"]),
                    ),
                    AppendInbox(
                        QUICK_TEAM,
                        "team-lead",
                        build_typed_message(
                            "worker",
                            {
                                "type": "shutdown_approved",
                                "requestId": "shut-001",
                                "from": "worker",
                                "paneId": "in-process",
                                "backendType": "in-process",
                            },
                            color="blue",
                        ),
                    ),
                ],
            ),
            SimEvent(
                "Team cleaned up (disappears)",
                1000,
                [DeleteTeam(QUICK_TEAM)],
            ),
        ],
    )


def _lifecycle_tasks(status_by_id: dict[str, str]) -> list[WriteTask]:
    """Rewrite the given work items of the dependency chain with new statuses."""
    chain = {
        "1": ("agent-alpha", "Research existing codebase patterns and architecture", [], ["2", "3"]),
        "2": ("agent-beta", "Implement feature based on research findings", ["1"], ["4"]),
        "3": ("agent-gamma", "Write test plan and initial test scaffolding", ["1"], []),
        "4": ("agent-gamma", "Run full test suite and validate implementation", ["2", "3"], []),
        "5": ("agent-beta", "Fix lint warnings introduced by new feature code", [], []),
    }
    actions = []
    for task_id, status in status_by_id.items():
        subject, description, blocked_by, blocks = chain[task_id]
        task = build_task(task_id, subject, description, status=status, blocks=blocks, blocked_by=blocked_by)
        actions.append(WriteTask(LIFECYCLE_TEAM, task))
    return actions


def _shutdown(agent: str, color: str) -> list[AppendInbox]:
    request_id = f"shut-{agent.removeprefix('agent-')}"
    return [
        AppendInbox(
            LIFECYCLE_TEAM,
            agent,
            build_typed_message(
                "team-lead",
                {"type": "shutdown_request", "requestId": request_id, "from": "team-lead", "reason": "All work complete"},
            ),
        ),
        AppendInbox(
            LIFECYCLE_TEAM,
            "team-lead",
            build_typed_message(
                agent,
                {
                    "type": "shutdown_approved",
                    "requestId": request_id,
                    "from": agent,
                    "paneId": "in-process",
                    "backendType": "in-process",
                },
                color=color,
            ),
        ),
    ]


def lifecycle_session() -> Scenario:
    """Three workers, a dependency chain, a broadcast, plan review, a permission prompt and shutdown."""
    lead = MemberSpec("team-lead", agent_type="team-lead")
    alpha = MemberSpec("agent-alpha", color="blue", prompt="Research the codebase and document findings.")
    beta = MemberSpec("agent-beta", color="green", prompt="Implement the feature based on research.")
    gamma = MemberSpec(
        "agent-gamma",
        color="orange",
        prompt="Write tests and validate implementation.",
        plan_mode_required=True,
    )
    description = "Full lifecycle demo with 3 agents"
    lead_only = build_config(LIFECYCLE_TEAM, [lead], description=description)
    created = lead_only.created_at

    # One entry object per broadcast so every copy carries the same timestamp.
    kickoff = build_message("team-lead", _KICKOFF)

    return Scenario(
        name="lifecycle",
        description="Full 15-step lifecycle: 3 agents, deps, plan mode, broadcasts, shutdown",
        team_names=[LIFECYCLE_TEAM],
        events=[
            SimEvent("Team created (lead only)", 2000, [WriteConfig(LIFECYCLE_TEAM, lead_only)]),
            SimEvent(
                "4 tasks created with dependency chain",
                2000,
                _lifecycle_tasks({"1": TaskStatus.PENDING, "2": TaskStatus.PENDING, "3": TaskStatus.PENDING, "4": TaskStatus.PENDING}),
            ),
            SimEvent(
                "Agent alpha joins",
                2000,
                [
                    WriteConfig(LIFECYCLE_TEAM, build_config(LIFECYCLE_TEAM, [lead, alpha], description=description, created_at=created)),
                    *_lifecycle_tasks({"1": TaskStatus.IN_PROGRESS}),
                ],
            ),
            SimEvent(
                "Agent beta joins",
                2000,
                [WriteConfig(LIFECYCLE_TEAM, build_config(LIFECYCLE_TEAM, [lead, alpha, beta], description=description, created_at=created))],
            ),
            SimEvent(
                "Agent gamma joins (planModeRequired)",
                2000,
                [
                    WriteConfig(
                        LIFECYCLE_TEAM,
                        build_config(LIFECYCLE_TEAM, [lead, alpha, beta, gamma], description=description, created_at=created),
                    )
                ],
            ),
            SimEvent(
                "Lead broadcasts kickoff message",
                2000,
                [AppendInbox(LIFECYCLE_TEAM, agent, kickoff) for agent in ("agent-alpha", "agent-beta", "agent-gamma")],
            ),
            SimEvent(
                "Alpha sends progress update",
                2000,
                [
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_message(
                            "agent-alpha",
                            "Starting codebase analysis. Found 23 source files across 5 modules. Will document the key patterns.",
                            summary="Starting codebase analysis",
                            color="blue",
                        ),
                    )
                ],
            ),
            SimEvent(
                "Gamma submits plan; lead rejects",
                2000,
                [
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_typed_message(
                            "agent-gamma",
                            {
                                "type": "plan_approval_request",
                                "from": "agent-gamma",
                                "requestId": "plan-001",
                                "planFilePath": "~/.claude/plans/test-plan.md",
                                "planContent": "# Test Plan v1\n\n## Approach\n- Unit tests only\n- Skip integration tests",
                            },
                            color="orange",
                        ),
                    ),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "agent-gamma",
                        build_typed_message(
                            "team-lead",
                            {
                                "type": "plan_approval_response",
                                "requestId": "plan-001",
                                "approved": False,
                                "feedback": "Please include integration tests. Unit tests alone are not sufficient.",
                            },
                        ),
                    ),
                ],
            ),
            SimEvent(
                "Gamma submits revised plan; lead approves",
                2000,
                [
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_typed_message(
                            "agent-gamma",
                            {
                                "type": "plan_approval_request",
                                "from": "agent-gamma",
                                "requestId": "plan-002",
                                "planFilePath": "~/.claude/plans/test-plan-v2.md",
                                "planContent": "# Test Plan v2\n\n## Approach\n- Unit tests\n- Integration tests\n- E2E smoke test",
                            },
                            color="orange",
                        ),
                    ),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "agent-gamma",
                        build_typed_message(
                            "team-lead",
                            {
                                "type": "plan_approval_response",
                                "requestId": "plan-002",
                                "approved": True,
                                "permissionMode": "bypassPermissions",
                            },
                        ),
                    ),
                ],
            ),
            SimEvent(
                "Alpha completes research (task 1)",
                2000,
                [
                    *_lifecycle_tasks({"1": TaskStatus.COMPLETED}),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_message(
                            "agent-alpha",
                            "Research complete. Documented 5 patterns. All findings in /docs/architecture.md.",
                            summary="Research complete, 5 patterns documented",
                            color="blue",
                        ),
                    ),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "agent-beta",
                        build_message(
                            "agent-alpha",
                            "Research is done! The codebase uses the Repository pattern for data access.",
                            summary="Research results ready",
                            color="blue",
                        ),
                    ),
                ],
            ),
            SimEvent(
                "Beta claims task 2; requests Bash permission",
                2000,
                [
                    *_lifecycle_tasks({"2": TaskStatus.IN_PROGRESS}),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_typed_message(
                            "agent-beta",
                            {
                                "type": "permission_request",
                                "request_id": "perm-001",
                                "agent_id": "agent-beta",
                                "tool_name": "Bash",
                                "tool_use_id": fake_uuid("perm-tool-001"),
                                "description": "Claude wants to run: npm test",
                                "input": {"command": "npm test"},
                                "permission_suggestions": [],
                            },
                            color="green",
                        ),
                    ),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "agent-beta",
                        build_typed_message(
                            "team-lead",
                            {"type": "permission_response", "request_id": "perm-001", "approve": True},
                        ),
                    ),
                ],
            ),
            SimEvent(
                "Beta completes task 2; new task 5 created",
                2000,
                [
                    *_lifecycle_tasks({"2": TaskStatus.COMPLETED, "5": TaskStatus.IN_PROGRESS}),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_message(
                            "agent-beta",
                            "Feature implementation complete. Found some lint warnings, created task 5 to clean them up.",
                            summary="Feature done, cleaning lint",
                            color="green",
                        ),
                    ),
                    *_lifecycle_tasks({"3": TaskStatus.IN_PROGRESS}),
                ],
            ),
            SimEvent(
                "All remaining tasks completed",
                2000,
                [
                    *_lifecycle_tasks({"3": TaskStatus.COMPLETED, "4": TaskStatus.COMPLETED, "5": TaskStatus.COMPLETED}),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_message(
                            "agent-gamma",
                            "All tests passing: 42 unit tests, 8 integration tests, 2 E2E smoke tests.",
                            summary="All tests passing",
                            color="orange",
                        ),
                    ),
                    AppendInbox(
                        LIFECYCLE_TEAM,
                        "team-lead",
                        build_message("agent-beta", "Lint cleanup done. Zero warnings remaining.", summary="Lint clean", color="green"),
                    ),
                ],
            ),
            SimEvent(
                "Shutdown sequence (all 3 agents)",
                2000,
                [
                    *_shutdown("agent-alpha", "blue"),
                    *_shutdown("agent-beta", "green"),
                    *_shutdown("agent-gamma", "orange"),
                ],
            ),
            SimEvent("Team cleaned up (disappears)", 1000, [DeleteTeam(LIFECYCLE_TEAM)]),
        ],
    )



SCENARIOS: dict[str, ScenarioFactory] = {
    "quick": quick_session,
    "lifecycle": lifecycle_session,
}


def get_scenario(name: str) -> Scenario:
    factory = SCENARIOS.get(name)
    if factory is None:
        raise KeyError(f"Unknown scenario: {name!r} (available: {', '.join(sorted(SCENARIOS))})")
    return factory()
