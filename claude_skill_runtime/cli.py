#!/usr/bin/env python3
"""
claude-skills - skill activation hooks and tooling for Claude Code.

Hook commands (wire these into .claude/settings.json):
    claude-skills hook prompt          - UserPromptSubmit
    claude-skills hook track           - PostToolUse
    claude-skills hook session-start   - SessionStart

Tooling:
    claude-skills match "prompt"       - Dry-run the matcher
    claude-skills status SESSION_ID    - Show a session's recorded state
    claude-skills validate             - Validate skill-rules.yaml
"""

import json
import sys
from datetime import datetime
from pathlib import Path

import click
from rich import box
from rich.console import Console
from rich.table import Table

from claude_skill_runtime.config import find_rules_file, load_skill_config, resolve_project_dir
from claude_skill_runtime.errors import ConfigError
from claude_skill_runtime.hooks import post_tool_use_main, prompt_submit_main, session_start_main
from claude_skill_runtime.matcher import RuleMatcher
from claude_skill_runtime.rules import deprecated_strategy_skills
from claude_skill_runtime.session_state import SessionStore

console = Console()

_PROJECT_OPTION = click.option(
    "--project", "-p", "project",
    type=click.Path(file_okay=False, path_type=Path),
    help="Project directory (default: $CLAUDE_PROJECT_DIR or cwd)",
)


def _project_dir(project):
    return Path(project).resolve() if project else resolve_project_dir()


def _load_or_exit(project_dir: Path):
    try:
        return load_skill_config(project_dir)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


def _format_ms(epoch_ms: int) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000).strftime("%Y-%m-%d %H:%M:%S")


@click.group()
@click.version_option(package_name="claude-skill-runtime")
def main():
    """
    Skill auto-activation for Claude Code.

    \b
    Examples:
        claude-skills hook prompt < event.json
        claude-skills match "add an API endpoint" -f src/api/users.ts
        claude-skills status 70534277-f3fa-458f-ade2-032c098159e5
        claude-skills validate
    """


@main.group()
def hook():
    """Hook entry points (read one JSON event from stdin, always exit 0)."""


@hook.command("prompt")
@click.option("--format", "output_format", type=click.Choice(["json", "text"]),
              help="Output format (default: settings.outputFormat)")
def hook_prompt(output_format):
    """UserPromptSubmit: inject or suggest matching skills."""
    sys.exit(prompt_submit_main(output_format))


@hook.command("track")
def hook_track():
    """PostToolUse: record files modified by Edit/Write/MultiEdit."""
    sys.exit(post_tool_use_main())


@hook.command("session-start")
def hook_session_start():
    """SessionStart: seed session state from git and index skills."""
    sys.exit(session_start_main())


@main.command("match")
@click.argument("prompt")
@click.option("--file", "-f", "files", multiple=True,
              help="Treat FILE as modified this session (repeatable)")
@click.option("--session", "-s", "session_id",
              help="Also use this session's modified files")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@_PROJECT_OPTION
def match(prompt, files, session_id, json_output, project):
    """Show how every rule scores against PROMPT (no state is written).

    \b
    Examples:
        claude-skills match "please apply terraform"
        claude-skills match "refactor this" -f src/api/users.ts
    """
    project_dir = _project_dir(project)
    config = _load_or_exit(project_dir)

    modified = list(files)
    if session_id:
        for path in SessionStore(project_dir).get_modified_files(session_id):
            if path not in modified:
                modified.append(path)

    matcher = RuleMatcher(config, project_dir)
    matches = matcher.match_prompt(prompt, modified)
    shadow = matcher.match_shadow_triggers(prompt)

    if json_output:
        print(json.dumps({
            "matches": [{
                "skill": m.skill_name,
                "score": m.score,
                "strategy": m.rule.strategy.value,
                "priority": m.rule.priority.value,
                "promptMatch": m.prompt_match,
                "fileMatch": m.file_match,
                "reason": m.reason,
            } for m in matches],
            "shadow": [{
                "skill": s.skill_name,
                "score": s.score,
                "reason": s.reason,
            } for s in shadow],
        }, indent=2))
        return

    if not matches and not shadow:
        console.print("[yellow]No skills matched[/yellow]")
        return

    if matches:
        table = Table(title="Matches", box=box.ROUNDED, show_lines=False)
        table.add_column("#", style="bold yellow", width=3)
        table.add_column("Skill", style="green")
        table.add_column("Score", justify="right", style="cyan")
        table.add_column("Strategy", style="magenta")
        table.add_column("Priority", style="blue")
        table.add_column("Reason", style="white", max_width=60, overflow="fold")
        for i, m in enumerate(matches, 1):
            table.add_row(str(i), m.skill_name, f"{m.score:g}", m.rule.strategy.value,
                          m.rule.priority.value, m.reason)
        console.print(table)
        limit = config.settings.max_suggestions
        console.print(f"[dim]maxSuggestions={limit}; native_only matches are never emitted[/dim]")

    if shadow:
        table = Table(title="Shadow suggestions", box=box.ROUNDED)
        table.add_column("Skill", style="green")
        table.add_column("Score", justify="right", style="cyan")
        table.add_column("Reason", style="white", max_width=60, overflow="fold")
        for s in shadow:
            table.add_row(s.skill_name, f"{s.score:g}", s.reason)
        console.print(table)


@main.command("status")
@click.argument("session_id")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@_PROJECT_OPTION
def status(session_id, json_output, project):
    """Show recorded activations, files and domains for SESSION_ID."""
    project_dir = _project_dir(project)
    store = SessionStore(project_dir)
    if session_id not in store.session_ids():
        print(f"Error: Session not found: {session_id}", file=sys.stderr)
        sys.exit(1)
    record = store.get_record(session_id)

    if json_output:
        print(json.dumps(record.to_dict(), indent=2))
        return

    console.print(f"\n[bold]Session:[/bold] {session_id}")
    console.print(f"[bold]Store:[/bold]   {store.path}")
    console.print(f"[bold]Tool uses:[/bold] {record.tool_use_count}")
    if record.active_domains:
        console.print(f"[bold]Domains:[/bold] {', '.join(record.active_domains)}")

    if record.activated_skills:
        table = Table(title="Activated skills", box=box.ROUNDED)
        table.add_column("Skill", style="green")
        table.add_column("Activations", justify="right", style="cyan")
        table.add_column("Last activated", style="blue")
        table.add_column("This turn", style="yellow")
        for name, stamps in record.activated_skills.items():
            this_turn = "yes" if name in record.current_prompt_skills else ""
            table.add_row(name, str(len(stamps)), _format_ms(max(stamps)), this_turn)
        console.print(table)
    else:
        console.print("[dim]No skills activated yet[/dim]")

    if record.modified_files:
        console.print("\n[bold]Modified files:[/bold]")
        for path in record.modified_files:
            console.print(f"  • {path}")


@main.command("validate")
@_PROJECT_OPTION
def validate(project):
    """Validate the project's skill-rules file and summarize its skills."""
    project_dir = _project_dir(project)
    path = find_rules_file(project_dir)
    if path is None:
        print(f"Error: no skill-rules.yaml or skill-rules.json under {project_dir}/.claude/skills",
              file=sys.stderr)
        sys.exit(1)
    config = _load_or_exit(project_dir)

    table = Table(title=f"{path}", box=box.ROUNDED)
    table.add_column("Skill", style="green")
    table.add_column("Strategy", style="magenta")
    table.add_column("Priority", style="blue")
    table.add_column("Enforcement", style="cyan")
    table.add_column("Triggers", justify="right")
    table.add_column("Cooldown", justify="right")
    for name, rule in config.skills.items():
        cooldown = (f"{rule.cooldown_minutes:g}m" if rule.cooldown_minutes
                    else f"{config.settings.recent_activation_minutes:g}m")
        triggers = str(rule.trigger_count) if rule.has_triggers else "[red]0 (inert)[/red]"
        table.add_row(name, rule.activation_strategy.value, rule.priority.value,
                      rule.enforcement.value, triggers, cooldown)
    console.print(table)

    for name in deprecated_strategy_skills(config.skills):
        console.print(f"[yellow]Warning:[/yellow] {name}: prompt_enhanced is deprecated "
                      "and behaves as native_only")
    console.print(f"[green]✓ {len(config.skills)} skills valid[/green]")


if __name__ == "__main__":
    main()
