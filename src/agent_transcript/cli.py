"""CLI for agent-transcript."""

import logging
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .compact import Compactor
from .config import Config
from .diffstats import relative_time
from .errors import NotFoundError, TranscriptError
from .json_renderer import render_json
from .reader import ClaudeReader, get_project_name_from_dir
from .redact import Redactor
from .toml_renderer import render_transcript_to_file, render_transcript_toml
from .transform import chain


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Path to config file",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx, config_path: Optional[Path], verbose: bool):
    """Normalize Claude Code session logs into transcripts."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["config"] = Config.load(config_path)


def _reader(ctx, projects_dir: Optional[Path], no_author: bool = False) -> ClaudeReader:
    cfg: Config = ctx.obj["config"]
    return ClaudeReader(
        projects_dir or cfg.projects_dir,
        resolve_author=cfg.resolve_author and not no_author,
    )


@main.command()
@click.argument("target")
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["json", "toml"]),
    default="json",
    show_default=True,
    help="Output format",
)
@click.option(
    "--projects-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Path to Claude projects directory (overrides config)",
)
@click.option(
    "--output-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Write TOML to this directory instead of stdout",
)
@click.option("--compact-json", is_flag=True, help="Emit JSON without indentation")
@click.option("--no-author", is_flag=True, help="Skip git author lookup")
@click.option("--redact", is_flag=True, help="Redact secrets and personal data")
@click.option(
    "--allow",
    "allow",
    multiple=True,
    help="Regex of values never to redact (repeatable)",
)
@click.option("--compact", is_flag=True, help="Summarize tool output as line counts")
@click.option("--strip-thinking", is_flag=True, help="Empty thinking blocks (with --compact)")
@click.pass_context
def render(
    ctx,
    target: str,
    output_format: str,
    projects_dir: Optional[Path],
    output_dir: Optional[Path],
    compact_json: bool,
    no_author: bool,
    redact: bool,
    allow: tuple[str, ...],
    compact: bool,
    strip_thinking: bool,
):
    """Render a session, given as a file path or a session ID."""
    reader = _reader(ctx, projects_dir, no_author)

    try:
        if Path(target).is_file():
            transcript = reader.read_file(Path(target))
        else:
            transcript = reader.read_session(target)
    except NotFoundError:
        click.echo(f"No session found matching '{target}'", err=True)
        ctx.exit(1)
    except (TranscriptError, OSError) as e:
        raise click.ClickException(f"Failed to read {target}: {e}")

    transformers = []
    if redact:
        cfg: Config = ctx.obj["config"]
        transformers.append(Redactor(allowlist=[*cfg.redact_allowlist, *allow]))
    if compact:
        transformers.append(Compactor(strip_thinking=strip_thinking))
    chain(transcript, *transformers)

    if output_format == "json":
        click.echo(render_json(transcript, indent=not compact_json))
    elif output_dir:
        output_path = render_transcript_to_file(transcript, output_dir)
        click.echo(f"Rendered: {output_path}")
    else:
        click.echo(render_transcript_toml(transcript))


@main.command(name="list")
@click.option(
    "--projects-dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Path to Claude projects directory (overrides config)",
)
@click.option("--project", type=str, default=None, help="Only list sessions for this project")
@click.pass_context
def list_sessions(ctx, projects_dir: Optional[Path], project: Optional[str]):
    """List sessions with their titles."""
    reader = _reader(ctx, projects_dir, no_author=True)

    projects = [project] if project else reader.list_projects()
    if not projects:
        click.echo(f"No projects found in {reader.projects_dir}")
        return

    for name in projects:
        try:
            transcripts = reader.read_project(name)
        except NotFoundError:
            click.echo(f"No project found matching '{name}'", err=True)
            ctx.exit(1)

        click.echo(f"{get_project_name_from_dir(name)} ({len(transcripts)} sessions)")
        for transcript in sorted(transcripts, key=lambda t: t.created_at, reverse=True):
            when = relative_time(transcript.updated_at or transcript.created_at)
            agents = f" +{len(transcript.sub_agents)} agents" if transcript.sub_agents else ""
            click.echo(f"  {transcript.session_id}  {when:>8}  {transcript.title or '(untitled)'}{agents}")


@main.command()
@click.option(
    "--projects-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Set Claude projects directory",
)
@click.option(
    "--author-lookup",
    type=click.Choice(["on", "off"]),
    default=None,
    help="Whether to look up the git author of each session",
)
@click.option(
    "--allow",
    multiple=True,
    help="Add a regex of values never to redact (repeatable)",
)
@click.option("--clear-allowlist", is_flag=True, help="Remove all allowlist patterns")
@click.option(
    "--show",
    is_flag=True,
    help="Show current configuration",
)
@click.pass_context
def config(
    ctx,
    projects_dir: Optional[Path],
    author_lookup: Optional[str],
    allow: tuple[str, ...],
    clear_allowlist: bool,
    show: bool,
):
    """Configure agent-transcript settings."""
    cfg: Config = ctx.obj["config"]
    changed = projects_dir or author_lookup or allow or clear_allowlist

    if show or not changed:
        _show_config(cfg)
        return

    if projects_dir:
        cfg.projects_dir = projects_dir
    if author_lookup:
        cfg.resolve_author = author_lookup == "on"
    if clear_allowlist:
        cfg.redact_allowlist = []
    cfg.redact_allowlist.extend(p for p in allow if p not in cfg.redact_allowlist)

    cfg.save(ctx.obj["config_path"])
    click.echo("Configuration saved.")
    _show_config(cfg)


def _show_config(cfg: Config) -> None:
    click.echo("Current configuration:")
    click.echo(f"  Projects dir: {cfg.projects_dir}")
    click.echo(f"  Author lookup: {'on' if cfg.resolve_author else 'off'}")
    click.echo(f"  Redact allowlist: {', '.join(cfg.redact_allowlist) or '(none)'}")


if __name__ == "__main__":
    main()
