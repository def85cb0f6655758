"""Entry point: wm <command> (or python -m wm <command>)

- init:          create .wm/ in the project
- distill:       extract knowledge from transcripts and categorize it
- compile:       print the working set that would be injected
- compress:      re-synthesize guardrails.md or metis.md (with backup)
- pause/resume:  toggle extraction and/or compilation
- status, show:  inspect state
- dive:          manage named dive manifests
- hook:          entry points for host hooks (always exit 0)
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from wm import __version__
from wm.config import WMConfig, is_disabled, load_config, resolve_project_dir
from wm.errors import NoChange, WMError
from wm.state import WMState, read_text


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="wm", description="Working memory for AI coding sessions")
    p.add_argument("--version", action="version", version=f"wm {__version__}")
    p.add_argument("--project-dir", help="Project root (default: $WM_PROJECT_DIR or cwd)")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    sp = p.add_subparsers(dest="cmd", required=True)

    sp.add_parser("init", help="Create .wm/ in the project")

    dist = sp.add_parser("distill", help="Extract and categorize knowledge from transcripts")
    dist.add_argument("--force", action="store_true", help="Reprocess every session")
    dist.add_argument("--dry-run", action="store_true", help="Show what would be processed")
    dist.add_argument("--project", metavar="FILTER", help="Sessions of all projects matching FILTER")

    comp = sp.add_parser("compile", help="Print the current working set")
    comp.add_argument("--session-id", help="Also write sessions/<id>/working_set.md")
    comp.add_argument("--intent", help="Current user intent (logged only)")

    press = sp.add_parser("compress", help="Compress a knowledge file")
    press.add_argument("target", nargs="?", default="metis", help="guardrails | metis (default)")
    press.add_argument("--list-backups", action="store_true", help="List backups, newest first")
    press.add_argument("--restore", metavar="BACKUP", help="Restore a backup over its file")

    for name, verb in (("pause", "Pause"), ("resume", "Resume")):
        cmd = sp.add_parser(name, help=f"{verb} extraction and/or compilation")
        cmd.add_argument("scope", nargs="?", default="both", help="extract | compile | both")

    status = sp.add_parser("status", help="Show project state")
    status.add_argument("--check", action="store_true", help="Also check the generation provider")

    show = sp.add_parser("show", help="Print a state file")
    show.add_argument(
        "what", choices=["guardrails", "metis", "raw", "working", "sessions", "errors"]
    )
    show.add_argument("--session-id", help="Session for 'working' or 'sessions'")

    dive = sp.add_parser("dive", help="Manage dive manifests")
    dsp = dive.add_subparsers(dest="dive_cmd", required=True)
    new = dsp.add_parser("new", help="Create a named manifest and make it current")
    new.add_argument("name")
    new.add_argument("--intent", default="")
    new.add_argument("--focus", default="")
    new.add_argument("--constraint", action="append", default=[], dest="constraints")
    new.add_argument("--knowledge", default="")
    new.add_argument("--step", action="append", default=[], dest="workflow")
    new.add_argument("--source", default="manual")
    new.add_argument("--overwrite", action="store_true")
    dsp.add_parser("switch", help="Make a named manifest current").add_argument("name")
    save = dsp.add_parser("save", help="Save the working manifest under a name")
    save.add_argument("name")
    save.add_argument("--overwrite", action="store_true")
    dsp.add_parser("delete", help="Delete a named manifest").add_argument("name")
    dsp.add_parser("clear", help="Use the working manifest again")
    dsp.add_parser("show", help="Print a manifest").add_argument("name", nargs="?")
    dsp.add_parser("list", help="List named manifests")
    dsp.add_parser("current", help="Print the current manifest name")

    hook = sp.add_parser("hook", help="Host hook entry points (read JSON on stdin)")
    hook.add_argument("hook_cmd", choices=["compile", "distill"])

    return p


# ── Commands ──────────────────────────────────────────────────


def _cmd_init(args: argparse.Namespace, config: WMConfig) -> int:
    state = WMState(config.project_dir)
    if state.initialize():
        print(f"Initialized {state.root}")
    else:
        print(f"Already initialized: {state.root}")
    return 0


def _cmd_distill(args: argparse.Namespace, config: WMConfig) -> int:
    from wm.distill.pipeline import DistillationPipeline
    from wm.providers import build_provider

    state = WMState(config.project_dir)
    pipeline = DistillationPipeline(state, config, build_provider(config.provider))
    report = asyncio.run(
        pipeline.run(
            config.project_dir,
            force=args.force,
            dry_run=args.dry_run,
            project_filter=args.project,
        )
    )
    for plan in report.plan:
        print(f"  {plan.session_id}  {plan.action}  ({plan.entries_in_window} entries)")
    for session_id, message in report.failed.items():
        print(f"  {session_id}  failed: {message}", file=sys.stderr)
    print(report.summary())
    return 0


def _cmd_compile(args: argparse.Namespace, config: WMConfig) -> int:
    from wm.compile import CompileEngine

    working_set = CompileEngine(WMState(config.project_dir), config).compile(
        session_id=args.session_id, intent=args.intent
    )
    if working_set.content:
        print(working_set.content)
    return 0


def _cmd_compress(args: argparse.Namespace, config: WMConfig) -> int:
    from wm.compress import CompressEngine
    from wm.providers import build_provider

    state = WMState(config.project_dir)
    state.require_initialized()

    if args.list_backups or args.restore:
        engine = CompressEngine(state, config)
        if args.restore:
            target = engine.restore(args.restore)
            print(f"Restored {target}")
        else:
            for path in engine.backups(args.target):
                print(path)
        return 0

    engine = CompressEngine(state, config, build_provider(config.provider))
    result = asyncio.run(engine.compress(args.target))
    print(
        f"Compressed {result.path.name}: {result.lines_before} -> {result.lines_after} lines "
        f"({result.reduction_percent:.0f}% reduction). Backup: {result.backup_path.name}"
    )
    return 0


def _cmd_pause(args: argparse.Namespace, config: WMConfig) -> int:
    from wm.pause import PauseController

    state = WMState(config.project_dir)
    state.require_initialized()
    controller = PauseController(state.pause_path)
    if args.cmd == "pause":
        result = controller.pause(args.scope)
    else:
        result = controller.resume(args.scope)
    print(result.describe())
    return 0


def _count_items(text: str) -> int:
    return sum(1 for line in text.splitlines() if line.startswith("- "))


def _cmd_status(args: argparse.Namespace, config: WMConfig) -> int:
    from wm.distill.cache import ExtractionCache
    from wm.dive import DiveContextManager
    from wm.pause import PauseController

    state = WMState(config.project_dir)
    state.require_initialized()
    print(f"Project:    {config.project_dir}")
    print(f"State:      {PauseController(state.pause_path).status().describe()}")
    print(f"Guardrails: {_count_items(read_text(state.guardrails_path))} items")
    print(f"Metis:      {_count_items(read_text(state.metis_path))} items")
    print(f"Sessions:   {len(ExtractionCache.load(state.cache_path))} cached")
    print(f"Dive:       {DiveContextManager(state).current() or '(working)'}")
    if args.check:
        from wm.providers import build_provider

        provider = build_provider(config.provider)
        healthy = asyncio.run(provider.health_check())
        print(f"Provider:   {provider.name} ({'available' if healthy else 'unavailable'})")
    return 0


def _cmd_show(args: argparse.Namespace, config: WMConfig) -> int:
    state = WMState(config.project_dir)
    state.require_initialized()

    if args.what == "sessions":
        from wm.distill.cache import ExtractionCache
        from wm.transcript import TranscriptStore

        cache = ExtractionCache.load(state.cache_path)
        store = TranscriptStore(config.projects_dir)
        if args.session_id:
            sessions = [store.get(config.project_dir, args.session_id)]
        else:
            sessions = store.discover(config.project_dir)
        for session in sessions:
            entry = cache.get(session.session_id)
            status = entry.status if entry else "new"
            print(
                f"{session.session_id}  {session.modified_at:%Y-%m-%d %H:%M}  "
                f"{session.size_bytes:>9} B  {status}"
            )
        return 0

    if args.what == "working":
        if not args.session_id:
            raise WMError("show working requires --session-id")
        path = state.working_set_path(args.session_id)
    else:
        path = {
            "guardrails": state.guardrails_path,
            "metis": state.metis_path,
            "raw": state.raw_extractions_path,
            "errors": state.errors_log_path,
        }[args.what]

    content = read_text(path)
    if content.strip():
        print(content.rstrip())
    else:
        print(f"({path.name} is empty)")
    return 0


def _cmd_dive(args: argparse.Namespace, config: WMConfig) -> int:
    from wm.dive import DiveContextManager

    state = WMState(config.project_dir)
    state.require_initialized()
    dives = DiveContextManager(state)

    if args.dive_cmd == "new":
        dives.new(
            args.name,
            intent=args.intent,
            focus=args.focus,
            constraints=args.constraints,
            knowledge=args.knowledge,
            workflow=args.workflow,
            source=args.source,
            overwrite=args.overwrite,
        )
        print(f"Created dive '{args.name}' (current)")
    elif args.dive_cmd == "switch":
        dives.switch(args.name)
        print(f"Switched to dive '{args.name}'")
    elif args.dive_cmd == "save":
        dives.save(args.name, overwrite=args.overwrite)
        print(f"Saved working dive context as '{args.name}'")
    elif args.dive_cmd == "delete":
        dives.delete(args.name)
        print(f"Deleted dive '{args.name}'")
    elif args.dive_cmd == "clear":
        dives.clear()
        print("Using working dive context")
    elif args.dive_cmd == "show":
        content = dives.show(args.name)
        print(content.rstrip() if content.strip() else "(no dive context)")
    elif args.dive_cmd == "list":
        current = dives.current()
        for name in dives.list():
            print(f"{'*' if name == current else ' '} {name}")
    elif args.dive_cmd == "current":
        print(dives.current() or "(working)")
    return 0


def _cmd_hook(args: argparse.Namespace) -> int:
    from wm import hooks

    raw = sys.stdin.read()
    payload = hooks.parse_hook_input(raw)
    project_dir = resolve_project_dir(args.project_dir or payload.get("cwd") or None)
    hooks.setup_hook_logging(project_dir, "DEBUG" if args.verbose else "INFO")

    if args.hook_cmd == "compile":
        print(hooks.emit(hooks.run_compile_hook(raw)))
    else:
        asyncio.run(hooks.run_distill_hook(raw))
    return 0


_COMMANDS = {
    "init": _cmd_init,
    "distill": _cmd_distill,
    "compile": _cmd_compile,
    "compress": _cmd_compress,
    "pause": _cmd_pause,
    "resume": _cmd_pause,
    "status": _cmd_status,
    "show": _cmd_show,
    "dive": _cmd_dive,
}


def main(argv: list[str] | None = None) -> int:
    if is_disabled():
        return 0

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "hook":
        try:
            return _cmd_hook(args)
        except Exception:
            logging.getLogger("wm.hooks").exception("Hook failed")
            if args.hook_cmd == "compile":
                from wm.hooks import emit, hook_response

                print(emit(hook_response()))
            return 0

    try:
        config = load_config(args.project_dir)
    except (OSError, ValueError) as e:
        print(f"Error: invalid configuration: {e}", file=sys.stderr)
        return 1
    _setup_logging("DEBUG" if args.verbose else config.log_level)

    try:
        return _COMMANDS[args.cmd](args, config)
    except NoChange as e:
        print(f"No change: {e}")
        return 0
    except (WMError, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
