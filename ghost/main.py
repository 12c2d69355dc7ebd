"""
ghost, cyberpunk AI assistant for your terminal.

Commands: ghost ask | chat | health | threads
"""

import functools
import sys
from typing import List, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .channel import CancelToken, Chunk, Done, Error
from .config import Config, OUTPUT_FORMATS
from .driver import ConversationDriver
from .errors import CancelledError, ExitCode, GhostError
from .health import run_health
from .inputs import build_query, read_piped_input, stdin_is_piped
from .llm import LLMAdapter, build_system_prompt
from .logger import get_logger, setup_logger
from .messages import ChatMessage
from .rendering import render_chunk, render_error, render_notice, render_response
from .store import ThreadStore
from .theme import ACCENT, MUTED
from .tools import build_registry
from .vision import analyse_images

console = Console()
err_console = Console(stderr=True)
_log = get_logger(__name__)


def _handle_errors(func):
    """Print GhostErrors as one red line and exit with their sysexits code."""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except GhostError as e:
            _log.debug("command failed", exc_info=True)
            if not isinstance(e, CancelledError):
                render_error(err_console, str(e))
            raise SystemExit(int(e.exit_code))

    return wrapper


def _load_config(ctx: click.Context, console_logging: bool = True) -> Config:
    opts = ctx.obj
    setup_logger(verbose=bool(opts["verbose"]), console=console_logging)
    config = Config.load(opts["config_file"])
    config.apply_overrides(
        host=opts["host"],
        model=opts["model"],
        vision_model=opts["vision_model"],
        verbose=True if opts["verbose"] else None,
    )
    if config.verbose and not opts["verbose"]:
        setup_logger(verbose=True, console=console_logging)
    _log.debug("config loaded from %s", config.config_source or "defaults")
    return config


def _llm_for(config: Config) -> LLMAdapter:
    return LLMAdapter(config.model, config.host, think=config.think, timeout=config.timeout)


@click.group()
@click.version_option(__version__, prog_name="ghost")
@click.option("--config", "config_file", default=None, help="Config file (YAML)")
@click.option("--host", default=None, help="Ollama API URL")
@click.option("--model", "-m", default=None, help="Chat model")
@click.option("--vision-model", default=None, help="Vision model for image analysis")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx, config_file, host, model, vision_model, verbose):
    """ghost, a cyberpunk AI assistant for your terminal."""
    ctx.obj = {
        "config_file": config_file,
        "host": host,
        "model": model,
        "vision_model": vision_model,
        "verbose": verbose,
    }


@cli.command()
@click.argument("query", nargs=-1)
@click.option("--image", "-i", "images", multiple=True, type=click.Path(dir_okay=False),
              help="Image to analyse (repeatable)")
@click.option("--format", "-f", "output_format", type=click.Choice(sorted(OUTPUT_FORMATS)),
              default="text", show_default=True, help="Output format")
@click.pass_context
@_handle_errors
def ask(ctx, query, images, output_format):
    """Ask ghost a one-shot question. Piped stdin is prepended to QUERY."""
    config = _load_config(ctx)
    config.require(vision=bool(images))

    piped = ""
    stdin = click.get_text_stream("stdin")
    if stdin_is_piped(stdin):
        piped = read_piped_input(stdin)
    prompt = build_query(query, piped)

    llm = _llm_for(config)
    cancel = CancelToken()
    new_messages: List[ChatMessage] = []
    if images:
        new_messages.extend(analyse_images(llm, config.vision_model, images,
                                           config.image_types, cancel,
                                           system_prompt=config.vision_system))
    new_messages.append(ChatMessage.user(prompt))

    history = [ChatMessage.system(build_system_prompt(output_format, config.system))]
    driver = ConversationDriver(llm, build_registry(config),
                                max_tool_iterations=config.max_tool_iterations)

    streaming = output_format == "text"
    try:
        for event in driver.stream_to(history, new_messages, cancel):
            if isinstance(event, Chunk):
                if streaming:
                    render_chunk(console, event.text)
            elif isinstance(event, Done):
                if streaming:
                    console.print()
                else:
                    render_response(console, event.message.content, output_format)
            elif isinstance(event, Error):
                if streaming:
                    console.print()
                raise event.error
    except KeyboardInterrupt:
        cancel.cancel()
        raise CancelledError() from None


@cli.command()
@click.option("--thread", "-t", "thread_id", default=None, help="Resume a stored thread")
@click.pass_context
@_handle_errors
def chat(ctx, thread_id: Optional[str]):
    """Interactive modal chat with persistent history."""
    from .tui import GhostApp

    # The TUI owns the terminal; log to file only.
    config = _load_config(ctx, console_logging=False)
    config.require()

    store = ThreadStore(config.threads_base)
    messages = [ChatMessage.system(build_system_prompt("text", config.system))]
    if thread_id:
        conversation = store.get_conversation(thread_id)
        messages.extend(conversation.chat_messages())
        _log.info("resuming thread %s (%d messages)", thread_id, len(conversation.messages))

    driver = ConversationDriver(_llm_for(config), build_registry(config), store=store,
                                thread_id=thread_id,
                                max_tool_iterations=config.max_tool_iterations)
    GhostApp(driver, config, messages).run()
    if driver.thread_id:
        render_notice(console, f"thread saved: {driver.thread_id}")


@cli.command()
@click.pass_context
@_handle_errors
def health(ctx):
    """Check configuration and the Ollama endpoint."""
    config = _load_config(ctx)
    errors = run_health(config, console)
    if errors:
        raise SystemExit(int(ExitCode.UNAVAILABLE))


@cli.command()
@click.option("--delete", "delete_id", default=None, help="Delete a thread by id")
@click.pass_context
@_handle_errors
def threads(ctx, delete_id: Optional[str]):
    """List stored threads, most recent first."""
    config = _load_config(ctx)
    store = ThreadStore(config.threads_base)

    if delete_id:
        store.delete_thread(delete_id)
        render_notice(console, f"deleted thread {delete_id}")
        return

    items = store.list_threads()
    if not items:
        render_notice(console, "no stored threads")
        return

    table = Table(show_header=True, header_style=f"bold {ACCENT}", box=None)
    table.add_column("ID")
    table.add_column("Title")
    table.add_column("Updated", style=MUTED)
    for thread in items:
        table.add_row(thread.id, thread.title,
                      thread.updated_at.astimezone().strftime("%Y-%m-%d %H:%M"))
    console.print(table)


def main():
    """Console entry point: map click usage errors to sysexits."""
    try:
        code = cli.main(standalone_mode=False)
    except click.UsageError as e:
        e.show()
        sys.exit(int(ExitCode.USAGE))
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except click.Abort:
        err_console.print("Aborted.")
        sys.exit(int(ExitCode.FAILURE))
    sys.exit(code if isinstance(code, int) else 0)


if __name__ == "__main__":
    main()
