"""
Common CLI utilities and decorators for consistent command behavior.
"""

import json
import sys
from functools import wraps
from typing import Any, Dict, Iterable

import click
from rich.console import Console

from .exit_codes import INTERRUPTED, CommandError, get_exit_code_for_exception

console = Console()
err_console = Console(stderr=True)


def standard_command(func):
    """
    Decorator that provides standard CLI error handling:
    - tagindex errors print their message and exit with their own code
    - Ctrl-C exits with INTERRUPTED
    - anything else is reported and mapped to an exit code by type
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            err_console.print("[yellow]Interrupted by user[/yellow]")
            sys.exit(INTERRUPTED)
        except (click.ClickException, click.Abort):
            raise
        except CommandError as e:
            err_console.print(f"[red]Error: {e}[/red]")
            sys.exit(e.exit_code)
        except Exception as e:
            err_console.print(f"[red]Command failed: {e}[/red]")
            sys.exit(get_exit_code_for_exception(e))

    return wrapper


def get_config(ctx: click.Context) -> Dict[str, Any]:
    """Configuration loaded by the root command."""
    return ctx.find_root().obj['config']


def output_jsonl(items: Iterable[Dict[str, Any]]) -> None:
    """Print one JSON object per line."""
    for item in items:
        print(json.dumps(item, ensure_ascii=False, default=str), flush=True)


json_option = click.option('--json', 'json_output', is_flag=True, help='Output as JSONL')
