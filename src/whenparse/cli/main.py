import json
import os
import sys
from datetime import datetime

import click
from rich import print
from rich.console import Console
from rich.table import Table
from tzlocal import get_localzone_name

from whenparse import __version__
from whenparse.errors import ExpressionError
from whenparse.parser import ExpressionParser
from whenparse.shared import duration_in_words, format_datetime, parse
from whenparse.terms import Term, TermSelection, syntax
from whenparse.whenparse_env import WhenparseEnvironment


class _DateTimeParam(click.ParamType):
    name = "datetime"

    def convert(self, value, param, ctx):
        if value is None or isinstance(value, datetime):
            return value
        s = str(value).strip().lower()
        if s == "now":
            return None
        try:
            return parse(s)
        except (ValueError, OverflowError):
            self.fail("Expected a date and time such as '2025-01-31 09:00'", param, ctx)


_DATETIME = _DateTimeParam()


def _join(words) -> str:
    if isinstance(words, str):
        return words.strip()
    return " ".join(words).strip()


def _choose(selection: TermSelection) -> Term:
    """Ask which reading was meant when the text allows several."""
    if not selection.is_ambiguous:
        return selection[0]
    print(f"[yellow]⚠️ [/yellow]{selection.text!r} can be read in {len(selection)} ways:")
    terms = sorted(selection, key=Term.describe)
    for number, term in enumerate(terms, start=1):
        print(f"  {number}. {term.describe()}")
    choice = click.prompt("Which one", type=click.IntRange(1, len(terms)), default=1)
    return terms[choice - 1]


def _when(dt: datetime, since: datetime, ampm: bool) -> str:
    delta = int((dt - since).total_seconds())
    return f"{format_datetime(dt, ampm, today=since.date())}  (in {duration_in_words(delta, short=True)})"


@click.group()
@click.version_option(__version__, prog_name="whenparse", message="%(prog)s version %(version)s")
@click.option(
    "--home",
    help="Override the whenparse home directory (equivalent to setting $WHENPARSE_HOME).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, home, verbose):
    """Whenparse CLI – turn phrases like 'every Monday at 9' into dates."""
    if home:
        os.environ["WHENPARSE_HOME"] = (
            home  # Must be set before WhenparseEnvironment is instantiated
        )

    env = WhenparseEnvironment()
    env.ensure(init_config=True)
    config = env.load_config()

    ctx.ensure_object(dict)
    ctx.obj["ENV"] = env
    ctx.obj["CONFIG"] = config
    ctx.obj["VERBOSE"] = verbose


@cli.command("parse")
@click.argument("expression", nargs=-1)
@click.pass_context
def parse_cmd(ctx, expression):
    """Show every reading of one or more ';' separated expressions."""
    config = ctx.obj["CONFIG"]
    verbose = ctx.obj["VERBOSE"]

    text = _join(expression)
    if not text and not sys.stdin.isatty():
        text = sys.stdin.read().strip()
    if not text:
        print("[bold red]✘ No expression provided. Use argument or pipe.[/bold red]")
        sys.exit(1)

    with ExpressionParser.from_config(config) as parser:
        multi = parser.parse_multi_expression(text)

    failed = False
    for selection in multi:
        if not selection.ok:
            failed = True
            print(f"[red]✘ {selection.text!r}:[/red] {selection.error}")
            continue
        print(f"[green]✔ {selection.text!r}[/green]")
        for term in sorted(selection, key=Term.describe):
            kind = "repeats" if term.is_looped else "once"
            line = f"  • {term.describe()}  [dim]({kind})[/dim]"
            if verbose:
                line += f"  [blue]{', '.join(k.value for k in term.kinds)}[/blue]"
            print(line)
    if failed:
        sys.exit(1)


@cli.command("next")
@click.argument("expression", nargs=-1, required=True)
@click.option("--since", type=_DATETIME, help="Reference time. Defaults to now.")
@click.option(
    "--count",
    "-n",
    type=click.IntRange(1, 100),
    default=1,
    help="How many occurrences of a repeating expression to list.",
)
@click.option("--json", "as_json", is_flag=True, help="Print the schedule as JSON.")
@click.pass_context
def next_cmd(ctx, expression, since, count, as_json):
    """
    Show when an expression next occurs.

    Examples:
      whenparse next every Monday at 9:00
      whenparse next --count 5 on the 31st every month
      whenparse next --since 2025-01-01 in 20 minutes
    """
    config = ctx.obj["CONFIG"]
    verbose = ctx.obj["VERBOSE"]
    ampm = config.ui.ampm

    with ExpressionParser.from_config(config) as parser:
        since = since or parser.now()
        try:
            term = _choose(parser.parse_expression(_join(expression)))
            schedule = parser.parse_schedule(term, since)
        except ExpressionError as e:
            print(f"[red]✘ {e}[/red]")
            sys.exit(1)

    if as_json:
        click.echo(json.dumps(schedule.to_dict(), indent=2))
        return

    if verbose:
        print(f"[blue]times are local ({get_localzone_name()})[/blue]")
    print(f"[green]✔ {schedule.describe()}[/green]")
    if schedule.is_repeating:
        occurrences = schedule.occurrences(since, count)
        for dt in occurrences:
            print(f"  {_when(dt, since, ampm)}")
        if len(occurrences) < count:
            print("  [dim]no further occurrences before the 'until' limit[/dim]")
    else:
        print(f"  {_when(schedule.next_occurrence(since), since, ampm)}")


@cli.command()
@click.argument("phrase", nargs=-1)
@click.option("--since", type=_DATETIME, help="Reference time. Defaults to now.")
@click.pass_context
def snooze(ctx, phrase, since):
    """Show when a reminder snoozed with PHRASE would come back."""
    config = ctx.obj["CONFIG"]
    text = _join(phrase) or config.snooze.default

    with ExpressionParser.from_config(config) as parser:
        since = since or parser.now()
        try:
            term = _choose(parser.parse_expression(text))
            when = parser.parse_snooze_time(term, since)
        except ExpressionError as e:
            print(f"[red]✘ {e}[/red]")
            sys.exit(1)

    print(f"[green]✔ {term.describe()}[/green]")
    print(f"  {_when(when, since, config.ui.ampm)}")


@cli.command()
@click.option("--since", type=_DATETIME, help="Reference time. Defaults to now.")
@click.pass_context
def presets(ctx, since):
    """List the configured snooze presets and where each one lands."""
    config = ctx.obj["CONFIG"]

    table = Table(title="Snooze presets", show_header=True, header_style="bold")
    table.add_column("#", justify="right")
    table.add_column("phrase")
    table.add_column("until")

    with ExpressionParser.from_config(config) as parser:
        since = since or parser.now()
        multi = parser.parse_multi_expression("; ".join(config.snooze.presets))
        for number, selection in enumerate(multi, start=1):
            if not selection.ok:
                table.add_row(str(number), selection.text, f"[red]{selection.error}[/red]")
                continue
            # presets are fixed phrases; the first reading is as good as any
            term = sorted(selection, key=Term.describe)[0]
            try:
                when = _when(parser.parse_snooze_time(term, since), since, config.ui.ampm)
            except ExpressionError as e:
                when = f"[red]{e}[/red]"
            table.add_row(str(number), selection.text, when)

    Console(highlight=False).print(table)


@cli.command("syntax")
@click.option("--loop", is_flag=True, help="Show the repeating forms.")
def syntax_cmd(loop):
    """Show the forms an expression can be written in."""
    table = Table(
        title="Repeating expressions" if loop else "Expressions",
        show_header=True,
        header_style="bold",
    )
    table.add_column("part")
    table.add_column("form")
    for name, text in syntax(as_loop=loop):
        table.add_row(name, text)
    Console(highlight=False).print(table)


if __name__ == "__main__":
    cli()
