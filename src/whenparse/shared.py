import inspect
import textwrap
import shutil
import threading
from datetime import date, datetime
from pathlib import Path

from dateutil.parser import parse as dateutil_parse
from dateutil.parser import parserinfo

from whenparse.whenparse_env import WhenparseEnvironment

_LOG_LOCK = threading.Lock()


def parse(s: str, yearfirst: bool = True, dayfirst: bool = False) -> datetime:
    """
    Parse free-form date/datetime text using the configured ordering rules.
    Dates without a time component come back as midnight.
    """
    pi = parserinfo(dayfirst=dayfirst, yearfirst=yearfirst)
    return dateutil_parse(s, parserinfo=pi)


def ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def duration_in_words(seconds: int, short: bool = False) -> str:
    """
    Convert a duration (seconds) into a human-readable string.
    """
    sign = "" if seconds >= 0 else "- "
    total_seconds = abs(int(seconds))
    units = [
        ("week", 604800),
        ("day", 86400),
        ("hour", 3600),
        ("minute", 60),
    ]
    parts: list[str] = []
    for name, unit_seconds in units:
        value, total_seconds = divmod(total_seconds, unit_seconds)
        if value:
            parts.append(f"{sign}{value} {name}{'s' if value > 1 else ''}")
    if not parts:
        return "zero minutes"
    return " ".join(parts[:2]) if short else " ".join(parts)


def format_datetime(dt: datetime, ampm: bool = False, today: date | None = None) -> str:
    """
    Render an occurrence relative to ``today``: just the time for today,
    the weekday within the coming week and the full date otherwise.
    """
    today = today or date.today()
    delta_days = (dt.date() - today).days

    suffix = dt.strftime("%p").lower() if ampm else ""
    hours = str(int(dt.strftime("%I"))) if ampm else dt.strftime("%H")
    minutes = dt.strftime(":%M") if not ampm or dt.minute else ""
    time_str = hours + minutes + suffix

    if delta_days == 0:
        return f"today at {time_str}"
    if 0 < delta_days <= 6:
        return f"{dt.strftime('%A')} at {time_str}"
    return f"{dt.strftime('%B')} {dt.day}, {dt.year} at {time_str}"


def _get_runtime_home() -> Path:
    return WhenparseEnvironment().home


def _resolve_log_file_path(file_path: str | Path) -> Path:
    path = Path(file_path)
    if path.is_absolute():
        return path
    return _get_runtime_home() / path


def _default_log_path(kind: str) -> Path:
    """Return <home>/logs/log_<YYMMDD>.md style paths."""
    suffix = datetime.now().strftime("%y%m%d")
    return WhenparseEnvironment().log_dir / f"{kind}_{suffix}.md"


def _caller_name(frame) -> str:
    func_name = frame.f_code.co_name
    if "self" in frame.f_locals:
        return f"{frame.f_locals['self'].__class__.__name__}.{func_name}"
    if "cls" in frame.f_locals:
        return f"{frame.f_locals['cls'].__name__}.{func_name}"
    return func_name


def _write_entry(
    kind: str,
    caller_name: str,
    msg: str,
    file_path: str | Path | None,
    print_output: bool,
) -> None:
    lines = [
        f"- {datetime.now().strftime('%H:%M:%S')} {kind}_msg ({caller_name}):  ",
    ]
    lines.extend(
        f"\n{x}"
        for x in textwrap.wrap(
            msg.strip(),
            width=max(shutil.get_terminal_size()[0] - 6, 40),
            initial_indent="   ",
            subsequent_indent="   ",
        )
    )
    lines.append("\n\n")

    if file_path is None:
        log_path = _default_log_path(kind)
    else:
        log_path = _resolve_log_file_path(file_path)
    # print instead when the log file cannot be written
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with _LOG_LOCK, open(log_path, "a", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError:
        print_output = True

    if print_output:
        print("".join(lines))


def log_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Log a message and save it directly to a file.

    Args:
        msg (str): The message to log.
        file_path (str | Path | None, optional): Overrides the default path when
            provided. Defaults to ``None`` which writes to ``logs/log_<YYMMDD>.md``.
        print_output (bool, optional): If True, also print to console.
    """
    caller = _caller_name(inspect.stack()[1].frame)
    _write_entry("log", caller, msg, file_path, print_output)


def bug_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Companion to log_msg for temporary debugging; writes ``logs/bug_<YYMMDD>.md``.
    """
    caller = _caller_name(inspect.stack()[1].frame)
    _write_entry("bug", caller, msg, file_path, print_output)
