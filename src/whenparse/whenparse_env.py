from pathlib import Path
import os
import tomllib
from datetime import time
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
from jinja2 import Template


# ─── Config Schema ─────────────────────────────────────────────────
class ParserConfig(BaseModel):
    locale: str = Field("en", pattern="^(en|de)$")
    max_workers: int = Field(4, ge=1, le=64)


class ScheduleConfig(BaseModel):
    default_time: str = "00:00"

    @field_validator("default_time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        time.fromisoformat(value)
        return value

    @property
    def default_time_value(self) -> time:
        return time.fromisoformat(self.default_time)


class SnoozeConfig(BaseModel):
    default: str = "in 20 minutes"
    presets: list[str] = [
        "in 20 minutes",
        "in 1 hour",
        "in 3 hours",
        "tomorrow",
        "in 1 week on Monday",
    ]


class UIConfig(BaseModel):
    ampm: bool = False


class LoggingConfig(BaseModel):
    enabled: bool = True


class WhenparseConfig(BaseModel):
    title: str = "Whenparse Configuration"
    parser: ParserConfig = ParserConfig()
    schedule: ScheduleConfig = ScheduleConfig()
    snooze: SnoozeConfig = SnoozeConfig()
    ui: UIConfig = UIConfig()
    logging: LoggingConfig = LoggingConfig()


# ─── Commented Template ────────────────────────────────────
CONFIG_TEMPLATE = """\
title = "{{ title }}"

[parser]
# locale: str = 'en' | 'de'
# the language expressions are written in
locale = "{{ parser.locale }}"

# max_workers: int
# threads used to explore the alternative readings of an expression
max_workers = {{ parser.max_workers }}

[schedule]
# default_time: str = 'HH:MM'
# time of day used when an expression names a day but no time,
# e.g. "every Monday" or "on 24.12."
default_time = "{{ schedule.default_time }}"

[snooze]
# default: str
# the phrase used by "whenparse snooze" without an argument
default = "{{ snooze.default }}"

# presets: list[str]
# phrases offered by "whenparse presets"
presets = [
{%- for preset in snooze.presets %}
    "{{ preset }}",
{%- endfor %}
]

[ui]
# ampm: bool = true | false
ampm = {{ ui.ampm | lower }}

[logging]
# enabled: bool = true | false
# write parser activity to logs/log_<YYMMDD>.md under the home directory
enabled = {{ logging.enabled | lower }}
"""

# ─── Save Config with Comments ───────────────────────────────


def render_config(config: WhenparseConfig) -> str:
    template = Template(CONFIG_TEMPLATE)
    return template.render(**config.model_dump()).strip() + "\n"


def save_config_from_template(config: WhenparseConfig, path: Path):
    path.write_text(render_config(config), encoding="utf-8")
    print(f"✅ Config with comments written to: {path}")


# ─── Main Environment Class ───────────────────────────────


class WhenparseEnvironment:
    def __init__(self):
        self._home = self._resolve_home()
        self._config: Optional[WhenparseConfig] = None

    @property
    def home(self) -> Path:
        return self._home

    @property
    def config_path(self) -> Path:
        return self.home / "config.toml"

    @property
    def log_dir(self) -> Path:
        return self.home / "logs"

    def ensure(self, init_config: bool = True):
        self.home.mkdir(parents=True, exist_ok=True)

        if init_config and not self.config_path.exists():
            save_config_from_template(WhenparseConfig(), self.config_path)

    def load_config(self) -> WhenparseConfig:
        # Step 1: Create the file if it doesn't exist
        if not self.config_path.exists():
            self.home.mkdir(parents=True, exist_ok=True)
            config = WhenparseConfig()
            self.config_path.write_text(render_config(config), encoding="utf-8")
            print(f"✅ Created new config file at {self.config_path}")
            self._config = config
            return config

        # Step 2: Try to load and validate the config
        try:
            with open(self.config_path, "rb") as f:
                data = tomllib.load(f)
            config = WhenparseConfig.model_validate(data)
        except (ValidationError, tomllib.TOMLDecodeError) as e:
            print(f"⚠️ Config error in {self.config_path}: {e}\nUsing defaults.")
            config = WhenparseConfig()

        # Step 3: Always regenerate the canonical version
        rendered = render_config(config)
        current_text = self.config_path.read_text(encoding="utf-8")
        if rendered != current_text:
            self.config_path.write_text(rendered, encoding="utf-8")
            print(f"✅ Updated {self.config_path} with any missing defaults.")

        self._config = config
        return config

    @property
    def config(self) -> WhenparseConfig:
        if self._config is None:
            return self.load_config()
        return self._config

    def _resolve_home(self) -> Path:
        cwd = Path.cwd()
        if (cwd / "config.toml").exists() and (cwd / "logs").is_dir():
            return cwd

        env_home = os.getenv("WHENPARSE_HOME")
        if env_home:
            return Path(env_home).expanduser()

        xdg_home = os.getenv("XDG_CONFIG_HOME")
        if xdg_home:
            return Path(xdg_home).expanduser() / "whenparse"
        else:
            return Path.home() / ".config" / "whenparse"
