"""TOML-based reaper, retention and cloud configuration.

Loads ~/.fleetwarden/defaults.toml (global) and fleetwarden.toml (project),
merges them, and resolves the sections into settings objects and managed
clouds.

Example fleetwarden.toml::

    [reaper]
    interval = 3600
    dry_run = false

    [retention]
    idle_minutes = 10
    one_shot = false

    [clouds.prod]
    type = "gcp"
    project = "my-project"
"""

from __future__ import annotations

import tomllib
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fleetwarden.core.exceptions import ConfigurationError
from fleetwarden.model import CLOUD_ID_LABEL_KEY, ManagedCloud
from fleetwarden.retention import DEFAULT_IDLE_MINUTES

if TYPE_CHECKING:
    from fleetwarden.protocols import CloudClient
    from fleetwarden.providers.gcp.config import GCP

    type ProviderConfig = GCP

type RawConfig = dict[str, Any]
type ClientFactory = Callable[[ProviderConfig], CloudClient]

GLOBAL_CONFIG_PATH = Path.home() / ".fleetwarden" / "defaults.toml"
PROJECT_CONFIG_NAME = "fleetwarden.toml"


@dataclass(frozen=True, slots=True)
class RetentionSettings:
    idle_minutes: int = DEFAULT_IDLE_MINUTES
    one_shot: bool = False


@dataclass(frozen=True, slots=True)
class ReaperSettings:
    interval: float = 3600.0
    dry_run: bool = False
    concurrency: int = 1
    label_key: str = CLOUD_ID_LABEL_KEY


def validate_idle_minutes(value: object) -> int:
    """Validate an operator-entered idle threshold.

    Accepts positive integers and their decimal string form. The strategy
    itself coerces bad values to the default; this is the place where the
    operator is told.

    Raises:
        ConfigurationError: The value is not a positive integer.
    """
    match value:
        case bool():
            pass
        case int() as minutes if minutes > 0:
            return minutes
        case str() as text if text.strip().isdecimal() and int(text) > 0:
            return int(text)
    raise ConfigurationError(f"idle_minutes must be a positive integer, got {value!r}")


def _deep_merge(base: RawConfig, override: RawConfig) -> RawConfig:
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _read_toml(path: Path) -> RawConfig:
    if not path.is_file():
        return {}
    with path.open("rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e


def load_config(
    *,
    project_dir: Path | None = None,
    global_path: Path | None = None,
) -> RawConfig:
    global_cfg = _read_toml(global_path or GLOBAL_CONFIG_PATH)
    project_path = (project_dir or Path.cwd()) / PROJECT_CONFIG_NAME
    project_cfg = _read_toml(project_path)

    merged = _deep_merge(global_cfg, project_cfg)
    merged.setdefault("clouds", {})
    merged.setdefault("reaper", {})
    merged.setdefault("retention", {})
    return merged


def retention_settings(config: RawConfig) -> RetentionSettings:
    raw = dict(config.get("retention", {}))
    unknown = raw.keys() - {"idle_minutes", "one_shot"}
    if unknown:
        raise ConfigurationError(f"Unknown retention settings: {', '.join(sorted(unknown))}")

    one_shot = raw.get("one_shot", False)
    if not isinstance(one_shot, bool):
        raise ConfigurationError(f"one_shot must be a boolean, got {one_shot!r}")

    return RetentionSettings(
        idle_minutes=validate_idle_minutes(raw.get("idle_minutes", DEFAULT_IDLE_MINUTES)),
        one_shot=one_shot,
    )


def reaper_settings(config: RawConfig) -> ReaperSettings:
    raw = dict(config.get("reaper", {}))
    try:
        settings = ReaperSettings(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid reaper settings: {e}") from e

    match settings:
        case ReaperSettings(interval=bool()) | ReaperSettings(concurrency=bool()):
            pass
        case ReaperSettings(
            interval=int() | float() as interval,
            dry_run=bool(),
            concurrency=int() as concurrency,
            label_key=str() as label_key,
        ) if interval > 0 and concurrency >= 1 and label_key:
            return settings
    raise ConfigurationError(f"Invalid reaper settings: {raw!r}")


def _get_provider_map() -> dict[str, type]:
    from fleetwarden.providers.gcp.config import GCP

    return {
        "gcp": GCP,
    }


def _build_provider(name: str, raw: RawConfig) -> ProviderConfig:
    raw = dict(raw)
    provider_type = raw.pop("type", None)
    if provider_type is None:
        raise ConfigurationError(f"Cloud '{name}' missing 'type' field")

    provider_map = _get_provider_map()
    cls = provider_map.get(provider_type)
    if cls is None:
        raise ConfigurationError(
            f"Unknown provider type '{provider_type}'. "
            f"Valid: {', '.join(provider_map)}"
        )
    try:
        return cls(**raw)
    except TypeError as e:
        raise ConfigurationError(f"Invalid settings for cloud '{name}': {e}") from e


def _default_client(provider: ProviderConfig) -> CloudClient:
    return provider.create_client()


def resolve_clouds(
    config: RawConfig,
    *,
    client_factory: ClientFactory | None = None,
) -> list[ManagedCloud]:
    """Build the managed clouds declared under ``[clouds.<name>]``."""
    factory = client_factory or _default_client
    label_key = reaper_settings(config).label_key

    clouds: list[ManagedCloud] = []
    for name, raw in config.get("clouds", {}).items():
        provider = _build_provider(name, raw)
        client = factory(provider)
        project = provider.project or getattr(client, "project", None)
        if not project:
            raise ConfigurationError(f"Cloud '{name}' has no project")
        clouds.append(ManagedCloud(
            name=name,
            project_id=project,
            client=client,
            label_key=label_key,
        ))
    return clouds
