import os

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from collector.errors import ConfigurationError

DEFAULT_USER_AGENT = "collector/0.1 (+https://pypi.org/project/collector/)"

_ENV_FIELDS = {
    "COLLECTOR_FETCH_TIMEOUT": "fetch_timeout",
    "COLLECTOR_PRESERVE_ATTRIBUTE": "preserve_attribute",
    "COLLECTOR_USER_AGENT": "user_agent",
    "COLLECTOR_CONCURRENT": "concurrent",
    "COLLECTOR_ENCODING": "encoding",
}


class CollectorSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    fetch_timeout: float = Field(default=30.0, gt=0)
    preserve_attribute: str = Field(default="always-keep", min_length=1)
    user_agent: str = DEFAULT_USER_AGENT
    concurrent: bool = True
    encoding: str = "utf-8"


def get_settings(**overrides: object) -> CollectorSettings:
    """Build settings from ``COLLECTOR_*`` environment variables.

    Keyword overrides (typically CLI options) win over the environment;
    ``None`` overrides are ignored.
    """
    values: dict[str, object] = {}
    for env_name, field_name in _ENV_FIELDS.items():
        raw = os.getenv(env_name)
        if raw is not None:
            values[field_name] = raw
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return CollectorSettings(**values)  # type: ignore[arg-type]
    except ValidationError as exc:
        problems = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors())
        raise ConfigurationError(f"invalid settings: {problems}") from None
