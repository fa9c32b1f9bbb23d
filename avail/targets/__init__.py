from avail.targets.registry import (
    CheckConfig,
    Config,
    ConfigError,
    ExecCheckConfig,
    ShellCheckConfig,
    StatusCheckConfig,
    TargetConfig,
    load_config,
    parse_duration,
)

__all__ = [
    "CheckConfig",
    "Config",
    "ConfigError",
    "ExecCheckConfig",
    "ShellCheckConfig",
    "StatusCheckConfig",
    "TargetConfig",
    "load_config",
    "parse_duration",
]
