"""Load conversion configs from Python references."""

from __future__ import annotations

import copy
from dataclasses import is_dataclass
import importlib
import importlib.util
from pathlib import Path
from types import ModuleType
from typing import Any

from stereomux.config.schema import ConversionConfig, DriverConfig, OutputConfig


def _load_module(module_ref: str) -> ModuleType:
    path_candidate = Path(module_ref).expanduser()
    if path_candidate.exists():
        module_name = f"_stereomux_cfg_{path_candidate.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path_candidate)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load module from path: {path_candidate}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return importlib.import_module(module_ref)


def _resolve_attr(obj: Any, attr_path: str) -> Any:
    value = obj
    for part in attr_path.split("."):
        value = getattr(value, part)
    return value


def load_object(reference: str) -> Any:
    """Load object by `module_or_path:attribute` reference."""

    if ":" not in reference:
        raise ValueError("Config reference must be in form 'module_or_path:attribute'.")
    module_ref, attr = reference.split(":", maxsplit=1)
    module = _load_module(module_ref)
    return _resolve_attr(module, attr)


def default_conversion_config(width: int | None = None, height: int | None = None) -> ConversionConfig:
    """Build a default config, optionally overriding output dimensions."""

    cfg = ConversionConfig()
    if width is not None:
        cfg.output.width = int(width)
    if height is not None:
        cfg.output.height = int(height)
    return cfg


def load_conversion_config(
    config_ref: str | None,
    width: int | None = None,
    height: int | None = None,
) -> ConversionConfig:
    """Load a ConversionConfig from reference or create a default."""

    if config_ref is None:
        return default_conversion_config(width=width, height=height)

    loaded = load_object(config_ref)
    if not isinstance(loaded, ConversionConfig):
        type_name = type(loaded).__name__
        raise TypeError(
            f"Config reference must resolve to ConversionConfig, got {type_name}."
        )
    if not is_dataclass(loaded):
        raise TypeError("Loaded config is not a dataclass instance.")

    # Imported modules are cached; callers get their own copy to mutate.
    loaded = copy.deepcopy(loaded)
    # Explicit CLI dimensions win over the referenced config.
    if width is not None:
        loaded.output.width = int(width)
    if height is not None:
        loaded.output.height = int(height)
    return loaded


def conversion_config_from_dict(payload: dict[str, Any]) -> ConversionConfig:
    """Reconstruct a ConversionConfig from a plain dictionary."""

    output = dict(payload.get("output", {}))
    driver = payload.get("driver", {})
    if "layer_ids" in output:
        output["layer_ids"] = tuple(int(x) for x in output["layer_ids"])
    return ConversionConfig(
        output=OutputConfig(**output),
        driver=DriverConfig(**driver),
        ffmpeg_binary=str(payload.get("ffmpeg_binary", "ffmpeg")),
    )
