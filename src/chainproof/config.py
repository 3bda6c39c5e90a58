"""Engine configuration."""

import json
from pathlib import Path
from typing import Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError


CONFIG_FILENAME = "config.json"


class EngineConfig(BaseModel):
    """Tunables shared by the evaluator, chain controller and proof manager."""
    step_limit: int = Field(10_000, ge=1)  # reduction budget per chain step
    reduction_count: int = Field(10, ge=1)  # core frames per folding step
    folding: Literal["ivc", "nivc"] = "nivc"
    prove_timeout: Optional[float] = Field(None, gt=0)  # seconds; None = unbounded
    max_proof_frames: int = Field(1_000_000, ge=1)

    model_config = ConfigDict(frozen=True, extra="forbid")


def load_config(path: Union[str, Path]) -> EngineConfig:
    """Load an EngineConfig from a JSON file.

    Raises:
        FileNotFoundError: If path does not exist
        ValueError: If the file is not valid JSON or has unknown/invalid fields
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config {path}: {e}") from e
    try:
        return EngineConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Invalid config {path}: {e}") from e


def resolve_config(
    store_dir: Optional[Union[str, Path]] = None,
    config_path: Optional[Union[str, Path]] = None,
    **overrides,
) -> EngineConfig:
    """Explicit config file, else DIR/config.json, else defaults; then overrides.

    Overrides whose value is None are ignored.
    """
    if config_path is not None:
        config = load_config(config_path)
    elif store_dir is not None and (Path(store_dir) / CONFIG_FILENAME).exists():
        config = load_config(Path(store_dir) / CONFIG_FILENAME)
    else:
        config = EngineConfig()
    updates = {k: v for k, v in overrides.items() if v is not None}
    if updates:
        config = EngineConfig.model_validate({**config.model_dump(), **updates})
    return config
